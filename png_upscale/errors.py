"""
Error Types for PNG Upscaler

ModelLoadFailure is fatal for a whole run. InferenceFailure and ShapeMismatch
abort the image being converted. Decode/encode failures only skip one file.
"""


class UpscaleError(Exception):
    """Base class for every failure raised by the upscaler."""


class ModelLoadFailure(UpscaleError):
    """The inference engine could not be initialized."""


class InferenceFailure(UpscaleError):
    """An engine call raised, timed out or returned nothing for a tile."""


class ShapeMismatch(InferenceFailure):
    """The engine returned a buffer that is not the doubled chunk."""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected inference result {expected}, got {actual}")


class ImageDecodeFailure(UpscaleError):
    """An input file could not be read as an image."""


class ImageEncodeFailure(UpscaleError):
    """An upscaled image could not be written."""
