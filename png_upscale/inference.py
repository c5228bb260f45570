"""
Inference Engine Boundary for PNG Upscaler

This module defines the engine handle the tile pipeline talks to, the tensor
layouts engines can declare, the session slots that bound concurrent calls,
and the adapter that validates every result before it reaches the stitcher.

Concrete PyTorch engines live in models.py.
"""

import threading
import numpy as np
from enum import Enum
from typing import Callable, Optional, Tuple

from .config import SCALE
from .errors import InferenceFailure, ModelLoadFailure, ShapeMismatch


ProgressCallback = Callable[[float], None]


# ============================================================================
# Tensor Layouts
# ============================================================================

class TensorLayout(Enum):
    """Tensor layout a model expects for its input (and produces as output)."""

    RGBA_HWC_UINT8 = "rgba_hwc_uint8"  # (h, w, 4) uint8, passed through as-is
    RGB_NCHW_FLOAT = "rgb_nchw_float"  # (1, 3, h, w) float in [0, 1]
    RGB_NCHW_UINT8 = "rgb_nchw_uint8"  # (1, 3, h, w) uint8

    @property
    def has_alpha(self) -> bool:
        return self is TensorLayout.RGBA_HWC_UINT8

    @property
    def is_float(self) -> bool:
        return self is TensorLayout.RGB_NCHW_FLOAT


# ============================================================================
# Load Progress
# ============================================================================

class _MonotonicProgress:
    """Forward progress values to a callback, clamped to [0, 1] and never decreasing."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.value = 0.0

    def __call__(self, value: float) -> None:
        value = min(1.0, max(self.value, float(value)))
        self.value = value
        if self.callback is not None:
            self.callback(value)


# ============================================================================
# Engine Handle
# ============================================================================

class InferenceEngine:
    """
    Handle to one loaded 2x super-resolution model.

    Engines are explicit objects passed into the pipeline; nothing is cached
    at module level, so tests and several engines can coexist in one process.

    Subclasses implement _load(), _forward() and optionally _release().
    The forward contract is (h, w, 4) uint8 RGBA in, (2h, 2w, 4) uint8 RGBA out.

    Examples
    --------
    >>> with SpandrelEngine("models/2x_model.pth") as engine:
    ...     out = multi_upscale(image, 2, engine)
    """

    layout: TensorLayout = TensorLayout.RGBA_HWC_UINT8

    def __init__(self, name: str = "engine"):
        self.name = name
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self, progress: Optional[ProgressCallback] = None) -> "InferenceEngine":
        """
        Load the model once, reporting progress from 0 to 1.

        Args:
            progress: Optional callback receiving monotonic values in [0, 1]

        Returns:
            self, for chaining

        Raises:
            ModelLoadFailure: If the model can't be initialized
        """
        if self._loaded:
            return self

        reporter = _MonotonicProgress(progress)
        reporter(0.0)
        try:
            self._load(reporter)
        except ModelLoadFailure:
            raise
        except Exception as e:
            raise ModelLoadFailure(f"Failed to load {self.name}: {e}") from e

        self._loaded = True
        reporter(1.0)
        return self

    def infer(self, chunk: np.ndarray) -> np.ndarray:
        """Run the model on one chunk."""
        if not self._loaded:
            raise RuntimeError(f"Engine '{self.name}' must be loaded before use. Call engine.load()")
        return self._forward(chunk)

    def close(self) -> None:
        """Release the model. The engine can be loaded again afterwards."""
        if self._loaded:
            self._release()
            self._loaded = False

    def __enter__(self) -> "InferenceEngine":
        return self.load()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _load(self, progress: ProgressCallback) -> None:
        pass

    def _forward(self, chunk: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _release(self) -> None:
        pass


# ============================================================================
# Session Slots for Parallel Tiles
# ============================================================================

class SessionPool:
    """
    Limits the number of concurrent inference calls on a shared engine.

    Uses a semaphore, so tile workers block until a slot is free.
    """

    def __init__(self, max_sessions: int = 1):
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be at least 1, got {max_sessions}")
        self.max_sessions = max_sessions
        self.semaphore = threading.Semaphore(max_sessions)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Wait for a free slot (blocks forever when timeout is None)."""
        return self.semaphore.acquire(timeout=timeout)

    def release(self) -> None:
        self.semaphore.release()

    def __enter__(self) -> "SessionPool":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


# ============================================================================
# Inference Adapter
# ============================================================================

def expected_result_shape(chunk: np.ndarray) -> Tuple[int, int, int]:
    """Shape the engine must return for a chunk: (2h, 2w, 4)."""
    h, w = chunk.shape[:2]
    return (h * SCALE, w * SCALE, 4)


def validate_result(chunk: np.ndarray, result) -> np.ndarray:
    """
    Check an engine result against the doubled chunk dimensions.

    Raises:
        ShapeMismatch: If the result isn't a (2h, 2w, 4) uint8 array
    """
    expected = expected_result_shape(chunk)
    if not isinstance(result, np.ndarray):
        raise ShapeMismatch(expected, type(result).__name__)
    if result.shape != expected:
        raise ShapeMismatch(expected, result.shape)
    if result.dtype != np.uint8:
        raise ShapeMismatch(f"{expected} uint8", f"{result.shape} {result.dtype}")
    return result


def run_inference(
    engine: InferenceEngine,
    chunk: np.ndarray,
    slots: Optional[SessionPool] = None,
    started: Optional[threading.Event] = None
) -> np.ndarray:
    """
    Submit one chunk to the engine and return the validated result.

    Args:
        engine: Loaded inference engine
        chunk: (h, w, 4) uint8 chunk
        slots: Optional session pool bounding concurrent engine calls
        started: Optional event set once a slot is held and the engine call begins

    Returns:
        (2h, 2w, 4) uint8 result

    Raises:
        InferenceFailure: If the engine raised or returned nothing
        ShapeMismatch: If the engine returned the wrong dimensions
    """
    try:
        if slots is not None:
            with slots:
                if started is not None:
                    started.set()
                result = engine.infer(chunk)
        else:
            if started is not None:
                started.set()
            result = engine.infer(chunk)
    except InferenceFailure:
        raise
    except Exception as e:
        raise InferenceFailure(f"Engine '{engine.name}' failed on {chunk.shape} chunk: {e}") from e

    if result is None:
        raise InferenceFailure(f"Engine '{engine.name}' returned no result for {chunk.shape} chunk")

    return validate_result(chunk, result)
