"""
File Utilities for PNG Upscaler

This module handles input discovery, output naming, and image decode/encode
between files and raw (H, W, 4) uint8 RGBA arrays.
"""

import numpy as np
from PIL import Image, UnidentifiedImageError
from pathlib import Path
from typing import List, Tuple, Union

from .config import IMAGE_EXTENSIONS, NO_ALPHA_FORMATS, SCALE
from .errors import ImageDecodeFailure, ImageEncodeFailure


# ============================================================================
# File Discovery and Naming
# ============================================================================

def is_image(path: Union[str, Path], extensions=IMAGE_EXTENSIONS) -> bool:
    """Check if a file has a supported image extension."""
    return Path(path).suffix.lower() in extensions


def list_images(input_dir: Union[str, Path], extensions=IMAGE_EXTENSIONS) -> List[Path]:
    """
    List supported image files in a directory (not recursive).

    Args:
        input_dir: Directory to scan
        extensions: Accepted lowercase suffixes

    Returns:
        Sorted list of image paths
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise NotADirectoryError(f"Input directory not found: {input_dir}")

    return sorted(
        path for path in input_dir.iterdir()
        if path.is_file() and is_image(path, extensions)
    )


def output_name(path: Union[str, Path], upscale_factor: int) -> str:
    """
    Build the output filename for an upscaled image.

    Examples:
        ("sprite.png", 1) -> "sprite_2x.png"
        ("photo.jpg", 3) -> "photo_8x.jpg"
    """
    path = Path(path)
    return f"{path.stem}_{SCALE ** upscale_factor}x{path.suffix}"


# ============================================================================
# Image Decode / Encode
# ============================================================================

def load_rgba(path: Union[str, Path]) -> Tuple[np.ndarray, bool]:
    """
    Decode an image file into an RGBA array.

    Args:
        path: Image file

    Returns:
        Tuple of (array, has_alpha):
        - array: (H, W, 4) uint8 RGBA
        - has_alpha: True if the source carried transparency

    Raises:
        ImageDecodeFailure: If the file can't be read as an image
    """
    try:
        with Image.open(path) as img:
            has_alpha = img.mode in ('RGBA', 'LA', 'PA') or (
                img.mode == 'P' and 'transparency' in img.info
            )
            rgba = img.convert('RGBA')
            array = np.array(rgba, dtype=np.uint8)
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeFailure(f"Cannot decode {path}: {e}") from e

    return array, has_alpha


def save_rgba(array: np.ndarray, path: Union[str, Path], keep_alpha: bool = True) -> Path:
    """
    Encode an RGBA array to a file (without ICC profile to preserve exact colors).

    The format comes from the suffix. Formats without transparency, or
    keep_alpha=False, are written as RGB.

    Raises:
        ImageEncodeFailure: If the file can't be written
    """
    path = Path(path)
    try:
        img = Image.fromarray(np.ascontiguousarray(array))
        if not keep_alpha or path.suffix.lower() in NO_ALPHA_FORMATS:
            img = img.convert('RGB')

        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() == '.png':
            img.save(path, 'PNG', optimize=True, icc_profile=None)
        else:
            img.save(path, icc_profile=None)
    except (OSError, ValueError, KeyError) as e:
        path.unlink(missing_ok=True)
        raise ImageEncodeFailure(f"Cannot encode {path}: {e}") from e

    return path
