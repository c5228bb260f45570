"""
Tile Grid Computation for PNG Upscaler

This module splits an image into padded tiles small enough for the inference
engine and copies each tile's padded input out of the source image.

Arrays are (H, W, 4) uint8 RGBA, row-major. Regions use (x, y, width, height).
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import List, Tuple

from .config import CHUNK_SIZE, PAD_SIZE, SCALE


# ============================================================================
# Geometry Types
# ============================================================================

@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle in pixel coordinates (half-open)."""
    x: int
    y: int
    width: int
    height: int

    @property
    def x1(self) -> int:
        return self.x + self.width

    @property
    def y1(self) -> int:
        return self.y + self.height

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), numpy order."""
        return (self.height, self.width)

    def slices(self) -> Tuple[slice, slice]:
        """Row and column slices for indexing an (H, W, C) array."""
        return (slice(self.y, self.y1), slice(self.x, self.x1))


@dataclass(frozen=True)
class TileDescriptor:
    """
    One tile of a pass.

    Attributes:
        row: Tile row index (i)
        col: Tile column index (j)
        input_region: Padded region read from the source image
        output_region: Unpadded, doubled region written into the output canvas
        inner_offset: (dx, dy) from input_region origin to the tile's true origin
    """
    row: int
    col: int
    input_region: Region
    output_region: Region
    inner_offset: Tuple[int, int]


# ============================================================================
# Validation Helpers
# ============================================================================

def validate_image(image: np.ndarray) -> Tuple[int, int]:
    """
    Check that an array is a non-empty (H, W, 4) uint8 RGBA image.

    Returns:
        (width, height) of the image

    Raises:
        ValueError: If the array doesn't match the image layout
    """
    if not isinstance(image, np.ndarray):
        raise ValueError(f"Image must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 4:
        raise ValueError(f"Image must have shape (H, W, 4), got {image.shape}")
    if image.dtype != np.uint8:
        raise ValueError(f"Image must be uint8, got {image.dtype}")
    height, width = image.shape[:2]
    if width < 1 or height < 1:
        raise ValueError(f"Image must be at least 1x1, got {width}x{height}")
    return width, height


def _axis_spans(dim: int, chunk_size: int, pad_size: int) -> List[Tuple[int, int, int, int]]:
    """
    Split one axis into tiles.

    Returns a list of (pos, end, start, stop): the tile core [pos, end) and
    its padded input [start, stop).

    The grid uses floor(dim / n) sized tiles, so n * chunk can fall short of
    dim by up to n - 1 pixels. The last tile always ends at dim and absorbs
    that remainder; otherwise a strip on the right/bottom would never be
    written.
    """
    n_chunks = math.ceil(dim / chunk_size)
    chunk = dim // n_chunks

    spans = []
    for k in range(n_chunks):
        pos = k * chunk
        end = dim if k == n_chunks - 1 else pos + chunk
        start = max(0, pos - pad_size)
        stop = min(dim, end + pad_size)
        spans.append((pos, end, start, stop))
    return spans


# ============================================================================
# Tile Scheduler
# ============================================================================

def compute_tile_grid(
    width: int,
    height: int,
    chunk_size: int = CHUNK_SIZE,
    pad_size: int = PAD_SIZE
) -> List[TileDescriptor]:
    """
    Compute the padded tile grid covering a width x height image.

    Args:
        width: Source image width (W)
        height: Source image height (H)
        chunk_size: Nominal tile edge length
        pad_size: Context margin added on each side where the image allows

    Returns:
        Tiles in row-major order (row outer, column inner). Their output
        regions tile [0, 2W) x [0, 2H) exactly, without overlap.

    Examples:
        2000x1500, chunk 1024, pad 32 -> 2x2 tiles of 1000x750.
        Tile (0, 0) reads x in [0, 1032) and writes x in [0, 2000);
        tile (0, 1) reads x in [968, 2000) and writes x in [2000, 4000).
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if pad_size < 0:
        raise ValueError(f"pad_size must be non-negative, got {pad_size}")

    x_spans = _axis_spans(width, chunk_size, pad_size)
    y_spans = _axis_spans(height, chunk_size, pad_size)

    tiles = []
    for i, (y, y_end, y_start, y_stop) in enumerate(y_spans):
        for j, (x, x_end, x_start, x_stop) in enumerate(x_spans):
            tiles.append(TileDescriptor(
                row=i,
                col=j,
                input_region=Region(x_start, y_start, x_stop - x_start, y_stop - y_start),
                output_region=Region(
                    SCALE * x,
                    SCALE * y,
                    SCALE * (x_end - x),
                    SCALE * (y_end - y)
                ),
                inner_offset=(x - x_start, y - y_start),
            ))
    return tiles


# ============================================================================
# Chunk Extractor
# ============================================================================

def extract_chunk(image: np.ndarray, region: Region) -> np.ndarray:
    """
    Copy a region of the image into a new contiguous buffer.

    The copy never aliases the source, so the source can be released or
    modified while the chunk is in flight.

    Args:
        image: Source (H, W, 4) image
        region: Region to copy, must lie inside the image

    Returns:
        (region.height, region.width, 4) uint8 array
    """
    height, width = image.shape[:2]
    if (region.width < 1 or region.height < 1 or region.x < 0 or region.y < 0
            or region.x1 > width or region.y1 > height):
        raise ValueError(f"{region} is outside the {width}x{height} image")

    return np.array(image[region.slices()], dtype=np.uint8, order="C", copy=True)
