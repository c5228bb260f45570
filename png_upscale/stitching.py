"""
Tile Stitching for PNG Upscaler

Writes each tile's inference result into the pass canvas:
- RGB comes from the model output, cropped to drop the padding
- Alpha is rebuilt from the source chunk by 2x2 nearest-neighbour duplication

Tiles write to disjoint canvas regions, so both functions are safe to call
from several worker threads on the same canvas.
"""

import numpy as np

from .config import SCALE
from .tiling import TileDescriptor


def new_canvas(width: int, height: int) -> np.ndarray:
    """
    Allocate the output canvas for one pass.

    Args:
        width: Source width (W)
        height: Source height (H)

    Returns:
        Zeroed (2H, 2W, 4) uint8 array
    """
    return np.zeros((height * SCALE, width * SCALE, 4), dtype=np.uint8)


def stitch_tile(canvas: np.ndarray, result: np.ndarray, tile: TileDescriptor) -> None:
    """
    Crop the padding from an inference result and write its RGB into the canvas.

    Args:
        canvas: Pass output canvas (2H, 2W, 4)
        result: Validated inference result (2h, 2w, 4) for the tile's input region
        tile: Tile being stitched
    """
    dx, dy = tile.inner_offset
    out = tile.output_region
    crop = result[SCALE * dy:SCALE * dy + out.height, SCALE * dx:SCALE * dx + out.width, :3]
    canvas[out.y:out.y1, out.x:out.x1, :3] = crop


def reconstruct_alpha(canvas: np.ndarray, chunk: np.ndarray, tile: TileDescriptor) -> None:
    """
    Upscale the tile's alpha channel by nearest-neighbour duplication.

    Each 2x2 block of output pixels gets the alpha of exactly one source
    pixel. The model output is never consulted, so alpha is exact whatever
    the engine does to the RGB path.

    Args:
        canvas: Pass output canvas (2H, 2W, 4)
        chunk: Original (un-inferred) padded input chunk of the tile
        tile: Tile being stitched
    """
    dx, dy = tile.inner_offset
    out = tile.output_region
    src_alpha = chunk[dy:dy + out.height // SCALE, dx:dx + out.width // SCALE, 3]
    canvas[out.y:out.y1, out.x:out.x1, 3] = np.repeat(
        np.repeat(src_alpha, SCALE, axis=0), SCALE, axis=1
    )
