"""
Image Processing Pipeline for PNG Upscaler

This module handles the complete upscaling pipeline:
- One pass: tile grid -> extract -> inference -> stitch RGB + rebuild alpha
- Sequential or bounded-parallel tile processing
- Multi-pass upscaling (2x per pass) with a strict barrier between passes
"""

import threading
import time
import numpy as np
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional

from .config import CHUNK_SIZE, PAD_SIZE, SCALE, DEFAULT_WORKERS, TILE_TIMEOUT
from .errors import InferenceFailure
from .inference import InferenceEngine, SessionPool, run_inference
from .stitching import new_canvas, reconstruct_alpha, stitch_tile
from .tiling import TileDescriptor, compute_tile_grid, extract_chunk, validate_image


# ============================================================================
# Single Tile
# ============================================================================

class _TileStart(threading.Event):
    """Set once a tile holds a session slot (or has finished without one)."""

    started_at = None

    def set(self) -> None:
        if self.started_at is None:
            self.started_at = time.monotonic()
        super().set()


def _process_tile(
    image: np.ndarray,
    canvas: np.ndarray,
    tile: TileDescriptor,
    engine: InferenceEngine,
    slots: Optional[SessionPool],
    started: Optional[_TileStart] = None
) -> None:
    """Extract, infer and stitch one tile into the canvas."""
    try:
        chunk = extract_chunk(image, tile.input_region)

        # Alpha only depends on the source chunk, never on the model output
        reconstruct_alpha(canvas, chunk, tile)

        result = run_inference(engine, chunk, slots, started)
        stitch_tile(canvas, result, tile)
    finally:
        if started is not None:
            started.set()


# ============================================================================
# Single Pass
# ============================================================================

def upscale_pass(
    image: np.ndarray,
    engine: InferenceEngine,
    chunk_size: int = CHUNK_SIZE,
    pad_size: int = PAD_SIZE,
    workers: int = DEFAULT_WORKERS,
    tile_timeout: Optional[float] = TILE_TIMEOUT,
    slots: Optional[SessionPool] = None
) -> np.ndarray:
    """
    Perform a SINGLE 2x upscaling pass over the whole image.

    Args:
        image: (H, W, 4) uint8 RGBA source
        engine: Loaded inference engine
        chunk_size: Nominal tile edge in pixels
        pad_size: Context margin around each tile in pixels
        workers: Number of tiles processed concurrently (1 = sequential)
        tile_timeout: Max seconds for one tile once it holds a session slot
                      (None = no limit)
        slots: Session pool bounding concurrent engine calls
               (None = one slot per worker)

    Returns:
        Fully assembled (2H, 2W, 4) canvas

    Raises:
        InferenceFailure: If any tile fails or times out; remaining tiles are cancelled
    """
    width, height = validate_image(image)
    tiles = compute_tile_grid(width, height, chunk_size, pad_size)
    canvas = new_canvas(width, height)

    # Sequential mode: await each tile before the next
    if workers <= 1 and tile_timeout is None:
        for tile in tiles:
            _process_tile(image, canvas, tile, engine, slots)
        return canvas

    workers = max(1, workers)
    if slots is None:
        slots = SessionPool(max_sessions=workers)

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="TileWorker")
    starts = [_TileStart() for _ in tiles]
    failed = False
    futures = []
    try:
        futures = [
            executor.submit(_process_tile, image, canvas, tile, engine, slots, start)
            for tile, start in zip(tiles, starts)
        ]

        for future, tile, start in zip(futures, tiles, starts):
            # The timeout runs from the moment the tile holds a session slot.
            # Time spent queued behind another tile (possibly one abandoned by
            # an earlier image) doesn't count against it.
            start.wait()
            remaining = None
            if tile_timeout is not None:
                remaining = max(0.0, tile_timeout - (time.monotonic() - start.started_at))
            try:
                future.result(timeout=remaining)
            except FutureTimeoutError as e:
                raise InferenceFailure(
                    f"Tile ({tile.row}, {tile.col}) timed out after {tile_timeout}s"
                ) from e
    except BaseException:
        failed = True
        for future in futures:
            future.cancel()
        raise
    finally:
        # Don't block on a hung tile when aborting
        executor.shutdown(wait=not failed, cancel_futures=True)

    return canvas


# ============================================================================
# Main Upscaling Function
# ============================================================================

def multi_upscale(
    image: np.ndarray,
    upscale_factor: int,
    engine: InferenceEngine,
    chunk_size: int = CHUNK_SIZE,
    pad_size: int = PAD_SIZE,
    workers: int = DEFAULT_WORKERS,
    tile_timeout: Optional[float] = TILE_TIMEOUT,
    slots: Optional[SessionPool] = None
) -> np.ndarray:
    """
    Upscale an image by 2^upscale_factor with repeated 2x passes.

    Each pass consumes the complete canvas of the previous one; no tile of
    pass k+1 starts before pass k is fully assembled.

    Args:
        image: (H, W, 4) uint8 RGBA source
        upscale_factor: Number of 2x passes (0 returns the input unchanged)
        engine: Loaded inference engine
        chunk_size: Nominal tile edge in pixels
        pad_size: Context margin around each tile in pixels
        workers: Tiles processed concurrently within a pass
        tile_timeout: Max seconds to wait for one tile (None = no limit)
        slots: Optional session pool shared by all passes

    Returns:
        (H * 2^factor, W * 2^factor, 4) uint8 array

    Examples:
        1000x800, factor 1 -> 2000x1600
        1000x800, factor 3 -> 8000x6400 (3 passes)
    """
    if isinstance(upscale_factor, bool) or not isinstance(upscale_factor, int):
        raise ValueError(f"upscale_factor must be an integer, got {upscale_factor!r}")
    if upscale_factor < 0:
        raise ValueError(f"upscale_factor must be >= 0, got {upscale_factor}")

    validate_image(image)
    if upscale_factor == 0:
        return image

    t_start = time.time()
    current = image
    for _ in range(upscale_factor):
        current = upscale_pass(
            current,
            engine,
            chunk_size=chunk_size,
            pad_size=pad_size,
            workers=workers,
            tile_timeout=tile_timeout,
            slots=slots
        )

    height, width = image.shape[:2]
    print(f"⏱️ Upscaled {width}x{height} -> {current.shape[1]}x{current.shape[0]} "
          f"({SCALE ** upscale_factor}x) in {time.time() - t_start:.2f}s")
    return current
