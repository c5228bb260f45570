"""
Batch Processing Orchestrator

Upscales every image of a directory with one shared engine. A failing image
is reported and skipped; the batch always runs to the end.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from tqdm import tqdm

from .config import CHUNK_SIZE, PAD_SIZE, DEFAULT_WORKERS, TILE_TIMEOUT, IMAGE_EXTENSIONS
from .errors import UpscaleError
from .file_utils import list_images, load_rgba, output_name, save_rgba
from .image_processing import multi_upscale
from .inference import InferenceEngine, SessionPool


@dataclass
class ImageResult:
    """Outcome of one image; error is None on success."""
    input_path: Path
    output_path: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    """Per-batch success/failure counts."""
    results: List[ImageResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def failures(self) -> List[ImageResult]:
        return [r for r in self.results if not r.ok]


def process_image(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    upscale_factor: int,
    engine: InferenceEngine,
    chunk_size: int = CHUNK_SIZE,
    pad_size: int = PAD_SIZE,
    workers: int = DEFAULT_WORKERS,
    tile_timeout: Optional[float] = TILE_TIMEOUT,
    slots: Optional[SessionPool] = None
) -> ImageResult:
    """
    Decode, upscale and encode one image.

    Upscaler failures (decode, inference, shape, encode) and running out of
    memory are caught and returned in the result; no output file is left behind for a failed image.

    Returns:
        ImageResult with output_path on success or error message on failure
    """
    input_path = Path(input_path)
    output_path = Path(output_path)

    try:
        image, has_alpha = load_rgba(input_path)
        result = multi_upscale(
            image,
            upscale_factor,
            engine,
            chunk_size=chunk_size,
            pad_size=pad_size,
            workers=workers,
            tile_timeout=tile_timeout,
            slots=slots
        )
        save_rgba(result, output_path, keep_alpha=has_alpha)
    except UpscaleError as e:
        print(f"❌ Error processing {input_path.name}: {e}")
        return ImageResult(input_path=input_path, error=str(e))
    except MemoryError:
        # Canvas for this image too large; smaller images can still go through
        output_path.unlink(missing_ok=True)
        print(f"❌ Out of memory processing {input_path.name}")
        return ImageResult(input_path=input_path, error="Out of memory")

    print(f"✅ Processed: {input_path} -> {output_path}")
    return ImageResult(input_path=input_path, output_path=output_path)


def process_batch(
    input_dir: Union[str, Path],
    output_dir: Union[str, Path],
    upscale_factor: int,
    engine: InferenceEngine,
    chunk_size: int = CHUNK_SIZE,
    pad_size: int = PAD_SIZE,
    workers: int = DEFAULT_WORKERS,
    tile_timeout: Optional[float] = TILE_TIMEOUT,
    extensions=IMAGE_EXTENSIONS
) -> BatchSummary:
    """
    Upscale every image of input_dir into output_dir.

    Outputs are named <basename>_<2^factor>x.<ext>. Images are processed one
    after another; tiles within an image may use several workers.

    Args:
        input_dir: Folder containing the source images
        output_dir: Destination folder (created if missing)
        upscale_factor: Number of 2x passes (1 = 2x, 2 = 4x, 3 = 8x)
        engine: Loaded inference engine shared by all images
        chunk_size: Nominal tile edge in pixels
        pad_size: Context margin around each tile
        workers: Tiles processed concurrently within an image
        tile_timeout: Max seconds to wait for one tile
        extensions: Accepted file suffixes

    Returns:
        BatchSummary with one ImageResult per input file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    images = list_images(input_dir, extensions)
    print(f"🔍 Found {len(images)} image(s) to process.")

    slots = SessionPool(max_sessions=max(1, workers))
    summary = BatchSummary()
    t_start = time.time()

    for img_path in tqdm(images, desc="Upscaling", unit="img"):
        summary.results.append(process_image(
            img_path,
            output_dir / output_name(img_path, upscale_factor),
            upscale_factor,
            engine,
            chunk_size=chunk_size,
            pad_size=pad_size,
            workers=workers,
            tile_timeout=tile_timeout,
            slots=slots
        ))

    print(f"\n🎉 Processing complete! {summary.succeeded}/{summary.total} images upscaled "
          f"successfully in {time.time() - t_start:.2f}s")
    for failure in summary.failures:
        print(f"   ❌ {failure.input_path.name}: {failure.error}")

    return summary
