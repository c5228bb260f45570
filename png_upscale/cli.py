"""
Command-Line Interface for PNG Upscaler
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_MODEL, DEFAULT_UPSCALING_SETTINGS, UPSCALE_FACTORS
from .errors import ModelLoadFailure
from .inference import TensorLayout


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {value}")
    return number


def positive_float(value: str) -> float:
    number = float(value)
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    settings = DEFAULT_UPSCALING_SETTINGS
    parser = argparse.ArgumentParser(
        prog="png-upscale",
        description="Bulk image upscaler: tiled 2x super-resolution passes (2x, 4x, 8x)."
    )
    parser.add_argument("input_dir", type=Path, help="Folder containing the images to upscale")
    parser.add_argument("-o", "--output-dir", type=Path, default=None,
                        help="Destination folder (default: <input_dir>/upscaled)")
    parser.add_argument("-s", "--scale", choices=list(UPSCALE_FACTORS), default="2x",
                        help="Final upscale factor")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL,
                        help="Model file path, or the name of a default model to download")
    parser.add_argument("--layout", choices=[layout.value for layout in TensorLayout], default=None,
                        help="Tensor layout of a TorchScript model (default: rgb_nchw_float)")
    parser.add_argument("--workers", type=positive_int, default=settings["workers"],
                        help="Tiles processed in parallel")
    parser.add_argument("--chunk-size", type=positive_int, default=settings["chunk_size"],
                        help="Nominal tile edge in pixels")
    parser.add_argument("--pad-size", type=non_negative_int, default=settings["pad_size"],
                        help="Context margin around each tile in pixels")
    parser.add_argument("--tile-timeout", type=positive_float, default=settings["tile_timeout"],
                        help="Max seconds per tile once it runs (default: no limit). A timed-out "
                             "tile fails its image, but the engine call can't be interrupted: "
                             "the process only exits after that call returns")
    parser.add_argument("--fp32", dest="use_fp16", action="store_false",
                        default=settings["use_fp16"],
                        help="Disable FP16 on CUDA (maximum precision)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run a batch from command-line arguments.

    Returns:
        0 if every image succeeded, 1 if any failed, 2 if the input folder or
        the model couldn't be used

    Note:
        A tile that exceeds --tile-timeout fails its image, but its engine
        call keeps running in a worker thread. The interpreter joins that
        thread at exit, so the process ends only once the call returns.
    """
    args = build_parser().parse_args(argv)

    if not args.input_dir.is_dir():
        print(f"❌ Not a directory: {args.input_dir}")
        return 2

    # Deferred so --help and argument errors don't pay for importing PyTorch
    from .batch_processor import process_batch
    from .models import DEVICE, create_engine

    output_dir = args.output_dir or args.input_dir / "upscaled"
    upscale_factor = UPSCALE_FACTORS[args.scale]
    layout = TensorLayout(args.layout) if args.layout else None

    print("🚀 PNG Upscaler - Starting...")
    print(f"🚀 Starting on {DEVICE}")
    print(f"📂 Output: {output_dir}")

    try:
        engine = create_engine(args.model, use_fp16=args.use_fp16, layout=layout)
        engine.load()
    except (ModelLoadFailure, ValueError) as e:
        print(f"❌ Model loading error: {e}")
        return 2

    try:
        summary = process_batch(
            args.input_dir,
            output_dir,
            upscale_factor,
            engine,
            chunk_size=args.chunk_size,
            pad_size=args.pad_size,
            workers=args.workers,
            tile_timeout=args.tile_timeout
        )
    finally:
        engine.close()

    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
