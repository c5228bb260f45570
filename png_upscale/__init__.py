"""
🎨 PNG Upscaler - Tiled Super-Resolution
- Bounded-size tiles with context padding, stitched without seams
- Exact nearest-neighbour alpha reconstruction
- Multi-pass 2x upscaling (2x, 4x, 8x)
- Batch processing with per-image failure isolation
"""

__version__ = "1.0.0"
__author__ = "PNG Upscaler Team"
