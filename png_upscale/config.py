"""
Configuration and Constants for PNG Upscaler

This module contains all global configuration, constants and default settings.
"""

from pathlib import Path

# ============================================================================
# Tiling Configuration
# ============================================================================
CHUNK_SIZE = 1024  # Nominal tile edge before grid division
PAD_SIZE = 32      # Context margin added around each tile, cropped after inference
SCALE = 2          # Every pass doubles both dimensions

# ============================================================================
# Performance Configuration
# ============================================================================
DEFAULT_WORKERS = 1    # 1 = sequential tiles (one engine call at a time)
TILE_TIMEOUT = None    # Seconds to wait for one tile (None = no limit)

# ============================================================================
# File Extensions
# ============================================================================
IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.webp', '.bmp'}

# Formats that can't store transparency (saved as RGB)
NO_ALPHA_FORMATS = {'.jpg', '.jpeg', '.bmp'}

# ============================================================================
# Directory Paths
# ============================================================================
BASE_DIR = Path(__file__).parent.parent  # Go up from png_upscale/ to project root
MODELS_DIR = BASE_DIR / "models"

# ============================================================================
# Upscale Factors (number of 2x passes)
# ============================================================================
UPSCALE_FACTORS = {
    "2x": 1,
    "4x": 2,
    "8x": 3,
}

# ============================================================================
# Default Upscaling Settings
# ============================================================================
DEFAULT_UPSCALING_SETTINGS = {
    "chunk_size": CHUNK_SIZE,
    "pad_size": PAD_SIZE,
    "workers": DEFAULT_WORKERS,
    "tile_timeout": TILE_TIMEOUT,
    "use_fp16": True,
}

# ============================================================================
# Default Models with Download URLs from Upscale-Hub
# ============================================================================
# Only 2x checkpoints: the tile pipeline assumes one doubling per pass.
DEFAULT_MODELS = {
    "2x_Ani4Kv2_G6i2_Compact_107500.pth": {
        "url": "https://github.com/Sirosky/Upscale-Hub/releases/download/Ani4K-v2/2x_Ani4Kv2_G6i2_Compact_107500.pth",
        "description": "Ani4K v2 Compact - RECOMMENDED - Balanced speed/quality",
        "display_name": "Ani4K v2 Compact (Recommended)"
    },
    "2x_Ani4Kv2_G6i2_UltraCompact_105K.pth": {
        "url": "https://github.com/Sirosky/Upscale-Hub/releases/download/Ani4K-v2/2x_Ani4Kv2_G6i2_UltraCompact_105K.pth",
        "description": "Ani4K v2 UltraCompact - Very fast, for modern anime",
        "display_name": "Ani4K v2 UltraCompact"
    },
    "2x_AniToon_RPLKSRS_242500.pth": {
        "url": "https://github.com/Sirosky/Upscale-Hub/releases/download/AniToon/2x_AniToon_RPLKSRS_242500.pth",
        "description": "AniToon Small - Fast, for old/low-quality anime",
        "display_name": "AniToon Small"
    },
}

DEFAULT_MODEL = "2x_Ani4Kv2_G6i2_Compact_107500.pth"
