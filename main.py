"""
Main Entry Point for PNG Upscaler
Runs a batch upscale from the command line.
"""

import sys

from png_upscale.cli import main


if __name__ == "__main__":
    # Fix Windows console encoding for emojis
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding='utf-8')

    sys.exit(main())
