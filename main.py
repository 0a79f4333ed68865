#!/usr/bin/env python3
"""
main.py - Quick-start entry point.

Fill the tile cache, then build a mosaic:

    python main.py pull 300
    python main.py build photo.jpg -o output/mosaic.png

Or use the module directly:

    python -m card_mosaic.cli build --help
"""

from card_mosaic.cli import app

if __name__ == "__main__":
    app()
