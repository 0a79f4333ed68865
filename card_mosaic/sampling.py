"""Fixed-resolution comparison samples of the base image and the tiles.

Scoring never touches full-resolution pixels: the base image is resampled
so every grid cell becomes an ``S x S`` block, and every tile is resampled
to ``S x S`` with the same area filter.
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image
from skimage.util import view_as_blocks

from card_mosaic.grid import Grid

logger = logging.getLogger(__name__)

# Area-style filter: each output pixel averages the source pixels it covers.
SAMPLE_FILTER = Image.BOX


def _resample(image: np.ndarray, width: int, height: int) -> np.ndarray:
    img = Image.fromarray(image.astype(np.uint8)).convert("RGB")
    return np.array(img.resize((width, height), SAMPLE_FILTER), dtype=np.uint8)


def sample_base(base: np.ndarray, grid: Grid, sample_size: int) -> np.ndarray:
    """Resample *base* to ``(cards_tall*S, cards_wide*S, 3)``.

    Cell ``(x, y)`` occupies rows ``y*S:(y+1)*S`` and columns
    ``x*S:(x+1)*S``.
    """
    if sample_size < 1:
        raise ValueError(f"sample_size must be >= 1, got {sample_size}")
    return _resample(
        base, grid.cards_wide * sample_size, grid.cards_tall * sample_size,
    )


def sample_tiles(tiles: list[np.ndarray], sample_size: int) -> np.ndarray:
    """Resample every tile to ``S x S``.

    Returns:
        (T, S, S, 3) uint8.
    """
    if not tiles:
        raise ValueError("tile pool is empty")
    if sample_size < 1:
        raise ValueError(f"sample_size must be >= 1, got {sample_size}")
    samples = [_resample(t, sample_size, sample_size) for t in tiles]
    logger.debug("Sampled %d tiles at %dx%d", len(samples), sample_size, sample_size)
    return np.stack(samples)


def cell_blocks(sample: np.ndarray, grid: Grid, sample_size: int) -> np.ndarray:
    """Split a base sample into per-cell blocks.

    Returns:
        (cards_wide*cards_tall, S, S, 3) in row-major cell order.
    """
    s = sample_size
    expected = (grid.cards_tall * s, grid.cards_wide * s, 3)
    if sample.shape != expected:
        raise ValueError(f"base sample has shape {sample.shape}, expected {expected}")
    blocks = view_as_blocks(np.ascontiguousarray(sample), (s, s, 3))
    return blocks.reshape(grid.size, s, s, 3)
