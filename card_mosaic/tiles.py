"""Tile pool: aspect cropping, the on-disk cache, loading and padding."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

from card_mosaic.grid import round_half_up
from card_mosaic.image_io import load_rgb

logger = logging.getLogger(__name__)


def crop_size(width: int, height: int, aspect: float) -> tuple[int, int]:
    """Largest (w, h) of ratio *aspect* that fits inside ``width x height``."""
    if not aspect > 0:
        raise ValueError(f"aspect ratio must be > 0, got {aspect}")
    if aspect > width / height:
        return width, max(1, round_half_up(width / aspect))
    return max(1, round_half_up(aspect * height)), height


def crop_to_aspect(image: Image.Image, aspect: float) -> Image.Image:
    """Centre-crop *image* to *aspect* (fill-resize, triangle filter)."""
    size = crop_size(image.width, image.height, aspect)
    return ImageOps.fit(image.convert("RGB"), size, Image.BILINEAR)


def save_tile(image: Image.Image, tile_id: str, directory: Path, aspect: float) -> Path:
    """Crop and persist one accepted tile as ``<directory>/<tile_id>.png``."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{tile_id}.png"
    crop_to_aspect(image, aspect).save(path, format="PNG")
    return path


def collect_tile_paths(directory: Path) -> list[Path]:
    """Every regular, non-hidden file in *directory*, sorted by name."""
    if not directory.exists():
        return []
    return sorted(
        f for f in directory.iterdir()
        if f.is_file() and not f.name.startswith(".")
    )


def load_tile_pool(directory: Path) -> list[np.ndarray]:
    """Decode every file in *directory*, in sorted filename order.

    Raises:
        ImageLoadError: on the first file that fails to decode.
    """
    tiles = [load_rgb(p) for p in collect_tile_paths(directory)]
    logger.info("Loaded %d tiles from %s", len(tiles), directory)
    return tiles


def add_duplicates(
    tiles: list[np.ndarray],
    num_duplicates: int,
    rng: np.random.Generator,
) -> list[np.ndarray]:
    """Shuffle *tiles* and append copies of the first *num_duplicates*.

    Copies wrap around the pool when *num_duplicates* exceeds its size.
    Returns a new list; *tiles* is left untouched.
    """
    if num_duplicates < 0:
        raise ValueError(f"num_duplicates must be >= 0, got {num_duplicates}")
    if not tiles:
        raise ValueError("tile pool is empty")
    order = rng.permutation(len(tiles))
    pool = [tiles[i] for i in order]
    pool.extend(pool[i % len(tiles)].copy() for i in range(num_duplicates))
    return pool
