"""Render the assigned grid at full output resolution."""

from __future__ import annotations

import logging
import time

import numpy as np
from PIL import Image
from scipy.ndimage import map_coordinates

from card_mosaic.grid import Grid, round_half_up

logger = logging.getLogger(__name__)


def cell_size(grid: Grid, output_width: int, aspect: float) -> tuple[float, float]:
    """Fractional (width, height) of one cell in output pixels."""
    if not aspect > 0:
        raise ValueError(f"aspect ratio must be > 0, got {aspect}")
    card_width = output_width / grid.cards_wide
    return card_width, card_width / aspect


def cell_edges(count: int, size: float) -> np.ndarray:
    """Pixel edges ``round(i * size)`` for ``i = 0..count``.

    Each edge is rounded on its own, so cells may differ by a pixel but
    neighbours always share an edge.
    """
    return np.array([round_half_up(i * size) for i in range(count + 1)], dtype=np.int64)


def output_size(grid: Grid, output_width: int, aspect: float) -> tuple[int, int]:
    """(width, height) of the rendered mosaic."""
    card_width, card_height = cell_size(grid, output_width, aspect)
    return (
        int(cell_edges(grid.cards_wide, card_width)[-1]),
        int(cell_edges(grid.cards_tall, card_height)[-1]),
    )


def make_draw_tile(
    tile: np.ndarray, card_width: float, card_height: float, draw_scale: float = 2.0,
) -> np.ndarray:
    """Resample *tile* to ``draw_scale`` times its on-grid footprint."""
    size = (
        max(1, round_half_up(card_width * draw_scale)),
        max(1, round_half_up(card_height * draw_scale)),
    )
    img = Image.fromarray(tile.astype(np.uint8)).convert("RGB")
    return np.array(img.resize(size, Image.LANCZOS), dtype=np.uint8)


def sample_bilinear(source: np.ndarray, width: int, height: int) -> np.ndarray:
    """Bilinear resample of *source* onto a ``height x width`` block.

    Destination pixel centres map proportionally onto the source; coordinates
    outside the source are clamped to its edge pixels.
    """
    src_h, src_w = source.shape[:2]
    ys = np.clip((np.arange(height) + 0.5) * src_h / height - 0.5, 0, src_h - 1)
    xs = np.clip((np.arange(width) + 0.5) * src_w / width - 0.5, 0, src_w - 1)
    yy, xx = np.meshgrid(ys, xs, indexing="ij")

    src = source.astype(np.float64)
    out = np.empty((height, width, 3), dtype=np.float64)
    for c in range(3):
        out[..., c] = map_coordinates(src[..., c], [yy, xx], order=1, mode="nearest")
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def draw_tiles(
    grid: Grid,
    tiles: list[np.ndarray],
    output_width: int,
    aspect: float,
    draw_scale: float = 2.0,
) -> np.ndarray:
    """Composite the assigned tiles.

    Returns:
        (H, W, 3) uint8 with ``W == output_width``.
    """
    if not grid.complete:
        raise ValueError("grid has unassigned cells")
    if output_width < grid.cards_wide:
        raise ValueError(
            f"output width {output_width} is narrower than {grid.cards_wide} columns"
        )

    card_width, card_height = cell_size(grid, output_width, aspect)
    xs = cell_edges(grid.cards_wide, card_width)
    ys = cell_edges(grid.cards_tall, card_height)
    canvas = np.zeros((int(ys[-1]), int(xs[-1]), 3), dtype=np.uint8)
    logger.info(
        "Drawing %dx%d cells onto %dx%d canvas …",
        grid.cards_wide, grid.cards_tall, canvas.shape[1], canvas.shape[0],
    )

    t0 = time.perf_counter()
    draw_cache: dict[int, np.ndarray] = {}
    for cell, tile_id in enumerate(grid.cells.tolist()):
        x, y = grid.coords(cell)
        x0, x1, y0, y1 = xs[x], xs[x + 1], ys[y], ys[y + 1]
        if x1 <= x0 or y1 <= y0:
            continue
        if tile_id not in draw_cache:
            draw_cache[tile_id] = make_draw_tile(
                tiles[tile_id], card_width, card_height, draw_scale,
            )
        canvas[y0:y1, x0:x1] = sample_bilinear(draw_cache[tile_id], x1 - x0, y1 - y0)

    logger.info(
        "Canvas ready  (%d draw tiles, %.1f s)", len(draw_cache), time.perf_counter() - t0,
    )
    return canvas
