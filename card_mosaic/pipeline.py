"""End-to-end build: sample, match brightness, rank, assign, composite."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np

from card_mosaic.assign import assign_independent, assign_tiles
from card_mosaic.brightness import brightness_match_sample
from card_mosaic.compose import draw_tiles
from card_mosaic.config import MosaicConfig
from card_mosaic.grid import Grid, create_grid, fit_grid
from card_mosaic.ranking import RankTable, build_rank_table, focus_penalties
from card_mosaic.sampling import sample_base, sample_tiles
from card_mosaic.tiles import add_duplicates

logger = logging.getLogger(__name__)


@dataclass
class MosaicResult:
    grid: Grid
    mosaic: np.ndarray
    matched: np.ndarray
    tiles: list[np.ndarray]
    table: RankTable
    mean_residual: float


def make_grid(base: np.ndarray, n_tiles: int, cfg: MosaicConfig) -> Grid:
    h, w = base.shape[:2]
    if cfg.fit_tiles:
        return fit_grid(n_tiles, cfg.aspect, w, h)
    return create_grid(cfg.cards_wide, cfg.aspect, w, h)


def mean_residual(grid: Grid, table: RankTable, sample_size: int) -> float:
    """Average per-cell cost of the chosen tiles, focus penalty excluded."""
    chosen = table.cost[np.arange(grid.size), grid.cells]
    return float(np.mean(chosen - focus_penalties(grid, sample_size)))


def build_mosaic(
    base: np.ndarray,
    tiles: list[np.ndarray],
    cfg: MosaicConfig,
) -> MosaicResult:
    """Run every stage on an in-memory base image and tile pool."""
    cfg.validate()
    if not tiles:
        raise ValueError("tile pool is empty")

    if cfg.duplicates:
        tiles = add_duplicates(tiles, cfg.duplicates, np.random.default_rng(cfg.seed))
        logger.info("Padded pool with %d duplicates (%d tiles)", cfg.duplicates, len(tiles))

    grid = make_grid(base, len(tiles), cfg)
    logger.info(
        "Grid: %dx%d = %d cells for %d tiles",
        grid.cards_wide, grid.cards_tall, grid.size, len(tiles),
    )

    t0 = time.perf_counter()
    base_sample = sample_base(base, grid, cfg.sample_size)
    tile_samples = sample_tiles(tiles, cfg.sample_size)
    matched = brightness_match_sample(base_sample, tile_samples)
    logger.info("Samples ready  (%.1f s)", time.perf_counter() - t0)

    table = build_rank_table(matched, tile_samples, grid, cfg.sample_size, cfg.workers)
    if cfg.unique:
        assign_tiles(grid, table)
    else:
        assign_independent(grid, table)

    mosaic = draw_tiles(grid, tiles, cfg.output_width, cfg.aspect, cfg.draw_scale)
    return MosaicResult(
        grid=grid,
        mosaic=mosaic,
        matched=matched,
        tiles=tiles,
        table=table,
        mean_residual=mean_residual(grid, table, cfg.sample_size),
    )
