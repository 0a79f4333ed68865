"""Greedy cell -> tile assignment preferring distinct tiles.

Phase 1 places ``min(tiles, cells)`` tiles, always taking the unfilled cell
whose current best candidate is globally cheapest and then withdrawing that
tile from every other column. Phase 2 runs only when there are more cells
than tiles: each leftover cell takes its overall best tile, repeats allowed.
"""

from __future__ import annotations

import heapq
import logging
import time

import numpy as np

from card_mosaic.grid import UNASSIGNED, Grid
from card_mosaic.ranking import RankTable

logger = logging.getLogger(__name__)


def _check_shapes(grid: Grid, table: RankTable) -> None:
    if table.n_cells != grid.size:
        raise ValueError(
            f"rank table covers {table.n_cells} cells, grid has {grid.size}"
        )


def place_unique(grid: Grid, table: RankTable) -> int:
    """Phase 1. Returns the number of cells filled.

    Cells are popped from a heap keyed by ``(best cost, cell index)``. A
    column's best cost only grows as tiles are withdrawn, so a popped key is
    re-checked and pushed back if stale; a fresh key is the global minimum,
    with ties going to the lowest cell index.
    """
    placements = min(table.n_tiles, grid.size)
    queue = [(table.best(cell)[1], cell) for cell in range(grid.size)]
    heapq.heapify(queue)

    placed = 0
    while placed < placements:
        key, cell = heapq.heappop(queue)
        tile, cost = table.best(cell)
        if cost != key:
            heapq.heappush(queue, (cost, cell))
            continue
        grid.cells[cell] = tile
        table.withdraw(tile)
        placed += 1
        logger.debug("Cell %d <- tile %d (cost %d)", cell, tile, cost)
    return placed


def fill_remaining(grid: Grid, table: RankTable) -> int:
    """Phase 2. Every unfilled cell takes its own best tile from the full table."""
    open_cells = np.flatnonzero(grid.cells == UNASSIGNED)
    if len(open_cells):
        grid.cells[open_cells] = np.argmin(table.cost[open_cells], axis=1)
    return len(open_cells)


def assign_tiles(grid: Grid, table: RankTable) -> Grid:
    """Two-phase uniqueness-preferring assignment, in place."""
    _check_shapes(grid, table)
    t0 = time.perf_counter()
    unique = place_unique(grid, table)
    repeats = fill_remaining(grid, table)
    logger.info(
        "Assigned %d unique + %d repeated tiles  (%.1f s)",
        unique, repeats, time.perf_counter() - t0,
    )
    return grid


def assign_independent(grid: Grid, table: RankTable) -> Grid:
    """Every cell takes its own best tile, ignoring what other cells chose."""
    _check_shapes(grid, table)
    grid.cells[:] = np.argmin(table.cost, axis=1)
    logger.info(
        "Assigned %d cells independently (%d distinct tiles)",
        grid.size, len(np.unique(grid.cells)),
    )
    return grid


def total_cost(grid: Grid, cost: np.ndarray) -> int:
    """Sum of the chosen (cell, tile) costs."""
    if not grid.complete:
        raise ValueError("grid has unassigned cells")
    return int(cost[np.arange(grid.size), grid.cells].sum())
