"""Per-(cell, tile) scoring and the ranking table consumed by the assigner."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from card_mosaic.grid import Grid, round_half_up
from card_mosaic.sampling import cell_blocks

logger = logging.getLogger(__name__)

# Peak size of the broadcast difference array per chunk of cells.
CHUNK_BYTES = 64 * 1024 * 1024


def focus_penalty(x: int, y: int, cards_wide: int, cards_tall: int, sample_size: int) -> int:
    """Positional cost bias: zero through the grid centre, largest at the corners.

    ``(2x/W - 1)^2 * (2y/H - 1)^2 * S^2 * 255``, rounded.
    """
    fx = (2.0 * x / cards_wide - 1.0) ** 2
    fy = (2.0 * y / cards_tall - 1.0) ** 2
    return round_half_up(fx * fy * sample_size ** 2 * 255.0)


def focus_penalties(grid: Grid, sample_size: int) -> np.ndarray:
    """:func:`focus_penalty` for every cell, row-major, int64."""
    return np.array(
        [
            focus_penalty(*grid.coords(cell), grid.cards_wide, grid.cards_tall, sample_size)
            for cell in range(grid.size)
        ],
        dtype=np.int64,
    )


def compute_residuals(
    base_sample: np.ndarray,
    tile_samples: np.ndarray,
    grid: Grid,
    sample_size: int,
    workers: int = 1,
) -> np.ndarray:
    """Summed absolute channel difference for every (cell, tile) pair.

    Args:
        base_sample:  (H*S, W*S, 3) uint8, brightness-matched.
        tile_samples: (T, S, S, 3) uint8.
        workers:      Threads sharing the chunks; chunks write disjoint rows.

    Returns:
        (cells, T) int64.
    """
    if len(tile_samples) == 0:
        raise ValueError("tile pool is empty")
    if tile_samples.shape[1:] != (sample_size, sample_size, 3):
        raise ValueError(
            f"tile samples have shape {tile_samples.shape[1:]}, "
            f"expected {(sample_size, sample_size, 3)}"
        )

    cells = cell_blocks(base_sample, grid, sample_size).reshape(grid.size, -1).astype(np.int16)
    tiles = tile_samples.reshape(len(tile_samples), -1).astype(np.int16)

    n_cells, n_tiles = len(cells), len(tiles)
    rows = max(1, CHUNK_BYTES // (n_tiles * tiles.shape[1] * 2))
    residual = np.empty((n_cells, n_tiles), dtype=np.int64)

    def _chunk(i: int) -> None:
        j = min(i + rows, n_cells)
        diff = np.abs(cells[i:j, np.newaxis, :] - tiles[np.newaxis, :, :])
        residual[i:j] = diff.sum(axis=2, dtype=np.int64)

    starts = range(0, n_cells, rows)
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            list(executor.map(_chunk, starts))
    else:
        for i in starts:
            _chunk(i)
    return residual


def compute_cost_table(
    base_sample: np.ndarray,
    tile_samples: np.ndarray,
    grid: Grid,
    sample_size: int,
    workers: int = 1,
) -> np.ndarray:
    """Residual plus focus penalty, (cells, T) int64."""
    logger.info(
        "Building %dx%d cost table (S=%d) …", grid.size, len(tile_samples), sample_size,
    )
    t0 = time.perf_counter()
    cost = compute_residuals(base_sample, tile_samples, grid, sample_size, workers)
    cost += focus_penalties(grid, sample_size)[:, np.newaxis]
    logger.info("Cost table ready  (%.1f s)", time.perf_counter() - t0)
    return cost


class RankTable:
    """Every cell's candidates, best first, with tiles withdrawn globally.

    Holds the flat cost table, a stable per-cell ordering of tile ids by cost
    (ties go to the lower tile id) and a per-cell cursor. Withdrawing a tile
    removes it from every column at once; cursors skip withdrawn tiles the
    next time a column is asked for its best candidate, so "take best" stays
    amortised O(1).
    """

    def __init__(self, cost: np.ndarray) -> None:
        if cost.ndim != 2 or cost.shape[0] == 0 or cost.shape[1] == 0:
            raise ValueError(f"cost table must be non-empty 2-D, got {cost.shape}")
        self.cost = cost
        self.order = np.argsort(cost, axis=1, kind="stable")
        self.cursor = np.zeros(cost.shape[0], dtype=np.int64)
        self.withdrawn = np.zeros(cost.shape[1], dtype=bool)

    @property
    def n_cells(self) -> int:
        return self.cost.shape[0]

    @property
    def n_tiles(self) -> int:
        return self.cost.shape[1]

    def best(self, cell: int) -> tuple[int, int]:
        """Current best ``(tile_id, cost)`` for *cell*.

        Raises:
            RuntimeError: if every tile has been withdrawn from the column.
        """
        order = self.order[cell]
        k = int(self.cursor[cell])
        while k < self.n_tiles and self.withdrawn[order[k]]:
            k += 1
        self.cursor[cell] = k
        if k == self.n_tiles:
            raise RuntimeError(f"rank column for cell {cell} ran dry")
        tile = int(order[k])
        return tile, int(self.cost[cell, tile])

    def withdraw(self, tile: int) -> None:
        self.withdrawn[tile] = True

    def column(self, cell: int) -> list[tuple[int, int]]:
        """Remaining ``(tile_id, cost)`` entries, worst first, best last."""
        order = self.order[cell]
        remaining = [int(t) for t in order[self.cursor[cell]:] if not self.withdrawn[t]]
        return [(t, int(self.cost[cell, t])) for t in reversed(remaining)]


def build_rank_table(
    base_sample: np.ndarray,
    tile_samples: np.ndarray,
    grid: Grid,
    sample_size: int,
    workers: int = 1,
) -> RankTable:
    """Score every pair and wrap the result for assignment."""
    return RankTable(
        compute_cost_table(base_sample, tile_samples, grid, sample_size, workers)
    )
