"""Tests for the mosaic engine: grid, samples, brightness, ranking, assignment, drawing."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from card_mosaic import ranking
from card_mosaic.assign import (
    assign_independent,
    assign_tiles,
    fill_remaining,
    place_unique,
    total_cost,
)
from card_mosaic.brightness import (
    brightness_match_sample,
    count_brightness,
    create_brightness_map,
    match_brightness,
)
from card_mosaic.compose import (
    cell_edges,
    cell_size,
    draw_tiles,
    output_size,
    sample_bilinear,
)
from card_mosaic.config import MosaicConfig, RetryPolicy
from card_mosaic.grid import (
    UNASSIGNED,
    Grid,
    GridError,
    create_grid,
    fit_candidates,
    fit_grid,
    round_half_up,
)
from card_mosaic.pipeline import build_mosaic
from card_mosaic.ranking import (
    RankTable,
    compute_residuals,
    focus_penalties,
    focus_penalty,
)
from card_mosaic.sampling import cell_blocks, sample_base, sample_tiles

# -- Fixtures ----------------------------------------------------------

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def solid(color: tuple[int, int, int], width: int, height: int) -> np.ndarray:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:] = color
    return img


@pytest.fixture
def colour_tiles() -> list[np.ndarray]:
    return [solid(c, 10, 10) for c in (RED, GREEN, BLUE, WHITE)]


@pytest.fixture
def quadrant_base() -> np.ndarray:
    """20x20 base: red | green over blue | white."""
    base = np.zeros((20, 20, 3), dtype=np.uint8)
    base[:10, :10] = RED
    base[:10, 10:] = GREEN
    base[10:, :10] = BLUE
    base[10:, 10:] = WHITE
    return base


@pytest.fixture
def random_cost() -> np.ndarray:
    rng = np.random.default_rng(7)
    return rng.integers(0, 10_000, size=(12, 20), dtype=np.int64)


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert cfg.cards_wide == 72
        assert cfg.aspect == pytest.approx(4 / 3)
        cfg.validate()

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.cards_wide = 10  # type: ignore[misc]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"aspect": 0.0},
            {"aspect": -1.0},
            {"cards_wide": 0},
            {"sample_size": 0},
            {"output_width": 0},
            {"duplicates": -1},
            {"retry": RetryPolicy(max_attempts=0)},
        ],
    )
    def test_validate_rejects(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            MosaicConfig(**kwargs).validate()

    def test_retry_delays_grow_and_cap(self) -> None:
        policy = RetryPolicy(backoff=0.5, factor=2.0, max_backoff=3.0)
        assert [policy.delay(a) for a in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


# -- Grid sizing -------------------------------------------------------

class TestGrid:
    def test_fixed_width_closed_form(self) -> None:
        grid = create_grid(72, 4 / 3, 1200, 900)
        expected = round_half_up(900 / (1200 / 72 / (4 / 3)))
        assert grid.cards_wide == 72
        assert grid.cards_tall == expected == 72

    def test_fixed_width_landscape_tiles_on_portrait_image(self) -> None:
        grid = create_grid(10, 4 / 3, 600, 900)
        # cells are 60 x 45 px -> 900 / 45 = 20 rows
        assert grid.cards_tall == 20

    def test_starts_unassigned(self) -> None:
        grid = create_grid(4, 1.0, 40, 30)
        assert grid.size == 12
        assert np.all(grid.cells == UNASSIGNED)
        assert not grid.complete

    def test_coords_row_major(self) -> None:
        grid = Grid(4, 3)
        assert grid.coords(0) == (0, 0)
        assert grid.coords(5) == (1, 1)
        assert grid.coords(11) == (3, 2)

    @pytest.mark.parametrize("aspect", [0.0, -4 / 3])
    def test_bad_aspect(self, aspect: float) -> None:
        with pytest.raises(ValueError):
            create_grid(10, aspect, 100, 100)
        with pytest.raises(ValueError):
            fit_grid(10, aspect, 100, 100)

    def test_zero_columns(self) -> None:
        with pytest.raises(ValueError):
            create_grid(0, 1.0, 100, 100)

    def test_rows_round_to_zero(self) -> None:
        with pytest.raises(GridError):
            create_grid(10, 0.01, 100, 10)

    @pytest.mark.parametrize("n", list(range(1, 80)) + [150, 333, 1000])
    def test_fit_is_smallest_at_its_step(self, n: int) -> None:
        aspect, w, h = 4 / 3, 1200, 900
        grid = fit_grid(n, aspect, w, h)
        assert grid.size >= n

        for step in itertools.count(1):
            fitting = [c for c in fit_candidates(step, aspect, w, h) if c[0] * c[1] >= n]
            if fitting:
                break
        assert grid.size == min(cw * ch for cw, ch in fitting)
        for s in range(1, step + 1):
            for cw, ch in fit_candidates(s, aspect, w, h):
                if cw * ch >= n:
                    assert cw * ch >= grid.size

    def test_fit_one_tile(self) -> None:
        grid = fit_grid(1, 4 / 3, 1200, 900)
        assert (grid.cards_wide, grid.cards_tall) == (1, 1)

    def test_fit_ungridable(self) -> None:
        with pytest.raises(GridError):
            fit_grid(101, 1.0, 10, 10)

    def test_fit_needs_tiles(self) -> None:
        with pytest.raises(ValueError):
            fit_grid(0, 1.0, 10, 10)


# -- Sampling ----------------------------------------------------------

class TestSampling:
    def test_base_sample_shape(self) -> None:
        base = np.zeros((90, 120, 3), dtype=np.uint8)
        grid = Grid(8, 6)
        assert sample_base(base, grid, 9).shape == (54, 72, 3)

    def test_cell_blocks_row_major(self) -> None:
        grid, s = Grid(3, 2), 4
        sample = np.zeros((2 * s, 3 * s, 3), dtype=np.uint8)
        for cell in range(grid.size):
            x, y = grid.coords(cell)
            sample[y * s:(y + 1) * s, x * s:(x + 1) * s] = cell
        blocks = cell_blocks(sample, grid, s)
        assert blocks.shape == (6, s, s, 3)
        for cell in range(grid.size):
            assert np.all(blocks[cell] == cell)

    def test_cell_blocks_shape_mismatch(self) -> None:
        with pytest.raises(ValueError):
            cell_blocks(np.zeros((10, 10, 3), dtype=np.uint8), Grid(3, 2), 4)

    def test_box_filter_keeps_quadrants_pure(self, quadrant_base: np.ndarray) -> None:
        grid = Grid(2, 2)
        blocks = cell_blocks(sample_base(quadrant_base, grid, 5), grid, 5)
        for block, color in zip(blocks, (RED, GREEN, BLUE, WHITE), strict=True):
            assert np.all(block == color)

    def test_tile_samples(self, colour_tiles: list[np.ndarray]) -> None:
        samples = sample_tiles(colour_tiles, 7)
        assert samples.shape == (4, 7, 7, 3)
        assert samples.dtype == np.uint8

    def test_empty_pool(self) -> None:
        with pytest.raises(ValueError):
            sample_tiles([], 7)


# -- Brightness matching -----------------------------------------------

class TestBrightness:
    def test_histogram_counts_every_pixel(self) -> None:
        img = np.random.default_rng(1).integers(0, 256, (6, 5, 3), dtype=np.uint8)
        counts = count_brightness(img)
        assert counts.shape == (256,)
        assert counts.sum() == 30

    def test_histogram_accumulates(self) -> None:
        img = solid((30, 60, 90), 2, 2)
        counts = count_brightness(img)
        count_brightness(img, counts)
        assert counts[60] == 8

    @pytest.mark.parametrize("seed", range(10))
    def test_map_monotonic(self, seed: int) -> None:
        rng = np.random.default_rng(seed)
        src = rng.integers(0, 50, 256) * (rng.random(256) > 0.3)
        dst = rng.integers(0, 50, 256) * (rng.random(256) > 0.3)
        src[0] += 1
        dst[255] += 1
        mapping = create_brightness_map(src, dst)
        assert mapping.shape == (256,)
        assert np.all(np.diff(mapping) >= 0)
        assert mapping.min() >= 0 and mapping.max() <= 255

    def test_self_match_is_identity(self) -> None:
        counts = np.full(256, 3, dtype=np.int64)
        np.testing.assert_array_equal(
            create_brightness_map(counts, counts), np.arange(256),
        )

    def test_self_match_fixes_occupied_buckets(self) -> None:
        img = np.random.default_rng(3).integers(0, 256, (20, 20, 3), dtype=np.uint8)
        counts = count_brightness(img)
        mapping = create_brightness_map(counts, counts)
        occupied = np.flatnonzero(counts)
        np.testing.assert_array_equal(mapping[occupied], occupied)

    def test_empty_target(self) -> None:
        with pytest.raises(ValueError):
            create_brightness_map(np.ones(256), np.zeros(256))

    def test_black_pixels_stay_black(self) -> None:
        img = solid((0, 0, 0), 3, 3)
        mapping = np.full(256, 200)
        np.testing.assert_array_equal(match_brightness(img, mapping), img)

    def test_gain_is_clamped(self) -> None:
        img = np.array([[[200, 10, 0]]], dtype=np.uint8)  # brightness 70
        out = match_brightness(img, np.full(256, 255))
        np.testing.assert_array_equal(out, [[[255, 36, 0]]])

    def test_dark_base_lifted_to_tile_range(self) -> None:
        base = solid((50, 50, 50), 4, 4)
        tiles = np.stack([solid((200, 200, 200), 4, 4)] * 3)
        matched = brightness_match_sample(base, tiles)
        assert np.all(matched == 200)


# -- Ranking -----------------------------------------------------------

class TestRanking:
    def test_focus_penalty_centre_and_corner(self) -> None:
        assert focus_penalty(2, 2, 4, 4, 9) == 0
        assert focus_penalty(2, 0, 4, 4, 9) == 0
        assert focus_penalty(0, 0, 4, 4, 9) == 81 * 255

    def test_focus_penalties_per_cell(self) -> None:
        grid = Grid(2, 2)
        np.testing.assert_array_equal(focus_penalties(grid, 5), [25 * 255, 0, 0, 0])

    def test_residuals_known_values(self) -> None:
        grid, s = Grid(2, 1), 2
        base = np.zeros((2, 4, 3), dtype=np.uint8)
        base[:, :2] = 10
        base[:, 2:] = 20
        tiles = np.stack([solid((10, 10, 10), 2, 2), solid((20, 20, 20), 2, 2)])
        residual = compute_residuals(base, tiles, grid, s)
        np.testing.assert_array_equal(residual, [[0, 120], [120, 0]])

    def test_chunked_threads_match_single_pass(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rng = np.random.default_rng(11)
        grid, s = Grid(5, 4), 3
        base = rng.integers(0, 256, (4 * s, 5 * s, 3), dtype=np.uint8)
        tiles = rng.integers(0, 256, (7, s, s, 3), dtype=np.uint8)
        expected = compute_residuals(base, tiles, grid, s)

        monkeypatch.setattr(ranking, "CHUNK_BYTES", 1)
        np.testing.assert_array_equal(compute_residuals(base, tiles, grid, s, workers=3), expected)

    def test_sample_shape_mismatch(self) -> None:
        grid = Grid(1, 1)
        with pytest.raises(ValueError):
            compute_residuals(
                np.zeros((3, 3, 3), np.uint8), np.zeros((2, 4, 4, 3), np.uint8), grid, 3,
            )

    def test_column_sorted_best_last(self, random_cost: np.ndarray) -> None:
        table = RankTable(random_cost)
        column = table.column(0)
        assert sorted(t for t, _ in column) == list(range(20))
        costs = [c for _, c in column]
        assert costs == sorted(costs, reverse=True)
        assert column[-1] == table.best(0)

    def test_withdraw_removes_from_every_column(self, random_cost: np.ndarray) -> None:
        table = RankTable(random_cost)
        tile, _ = table.best(3)
        table.withdraw(tile)
        for cell in range(table.n_cells):
            assert tile not in [t for t, _ in table.column(cell)]
            assert table.best(cell)[0] != tile

    def test_ties_prefer_lower_tile_id(self) -> None:
        table = RankTable(np.array([[5, 1, 1, 3]]))
        assert table.best(0) == (1, 1)

    def test_dry_column_raises(self) -> None:
        table = RankTable(np.zeros((1, 2), dtype=np.int64))
        table.withdraw(0)
        table.withdraw(1)
        with pytest.raises(RuntimeError):
            table.best(0)


# -- Assignment --------------------------------------------------------

class TestAssign:
    def test_unique_when_enough_tiles(self, random_cost: np.ndarray) -> None:
        grid = assign_tiles(Grid(4, 3), RankTable(random_cost))
        assert grid.complete
        assert len(set(grid.cells.tolist())) == grid.size
        assert all(0 <= t < 20 for t in grid.cells.tolist())

    def test_square_case_is_permutation(self) -> None:
        cost = np.random.default_rng(5).integers(0, 500, (9, 9))
        grid = assign_tiles(Grid(3, 3), RankTable(cost))
        assert sorted(grid.cells.tolist()) == list(range(9))

    def test_cheapest_cell_goes_first(self) -> None:
        # raster order would give cell 1 a cost of 100
        cost = np.array([[5, 6], [1, 100]])
        grid = assign_tiles(Grid(2, 1), RankTable(cost))
        assert grid.cells.tolist() == [1, 0]
        assert total_cost(grid, cost) == 7

    def test_ties_lowest_cell_then_tile(self) -> None:
        grid = assign_tiles(Grid(3, 1), RankTable(np.zeros((3, 3), dtype=np.int64)))
        assert grid.cells.tolist() == [0, 1, 2]

    def test_no_repeats_before_pool_is_used(self) -> None:
        cost = np.random.default_rng(9).integers(0, 1000, (10, 4))
        grid = assign_tiles(Grid(5, 2), RankTable(cost))
        assert set(grid.cells.tolist()) == {0, 1, 2, 3}

    def test_fallback_never_overwrites_unique_cells(self) -> None:
        cost = np.random.default_rng(2).integers(0, 1000, (10, 4))
        grid, table = Grid(5, 2), RankTable(cost)
        assert place_unique(grid, table) == 4
        placed = grid.cells.copy()
        unique_cells = np.flatnonzero(placed != UNASSIGNED)
        assert len(set(placed[unique_cells].tolist())) == 4

        assert fill_remaining(grid, table) == 6
        np.testing.assert_array_equal(grid.cells[unique_cells], placed[unique_cells])
        open_cells = np.flatnonzero(placed == UNASSIGNED)
        np.testing.assert_array_equal(grid.cells[open_cells], np.argmin(cost[open_cells], axis=1))

    def test_fallback_idle_when_tiles_suffice(self, random_cost: np.ndarray) -> None:
        grid, table = Grid(4, 3), RankTable(random_cost)
        place_unique(grid, table)
        assert grid.complete
        assert fill_remaining(grid, table) == 0

    @pytest.mark.parametrize("cells, tiles", [(1, 1), (6, 6), (6, 30), (30, 6)])
    def test_columns_never_run_dry(self, cells: int, tiles: int) -> None:
        cost = np.random.default_rng(cells * tiles).integers(0, 50, (cells, tiles))
        grid = assign_tiles(Grid(cells, 1), RankTable(cost))
        assert grid.complete

    def test_independent_allows_repeats(self) -> None:
        cost = np.array([[0, 9], [0, 9], [9, 0]])
        grid = assign_independent(Grid(3, 1), RankTable(cost))
        assert grid.cells.tolist() == [0, 0, 1]

    def test_shape_mismatch(self, random_cost: np.ndarray) -> None:
        with pytest.raises(ValueError):
            assign_tiles(Grid(2, 2), RankTable(random_cost))


# -- Drawing -----------------------------------------------------------

class TestCompose:
    @pytest.mark.parametrize(
        "wide, tall, width, aspect",
        [(7, 5, 1000, 4 / 3), (72, 54, 1800, 4 / 3), (13, 9, 997, 1.37), (3, 11, 50, 0.7)],
    )
    def test_cells_tile_canvas_exactly(
        self, wide: int, tall: int, width: int, aspect: float,
    ) -> None:
        grid = Grid(wide, tall)
        card_w, card_h = cell_size(grid, width, aspect)
        xs, ys = cell_edges(wide, card_w), cell_edges(tall, card_h)
        out_w, out_h = output_size(grid, width, aspect)
        assert out_w == width
        assert out_h == round_half_up(width / wide / aspect * tall)

        coverage = np.zeros((out_h, out_w), dtype=np.int64)
        for cell in range(grid.size):
            x, y = grid.coords(cell)
            coverage[ys[y]:ys[y + 1], xs[x]:xs[x + 1]] += 1
        assert np.all(coverage == 1)

    def test_bilinear_solid(self) -> None:
        out = sample_bilinear(solid((12, 34, 56), 5, 4), 9, 7)
        assert out.shape == (7, 9, 3)
        assert np.all(out == (12, 34, 56))

    def test_bilinear_gradient_clamps_edges(self) -> None:
        src = np.zeros((1, 2, 3), dtype=np.uint8)
        src[0, 1] = 255
        out = sample_bilinear(src, 4, 1)[0, :, 0]
        assert out.tolist() == [0, 64, 191, 255]

    def test_draw_places_tiles(self, colour_tiles: list[np.ndarray]) -> None:
        grid = Grid(2, 2)
        grid.cells[:] = [3, 2, 1, 0]
        canvas = draw_tiles(grid, colour_tiles, 40, 1.0)
        assert canvas.shape == (40, 40, 3)
        assert np.all(canvas[:20, :20] == WHITE)
        assert np.all(canvas[:20, 20:] == BLUE)
        assert np.all(canvas[20:, :20] == GREEN)
        assert np.all(canvas[20:, 20:] == RED)

    def test_draw_requires_complete_grid(self, colour_tiles: list[np.ndarray]) -> None:
        with pytest.raises(ValueError):
            draw_tiles(Grid(2, 2), colour_tiles, 40, 1.0)


# -- End to end --------------------------------------------------------

class TestPipeline:
    def test_colour_quadrants(
        self, quadrant_base: np.ndarray, colour_tiles: list[np.ndarray],
    ) -> None:
        cfg = MosaicConfig(aspect=1.0, cards_wide=2, sample_size=5, output_width=40)
        result = build_mosaic(quadrant_base, colour_tiles, cfg)

        assert result.grid.cells.tolist() == [0, 1, 2, 3]
        chosen = result.table.cost[np.arange(4), result.grid.cells]
        np.testing.assert_array_equal(chosen - focus_penalties(result.grid, 5), 0)
        assert result.mean_residual == 0.0
        assert np.all(result.mosaic[:20, :20] == RED)
        assert np.all(result.mosaic[20:, 20:] == WHITE)

    def test_scores_brightness_matched_sample(self) -> None:
        # Raw greys 60 | 100 would put tile 0 (grey 100) in the right cell.
        # Matched onto the pool's 100 / 200 histogram they become 100 | 200.
        base = np.zeros((10, 20, 3), dtype=np.uint8)
        base[:, :10] = 60
        base[:, 10:] = 100
        tiles = [solid((100, 100, 100), 10, 10), solid((200, 200, 200), 10, 10)]
        cfg = MosaicConfig(aspect=1.0, cards_wide=2, sample_size=5, output_width=40)
        result = build_mosaic(base, tiles, cfg)

        assert np.all(result.matched[:, :5] == 100)
        assert np.all(result.matched[:, 5:] == 200)
        assert result.grid.cells.tolist() == [0, 1]
        assert result.mean_residual == 0.0

    def test_fit_mode_uses_every_tile(self) -> None:
        rng = np.random.default_rng(4)
        tiles = [rng.integers(0, 256, (8, 8, 3), dtype=np.uint8) for _ in range(6)]
        base = rng.integers(0, 256, (20, 20, 3), dtype=np.uint8)
        cfg = MosaicConfig(aspect=1.0, fit_tiles=True, sample_size=4, output_width=30)
        result = build_mosaic(base, tiles, cfg)
        assert (result.grid.cards_wide, result.grid.cards_tall) == (3, 3)
        assert set(result.grid.cells.tolist()) == set(range(6))

    def test_duplicates_pad_pool(self, quadrant_base: np.ndarray) -> None:
        tiles = [solid(RED, 6, 6), solid(BLUE, 6, 6)]
        cfg = MosaicConfig(
            aspect=1.0, cards_wide=2, sample_size=3, output_width=20, duplicates=2, seed=0,
        )
        result = build_mosaic(quadrant_base, tiles, cfg)
        assert len(result.tiles) == 4
        assert len(set(result.grid.cells.tolist())) == 4

    def test_repeat_mode(
        self, quadrant_base: np.ndarray, colour_tiles: list[np.ndarray],
    ) -> None:
        cfg = MosaicConfig(
            aspect=1.0, cards_wide=2, sample_size=5, output_width=40, unique=False,
        )
        result = build_mosaic(quadrant_base, colour_tiles[:1] + colour_tiles[3:], cfg)
        assert result.grid.complete

    def test_empty_pool(self, quadrant_base: np.ndarray) -> None:
        with pytest.raises(ValueError):
            build_mosaic(quadrant_base, [], MosaicConfig(aspect=1.0, cards_wide=2))
