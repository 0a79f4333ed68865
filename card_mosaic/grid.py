"""Grid sizing: fixed-width and fit-to-pool modes."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)

UNASSIGNED = -1


class GridError(ValueError):
    """No grid of the requested shape can be built for this image."""


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (non-negative input)."""
    return int(math.floor(value + 0.5))


@dataclass
class Grid:
    """``cards_wide x cards_tall`` cells plus a flat, row-major assignment."""

    cards_wide: int
    cards_tall: int
    cells: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.cards_wide < 1 or self.cards_tall < 1:
            raise GridError(
                f"grid must have at least one cell, got "
                f"{self.cards_wide}x{self.cards_tall}"
            )
        self.cells = np.full(self.size, UNASSIGNED, dtype=np.int64)

    @property
    def size(self) -> int:
        return self.cards_wide * self.cards_tall

    @property
    def complete(self) -> bool:
        return bool(np.all(self.cells != UNASSIGNED))

    def coords(self, cell: int) -> tuple[int, int]:
        """Cell index -> (x, y)."""
        return cell % self.cards_wide, cell // self.cards_wide

    def as_array(self) -> np.ndarray:
        """Assignment reshaped to (cards_tall, cards_wide)."""
        return self.cells.reshape(self.cards_tall, self.cards_wide)


def _check_inputs(aspect: float, image_width: int, image_height: int) -> None:
    if not aspect > 0:
        raise ValueError(f"aspect ratio must be > 0, got {aspect}")
    if image_width < 1 or image_height < 1:
        raise ValueError(f"image must be non-empty, got {image_width}x{image_height}")


def rows_for_width(
    cards_wide: int, aspect: float, image_width: int, image_height: int,
) -> int:
    """Rows needed so cells of *aspect* cover the image height."""
    card_width = image_width / cards_wide
    card_height = card_width / aspect
    return round_half_up(image_height / card_height)


def columns_for_height(
    cards_tall: int, aspect: float, image_width: int, image_height: int,
) -> int:
    """Inverse of :func:`rows_for_width`."""
    card_height = image_height / cards_tall
    card_width = card_height * aspect
    return round_half_up(image_width / card_width)


def create_grid(
    cards_wide: int, aspect: float, image_width: int, image_height: int,
) -> Grid:
    """Fixed-width mode: *cards_wide* columns, rows follow the image shape."""
    _check_inputs(aspect, image_width, image_height)
    if cards_wide < 1:
        raise ValueError(f"cards_wide must be >= 1, got {cards_wide}")

    cards_tall = rows_for_width(cards_wide, aspect, image_width, image_height)
    if cards_tall < 1:
        raise GridError(
            f"{cards_wide} columns of aspect {aspect:.3f} leave no room for a row "
            f"in a {image_width}x{image_height} image"
        )
    logger.debug("Grid %dx%d (fixed width)", cards_wide, cards_tall)
    return Grid(cards_wide, cards_tall)


def fit_candidates(
    step: int, aspect: float, image_width: int, image_height: int,
) -> list[tuple[int, int]]:
    """Both orientations at search step *step*: width-led and height-led."""
    return [
        (step, max(1, rows_for_width(step, aspect, image_width, image_height))),
        (max(1, columns_for_height(step, aspect, image_width, image_height)), step),
    ]


def fit_grid(
    n: int, aspect: float, image_width: int, image_height: int,
) -> Grid:
    """Fit-N mode: smallest aspect-consistent grid with at least *n* cells.

    The search step grows from 1; at each step a width-led and a
    height-led candidate are derived, and the first step with any candidate
    of area >= *n* wins (smallest area, then narrowest).

    Raises:
        GridError: if *n* exceeds the image pixel count, which bounds the
            search.
    """
    _check_inputs(aspect, image_width, image_height)
    if n < 1:
        raise ValueError(f"need at least one tile to fit a grid, got {n}")

    limit = image_width * image_height
    if n > limit:
        raise GridError(
            f"cannot grid {n} tiles into a {image_width}x{image_height} image"
        )

    for step in range(1, limit + 1):
        fitting = [
            (w, h)
            for w, h in fit_candidates(step, aspect, image_width, image_height)
            if w * h >= n
        ]
        if fitting:
            w, h = min(fitting, key=lambda c: (c[0] * c[1], c[0]))
            logger.debug("Grid %dx%d fits %d tiles (step %d)", w, h, n, step)
            return Grid(w, h)

    raise GridError(f"no grid of at most {limit} steps fits {n} tiles")
