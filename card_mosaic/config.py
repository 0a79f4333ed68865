"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule for remote tile fetches.

    Attributes:
        max_attempts: Attempts per tile before giving up (>= 1).
        backoff:      Delay in seconds after the first failure.
        factor:       Multiplier applied to the delay after each failure.
        max_backoff:  Upper bound on a single delay.
    """

    max_attempts: int = 8
    backoff: float = 0.5
    factor: float = 2.0
    max_backoff: float = 30.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return min(self.max_backoff, self.backoff * self.factor ** (attempt - 1))


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Attributes:
        aspect:          Tile aspect ratio (width / height).
        cards_wide:      Grid columns in fixed-width mode.
        fit_tiles:       Size the grid to the tile pool instead (fit-N mode).
        sample_size:     Side of the square comparison samples, in pixels.
        output_width:    Width of the rendered mosaic; height follows the grid.
        draw_scale:      DrawTile size relative to a cell's on-grid footprint.
        unique:          Prefer each tile at most once (two-phase assignment).
        duplicates:      Extra copies padded into the tile pool.
        seed:            Seed for duplicate padding (None = non-deterministic).
        workers:         Threads used to build the cost table.
        save_matched:    Persist the brightness-matched base sample.
        save_comparison: Generate a side-by-side comparison grid.
        tile_dir:        Tile cache directory.
        output_dir:      Folder for results.
        retry:           Retry schedule for tile fetches.
    """

    # Grid
    aspect: float = 4.0 / 3.0
    cards_wide: int = 72
    fit_tiles: bool = False

    # Scoring
    sample_size: int = 27
    unique: bool = True
    workers: int = 1

    # Tile pool
    duplicates: int = 0
    seed: int | None = 42

    # Rendering
    output_width: int = 1800
    draw_scale: float = 2.0
    output_format: str = "png"
    save_matched: bool = True
    save_comparison: bool = False

    # Paths
    tile_dir: Path = field(default_factory=lambda: Path("cardImages"))
    output_dir: Path = field(default_factory=lambda: Path("output"))

    # Fetching
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def validate(self) -> None:
        """Raise ``ValueError`` for settings no run can honour."""
        if not self.aspect > 0:
            raise ValueError(f"aspect must be > 0, got {self.aspect}")
        if self.cards_wide < 1:
            raise ValueError(f"cards_wide must be >= 1, got {self.cards_wide}")
        if not 1 <= self.sample_size <= 256:
            raise ValueError(
                f"sample_size must be in [1, 256], got {self.sample_size}"
            )
        if self.output_width < 1:
            raise ValueError(f"output_width must be >= 1, got {self.output_width}")
        if not self.draw_scale > 0:
            raise ValueError(f"draw_scale must be > 0, got {self.draw_scale}")
        if self.duplicates < 0:
            raise ValueError(f"duplicates must be >= 0, got {self.duplicates}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.retry.max_attempts < 1:
            raise ValueError("retry.max_attempts must be >= 1")
