"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from card_mosaic.config import MosaicConfig, RetryPolicy
from card_mosaic.image_io import load_rgb, make_comparison_grid, save_rgb
from card_mosaic.pipeline import build_mosaic
from card_mosaic.source import FetchError, ScryfallSource, pull_tiles
from card_mosaic.tiles import load_tile_pool

app = typer.Typer(
    name="card-mosaic",
    help="Build photomosaics out of card art tiles.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(1)


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- pull command ------------------------------------------------------

@app.command()
def pull(
    count: int = typer.Argument(..., help="Number of tiles to fetch"),
    tile_dir: Path = typer.Option(
        _DEFAULTS.tile_dir, "--tiles", "-t", help="Tile cache folder",
    ),
    aspect: float = typer.Option(
        _DEFAULTS.aspect, "--aspect", "-a", help="Tile aspect ratio (width / height)",
    ),
    workers: int = typer.Option(4, "--workers", "-w", help="Concurrent downloads"),
    max_attempts: int = typer.Option(
        _DEFAULTS.retry.max_attempts, "--max-attempts", help="Attempts per tile",
    ),
    backoff: float = typer.Option(
        _DEFAULTS.retry.backoff, "--backoff", help="First retry delay in seconds",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Fetch COUNT random card art crops into the tile cache."""
    _setup_logging(verbose)
    cfg = MosaicConfig(
        aspect=aspect,
        tile_dir=tile_dir,
        retry=RetryPolicy(max_attempts=max_attempts, backoff=backoff),
    )
    try:
        cfg.validate()
        t0 = time.perf_counter()
        paths = pull_tiles(
            ScryfallSource(), count, cfg.tile_dir, cfg.aspect, cfg.retry, workers=workers,
        )
    except (ValueError, FetchError) as exc:
        _fail(str(exc))

    console.print(
        f"  [green]✓[/green] {len(paths)} tiles saved to {tile_dir}/  "
        f"[dim]time={time.perf_counter() - t0:.1f}s[/dim]"
    )


# -- build command -----------------------------------------------------

@app.command()
def build(
    base: Path = typer.Argument(..., help="Path to the base image"),
    output: Path = typer.Option(
        _DEFAULTS.output_dir / "mosaic.png", "--output", "-o", help="Mosaic file",
    ),
    tile_dir: Path = typer.Option(
        _DEFAULTS.tile_dir, "--tiles", "-t", help="Tile cache folder",
    ),
    cards_wide: int = typer.Option(
        _DEFAULTS.cards_wide, "--cards-wide", "-c", help="Grid columns",
    ),
    fit: bool = typer.Option(
        _DEFAULTS.fit_tiles, "--fit/--no-fit",
        help="Size the grid to the tile pool instead of --cards-wide",
    ),
    aspect: float = typer.Option(
        _DEFAULTS.aspect, "--aspect", "-a", help="Tile aspect ratio (width / height)",
    ),
    sample_size: int = typer.Option(
        _DEFAULTS.sample_size, "--sample-size", "-s", help="Comparison sample side (px)",
    ),
    width: int = typer.Option(
        _DEFAULTS.output_width, "--width", help="Output width in pixels",
    ),
    unique: bool = typer.Option(
        _DEFAULTS.unique, "--unique/--repeat",
        help="Prefer each tile once, or let every cell take its best tile",
    ),
    duplicates: int = typer.Option(
        _DEFAULTS.duplicates, "--duplicates", "-d", help="Pad the pool with copies",
    ),
    seed: int | None = typer.Option(
        _DEFAULTS.seed, "--seed", help="Seed for duplicate padding",
    ),
    workers: int = typer.Option(
        _DEFAULTS.workers, "--workers", "-w", help="Threads for the cost table",
    ),
    save_matched: bool = typer.Option(
        _DEFAULTS.save_matched, "--save-matched/--no-save-matched",
        help="Write the brightness-matched sample next to the mosaic",
    ),
    comparison: bool = typer.Option(
        _DEFAULTS.save_comparison, "--comparison/--no-comparison",
        help="Write a Base | Matched | Mosaic comparison",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build one mosaic of BASE from the cached tiles."""
    _setup_logging(verbose)
    logger = logging.getLogger("card_mosaic")

    cfg = MosaicConfig(
        aspect=aspect,
        cards_wide=cards_wide,
        fit_tiles=fit,
        sample_size=sample_size,
        unique=unique,
        duplicates=duplicates,
        seed=seed,
        workers=workers,
        output_width=width,
        save_matched=save_matched,
        save_comparison=comparison,
        tile_dir=tile_dir,
        output_dir=output.parent,
    )

    t_total = time.perf_counter()
    try:
        tiles = load_tile_pool(cfg.tile_dir)
        if not tiles:
            _fail(f"No tiles found in {tile_dir}/ - run `pull` first.")
        image = load_rgb(base)
        logger.info("Base: %dx%d", image.shape[1], image.shape[0])

        console.print(Panel.fit(
            f"[bold]CARD MOSAIC[/bold]\n"
            f"Tiles: {len(tiles)}  |  Aspect: {cfg.aspect:.3f}\n"
            f"Grid: {'fit pool' if cfg.fit_tiles else f'{cfg.cards_wide} wide'}"
            f"  |  Sample: {cfg.sample_size}px\n"
            f"Unique: {cfg.unique}  |  Width: {cfg.output_width}px",
            border_style="cyan",
        ))

        result = build_mosaic(image, tiles, cfg)
    except ValueError as exc:
        _fail(str(exc))

    output.parent.mkdir(parents=True, exist_ok=True)
    save_rgb(result.mosaic, output)

    if cfg.save_matched:
        matched_path = output.with_name(f"{output.stem}_matched.{cfg.output_format}")
        save_rgb(result.matched, matched_path)
        logger.info("Brightness-matched sample saved: %s", matched_path)

    if cfg.save_comparison:
        comp_path = output.with_name(f"{output.stem}_comparison.{cfg.output_format}")
        make_comparison_grid(image, result.matched, result.mosaic, comp_path)

    grid = result.grid
    distinct = len(np.unique(grid.cells))
    h, w = result.mosaic.shape[:2]
    console.print(
        f"  [green]✓[/green] {output}  "
        f"[dim]{grid.cards_wide}x{grid.cards_tall} cells  {distinct} distinct tiles  "
        f"{w}x{h} px  residual={result.mean_residual:.0f}"
        f"  time={time.perf_counter() - t_total:.1f}s[/dim]"
    )


if __name__ == "__main__":
    app()
