"""
Card Mosaic
===========

Rebuild a base image as a grid of card-art tiles. Samples of the base and
every tile are brightness-matched and scored, then tiles are assigned to
cells greedily, cheapest match first, each tile used once before any is
repeated.
"""

__version__ = "1.0.0"

from card_mosaic.assign import assign_independent, assign_tiles
from card_mosaic.brightness import (
    brightness_match_sample,
    count_brightness,
    create_brightness_map,
    match_brightness,
)
from card_mosaic.compose import draw_tiles, output_size
from card_mosaic.config import MosaicConfig, RetryPolicy
from card_mosaic.grid import Grid, GridError, create_grid, fit_grid
from card_mosaic.image_io import ImageLoadError, load_rgb
from card_mosaic.pipeline import MosaicResult, build_mosaic
from card_mosaic.ranking import RankTable, build_rank_table, focus_penalty
from card_mosaic.sampling import sample_base, sample_tiles
from card_mosaic.tiles import add_duplicates, crop_to_aspect, load_tile_pool

__all__ = [
    "Grid",
    "GridError",
    "ImageLoadError",
    "MosaicConfig",
    "MosaicResult",
    "RankTable",
    "RetryPolicy",
    "add_duplicates",
    "assign_independent",
    "assign_tiles",
    "brightness_match_sample",
    "build_mosaic",
    "build_rank_table",
    "count_brightness",
    "create_brightness_map",
    "create_grid",
    "crop_to_aspect",
    "draw_tiles",
    "fit_grid",
    "focus_penalty",
    "load_rgb",
    "load_tile_pool",
    "match_brightness",
    "output_size",
    "sample_base",
    "sample_tiles",
]
