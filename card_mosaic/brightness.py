"""Histogram-based brightness matching between the base sample and the tiles.

A photo and a pool of illustration crops rarely share a tonal range. If the
raw samples were scored directly, brightness mismatch would dominate content
mismatch, so the base sample is remapped onto the tiles' brightness
distribution first. Only the scoring sample is touched; compositing uses tile
pixels, never base pixels.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)

LEVELS = 256


def brightness(image: np.ndarray) -> np.ndarray:
    """Average-channel brightness, float64, shape ``image.shape[:-1]``."""
    return image.reshape(-1, 3).astype(np.float64).mean(axis=1).reshape(
        image.shape[:-1]
    )


def _buckets(values: np.ndarray) -> np.ndarray:
    # Channel means are k/3, so there are no .5 ties to break.
    return np.clip(np.rint(values), 0, LEVELS - 1).astype(np.int64)


def count_brightness(image: np.ndarray, counts: np.ndarray | None = None) -> np.ndarray:
    """256-bucket histogram of rounded brightness.

    If *counts* is given it is updated in place and returned, so a combined
    histogram can be accumulated over many images.
    """
    if counts is None:
        counts = np.zeros(LEVELS, dtype=np.int64)
    counts += np.bincount(_buckets(brightness(image)).ravel(), minlength=LEVELS)
    return counts


def create_brightness_map(from_counts: np.ndarray, to_counts: np.ndarray) -> np.ndarray:
    """Map each source bucket to a target bucket by CDF inversion.

    Bucket ``i`` covers the cumulative range ``[start, start + count)`` of the
    source histogram; its midpoint ``(2*start + count) // 2`` is located in
    the target histogram's cumulative ranges. Midpoints past the end map to
    255. The result is monotonic non-decreasing.
    """
    from_counts = np.asarray(from_counts, dtype=np.int64)
    to_counts = np.asarray(to_counts, dtype=np.int64)
    if from_counts.shape != (LEVELS,) or to_counts.shape != (LEVELS,):
        raise ValueError("brightness histograms must have 256 buckets")
    if to_counts.sum() == 0:
        raise ValueError("target brightness histogram is empty")

    starts = np.concatenate(([0], np.cumsum(from_counts)[:-1]))
    centers = (2 * starts + from_counts) // 2
    to_ends = np.cumsum(to_counts)
    # first j whose cumulative end lies strictly past the midpoint
    mapping = np.searchsorted(to_ends, centers, side="right")
    return np.minimum(mapping, LEVELS - 1).astype(np.int64)


def match_brightness(image: np.ndarray, brightness_map: np.ndarray) -> np.ndarray:
    """Rescale every pixel so its brightness follows *brightness_map*.

    Each channel is multiplied by ``target / source`` and clamped to 255.
    Black pixels (source brightness 0) keep a ratio of 1.
    """
    source = brightness(image)
    target = np.asarray(brightness_map, dtype=np.float64)[_buckets(source)]
    ratio = np.divide(target, source, out=np.ones_like(source), where=source > 0)
    scaled = np.minimum(image.astype(np.float64) * ratio[..., np.newaxis], 255.0)
    return np.floor(scaled + 0.5).astype(np.uint8)


def brightness_match_sample(base_sample: np.ndarray, tile_samples: np.ndarray) -> np.ndarray:
    """Match *base_sample* against the combined histogram of *tile_samples*."""
    base_counts = count_brightness(base_sample)
    tile_counts = np.zeros(LEVELS, dtype=np.int64)
    for sample in tile_samples:
        count_brightness(sample, tile_counts)

    mapping = create_brightness_map(base_counts, tile_counts)
    logger.debug(
        "Brightness map spans %d..%d (base mean %.1f)",
        mapping.min(), mapping.max(), brightness(base_sample).mean(),
    )
    return match_brightness(base_sample, mapping)
