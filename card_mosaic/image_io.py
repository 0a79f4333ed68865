"""Image loading, saving, and comparison-grid generation."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError


class ImageLoadError(ValueError):
    """An image file could not be decoded."""


def load_rgb(path: str | Path) -> np.ndarray:
    """Decode *path* as RGB.

    Returns:
        (H, W, 3) uint8 array.

    Raises:
        ImageLoadError: if the file is missing or not a decodable image.
    """
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGB"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as exc:
        raise ImageLoadError(f"cannot decode image {path}: {exc}") from exc


def save_rgb(array: np.ndarray, path: str | Path) -> None:
    Image.fromarray(array.astype(np.uint8)).save(path)


def make_comparison_grid(
    base: np.ndarray,
    matched: np.ndarray,
    mosaic: np.ndarray,
    output_path: str | Path,
    panel_width: int = 480,
) -> None:
    """Create a 3-panel comparison: Base | Matched sample | Mosaic.

    Panels share the mosaic's aspect ratio and are *panel_width* wide.
    """
    mh, mw = mosaic.shape[:2]
    panel_w = panel_width
    panel_h = max(1, round(panel_width * mh / mw))
    label_height = 36

    panels = [
        Image.fromarray(base).resize((panel_w, panel_h), Image.LANCZOS),
        Image.fromarray(matched).resize((panel_w, panel_h), Image.NEAREST),
        Image.fromarray(mosaic).resize((panel_w, panel_h), Image.LANCZOS),
    ]
    labels = [
        "Base",
        f"Matched {matched.shape[1]}x{matched.shape[0]}",
        "Mosaic",
    ]

    gap = 8
    total_w = len(panels) * panel_w + (len(panels) - 1) * gap
    total_h = panel_h + label_height

    canvas = Image.new("RGB", (total_w, total_h), (30, 30, 30))
    draw = ImageDraw.Draw(canvas)

    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 18,
        )
    except OSError:
        font = ImageFont.load_default()

    for i, (panel, label) in enumerate(zip(panels, labels, strict=False)):
        x = i * (panel_w + gap)
        canvas.paste(panel, (x, label_height))

        bbox = draw.textbbox((0, 0), label, font=font)
        text_w = bbox[2] - bbox[0]
        tx = x + (panel_w - text_w) // 2
        draw.text((tx, 6), label, fill=(220, 220, 220), font=font)

    canvas.save(output_path)
