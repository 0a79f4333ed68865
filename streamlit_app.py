"""
Card Mosaic: Browser Edition

Run with:
    streamlit run streamlit_app.py
"""

from __future__ import annotations

import io
import time
from pathlib import Path

import numpy as np
import streamlit as st
from PIL import Image, ImageDraw

from card_mosaic.config import MosaicConfig
from card_mosaic.grid import GridError
from card_mosaic.image_io import ImageLoadError
from card_mosaic.pipeline import build_mosaic
from card_mosaic.tiles import load_tile_pool

# -- Page config -------------------------------------------------------
st.set_page_config(
    page_title="Card Mosaic",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

_DEFAULTS = MosaicConfig()

# -- CSS ---------------------------------------------------------------
st.markdown("""
<style>
    .stApp {
        background-color: #f7f6f2;
        color: #2a2a2a;
        font-family: 'Helvetica Neue', sans-serif;
    }
    .block-container {
        max-width: 1100px;
        padding-top: 3rem;
    }
    .mosaic-title {
        font-family: 'Georgia', serif;
        font-size: 2.6rem;
        font-weight: 300;
        text-align: center;
    }
    .mosaic-caption {
        font-size: 0.8rem;
        color: #888;
        text-align: center;
        letter-spacing: 0.08em;
    }
    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


# -- Helpers -----------------------------------------------------------

def _add_passepartout(img: Image.Image, border: int = 20) -> Image.Image:
    w, h = img.size
    canvas = Image.new("RGB", (w + border * 2, h + border * 2), (247, 246, 242))
    canvas.paste(img, (border, border))
    ImageDraw.Draw(canvas).rectangle(
        [border - 1, border - 1, border + w, border + h],
        outline=(220, 218, 212), width=1,
    )
    return canvas


@st.cache_data(show_spinner=False)
def _load_tiles(tile_dir: str) -> list[np.ndarray]:
    return load_tile_pool(Path(tile_dir))


# -- Title -------------------------------------------------------------
st.markdown('<div class="mosaic-title">Card Mosaic</div>', unsafe_allow_html=True)
st.markdown(
    '<div class="mosaic-caption">'
    "Upload a photo and it is rebuilt from card art. Every tile is used once "
    "before any tile repeats, and the best matches go to the centre."
    "</div>",
    unsafe_allow_html=True,
)

# -- Controls ----------------------------------------------------------
ctrl1, ctrl2, ctrl3 = st.columns(3)
with ctrl1:
    tile_dir = st.text_input("Tile folder", str(_DEFAULTS.tile_dir))
    cards_wide = st.slider("Columns", 4, 120, _DEFAULTS.cards_wide)
with ctrl2:
    sample_size = st.slider("Sample size (px)", 3, 72, _DEFAULTS.sample_size)
    output_width = st.slider("Output width (px)", 400, 4000, _DEFAULTS.output_width, step=100)
with ctrl3:
    fit_tiles = st.checkbox("Fit grid to tile pool", value=_DEFAULTS.fit_tiles)
    unique = st.checkbox("Prefer unique tiles", value=_DEFAULTS.unique)

st.markdown("---")

uploaded = st.file_uploader(
    "Base image", type=["jpg", "jpeg", "png", "webp", "bmp", "jfif"],
)

if uploaded is not None:
    original = Image.open(io.BytesIO(uploaded.getvalue())).convert("RGB")
    st.image(original, caption="Base", width=320)

    if st.button("COMPOSE", type="primary", use_container_width=True):
        cfg = MosaicConfig(
            cards_wide=cards_wide,
            fit_tiles=fit_tiles,
            sample_size=sample_size,
            unique=unique,
            output_width=output_width,
            tile_dir=Path(tile_dir),
        )
        try:
            tiles = _load_tiles(tile_dir)
            if not tiles:
                st.warning(f"No tiles found in {tile_dir}. Run `card-mosaic pull N` first.")
                st.stop()

            t0 = time.perf_counter()
            with st.spinner("Composing ..."):
                result = build_mosaic(np.array(original, dtype=np.uint8), tiles, cfg)
            elapsed = time.perf_counter() - t0
        except (GridError, ImageLoadError, ValueError) as exc:
            st.error(str(exc))
            st.stop()

        mosaic_img = Image.fromarray(result.mosaic)
        st.image(_add_passepartout(mosaic_img, border=28), use_container_width=True)

        buf = io.BytesIO()
        mosaic_img.save(buf, format="PNG")
        _, dl_col, _ = st.columns([1, 2, 1])
        with dl_col:
            st.download_button(
                "SAVE MOSAIC",
                data=buf.getvalue(),
                file_name="card_mosaic.png",
                mime="image/png",
                use_container_width=True,
            )

        grid = result.grid
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Grid", f"{grid.cards_wide} × {grid.cards_tall}")
        m2.metric("Distinct tiles", f"{len(np.unique(grid.cells)):,}")
        m3.metric("Time", f"{elapsed:.1f} s")
        m4.metric("Residual", f"{result.mean_residual:,.0f}")

        with st.expander("Brightness-matched sample"):
            matched = Image.fromarray(result.matched)
            st.image(
                matched.resize((matched.width * 4, matched.height * 4), Image.NEAREST),
                use_container_width=True,
            )
else:
    st.markdown(
        '<p class="mosaic-caption" style="margin-top:2rem;">Select a base image to begin.</p>',
        unsafe_allow_html=True,
    )
