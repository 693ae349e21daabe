"""Globeview - interactive intelligence map dashboard.

Streamlit view glue around MapEngine. The engine lives in session state; every
rerun applies the sidebar actions and the map click of the previous run, then
renders the surface as a pydeck Deck.

Run: streamlit run globeview/app.py
"""

import asyncio
import logging

import streamlit as st

from globeview.constants import AppConfig, DataConfig
from globeview.core.dataset_cache import read_markers
from globeview.engine.controller import MapEngine
from globeview.model.errors import GlobeviewError
from globeview.surface.deck_surface import DeckSurface
from globeview.ui.deck_click_handler import render_deck_map
from globeview.ui.sidebar import SidebarRenderer, apply_actions

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# SESSION STATE
# =============================================================================


def init_session_state() -> MapEngine:
    """Create and initialize the engine once per session."""
    if "engine" not in st.session_state:
        engine = MapEngine()
        with st.spinner("Loading map data..."):
            asyncio.run(engine.initialize())
        try:
            engine.set_markers(read_markers(DataConfig.ASSETS_PATH))
        except GlobeviewError as e:
            logger.warning(f"Assets not loaded: {e}")
        st.session_state.engine = engine
    return st.session_state.engine


def _render_map(engine: MapEngine) -> None:
    surface = engine.surface
    if not isinstance(surface, DeckSurface) or surface.is_removed:
        st.warning("Map is unavailable.")
        return

    # New surface generation = new component key, forcing a deck.gl remount
    key = f"globeview_map_{surface.generation}"
    result = render_deck_map(surface.to_deck(), key=key)
    if result.has_click:
        lon, lat = result.clicked_coordinate
        surface.fire_click(lon, lat)
        st.rerun()


# =============================================================================
# MAIN
# =============================================================================


def main() -> None:
    """Application entry point."""
    st.set_page_config(page_title=AppConfig.TITLE, page_icon=AppConfig.ICON, layout=AppConfig.LAYOUT)
    engine = init_session_state()

    st.title(AppConfig.TITLE)

    actions = SidebarRenderer(engine=engine).render()
    if actions:
        logger.info(f"[MAIN] Applying sidebar actions: {sorted(actions)}")
        asyncio.run(apply_actions(engine, actions))

    if engine.state.error:
        st.error(engine.state.error)

    _render_map(engine)

    base = engine.base_dataset
    shown = engine.derived_dataset
    st.caption(f"{len(shown)} of {len(base)} features shown · theme: {engine.state.theme.name}")


if __name__ == "__main__":
    main()
