"""Deck click handler using streamlit-deckgl.

st_deckgl returns the full deck.gl onClick event, including clicks on empty
map space, which st.pydeck_chart does not. The coordinate is forwarded to the
surface, which runs marker and feature hit-testing itself.
"""

import logging
from dataclasses import dataclass
from typing import Any

import pydeck as pdk
import streamlit as st
from streamlit_deckgl import st_deckgl  # type: ignore[import-untyped]

from globeview.constants import MapConfig

logger = logging.getLogger(__name__)


@dataclass
class MapClickResult:
    """Result of one st_deckgl render.

    Attributes:
        clicked_object: Picked row (type, id, name, ...) or None for empty-space clicks
        clicked_coordinate: [lon, lat] of the click
    """

    clicked_object: dict[str, Any] | None
    clicked_coordinate: list[float] | None

    @property
    def has_click(self) -> bool:
        return self.clicked_coordinate is not None

    @staticmethod
    def empty() -> "MapClickResult":
        return MapClickResult(clicked_object=None, clicked_coordinate=None)


def render_deck_map(deck: pdk.Deck, key: str, height: int = MapConfig.MAP_HEIGHT_PX) -> MapClickResult:
    """Render the deck and return the click of this run, if it is a new one."""
    last_click_key = f"_deckgl_last_click_{key}"
    if last_click_key not in st.session_state:
        st.session_state[last_click_key] = None

    # events=["click"] is required for click reporting
    event = st_deckgl(deck, key=key, height=height, events=["click"])
    if not event:
        return MapClickResult.empty()

    clicked_coordinate: list[float] | None = None
    coord = event.get("coordinate") if isinstance(event, dict) else None
    if isinstance(coord, (list, tuple)) and len(coord) >= 2:
        clicked_coordinate = [float(coord[0]), float(coord[1])]

    # Picked row properties are spread into the event dict
    clicked_object: dict[str, Any] | None = None
    if event.get("id") is not None and event.get("type") not in (None, "click"):
        clicked_object = {k: v for k, v in event.items() if k not in ("coordinate", "eventType")}

    if clicked_coordinate is None:
        return MapClickResult.empty()

    click_id = _get_click_id(obj=clicked_object, coord=clicked_coordinate)
    if click_id == st.session_state.get(last_click_key):
        return MapClickResult.empty()
    st.session_state[last_click_key] = click_id

    logger.debug(f"Map click at {clicked_coordinate}, object={clicked_object is not None}")
    return MapClickResult(clicked_object=clicked_object, clicked_coordinate=clicked_coordinate)


def _get_click_id(obj: dict[str, Any] | None, coord: list[float] | None) -> str:
    """Identity of a click for rerun deduplication."""
    parts = []
    if obj:
        parts.append(f"{obj.get('type', '')}_{obj.get('id', '')}")
    if coord:
        parts.append(f"coord_{coord[0]:.5f}_{coord[1]:.5f}")
    return "_".join(parts)
