"""User interface components for the map dashboard.

- sidebar.py: SidebarRenderer (view, layers, time, search, selection card) + apply_actions
- deck_click_handler.py: st_deckgl rendering with click deduplication
"""

from globeview.ui.deck_click_handler import MapClickResult, render_deck_map
from globeview.ui.sidebar import SidebarRenderer, apply_actions

__all__ = [
    "MapClickResult",
    "render_deck_map",
    "SidebarRenderer",
    "apply_actions",
]
