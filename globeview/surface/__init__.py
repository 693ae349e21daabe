"""Rendering surfaces.

- MapSurface: abstract renderer contract driven by the engine
- DeckSurface: in-memory implementation rendered with pydeck
"""

from globeview.surface.base import (
    IdCase,
    LayerKind,
    LayerSpec,
    MapMouseEvent,
    MapSurface,
    SurfaceErrorEvent,
    SurfaceEvent,
)
from globeview.surface.deck_surface import DeckSurface

__all__ = [
    "MapSurface",
    "DeckSurface",
    "SurfaceEvent",
    "LayerKind",
    "LayerSpec",
    "IdCase",
    "MapMouseEvent",
    "SurfaceErrorEvent",
]
