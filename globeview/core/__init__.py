"""Pure logic on top of the data model.

- DatasetCache: fetch-once holder of the base collection
- derive: filtering pipeline (base + criteria -> derived collection)
- related_ids: one-hop relationship traversal
- search_features: local dataset search
- timeline helpers: presets, month snapping, slider mapping
- coordinate formatting: decimal degrees / DMS
"""

from globeview.core.coordinates import CoordinateSystem, format_coordinates
from globeview.core.dataset_cache import DatasetCache
from globeview.core.filtering import derive
from globeview.core.relationships import RELATIONSHIP_PROPERTIES, related_ids
from globeview.core.search import SearchResult, search_features
from globeview.core.timeline import preset_range, snap_to_month

__all__ = [
    # Dataset
    "DatasetCache",
    "derive",
    # Relationships
    "RELATIONSHIP_PROPERTIES",
    "related_ids",
    # Search
    "SearchResult",
    "search_features",
    # Timeline
    "preset_range",
    "snap_to_month",
    # Coordinates
    "CoordinateSystem",
    "format_coordinates",
]
