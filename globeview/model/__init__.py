"""Data model classes for the map dashboard.

- Feature / FeatureCollection: normalized GeoJSON records (RFI, Report, Target, Layer)
- FilterCriteria / LayerVisibility: what the UI asks to see
- SelectionState: selected feature and its related ids
- MarkerRecord: fixed-asset markers
- ProjectionMode / MapTheme / CameraState: view-level settings
- errors: GlobeviewError hierarchy
"""

from globeview.model.errors import (
    DatasetFetchError,
    GlobeviewError,
    ProjectionTransitionError,
    StyleSwitchError,
    StyleSwitchTimeout,
    SurfaceError,
)
from globeview.model.feature import Feature, FeatureCollection, FeatureType, GeometryType
from globeview.model.filters import (
    FilterCriteria,
    LayerVisibility,
    ReportSubfilters,
    RfiSubfilters,
    TimeRange,
)
from globeview.model.marker import MarkerRecord, MarkerStatus
from globeview.model.selection import SelectionState
from globeview.model.view import CameraState, MapTheme, ProjectionMode, SurfaceOptions

__all__ = [
    "Feature",
    "FeatureCollection",
    "FeatureType",
    "GeometryType",
    "TimeRange",
    "ReportSubfilters",
    "RfiSubfilters",
    "FilterCriteria",
    "LayerVisibility",
    "SelectionState",
    "MarkerRecord",
    "MarkerStatus",
    "ProjectionMode",
    "MapTheme",
    "CameraState",
    "SurfaceOptions",
    "GlobeviewError",
    "DatasetFetchError",
    "StyleSwitchError",
    "StyleSwitchTimeout",
    "ProjectionTransitionError",
    "SurfaceError",
]
