"""View-level types: projection mode, basemap theme, camera snapshot."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from globeview.constants import MapConfig, ThemeConfig


class ProjectionMode(Enum):
    """Values double as python-statemachine state ids."""

    FLAT = "flat"
    GLOBE = "globe"

    @property
    def opposite(self) -> "ProjectionMode":
        return ProjectionMode.GLOBE if self == ProjectionMode.FLAT else ProjectionMode.FLAT


@dataclass(frozen=True)
class MapTheme:
    """Basemap theme.

    Attributes:
        id: Stable key ("dark", "light", ...)
        name: Display name
        style: Style URL or inline Mapbox GL style dict
    """

    id: str
    name: str
    style: Any

    @staticmethod
    def all() -> list["MapTheme"]:
        return [MapTheme(id=theme_id, name=name, style=style) for theme_id, name, style in ThemeConfig.THEMES]

    @staticmethod
    def default() -> "MapTheme":
        return MapTheme.all()[ThemeConfig.DEFAULT_THEME_INDEX]

    @staticmethod
    def by_id(theme_id: str) -> Optional["MapTheme"]:
        return next((theme for theme in MapTheme.all() if theme.id == theme_id), None)

    def next(self) -> "MapTheme":
        """Following theme in ThemeConfig order, wrapping around."""
        themes = MapTheme.all()
        ids = [theme.id for theme in themes]
        index = ids.index(self.id) if self.id in ids else -1
        return themes[(index + 1) % len(themes)]


@dataclass(frozen=True)
class CameraState:
    """Snapshot of center/zoom/pitch/bearing."""

    center: tuple[float, float] = (MapConfig.START_CENTER_LON, MapConfig.START_CENTER_LAT)
    zoom: float = MapConfig.START_ZOOM
    pitch: float = MapConfig.DEFAULT_PITCH
    bearing: float = MapConfig.DEFAULT_BEARING


@dataclass(frozen=True)
class SurfaceOptions:
    """Everything needed to construct a rendering surface."""

    style: Any
    camera: CameraState = CameraState()
    projection: ProjectionMode = ProjectionMode.GLOBE
