"""MapSurface - the rendering-surface contract consumed by the engine.

The engine never draws anything itself. It drives a surface through this API,
which mirrors a Mapbox-GL-style renderer:
- Data sources holding a FeatureCollection, replaced wholesale on update
- Layers (heatmap / symbol / circle / fill / line) reading from a source
- Paint and layout properties, which may be per-feature IdCase values
- Named images for symbol icons
- Camera (ease_to / fly_to), projection and fog
- Controls and DOM-style markers
- Events: load, style.load, click, mousemove, mouseleave, error

A style change (set_style) discards every source, layer and image. Event
listeners and markers belong to the surface, not the style, so both survive
a style change. Nothing survives a rebuild; the marker manager re-syncs
markers after either.

Each surface instance has a unique `generation`. Anything cached against a
surface (icons, handlers) is only valid for that generation.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from globeview.model.feature import Feature, FeatureCollection, FeatureType, GeometryType
from globeview.model.view import CameraState, ProjectionMode

logger = logging.getLogger(__name__)

_generations = itertools.count(1)


class SurfaceEvent:
    """Event names emitted by surfaces."""

    LOAD = "load"
    STYLE_LOAD = "style.load"
    CLICK = "click"
    MOUSE_MOVE = "mousemove"
    MOUSE_LEAVE = "mouseleave"
    ERROR = "error"


class LayerKind(Enum):
    HEATMAP = "heatmap"
    SYMBOL = "symbol"
    CIRCLE = "circle"
    FILL = "fill"
    LINE = "line"


@dataclass(frozen=True)
class LayerFilter:
    """Feature predicate of a layer (None = any)."""

    feature_type: Optional[FeatureType] = None
    geometry: Optional[GeometryType] = None

    def matches(self, feature: Feature) -> bool:
        if self.feature_type is not None and feature.type != self.feature_type:
            return False
        if self.geometry is not None and feature.geometry_type != self.geometry:
            return False
        return True


@dataclass(frozen=True)
class IdCase:
    """Per-feature value: `match` for ids in `ids`, `otherwise` for the rest."""

    ids: frozenset[str]
    match: Any
    otherwise: Any

    def resolve(self, feature_id: str) -> Any:
        return self.match if feature_id in self.ids else self.otherwise


def resolve_value(value: Any, feature_id: str) -> Any:
    """Evaluate a paint/layout value for one feature."""
    if isinstance(value, IdCase):
        return value.resolve(feature_id)
    return value


@dataclass
class LayerSpec:
    """Layer definition as installed on a surface."""

    id: str
    kind: LayerKind
    source: str
    filter: LayerFilter = field(default_factory=LayerFilter)
    paint: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)

    @property
    def visible(self) -> bool:
        return self.layout.get("visibility", "visible") != "none"


@dataclass(frozen=True)
class IconImage:
    """Decoded icon ready for add_image."""

    url: str
    width: int
    height: int
    data: bytes = b""


@dataclass(frozen=True)
class RenderedFeature:
    """One query_rendered_features hit."""

    layer_id: str
    feature: Feature


@dataclass(frozen=True)
class MapMouseEvent:
    lon: float
    lat: float


@dataclass(frozen=True)
class SurfaceErrorEvent:
    """Renderer-side error. layer_id is set when a layer caused it."""

    message: str
    layer_id: Optional[str] = None


@dataclass(frozen=True)
class MarkerStyle:
    """Visual emphasis of one marker."""

    color: str
    dot_size_px: int
    border_width_px: int
    border_color: str
    glow: str
    z_index: int
    pulse_size_px: Optional[int] = None
    pulse_opacity: Optional[float] = None


@dataclass(frozen=True)
class MarkerSpec:
    id: int | str
    lon: float
    lat: float
    style: MarkerStyle
    label: str = ""
    on_click: Optional[Callable[[], None]] = None


class MarkerHandle(ABC):
    """A marker placed on a surface."""

    @property
    @abstractmethod
    def id(self) -> int | str:
        raise NotImplementedError

    @abstractmethod
    def set_style(self, style: MarkerStyle) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self) -> None:
        raise NotImplementedError


Listener = Callable[[Any], None]


class MapSurface(ABC):
    """Abstract rendering surface.

    Event plumbing (on / off / once / emit) is shared; everything that touches
    renderer state is abstract.
    """

    def __init__(self) -> None:
        self.generation = next(_generations)
        self._listeners: dict[str, list[Listener]] = {}

    # =========================================================================
    # EVENTS
    # =========================================================================

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def once(self, event: str, listener: Listener) -> None:
        """Subscribe for a single emission."""

        def _wrapper(payload: Any) -> None:
            self.off(event, _wrapper)
            listener(payload)

        self.on(event, _wrapper)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any = None) -> None:
        """Deliver an event to every current listener."""
        for listener in list(self._listeners.get(event, [])):
            listener(payload)

    def clear_listeners(self) -> None:
        self._listeners.clear()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @abstractmethod
    def is_loaded(self) -> bool:
        """True once the initial style finished loading."""
        raise NotImplementedError

    @abstractmethod
    def is_style_loaded(self) -> bool:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_removed(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def set_style(self, style: Any) -> None:
        """Swap the basemap style; drops all sources, layers and images."""
        raise NotImplementedError

    @abstractmethod
    def remove(self) -> None:
        """Destroy the surface and release its graphics context."""
        raise NotImplementedError

    # =========================================================================
    # SOURCES & LAYERS
    # =========================================================================

    @abstractmethod
    def add_source(self, source_id: str, data: FeatureCollection) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[FeatureCollection]:
        raise NotImplementedError

    @abstractmethod
    def set_source_data(self, source_id: str, data: FeatureCollection) -> None:
        """Replace a source's data wholesale."""
        raise NotImplementedError

    @abstractmethod
    def remove_source(self, source_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_layer(self, spec: LayerSpec, before_id: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_layer(self, layer_id: str) -> Optional[LayerSpec]:
        raise NotImplementedError

    def has_layer(self, layer_id: str) -> bool:
        return self.get_layer(layer_id) is not None

    @abstractmethod
    def remove_layer(self, layer_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def layer_ids(self) -> list[str]:
        """Layer ids in draw order (bottom first)."""
        raise NotImplementedError

    @abstractmethod
    def set_paint_property(self, layer_id: str, name: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_paint_property(self, layer_id: str, name: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_layout_property(self, layer_id: str, name: str) -> Any:
        raise NotImplementedError

    # =========================================================================
    # IMAGES
    # =========================================================================

    @abstractmethod
    async def load_image(self, url: str) -> IconImage:
        """Fetch and decode an image (suspends)."""
        raise NotImplementedError

    @abstractmethod
    def add_image(self, name: str, image: IconImage) -> None:
        raise NotImplementedError

    @abstractmethod
    def has_image(self, name: str) -> bool:
        raise NotImplementedError

    # =========================================================================
    # QUERIES
    # =========================================================================

    @abstractmethod
    def query_rendered_features(self, lon: float, lat: float, layers: list[str]) -> list[RenderedFeature]:
        """Features drawn at a point across `layers`, topmost first."""
        raise NotImplementedError

    # =========================================================================
    # CAMERA, PROJECTION, FOG
    # =========================================================================

    @abstractmethod
    def get_camera(self) -> CameraState:
        raise NotImplementedError

    @abstractmethod
    def ease_to(
        self,
        center: Optional[tuple[float, float]] = None,
        zoom: Optional[float] = None,
        duration_ms: int = 0,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def fly_to(self, center: tuple[float, float], zoom: float, duration_ms: int = 0) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_projection(self) -> ProjectionMode:
        raise NotImplementedError

    @abstractmethod
    def set_projection(self, mode: ProjectionMode) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_fog(self, fog: Optional[dict[str, Any]]) -> None:
        raise NotImplementedError

    # =========================================================================
    # CONTROLS & MARKERS
    # =========================================================================

    @abstractmethod
    def add_control(self, name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_control(self, name: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_marker(self, spec: MarkerSpec) -> MarkerHandle:
        raise NotImplementedError
