"""DeckSurface - in-memory MapSurface rendered with pydeck.

Holds the full renderer state (style, sources, layers, images, camera,
projection, fog, controls, markers) and turns it into a pdk.Deck on demand:
- heatmap  -> HeatmapLayer
- symbol   -> IconLayer
- circle   -> ScatterplotLayer
- fill     -> PolygonLayer
- line     -> PathLayer
- markers  -> ScatterplotLayers (pulse ring + dot), always on top

Paint values that are IdCase expressions are resolved per feature while the
deck data rows are built, so relationship highlighting shows up in the
rendered deck without rebuilding layers.

Style loads complete on the next event-loop iteration, like a real renderer:
set_style() returns immediately and "style.load" fires shortly after.

Reference: deck.gl layer catalog, https://deck.gl/docs/api-reference/layers
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pydeck as pdk
import requests
from shapely.geometry import Point

from globeview.constants import ClickConfig, DataConfig, LayerConfig, MapConfig
from globeview.model.errors import SurfaceError
from globeview.model.feature import Feature, FeatureCollection
from globeview.model.view import CameraState, ProjectionMode, SurfaceOptions
from globeview.surface.base import (
    IconImage,
    LayerKind,
    LayerSpec,
    MapMouseEvent,
    MapSurface,
    MarkerHandle,
    MarkerSpec,
    MarkerStyle,
    RenderedFeature,
    SurfaceErrorEvent,
    SurfaceEvent,
    resolve_value,
)

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], IconImage]


def fetch_icon_image(url: str, timeout_s: float = DataConfig.FETCH_TIMEOUT_S) -> IconImage:
    """Download an icon (blocking).

    Raises:
        requests.RequestException: If the download fails.
    """
    response = requests.get(url, timeout=timeout_s)
    response.raise_for_status()
    return IconImage(
        url=url,
        width=LayerConfig.ICON_PIXEL_SIZE,
        height=LayerConfig.ICON_PIXEL_SIZE,
        data=response.content,
    )


def hex_to_rgba(color: str, opacity: float = 1.0) -> list[int]:
    """Convert '#RRGGBB' plus opacity (0-1) to a deck.gl [R, G, B, A] list."""
    text = color.lstrip("#")
    if len(text) != 6:
        raise ValueError(f"Expected #RRGGBB color, got {color!r}")
    r, g, b = (int(text[i : i + 2], 16) for i in (0, 2, 4))
    return [r, g, b, int(round(max(0.0, min(1.0, opacity)) * 255))]


def picking_radius_deg(zoom: float, radius_px: float = ClickConfig.PICKING_RADIUS_PX) -> float:
    """Picking radius in degrees at a zoom level (256 px world tile)."""
    return radius_px * 360.0 / (256.0 * 2**zoom)


class DeckMarker(MarkerHandle):
    """Marker placed on a DeckSurface."""

    def __init__(self, surface: "DeckSurface", spec: MarkerSpec) -> None:
        self._surface = surface
        self.spec = spec
        self.style = spec.style
        self.removed = False

    @property
    def id(self) -> int | str:
        return self.spec.id

    def set_style(self, style: MarkerStyle) -> None:
        self.style = style

    def remove(self) -> None:
        if self.removed:
            return
        self.removed = True
        self._surface._detach_marker(self)


@dataclass
class _StyleState:
    """Everything a set_style() call discards."""

    sources: dict[str, FeatureCollection] = field(default_factory=dict)
    layers: list[LayerSpec] = field(default_factory=list)
    images: dict[str, IconImage] = field(default_factory=dict)


class DeckSurface(MapSurface):
    """MapSurface kept in memory and rendered through pydeck.

    Example:
        surface = DeckSurface(SurfaceOptions(style=theme.style))
        surface.add_source("features", collection)
        deck = surface.to_deck()
    """

    def __init__(
        self,
        options: SurfaceOptions,
        image_loader: ImageLoader = fetch_icon_image,
        picking_radius_px: float = ClickConfig.PICKING_RADIUS_PX,
    ) -> None:
        super().__init__()
        self._style = options.style
        self._state = _StyleState()
        self._camera = options.camera
        self._projection = options.projection
        self._fog: Optional[dict[str, Any]] = None
        self._controls: list[str] = []
        self._markers: list[DeckMarker] = []
        self._image_loader = image_loader
        self._picking_radius_px = picking_radius_px
        self._loaded = False
        self._style_loaded = False
        self._removed = False
        self.animations: list[tuple[str, CameraState, int]] = []

        logger.info(f"Surface #{self.generation} created ({self._projection.value}, zoom {self._camera.zoom:.1f})")
        self._schedule(self._finish_initial_load)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @staticmethod
    def _schedule(callback: Callable[[], None]) -> None:
        """Run callback on the next loop iteration (immediately without a loop)."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            callback()
            return
        loop.call_soon(callback)

    def _finish_initial_load(self) -> None:
        if self._removed:
            return
        self._loaded = True
        self._style_loaded = True
        self.emit(SurfaceEvent.STYLE_LOAD)
        self.emit(SurfaceEvent.LOAD)

    def _finish_style_load(self) -> None:
        if self._removed:
            return
        self._style_loaded = True
        self.emit(SurfaceEvent.STYLE_LOAD)

    def _check_alive(self) -> None:
        if self._removed:
            raise SurfaceError(f"Surface #{self.generation} was removed")

    def is_loaded(self) -> bool:
        return self._loaded and not self._removed

    def is_style_loaded(self) -> bool:
        return self._style_loaded and not self._removed

    @property
    def is_removed(self) -> bool:
        return self._removed

    @property
    def style(self) -> Any:
        return self._style

    def set_style(self, style: Any) -> None:
        self._check_alive()
        self._style = style
        self._state = _StyleState()
        self._style_loaded = False
        logger.debug(f"Surface #{self.generation}: style set, waiting for style.load")
        self._schedule(self._finish_style_load)

    def remove(self) -> None:
        if self._removed:
            return
        for marker in list(self._markers):
            marker.remove()
        self._state = _StyleState()
        self._controls.clear()
        self.clear_listeners()
        self._removed = True
        logger.info(f"Surface #{self.generation} removed")

    def report_error(self, message: str, layer_id: Optional[str] = None) -> None:
        """Emit a renderer error event (e.g. a symbol layer failed to place icons)."""
        self.emit(SurfaceEvent.ERROR, SurfaceErrorEvent(message=message, layer_id=layer_id))

    # =========================================================================
    # SOURCES & LAYERS
    # =========================================================================

    def add_source(self, source_id: str, data: FeatureCollection) -> None:
        self._check_alive()
        if source_id in self._state.sources:
            raise SurfaceError(f"There is already a source with id '{source_id}'")
        self._state.sources[source_id] = data

    def get_source(self, source_id: str) -> Optional[FeatureCollection]:
        return self._state.sources.get(source_id)

    def set_source_data(self, source_id: str, data: FeatureCollection) -> None:
        self._check_alive()
        if source_id not in self._state.sources:
            raise SurfaceError(f"Source '{source_id}' does not exist")
        self._state.sources[source_id] = data

    def remove_source(self, source_id: str) -> None:
        self._check_alive()
        users = [layer.id for layer in self._state.layers if layer.source == source_id]
        if users:
            raise SurfaceError(f"Source '{source_id}' is still used by layers {users}")
        self._state.sources.pop(source_id, None)

    def add_layer(self, spec: LayerSpec, before_id: Optional[str] = None) -> None:
        self._check_alive()
        if self.has_layer(spec.id):
            raise SurfaceError(f"Layer '{spec.id}' already exists")
        if spec.source not in self._state.sources:
            raise SurfaceError(f"Layer '{spec.id}' references missing source '{spec.source}'")

        ids = self.layer_ids()
        if before_id is not None and before_id in ids:
            self._state.layers.insert(ids.index(before_id), spec)
        else:
            self._state.layers.append(spec)

    def get_layer(self, layer_id: str) -> Optional[LayerSpec]:
        return next((layer for layer in self._state.layers if layer.id == layer_id), None)

    def _require_layer(self, layer_id: str) -> LayerSpec:
        self._check_alive()
        layer = self.get_layer(layer_id)
        if layer is None:
            raise SurfaceError(f"Layer '{layer_id}' does not exist")
        return layer

    def remove_layer(self, layer_id: str) -> None:
        layer = self._require_layer(layer_id)
        self._state.layers.remove(layer)

    def layer_ids(self) -> list[str]:
        return [layer.id for layer in self._state.layers]

    def set_paint_property(self, layer_id: str, name: str, value: Any) -> None:
        self._require_layer(layer_id).paint[name] = value

    def get_paint_property(self, layer_id: str, name: str) -> Any:
        return self._require_layer(layer_id).paint.get(name)

    def set_layout_property(self, layer_id: str, name: str, value: Any) -> None:
        self._require_layer(layer_id).layout[name] = value

    def get_layout_property(self, layer_id: str, name: str) -> Any:
        return self._require_layer(layer_id).layout.get(name)

    # =========================================================================
    # IMAGES
    # =========================================================================

    async def load_image(self, url: str) -> IconImage:
        self._check_alive()
        try:
            return await asyncio.to_thread(self._image_loader, url)
        except (requests.RequestException, OSError, ValueError) as e:
            raise SurfaceError(f"Could not load image {url}: {e}") from e

    def add_image(self, name: str, image: IconImage) -> None:
        self._check_alive()
        if name in self._state.images:
            raise SurfaceError(f"An image named '{name}' already exists")
        self._state.images[name] = image

    def has_image(self, name: str) -> bool:
        return name in self._state.images

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _layer_features(self, layer: LayerSpec) -> list[Feature]:
        source = self._state.sources.get(layer.source)
        if source is None:
            return []
        return [feature for feature in source if layer.filter.matches(feature)]

    def query_rendered_features(self, lon: float, lat: float, layers: list[str]) -> list[RenderedFeature]:
        """Hit-test visible layers at (lon, lat), topmost layer first."""
        self._check_alive()
        wanted = set(layers)
        click = Point(lon, lat)
        radius = picking_radius_deg(self._camera.zoom, self._picking_radius_px)

        hits: list[RenderedFeature] = []
        for layer in reversed(self._state.layers):
            if layer.id not in wanted or not layer.visible:
                continue
            for feature in self._layer_features(layer):
                if feature.is_polygon:
                    hit = feature.shape.covers(click)
                else:
                    hit = feature.shape.distance(click) <= radius
                if hit:
                    hits.append(RenderedFeature(layer_id=layer.id, feature=feature))
        return hits

    # =========================================================================
    # CAMERA, PROJECTION, FOG
    # =========================================================================

    def get_camera(self) -> CameraState:
        return self._camera

    def _move_camera(
        self,
        kind: str,
        center: Optional[tuple[float, float]],
        zoom: Optional[float],
        duration_ms: int,
    ) -> None:
        self._check_alive()
        self._camera = CameraState(
            center=center if center is not None else self._camera.center,
            zoom=zoom if zoom is not None else self._camera.zoom,
            pitch=self._camera.pitch,
            bearing=self._camera.bearing,
        )
        self.animations.append((kind, self._camera, duration_ms))

    def ease_to(
        self,
        center: Optional[tuple[float, float]] = None,
        zoom: Optional[float] = None,
        duration_ms: int = 0,
    ) -> None:
        self._move_camera("ease", center, zoom, duration_ms)

    def fly_to(self, center: tuple[float, float], zoom: float, duration_ms: int = 0) -> None:
        self._move_camera("fly", center, zoom, duration_ms)

    def get_projection(self) -> ProjectionMode:
        return self._projection

    def set_projection(self, mode: ProjectionMode) -> None:
        self._check_alive()
        self._projection = mode

    @property
    def fog(self) -> Optional[dict[str, Any]]:
        return self._fog

    def set_fog(self, fog: Optional[dict[str, Any]]) -> None:
        self._check_alive()
        self._fog = dict(fog) if fog is not None else None

    # =========================================================================
    # CONTROLS & MARKERS
    # =========================================================================

    @property
    def controls(self) -> list[str]:
        return list(self._controls)

    def add_control(self, name: str) -> None:
        self._check_alive()
        if name not in self._controls:
            self._controls.append(name)

    def remove_control(self, name: str) -> None:
        if name in self._controls:
            self._controls.remove(name)

    @property
    def markers(self) -> list[DeckMarker]:
        return list(self._markers)

    def add_marker(self, spec: MarkerSpec) -> DeckMarker:
        self._check_alive()
        marker = DeckMarker(self, spec)
        self._markers.append(marker)
        return marker

    def _detach_marker(self, marker: DeckMarker) -> None:
        if marker in self._markers:
            self._markers.remove(marker)

    # =========================================================================
    # INPUT
    # =========================================================================

    def _marker_at(self, lon: float, lat: float) -> Optional[DeckMarker]:
        click = Point(lon, lat)
        # Highest z-index wins
        for marker in sorted(self._markers, key=lambda m: m.style.z_index, reverse=True):
            radius = picking_radius_deg(self._camera.zoom, marker.style.dot_size_px / 2 + marker.style.border_width_px)
            if Point(marker.spec.lon, marker.spec.lat).distance(click) <= radius:
                return marker
        return None

    def fire_click(self, lon: float, lat: float) -> None:
        """Deliver a user click: markers first, then the map click event."""
        self._check_alive()
        marker = self._marker_at(lon, lat)
        if marker is not None:
            logger.debug(f"Marker {marker.id} clicked")
            if marker.spec.on_click is not None:
                marker.spec.on_click()
            return
        self.emit(SurfaceEvent.CLICK, MapMouseEvent(lon=lon, lat=lat))

    def fire_mouse_move(self, lon: float, lat: float) -> None:
        self.emit(SurfaceEvent.MOUSE_MOVE, MapMouseEvent(lon=lon, lat=lat))

    def fire_mouse_leave(self) -> None:
        self.emit(SurfaceEvent.MOUSE_LEAVE)

    # =========================================================================
    # RENDERING
    # =========================================================================

    def _feature_row(self, feature: Feature) -> dict[str, Any]:
        return {
            "type": feature.type.value if feature.type else "Feature",
            "id": feature.id,
            "name": feature.name,
        }

    def _render_layer(self, layer: LayerSpec) -> Optional[pdk.Layer]:
        features = self._layer_features(layer)
        paint = layer.paint
        rows = []

        for feature in features:
            row = self._feature_row(feature)
            if layer.kind in (LayerKind.HEATMAP, LayerKind.SYMBOL, LayerKind.CIRCLE):
                if not feature.is_point:
                    continue
                row["position"] = list(feature.center())
            elif layer.kind in (LayerKind.FILL, LayerKind.LINE):
                if not feature.is_polygon:
                    continue
                row["ring"] = [list(coord[:2]) for coord in feature.geometry["coordinates"][0]]

            if layer.kind == LayerKind.SYMBOL:
                icon_name = resolve_value(layer.layout.get("icon-image"), feature.id)
                image = self._state.images.get(icon_name) or self._state.images.get(LayerConfig.FALLBACK_ICON)
                if image is None:
                    continue
                row["icon"] = {"url": image.url, "width": image.width, "height": image.height, "anchorY": image.height}
                row["size"] = resolve_value(layer.layout.get("icon-size", 1.0), feature.id) * LayerConfig.ICON_PIXEL_SIZE
                row["color"] = hex_to_rgba(
                    resolve_value(paint.get("icon-color", "#FFFFFF"), feature.id),
                    resolve_value(paint.get("icon-opacity", 1.0), feature.id),
                )
            elif layer.kind == LayerKind.CIRCLE:
                row["radius"] = resolve_value(paint.get("circle-radius", 5.0), feature.id)
                row["color"] = hex_to_rgba(
                    resolve_value(paint.get("circle-color", "#FFFFFF"), feature.id),
                    resolve_value(paint.get("circle-opacity", 1.0), feature.id),
                )
            elif layer.kind == LayerKind.FILL:
                row["color"] = hex_to_rgba(
                    resolve_value(paint.get("fill-color", "#FFFFFF"), feature.id),
                    resolve_value(paint.get("fill-opacity", 1.0), feature.id),
                )
                row["outline"] = hex_to_rgba(resolve_value(paint.get("fill-outline-color", "#FFFFFF"), feature.id))
            elif layer.kind == LayerKind.LINE:
                row["color"] = hex_to_rgba(
                    resolve_value(paint.get("line-color", "#FFFFFF"), feature.id),
                    resolve_value(paint.get("line-opacity", 1.0), feature.id),
                )
            rows.append(row)

        if layer.kind == LayerKind.HEATMAP:
            return pdk.Layer(
                "HeatmapLayer",
                rows,
                get_position="position",
                radius_pixels=paint.get("heatmap-radius", 30),
                intensity=paint.get("heatmap-intensity", 1.0),
                opacity=paint.get("heatmap-opacity", 1.0),
                id=layer.id,
            )
        if layer.kind == LayerKind.SYMBOL:
            return pdk.Layer(
                "IconLayer",
                rows,
                get_position="position",
                get_icon="icon",
                get_size="size",
                size_units="pixels",
                get_color="color",
                pickable=True,
                id=layer.id,
            )
        if layer.kind == LayerKind.CIRCLE:
            return pdk.Layer(
                "ScatterplotLayer",
                rows,
                get_position="position",
                get_radius="radius",
                radius_units="pixels",
                get_fill_color="color",
                get_line_color=[255, 255, 255, 200],
                stroked=True,
                line_width_min_pixels=1,
                pickable=True,
                id=layer.id,
            )
        if layer.kind == LayerKind.FILL:
            return pdk.Layer(
                "PolygonLayer",
                rows,
                get_polygon="ring",
                get_fill_color="color",
                get_line_color="outline",
                line_width_min_pixels=1,
                pickable=True,
                id=layer.id,
            )
        if layer.kind == LayerKind.LINE:
            return pdk.Layer(
                "PathLayer",
                rows,
                get_path="ring",
                get_color="color",
                get_width=paint.get("line-width", 1.0),
                width_units="pixels",
                id=layer.id,
            )
        return None

    def _render_markers(self) -> list[pdk.Layer]:
        """Pulse rings below dots, both ordered by z-index."""
        ordered = sorted(self._markers, key=lambda m: m.style.z_index)
        pulse_rows = []
        dot_rows = []
        for marker in ordered:
            style = marker.style
            position = [marker.spec.lon, marker.spec.lat]
            if style.pulse_size_px is not None:
                pulse_rows.append(
                    {
                        "position": position,
                        "radius": style.pulse_size_px / 2,
                        "color": hex_to_rgba(style.color, style.pulse_opacity or 0.0),
                    }
                )
            dot_rows.append(
                {
                    "type": "Marker",
                    "id": marker.id,
                    "name": marker.spec.label or str(marker.id),
                    "position": position,
                    "radius": style.dot_size_px / 2,
                    "border": style.border_width_px,
                    "color": hex_to_rgba(style.color),
                    "border_color": hex_to_rgba(style.border_color),
                }
            )

        layers = []
        if pulse_rows:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    pulse_rows,
                    get_position="position",
                    get_radius="radius",
                    radius_units="pixels",
                    get_fill_color="color",
                    id="marker-pulse",
                )
            )
        if dot_rows:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    dot_rows,
                    get_position="position",
                    get_radius="radius",
                    radius_units="pixels",
                    get_fill_color="color",
                    get_line_color="border_color",
                    get_line_width="border",
                    line_width_units="pixels",
                    stroked=True,
                    pickable=True,
                    id="marker-dots",
                )
            )
        return layers

    def to_deck(self) -> pdk.Deck:
        """Render the current state to a pydeck Deck.

        Z-order (back to front): style layers in install order, then markers.
        """
        self._check_alive()
        layers = []
        for layer in self._state.layers:
            if not layer.visible:
                continue
            rendered = self._render_layer(layer)
            if rendered is not None:
                layers.append(rendered)
        layers.extend(self._render_markers())

        camera = self._camera
        view_type = "_GlobeView" if self._projection == ProjectionMode.GLOBE else "MapView"

        # Inline style dicts need the mapbox provider
        map_provider = "mapbox" if isinstance(self._style, dict) else "carto"

        return pdk.Deck(
            map_style=self._style,
            map_provider=map_provider,
            views=[pdk.View(type=view_type, controller=True)],
            initial_view_state=pdk.ViewState(
                longitude=camera.center[0],
                latitude=camera.center[1],
                zoom=camera.zoom,
                pitch=camera.pitch,
                bearing=camera.bearing,
            ),
            layers=layers,
            tooltip={
                "html": "<b>{name}</b><br/>{type}",
                "style": {
                    "backgroundColor": "rgba(15, 23, 42, 0.95)",
                    "color": "#F8FAFC",
                    "padding": "6px 10px",
                    "borderRadius": "4px",
                },
            },
            parameters={"pickingRadius": self._picking_radius_px},
            height=MapConfig.MAP_HEIGHT_PX,
        )
