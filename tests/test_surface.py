"""Tests for the DeckSurface renderer: lifecycle, state, hit-testing and pydeck output."""

import asyncio

import pytest

from globeview.constants import LayerConfig, MapConfig
from globeview.engine.layers import BOUNDARY_FILL, RFI_POINTS, RFI_POLYGONS, TARGET_POINTS
from globeview.engine.markers import marker_style
from globeview.model.errors import SurfaceError
from globeview.model.feature import FeatureCollection
from globeview.model.marker import MarkerRecord
from globeview.model.view import CameraState, ProjectionMode, SurfaceOptions
from globeview.surface.base import IconImage, IdCase, MarkerSpec, SurfaceEvent
from globeview.surface.deck_surface import DeckSurface, hex_to_rgba, picking_radius_deg

from conftest import (
    EMPTY_LONLAT,
    RFI_1_LONLAT,
    RFI_2_INSIDE_LONLAT,
    TGT_3_LONLAT,
    fake_image_loader,
    failing_image_loader,
)


def _install(surface: DeckSurface, collection: FeatureCollection) -> None:
    """Source, icon and four layers (fill, fill, symbol, circle) in registry draw order."""
    surface.add_source(LayerConfig.SOURCE_ID, collection)
    surface.add_image(LayerConfig.RFI_ICON, fake_image_loader("rfi.svg"))
    surface.add_layer(BOUNDARY_FILL.build(LayerConfig.SOURCE_ID, visible=True))
    surface.add_layer(RFI_POLYGONS.build(LayerConfig.SOURCE_ID, visible=True))
    surface.add_layer(RFI_POINTS.build(LayerConfig.SOURCE_ID, visible=True))
    surface.add_layer(TARGET_POINTS.as_circle().build(LayerConfig.SOURCE_ID, visible=True))


class TestHelpers:
    def test_hex_to_rgba(self) -> None:
        assert hex_to_rgba("#FF8000") == [255, 128, 0, 255]
        assert hex_to_rgba("#000000", 0.5) == [0, 0, 0, 128]
        assert hex_to_rgba("#000000", 3.0)[3] == 255

    def test_hex_to_rgba_rejects_short_colors(self) -> None:
        with pytest.raises(ValueError):
            hex_to_rgba("#FFF")

    def test_picking_radius_halves_per_zoom_level(self) -> None:
        assert picking_radius_deg(0, radius_px=256) == pytest.approx(360.0)
        assert picking_radius_deg(13, radius_px=8) == pytest.approx(picking_radius_deg(12, radius_px=8) / 2)


class TestLifecycle:
    """Test load signalling, style swaps and removal."""

    def test_loads_immediately_without_event_loop(self, flat_surface: DeckSurface) -> None:
        assert flat_surface.is_loaded()
        assert flat_surface.is_style_loaded()

    @pytest.mark.asyncio
    async def test_load_fires_on_next_loop_iteration(self) -> None:
        events: list[str] = []
        surface = DeckSurface(SurfaceOptions(style="dark"), image_loader=fake_image_loader)
        surface.on(SurfaceEvent.STYLE_LOAD, lambda _: events.append("style.load"))
        surface.on(SurfaceEvent.LOAD, lambda _: events.append("load"))
        assert not surface.is_loaded()

        await asyncio.sleep(0)

        assert surface.is_loaded()
        assert events == ["style.load", "load"]

    def test_generations_are_unique(self) -> None:
        first = DeckSurface(SurfaceOptions(style="dark"))
        second = DeckSurface(SurfaceOptions(style="dark"))
        assert second.generation > first.generation

    def test_set_style_drops_style_state_keeps_listeners_and_markers(
        self, flat_surface: DeckSurface, sample_collection: FeatureCollection
    ) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.on(SurfaceEvent.CLICK, lambda _: None)
        record = MarkerRecord(id=1, coordinates=(54.0, 24.0))
        flat_surface.add_marker(MarkerSpec(id=1, lon=54.0, lat=24.0, style=marker_style(record, False)))

        flat_surface.set_style("light")

        assert flat_surface.style == "light"
        assert flat_surface.layer_ids() == []
        assert flat_surface.get_source(LayerConfig.SOURCE_ID) is None
        assert not flat_surface.has_image(LayerConfig.RFI_ICON)
        assert flat_surface.listener_count(SurfaceEvent.CLICK) == 1
        assert len(flat_surface.markers) == 1

    def test_removed_surface_rejects_operations(self, flat_surface: DeckSurface) -> None:
        flat_surface.on(SurfaceEvent.CLICK, lambda _: None)
        flat_surface.remove()

        assert flat_surface.is_removed
        assert not flat_surface.is_loaded()
        assert flat_surface.listener_count(SurfaceEvent.CLICK) == 0
        with pytest.raises(SurfaceError, match="removed"):
            flat_surface.set_style("light")
        with pytest.raises(SurfaceError):
            flat_surface.to_deck()

    def test_once_listener_fires_once(self, flat_surface: DeckSurface) -> None:
        calls = []
        flat_surface.once(SurfaceEvent.ERROR, calls.append)
        flat_surface.report_error("first")
        flat_surface.report_error("second")
        assert [event.message for event in calls] == ["first"]


class TestSourcesAndLayers:
    def test_duplicate_source_rejected(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        flat_surface.add_source("features", sample_collection)
        with pytest.raises(SurfaceError, match="already a source"):
            flat_surface.add_source("features", sample_collection)

    def test_layer_needs_existing_source(self, flat_surface: DeckSurface) -> None:
        with pytest.raises(SurfaceError, match="missing source"):
            flat_surface.add_layer(RFI_POINTS.build("nowhere", visible=True))

    def test_duplicate_layer_rejected(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        with pytest.raises(SurfaceError, match="already exists"):
            flat_surface.add_layer(RFI_POINTS.build(LayerConfig.SOURCE_ID, visible=True))

    def test_add_layer_before(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.remove_layer(RFI_POINTS.id)
        flat_surface.add_layer(RFI_POINTS.build(LayerConfig.SOURCE_ID, visible=True), before_id=TARGET_POINTS.id)
        assert flat_surface.layer_ids() == [BOUNDARY_FILL.id, RFI_POLYGONS.id, RFI_POINTS.id, TARGET_POINTS.id]

    def test_source_in_use_cannot_be_removed(
        self, flat_surface: DeckSurface, sample_collection: FeatureCollection
    ) -> None:
        _install(flat_surface, sample_collection)
        with pytest.raises(SurfaceError, match="still used"):
            flat_surface.remove_source(LayerConfig.SOURCE_ID)

    def test_paint_and_layout_properties(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.set_paint_property(RFI_POINTS.id, "icon-opacity", 0.4)
        flat_surface.set_layout_property(RFI_POINTS.id, "visibility", "none")
        assert flat_surface.get_paint_property(RFI_POINTS.id, "icon-opacity") == 0.4
        assert not flat_surface.get_layer(RFI_POINTS.id).visible
        with pytest.raises(SurfaceError, match="does not exist"):
            flat_surface.get_paint_property("ghost", "icon-opacity")

    @pytest.mark.asyncio
    async def test_failed_image_load_raises_surface_error(self) -> None:
        surface = DeckSurface(SurfaceOptions(style="dark"), image_loader=failing_image_loader)
        with pytest.raises(SurfaceError, match="Could not load image"):
            await surface.load_image("https://example.invalid/icon.svg")

    @pytest.mark.asyncio
    async def test_image_load_uses_loader(self) -> None:
        surface = DeckSurface(SurfaceOptions(style="dark"), image_loader=fake_image_loader)
        image = await surface.load_image("icon.svg")
        assert image == IconImage(url="icon.svg", width=48, height=48, data=b"png")


class TestQueries:
    """Test hit-testing through query_rendered_features."""

    def test_point_hit_within_picking_radius(
        self, flat_surface: DeckSurface, sample_collection: FeatureCollection
    ) -> None:
        _install(flat_surface, sample_collection)
        lon, lat = RFI_1_LONLAT
        hits = flat_surface.query_rendered_features(lon + 0.001, lat, [RFI_POINTS.id])
        assert [hit.feature.id for hit in hits] == ["RFI-1"]

    def test_point_outside_radius_misses(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        lon, lat = RFI_1_LONLAT
        assert flat_surface.query_rendered_features(lon + 0.01, lat, [RFI_POINTS.id]) == []

    def test_polygon_hit_inside_ring(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        hits = flat_surface.query_rendered_features(*RFI_2_INSIDE_LONLAT, [RFI_POLYGONS.id, RFI_POINTS.id])
        assert [hit.feature.id for hit in hits] == ["RFI-2"]

    def test_hidden_layers_are_not_hit(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.set_layout_property(RFI_POINTS.id, "visibility", "none")
        assert flat_surface.query_rendered_features(*RFI_1_LONLAT, [RFI_POINTS.id]) == []

    def test_only_requested_layers_are_queried(
        self, flat_surface: DeckSurface, sample_collection: FeatureCollection
    ) -> None:
        _install(flat_surface, sample_collection)
        assert flat_surface.query_rendered_features(*TGT_3_LONLAT, [RFI_POINTS.id]) == []

    def test_topmost_layer_first(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        """TGT-3 lies inside RFI-2: the target layer is drawn above the polygon layer."""
        _install(flat_surface, sample_collection)
        hits = flat_surface.query_rendered_features(*TGT_3_LONLAT, [RFI_POLYGONS.id, TARGET_POINTS.id])
        assert [(hit.layer_id, hit.feature.id) for hit in hits] == [
            (TARGET_POINTS.id, "TGT-3"),
            (RFI_POLYGONS.id, "RFI-2"),
        ]


class TestInput:
    def test_marker_click_takes_priority(self, flat_surface: DeckSurface) -> None:
        clicked: list[object] = []
        map_clicks: list[object] = []
        record = MarkerRecord(id="cam", coordinates=(54.0, 24.0))
        flat_surface.add_marker(
            MarkerSpec(
                id="cam",
                lon=54.0,
                lat=24.0,
                style=marker_style(record, False),
                on_click=lambda: clicked.append("cam"),
            )
        )
        flat_surface.on(SurfaceEvent.CLICK, map_clicks.append)

        flat_surface.fire_click(54.0, 24.0)
        flat_surface.fire_click(*EMPTY_LONLAT)

        assert clicked == ["cam"]
        assert len(map_clicks) == 1
        assert (map_clicks[0].lon, map_clicks[0].lat) == EMPTY_LONLAT

    def test_mouse_events(self, flat_surface: DeckSurface) -> None:
        moves: list[object] = []
        leaves: list[object] = []
        flat_surface.on(SurfaceEvent.MOUSE_MOVE, moves.append)
        flat_surface.on(SurfaceEvent.MOUSE_LEAVE, leaves.append)
        flat_surface.fire_mouse_move(54.1, 24.2)
        flat_surface.fire_mouse_leave()
        assert (moves[0].lon, moves[0].lat) == (54.1, 24.2)
        assert leaves == [None]

    def test_camera_moves_are_recorded(self, flat_surface: DeckSurface) -> None:
        flat_surface.ease_to(zoom=9.0, duration_ms=500)
        flat_surface.fly_to(center=(54.5, 24.5), zoom=16.0, duration_ms=1000)
        assert [kind for kind, _, _ in flat_surface.animations] == ["ease", "fly"]
        assert flat_surface.get_camera() == CameraState(center=(54.5, 24.5), zoom=16.0)


class TestRendering:
    """Test to_deck() output."""

    def test_layer_types_and_order(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        deck = flat_surface.to_deck()
        assert [(layer.type, layer.id) for layer in deck.layers] == [
            ("PolygonLayer", BOUNDARY_FILL.id),
            ("PolygonLayer", RFI_POLYGONS.id),
            ("IconLayer", RFI_POINTS.id),
            ("ScatterplotLayer", TARGET_POINTS.id),
        ]

    def test_only_matching_geometry_rendered(
        self, flat_surface: DeckSurface, sample_collection: FeatureCollection
    ) -> None:
        _install(flat_surface, sample_collection)
        layers = {layer.id: layer for layer in flat_surface.to_deck().layers}
        assert [row["id"] for row in layers[RFI_POINTS.id].data] == ["RFI-1", "RFI-3"]
        assert [row["id"] for row in layers[BOUNDARY_FILL.id].data] == ["LYR-1"]
        assert len(layers[TARGET_POINTS.id].data) == 3

    def test_id_case_resolved_per_row(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.set_paint_property(
            RFI_POINTS.id, "icon-opacity", IdCase(ids=frozenset({"RFI-1"}), match=1.0, otherwise=0.2)
        )
        icon_layer = next(layer for layer in flat_surface.to_deck().layers if layer.type == "IconLayer")
        rows = {row["id"]: row for row in icon_layer.data}
        assert rows["RFI-1"]["color"][3] == 255
        assert rows["RFI-3"]["color"][3] == 51

    def test_hidden_layers_skipped(self, flat_surface: DeckSurface, sample_collection: FeatureCollection) -> None:
        _install(flat_surface, sample_collection)
        flat_surface.set_layout_property(BOUNDARY_FILL.id, "visibility", "none")
        assert BOUNDARY_FILL.id not in [layer.id for layer in flat_surface.to_deck().layers]

    def test_markers_render_on_top_with_pulse_for_active(self, flat_surface: DeckSurface) -> None:
        active = MarkerRecord(id=1, coordinates=(54.0, 24.0))
        flat_surface.add_marker(MarkerSpec(id=1, lon=54.0, lat=24.0, style=marker_style(active, False)))
        deck = flat_surface.to_deck()
        assert [layer.id for layer in deck.layers] == ["marker-pulse", "marker-dots"]

    def test_view_and_provider(self) -> None:
        globe = DeckSurface(
            SurfaceOptions(style={"version": 8, "sources": {}, "layers": []}, projection=ProjectionMode.GLOBE)
        )
        deck = globe.to_deck()
        assert deck.map_provider == "mapbox"
        assert deck.initial_view_state.zoom == MapConfig.START_ZOOM

        flat = DeckSurface(SurfaceOptions(style="https://example.com/style.json", projection=ProjectionMode.FLAT))
        assert flat.to_deck().map_provider == "carto"
