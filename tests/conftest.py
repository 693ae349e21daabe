"""Shared pytest fixtures for globeview tests.

Provides fake image loaders, fault-injecting DeckSurface subclasses and a
small hand-written dataset used across the test modules.

SAMPLE DATASET:
    All features sit around (54.40, 24.45), close to the default start center.
    Point features are spaced at least 0.01° apart so a click at zoom 12
    (picking radius ~0.0027°) only ever hits one of them.

    RFI-1   point   High    2024-03-10  -> TGT-1, TGT-2, RPT-1
    RFI-2   polygon Medium  2023-06-01  -> TGT-3 (refs as JSON text)
    RFI-3   point   Low     2025-01-15
    RPT-1   point   System  2024-03-12  -> TGT-1, RFI-1
    RPT-2   point   Legacy  2022-11-20  -> TGT-3 (refs as JSON text)
    TGT-1..3 points, no timestamps
    LYR-1   polygon boundary (acquisition 2023-01-01)
"""

from typing import Any

import pytest

from globeview.core.dataset_cache import DatasetCache
from globeview.engine.controller import MapEngine
from globeview.engine.projection import ProjectionTransitionController
from globeview.engine.registry import LayerRuntimeRegistry
from globeview.engine.style_switch import StyleSwitchOrchestrator
from globeview.model.errors import SurfaceError
from globeview.model.feature import FeatureCollection
from globeview.model.marker import MarkerRecord, MarkerStatus
from globeview.model.view import CameraState, ProjectionMode, SurfaceOptions
from globeview.surface.base import IconImage, LayerSpec
from globeview.surface.deck_surface import DeckSurface

# Click positions inside the sample geometry
RFI_1_LONLAT = (54.3773, 24.4539)
TGT_1_LONLAT = (54.4000, 24.4300)
RFI_2_INSIDE_LONLAT = (54.4500, 24.5000)
TGT_3_LONLAT = (54.4550, 24.5050)
EMPTY_LONLAT = (54.9000, 24.9000)


# =============================================================================
# IMAGE LOADERS
# =============================================================================


def fake_image_loader(url: str) -> IconImage:
    """Instant 48x48 image for any URL."""
    return IconImage(url=url, width=48, height=48, data=b"png")


def failing_image_loader(url: str) -> IconImage:
    raise OSError(f"unreachable: {url}")


class CountingImageLoader:
    """Records every URL requested; fails for URLs containing any of `fail_on`."""

    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        self.fail_on = fail_on
        self.calls: list[str] = []

    def __call__(self, url: str) -> IconImage:
        self.calls.append(url)
        if any(part in url for part in self.fail_on):
            raise OSError(f"unreachable: {url}")
        return fake_image_loader(url)


# =============================================================================
# FAULT-INJECTING SURFACES
# =============================================================================


def make_surface(options: SurfaceOptions) -> DeckSurface:
    """Surface factory with the fake image loader."""
    return DeckSurface(options, image_loader=fake_image_loader)


class SilentStyleSurface(DeckSurface):
    """Never signals style.load after set_style (style switch timeout)."""

    def _finish_style_load(self) -> None:
        return


class FlakyLayerSurface(DeckSurface):
    """Rejects the first `failures` add_layer calls made after a set_style."""

    def __init__(self, options: SurfaceOptions, failures: int = 1, **kwargs: Any) -> None:
        kwargs.setdefault("image_loader", fake_image_loader)
        super().__init__(options, **kwargs)
        self.failures_left = 0
        self.planned_failures = failures

    def set_style(self, style: Any) -> None:
        super().set_style(style)
        self.failures_left = self.planned_failures

    def add_layer(self, spec: LayerSpec, before_id: str | None = None) -> None:
        if self.failures_left > 0:
            self.failures_left -= 1
            raise SurfaceError(f"Injected add_layer failure for '{spec.id}'")
        super().add_layer(spec, before_id)


class NeverLoadsSurface(DeckSurface):
    """Never emits load (rebuild failure)."""

    def _finish_initial_load(self) -> None:
        return


class SurfaceFactoryScript:
    """Surface factory that builds surfaces in order from a list of classes.

    Once the list is exhausted it falls back to plain DeckSurfaces.
    """

    def __init__(self, classes: list[type[DeckSurface]]) -> None:
        self.classes = list(classes)
        self.built: list[DeckSurface] = []

    def __call__(self, options: SurfaceOptions) -> DeckSurface:
        cls = self.classes.pop(0) if self.classes else DeckSurface
        surface = cls(options, image_loader=fake_image_loader)
        self.built.append(surface)
        return surface


# =============================================================================
# SAMPLE DATA
# =============================================================================


def _point(feature_id: str, lon: float, lat: float, **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {"id": feature_id, **properties},
    }


def _square(feature_id: str, lon: float, lat: float, half: float, **properties: Any) -> dict[str, Any]:
    ring = [
        [lon - half, lat - half],
        [lon + half, lat - half],
        [lon + half, lat + half],
        [lon - half, lat + half],
        [lon - half, lat - half],
    ]
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": {"id": feature_id, **properties},
    }


SAMPLE_GEOJSON: dict[str, Any] = {
    "type": "FeatureCollection",
    "features": [
        _point(
            "RFI-1",
            *RFI_1_LONLAT,
            type="RFI",
            name="Port activity",
            priority="High",
            date_created="2024-03-10T08:30:00Z",
            assigned_targets=["TGT-1", "TGT-2"],
            related_reports=["RPT-1"],
        ),
        _square(
            "RFI-2",
            *RFI_2_INSIDE_LONLAT,
            half=0.02,
            type="RFI",
            name="Saadiyat survey",
            priority="Medium",
            date_created="2023-06-01T12:00:00Z",
            assigned_targets='["TGT-3"]',
        ),
        _point(
            "RFI-3",
            54.6000,
            24.4800,
            type="RFI",
            name="Yas crowd estimate",
            priority="Low",
            date_created="2025-01-15T18:00:00Z",
        ),
        _point(
            "RPT-1",
            54.3900,
            24.4700,
            type="Report",
            name="Port imagery",
            source="System",
            timestamp="2024-03-12T06:15:00Z",
            related_targets=["TGT-1"],
            related_rfis=["RFI-1"],
        ),
        _point(
            "RPT-2",
            54.5000,
            24.5500,
            type="Report",
            name="Archived survey",
            source="Legacy",
            timestamp="2022-11-20T09:00:00Z",
            related_targets='["TGT-3"]',
        ),
        _point("TGT-1", *TGT_1_LONLAT, type="Target", target_name="Vessel A"),
        _point("TGT-2", 54.3600, 24.4400, type="Target", target_name="Vessel B"),
        # Inside RFI-2 so polygon/point priority can be exercised
        _point("TGT-3", *TGT_3_LONLAT, type="Target", target_name="Site office"),
        _square(
            "LYR-1",
            54.3300,
            24.4000,
            half=0.02,
            type="Layer",
            layer_name="Port security zone",
            acquisition_date="2023-01-01T00:00:00Z",
        ),
    ],
}


@pytest.fixture
def sample_collection() -> FeatureCollection:
    """Parsed sample dataset (9 features, see module docstring)."""
    return FeatureCollection.from_geojson(SAMPLE_GEOJSON)


@pytest.fixture
def sample_markers() -> list[MarkerRecord]:
    """Two assets: one active, one offline."""
    return [
        MarkerRecord(id=1, coordinates=(54.3000, 24.3000), status=MarkerStatus.ACTIVE, name="Camera 1"),
        MarkerRecord(id=2, coordinates=(54.7000, 24.7000), status=MarkerStatus.OFFLINE, name="Sensor 2"),
    ]


# =============================================================================
# SURFACE & ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def flat_surface() -> DeckSurface:
    """Loaded flat surface at zoom 12 (no running loop, so it loads immediately)."""
    return DeckSurface(
        SurfaceOptions(style="dark", camera=CameraState(zoom=12.0), projection=ProjectionMode.FLAT),
        image_loader=fake_image_loader,
    )


@pytest.fixture
def registry() -> LayerRuntimeRegistry:
    """Registry with no handler-attach delay."""
    return LayerRuntimeRegistry(handler_attach_delay_s=0)


def build_engine(
    collection: FeatureCollection,
    surface_factory: Any = make_surface,
    start_projection: ProjectionMode = ProjectionMode.FLAT,
    zoom: float = 12.0,
) -> MapEngine:
    """Engine wired for tests: preloaded dataset, short timeouts, no intro ease."""
    dataset = DatasetCache()
    dataset.load_collection(collection)
    return MapEngine(
        surface_factory=surface_factory,
        dataset=dataset,
        registry=LayerRuntimeRegistry(handler_attach_delay_s=0),
        style_switch=StyleSwitchOrchestrator(timeout_s=0.05, retry_delay_s=0),
        projection=ProjectionTransitionController(
            surface_factory,
            start_mode=start_projection,
            ease_duration_ms=0,
            load_timeout_s=0.05,
        ),
        start_projection=start_projection,
        start_camera=CameraState(zoom=zoom),
        intro_ease=False,
        load_timeout_s=0.05,
    )


@pytest.fixture
def engine(sample_collection: FeatureCollection) -> MapEngine:
    """Uninitialized flat engine over the sample dataset."""
    return build_engine(sample_collection)
