"""MapEngine - public operations and exposed state for the UI.

The engine owns exactly one surface plus the components that drive it:
- DatasetCache: base collection, fetched once
- Filtering pipeline: derived collection for the current criteria
- LayerRuntimeRegistry: idempotent source/icon/layer/handler installation
- StyleSwitchOrchestrator: theme changes (busy flag)
- ProjectionTransitionController: flat ⇄ globe
- RelationshipHighlighter: selection and emphasis
- MarkerLifecycleManager: fixed-asset markers

The UI only calls the public coroutines/methods below and reads EngineState.
Structural failures (dataset fetch, style switch, projection transition) are
caught here, logged, and stored in EngineState.error; they never reach the UI
as exceptions.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from globeview.constants import LayerConfig, MapConfig, ProjectionConfig
from globeview.core.dataset_cache import DatasetCache
from globeview.core.filtering import derive
from globeview.core.search import SearchResult, search_features
from globeview.core.timeline import preset_range
from globeview.engine.click_dispatch import feature_at
from globeview.engine.highlighting import RelationshipHighlighter
from globeview.engine.markers import MarkerId, MarkerLifecycleManager
from globeview.engine.projection import (
    ProjectionTransitionController,
    SurfaceFactory,
    fog_for,
    wait_until_loaded,
)
from globeview.engine.registry import LayerRuntimeRegistry, SurfaceHandlers
from globeview.engine.style_switch import StyleSwitchOrchestrator, StyleSwitchOutcome
from globeview.model.errors import DatasetFetchError, GlobeviewError, StyleSwitchError
from globeview.model.feature import Feature, FeatureCollection
from globeview.model.filters import (
    FilterCriteria,
    LayerVisibility,
    TimeRange,
    toggle_layer,
    toggle_report_subfilter,
    toggle_rfi_subfilter,
)
from globeview.model.marker import MarkerRecord
from globeview.model.selection import SelectionState
from globeview.model.view import CameraState, MapTheme, ProjectionMode, SurfaceOptions
from globeview.surface.base import MapMouseEvent, MapSurface, SurfaceErrorEvent
from globeview.surface.deck_surface import DeckSurface

logger = logging.getLogger(__name__)


@dataclass
class EngineState:
    """Everything the UI reads.

    Attributes:
        loaded: Initialization finished (successfully or with an error)
        error: Last structural error message, None when healthy
        theme: Theme currently applied
        requested_theme: Theme being switched to, None when idle
        projection: Current projection mode
        selection: Selected feature and related ids
        pointer: Last (lon, lat) under the pointer, None when outside the map
        busy: A theme switch or projection rebuild is in progress
        selected_marker_id: Highlighted marker, if any
    """

    loaded: bool = False
    error: Optional[str] = None
    theme: MapTheme = field(default_factory=MapTheme.default)
    requested_theme: Optional[MapTheme] = None
    projection: ProjectionMode = ProjectionMode.GLOBE
    selection: SelectionState = field(default_factory=SelectionState.empty)
    pointer: Optional[tuple[float, float]] = None
    busy: bool = False
    selected_marker_id: Optional[MarkerId] = None

    @property
    def related_ids(self) -> frozenset[str]:
        return self.selection.related_ids


class MapEngine:
    """Map layer orchestration and relationship highlighting engine.

    Example:
        engine = MapEngine()
        await engine.initialize()
        await engine.set_time_range(TimeRange(start, end))
        engine.handle_map_click(lon, lat)
    """

    def __init__(
        self,
        surface_factory: SurfaceFactory = DeckSurface,
        dataset: Optional[DatasetCache] = None,
        registry: Optional[LayerRuntimeRegistry] = None,
        style_switch: Optional[StyleSwitchOrchestrator] = None,
        projection: Optional[ProjectionTransitionController] = None,
        start_projection: ProjectionMode = ProjectionMode.GLOBE,
        start_camera: CameraState = CameraState(),
        intro_ease: bool = True,
        load_timeout_s: float = MapConfig.LOAD_TIMEOUT_S,
    ) -> None:
        self.surface_factory = surface_factory
        self.dataset = dataset or DatasetCache()
        self.registry = registry or LayerRuntimeRegistry()
        self.style_switch = style_switch or StyleSwitchOrchestrator()
        self.projection = projection or ProjectionTransitionController(surface_factory, start_mode=start_projection)
        self.highlighter = RelationshipHighlighter()
        self.markers = MarkerLifecycleManager(on_marker_click=self.select_marker)
        self.start_camera = start_camera
        self.intro_ease = intro_ease
        self.load_timeout_s = load_timeout_s

        self.state = EngineState(projection=self.projection.mode)
        self.criteria = FilterCriteria()
        self.visibility = LayerVisibility()
        self._surface: Optional[MapSurface] = None
        self._derived = FeatureCollection()
        self._marker_records: list[MarkerRecord] = []

        self.registry.set_handlers(
            SurfaceHandlers(
                on_click=self._on_surface_click,
                on_mouse_move=self._on_mouse_move,
                on_mouse_leave=self._on_mouse_leave,
                on_error=self._on_surface_error,
                on_layer_fallback=self._on_layer_fallback,
            )
        )

    # =========================================================================
    # EXPOSED STATE
    # =========================================================================

    @property
    def surface(self) -> Optional[MapSurface]:
        return self._surface

    @property
    def base_dataset(self) -> FeatureCollection:
        return self.dataset.collection

    @property
    def derived_dataset(self) -> FeatureCollection:
        return self._derived

    @property
    def marker_records(self) -> list[MarkerRecord]:
        selected = self.state.selected_marker_id
        return [replace(record, selected=record.id == selected) for record in self._marker_records]

    def _report(self, error: GlobeviewError, context: str) -> None:
        logger.error(f"{context}: {error}", exc_info=True)
        self.state.error = str(error)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> None:
        """Fetch the dataset, create the surface and install everything.

        Idempotent: a second call on a live surface does nothing.
        """
        if self._surface is not None and not self._surface.is_removed:
            return

        try:
            try:
                base = await self.dataset.fetch()
            except DatasetFetchError as e:
                # The map stays usable with empty data layers
                self._report(e, "Dataset fetch failed")
                base = FeatureCollection()
            self._derived = derive(base, self.criteria)

            mode = self.projection.mode
            surface = self.surface_factory(
                SurfaceOptions(style=self.state.theme.style, camera=self.start_camera, projection=mode)
            )
            self._surface = surface
            await wait_until_loaded(surface, self.load_timeout_s)
            for control in ProjectionConfig.CONTROLS:
                surface.add_control(control)
            surface.set_fog(fog_for(mode))
            await self._install(surface)

            if self.intro_ease:
                surface.ease_to(zoom=MapConfig.INTRO_ZOOM, duration_ms=MapConfig.INTRO_DURATION_MS)
            logger.info(f"Engine initialized: {len(base)} features, {len(self._derived)} shown")
        except GlobeviewError as e:
            self._report(e, "Initialization failed")
            if self._surface is not None:
                self._surface.remove()
                self._surface = None
        finally:
            self.state.loaded = True
            self.state.projection = self.projection.mode

    async def _ensure_current_layers(self, surface: MapSurface) -> None:
        """ensure_layers until the installed data and visibility are the latest.

        Filter changes made while the surface is busy only re-derive; an
        install that awaited icon loads may have installed an older dataset.
        """
        while True:
            dataset, visibility = self._derived, self.visibility
            if not await self.registry.ensure_layers(surface, LayerConfig.SOURCE_ID, visibility, dataset):
                return
            if dataset is self._derived and visibility is self.visibility:
                return
            logger.debug("Filters changed during install, installing the latest derived data")

    async def _install(self, surface: MapSurface) -> None:
        """Registry setup + highlight + markers on a loaded surface."""
        await self._ensure_current_layers(surface)
        self.highlighter.apply(surface)
        self.markers.sync(surface, self._marker_records, self.state.selected_marker_id, force=True)

    async def _reinstall_after_style(self) -> None:
        surface = self._require_surface()
        await self._ensure_current_layers(surface)
        self.highlighter.apply(surface)

    async def _setup_rebuilt(self, surface: MapSurface) -> None:
        self.registry.reset()
        await self._install(surface)

    def _require_surface(self) -> MapSurface:
        if self._surface is None or self._surface.is_removed:
            raise GlobeviewError("Map is not initialized")
        return self._surface

    # =========================================================================
    # THEME
    # =========================================================================

    async def change_theme(self, theme_id: str) -> StyleSwitchOutcome:
        """Switch the basemap; the previous theme stays current on failure."""
        theme = MapTheme.by_id(theme_id)
        if theme is None:
            raise ValueError(f"Unknown theme: {theme_id}")
        if theme == self.state.theme and not self.style_switch.busy:
            return StyleSwitchOutcome.APPLIED

        surface = self._surface
        if surface is None or surface.is_removed:
            self.state.theme = theme
            return StyleSwitchOutcome.APPLIED
        if self.style_switch.busy:
            logger.warning(f"Theme change to '{theme.name}' rejected: busy")
            return StyleSwitchOutcome.REJECTED_BUSY

        self.state.requested_theme = theme
        self.state.busy = True
        try:
            outcome = await self.style_switch.switch_style(
                surface,
                theme,
                reinstall=self._reinstall_after_style,
                on_style_loaded=self.registry.on_style_swap,
                on_applied=lambda: self._sync_markers(force=True),
                previous=self.state.theme,
            )
        except StyleSwitchError as e:
            self._report(e, "Theme switch failed")
            return StyleSwitchOutcome.FAILED
        finally:
            self.state.requested_theme = None
            self.state.busy = self.style_switch.busy

        if outcome == StyleSwitchOutcome.APPLIED:
            self.state.theme = theme
            self.state.error = None
        return outcome

    async def cycle_theme(self) -> StyleSwitchOutcome:
        """Next theme in order, wrapping around."""
        return await self.change_theme(self.state.theme.next().id)

    # =========================================================================
    # PROJECTION
    # =========================================================================

    async def set_projection(self, mode: ProjectionMode) -> bool:
        """Change projection. Returns False if rejected or failed."""
        if mode == self.projection.mode:
            return True
        surface = self._surface
        if surface is None or surface.is_removed:
            self.state.error = "Map is not initialized"
            return False
        if not self.style_switch.acquire():
            logger.warning(f"Projection change to {mode.value} rejected: busy")
            return False

        self.state.busy = True
        try:
            result = await self.projection.transition(
                surface,
                mode,
                style=self.state.theme.style,
                setup=self._setup_rebuilt,
                teardown=self.markers.detach,
            )
        finally:
            self.style_switch.release()
            self.state.busy = False

        self._surface = result.surface
        self.state.projection = self.projection.mode
        if result.error is not None:
            self.state.error = str(result.error)
            return False
        self.state.error = None
        return True

    async def toggle_projection(self) -> bool:
        return await self.set_projection(self.projection.mode.opposite)

    # =========================================================================
    # FILTERS & LAYERS
    # =========================================================================

    async def update_filters(self, criteria: FilterCriteria) -> None:
        """Re-derive the dataset and replace the source data wholesale."""
        self.criteria = criteria
        self._derived = derive(self.base_dataset, criteria)
        logger.debug(f"Filters updated: {len(self._derived)} of {len(self.base_dataset)} features")

        surface = self._surface
        # A running theme switch reinstalls the latest derived data itself
        if surface is None or surface.is_removed or self.style_switch.busy:
            return
        try:
            await self.registry.ensure_layers(surface, LayerConfig.SOURCE_ID, self.visibility, self._derived)
        except GlobeviewError as e:
            self._report(e, "Filter update failed")

    async def set_time_range(self, time_range: Optional[TimeRange]) -> None:
        await self.update_filters(replace(self.criteria, time_range=time_range))

    async def set_time_preset(self, preset: str, now: Optional[datetime] = None) -> None:
        await self.set_time_range(preset_range(preset, now or datetime.now()))

    async def set_report_subfilter(self, name: str, enabled: bool) -> None:
        self.visibility, criteria = toggle_report_subfilter(self.visibility, self.criteria, name, enabled)
        self._apply_visibility()
        await self.update_filters(criteria)

    async def set_rfi_subfilter(self, name: str, enabled: bool) -> None:
        self.visibility, criteria = toggle_rfi_subfilter(self.visibility, self.criteria, name, enabled)
        self._apply_visibility()
        await self.update_filters(criteria)

    async def toggle_layer(self, key: str, visible: bool) -> None:
        """Show/hide a layer category (cascades to its subfilters)."""
        self.visibility, criteria = toggle_layer(self.visibility, self.criteria, key, visible)
        self._apply_visibility()
        await self.update_filters(criteria)

    def _apply_visibility(self) -> None:
        surface = self._surface
        if surface is None or surface.is_removed or self.style_switch.busy:
            return
        self.registry.apply_visibility(surface, self.visibility)

    # =========================================================================
    # SELECTION
    # =========================================================================

    def select_feature(self, feature: Feature) -> SelectionState:
        selection = self.highlighter.select(feature)
        self.state.selection = selection
        self._apply_highlight()
        return selection

    def select_feature_by_id(self, feature_id: str) -> Optional[SelectionState]:
        """Select by id (derived data first, then the base dataset)."""
        feature = self._derived.get(feature_id) or self.base_dataset.get(feature_id)
        if feature is None:
            logger.warning(f"Cannot select unknown feature {feature_id}")
            return None
        return self.select_feature(feature)

    def clear_selection(self) -> SelectionState:
        selection = self.highlighter.clear()
        self.state.selection = selection
        self._apply_highlight()
        return selection

    def _apply_highlight(self) -> None:
        surface = self._surface
        if surface is not None and not surface.is_removed:
            self.highlighter.apply(surface)

    def handle_map_click(self, lon: float, lat: float) -> Optional[Feature]:
        """Select what lies under the click, or clear on empty space."""
        surface = self._surface
        if surface is None or surface.is_removed:
            return None
        feature = feature_at(surface, lon, lat)
        if feature is None:
            self.clear_selection()
        else:
            self.select_feature(feature)
        return feature

    # =========================================================================
    # CAMERA & SEARCH
    # =========================================================================

    def fly_to(
        self,
        center: tuple[float, float],
        zoom: float = MapConfig.FEATURE_ZOOM,
        duration_ms: int = MapConfig.FLY_DURATION_MS,
    ) -> None:
        surface = self._surface
        if surface is None or surface.is_removed:
            return
        surface.fly_to(center=center, zoom=zoom, duration_ms=duration_ms)

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        return search_features(self.base_dataset, query, limit=limit)

    def select_search_result(self, result: SearchResult) -> Optional[SelectionState]:
        """Fly to a search hit and select it."""
        self.fly_to(result.coordinates, zoom=MapConfig.FEATURE_ZOOM)
        return self.select_feature_by_id(result.id)

    # =========================================================================
    # MARKERS
    # =========================================================================

    def _sync_markers(self, force: bool = False) -> None:
        surface = self._surface
        if surface is None or surface.is_removed:
            return
        self.markers.sync(surface, self._marker_records, self.state.selected_marker_id, force=force)

    def set_markers(self, markers: list[MarkerRecord]) -> None:
        """Replace the marker list (recreates markers on the surface)."""
        self._marker_records = markers
        if self.state.selected_marker_id is not None and all(m.id != self.state.selected_marker_id for m in markers):
            self.state.selected_marker_id = None
        self._sync_markers()

    def select_marker(self, marker_id: MarkerId) -> None:
        """Select a marker; selecting the selected marker again deselects it."""
        if self.state.selected_marker_id == marker_id:
            self.state.selected_marker_id = None
        else:
            self.state.selected_marker_id = marker_id
        self._sync_markers()

    def deselect_marker(self) -> None:
        self.state.selected_marker_id = None
        self._sync_markers()

    def fly_to_marker(self, marker_id: MarkerId) -> bool:
        record = next((m for m in self._marker_records if m.id == marker_id), None)
        if record is None:
            return False
        self.fly_to(record.coordinates, zoom=MapConfig.MARKER_ZOOM)
        return True

    # =========================================================================
    # SURFACE CALLBACKS
    # =========================================================================

    def _on_surface_click(self, event: MapMouseEvent) -> None:
        self.handle_map_click(event.lon, event.lat)

    def _on_mouse_move(self, event: MapMouseEvent) -> None:
        self.state.pointer = (event.lon, event.lat)

    def _on_mouse_leave(self, _payload: object) -> None:
        self.state.pointer = None

    def _on_surface_error(self, event: SurfaceErrorEvent) -> None:
        logger.error(f"Map error: {event.message}")
        self.state.error = f"Map error: {event.message}"

    def _on_layer_fallback(self, layer_id: str) -> None:
        self._apply_highlight()
