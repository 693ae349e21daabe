"""Layer runtime registry - idempotent installation of source, icons, layers, handlers.

Tracks, for the surface generation it belongs to:
- data_loaded / last_installed_dataset: the source exists and holds the latest derived data
- icons_loaded: image names registered on the current style
- click_handlers_attached: surface listeners attached (once per generation)

Lifetimes:
- Style swap (set_style): sources, layers and images are gone; listeners stay.
  on_style_swap() forgets the per-style flags and bumps the style epoch.
- Rebuild (new surface): everything is gone. ensure_layers() notices the new
  generation and starts from a fresh LayerRuntimeState.

Every await is followed by a check-before-act: if the style epoch or the
surface generation moved on meanwhile, the stale call stops without touching
the surface.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Optional

from globeview.constants import ClickConfig, LayerConfig
from globeview.engine.layers import LAYER_DESCRIPTORS, LayerDescriptor
from globeview.model.errors import SurfaceError
from globeview.model.feature import FeatureCollection
from globeview.model.filters import LayerVisibility
from globeview.surface.base import IconImage, LayerKind, MapMouseEvent, MapSurface, SurfaceErrorEvent, SurfaceEvent

logger = logging.getLogger(__name__)


@dataclass
class LayerRuntimeState:
    """Per-surface installation flags."""

    generation: Optional[int] = None
    style_epoch: int = 0
    data_loaded: bool = False
    icons_loaded: set[str] = field(default_factory=set)
    click_handlers_attached: bool = False
    error_handler_attached: bool = False
    last_installed_dataset: Optional[FeatureCollection] = None
    circle_fallbacks: set[str] = field(default_factory=set)


@dataclass
class SurfaceHandlers:
    """Callbacks the registry wires to surface events."""

    on_click: Callable[[MapMouseEvent], None]
    on_mouse_move: Optional[Callable[[MapMouseEvent], None]] = None
    on_mouse_leave: Optional[Callable[[None], None]] = None
    on_error: Optional[Callable[[SurfaceErrorEvent], None]] = None
    on_layer_fallback: Optional[Callable[[str], None]] = None


class LayerRuntimeRegistry:
    """Installs managed layers on a surface, exactly once per generation.

    Example:
        registry = LayerRuntimeRegistry()
        registry.set_handlers(SurfaceHandlers(on_click=engine.on_surface_click))
        await registry.ensure_layers(surface, LayerConfig.SOURCE_ID, visibility, derived)
    """

    def __init__(
        self,
        descriptors: tuple[LayerDescriptor, ...] = LAYER_DESCRIPTORS,
        icon_urls: Optional[dict[str, str]] = None,
        fallback_icon_url: str = LayerConfig.FALLBACK_ICON_URL,
        handler_attach_delay_s: float = ClickConfig.HANDLER_ATTACH_DELAY_S,
    ) -> None:
        self.descriptors = descriptors
        self.icon_urls = dict(icon_urls if icon_urls is not None else LayerConfig.ICON_URLS)
        self.fallback_icon_url = fallback_icon_url
        self.handler_attach_delay_s = handler_attach_delay_s
        self.state = LayerRuntimeState()
        self.handlers: Optional[SurfaceHandlers] = None
        # Decoded images survive style swaps and rebuilds
        self._icon_cache: dict[str, IconImage] = {}

    def set_handlers(self, handlers: SurfaceHandlers) -> None:
        self.handlers = handlers

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def reset(self) -> None:
        """Forget everything (surface destroyed)."""
        self.state = LayerRuntimeState()

    def on_style_swap(self) -> None:
        """Forget per-style flags; listeners survive a style swap."""
        state = self.state
        state.style_epoch += 1
        state.data_loaded = False
        state.icons_loaded.clear()
        state.last_installed_dataset = None
        state.circle_fallbacks.clear()
        logger.debug(f"Style swap: registry epoch now {state.style_epoch}")

    def _bind_surface(self, surface: MapSurface) -> None:
        if self.state.generation != surface.generation:
            if self.state.generation is not None:
                logger.info(f"Registry reset for surface #{surface.generation}")
            self.state = LayerRuntimeState(generation=surface.generation)

    def _is_stale(self, surface: MapSurface, epoch: int) -> bool:
        return surface.is_removed or self.state.generation != surface.generation or self.state.style_epoch != epoch

    # =========================================================================
    # INSTALLATION
    # =========================================================================

    async def ensure_layers(
        self,
        surface: MapSurface,
        source_id: str,
        visibility: LayerVisibility,
        dataset: FeatureCollection,
    ) -> bool:
        """Make the surface hold the dataset, icons, layers and handlers.

        Safe to call any number of times. Returns False when the call went stale
        (style swap or rebuild during an await) and stopped early.

        Raises:
            SurfaceError: If the surface rejects an installation step.
        """
        self._bind_surface(surface)
        epoch = self.state.style_epoch

        self._attach_error_handler(surface)
        self._install_source(surface, source_id, dataset)

        icons_ok = await self._ensure_icons(surface, epoch)
        if not icons_ok:
            logger.debug("ensure_layers: style changed during icon loading, stopping")
            return False

        self._install_layers(surface, source_id, visibility)
        return await self._attach_click_handlers(surface, epoch)

    def _install_source(self, surface: MapSurface, source_id: str, dataset: FeatureCollection) -> None:
        state = self.state
        if surface.get_source(source_id) is None:
            surface.add_source(source_id, dataset)
            logger.debug(f"Source '{source_id}' added ({len(dataset)} features)")
        elif state.last_installed_dataset is not dataset:
            surface.set_source_data(source_id, dataset)
            logger.debug(f"Source '{source_id}' data replaced ({len(dataset)} features)")
        state.data_loaded = True
        state.last_installed_dataset = dataset

    def _required_icons(self) -> list[str]:
        return [descriptor.icon for descriptor in self.descriptors if descriptor.icon is not None]

    async def _fetch_icon(self, surface: MapSurface, name: str, url: str) -> Optional[IconImage]:
        """Cached image for a name, loading it on first use. None if the load fails."""
        image = self._icon_cache.get(name)
        if image is not None:
            return image
        try:
            image = await surface.load_image(url)
        except SurfaceError as e:
            logger.warning(f"Icon '{name}' failed to load: {e}")
            return None
        self._icon_cache[name] = image
        return image

    async def _ensure_icons(self, surface: MapSurface, epoch: int) -> bool:
        state = self.state
        for name in self._required_icons():
            if name in state.icons_loaded and surface.has_image(name):
                continue

            image = await self._fetch_icon(surface, name, self.icon_urls.get(name, self.fallback_icon_url))
            if image is None:
                image = await self._fetch_icon(surface, LayerConfig.FALLBACK_ICON, self.fallback_icon_url)
                if image is not None:
                    logger.warning(f"Icon '{name}' replaced by fallback icon")

            if self._is_stale(surface, epoch):
                return False

            if image is None:
                logger.warning(f"No image available for '{name}', layer will use circles")
                continue
            if not surface.has_image(name):
                surface.add_image(name, image)
            state.icons_loaded.add(name)
        return True

    def _installed_descriptor(self, descriptor: LayerDescriptor) -> LayerDescriptor:
        if descriptor.kind != LayerKind.SYMBOL:
            return descriptor
        if descriptor.id in self.state.circle_fallbacks or descriptor.icon not in self.state.icons_loaded:
            return descriptor.as_circle()
        return descriptor

    def _install_layers(self, surface: MapSurface, source_id: str, visibility: LayerVisibility) -> None:
        for descriptor in self.descriptors:
            visible = visibility.is_visible(descriptor.visibility_key)
            if surface.has_layer(descriptor.id):
                self._set_visibility(surface, descriptor.id, visible)
                continue
            spec = self._installed_descriptor(descriptor).build(source_id, visible)
            surface.add_layer(spec)
            logger.debug(f"Layer '{descriptor.id}' added as {spec.kind.value}")

    async def _attach_click_handlers(self, surface: MapSurface, epoch: int) -> bool:
        state = self.state
        if state.click_handlers_attached or self.handlers is None:
            return True
        if not all(surface.has_layer(layer_id) for layer_id in LayerConfig.INTERACTIVE_LAYERS):
            return True

        await asyncio.sleep(self.handler_attach_delay_s)
        if surface.is_removed or state is not self.state or state.generation != surface.generation:
            return False
        if state.click_handlers_attached:
            return True
        if state.style_epoch != epoch or not all(
            surface.has_layer(layer_id) for layer_id in LayerConfig.INTERACTIVE_LAYERS
        ):
            return False

        handlers = self.handlers
        surface.on(SurfaceEvent.CLICK, handlers.on_click)
        if handlers.on_mouse_move is not None:
            surface.on(SurfaceEvent.MOUSE_MOVE, handlers.on_mouse_move)
        if handlers.on_mouse_leave is not None:
            surface.on(SurfaceEvent.MOUSE_LEAVE, handlers.on_mouse_leave)
        state.click_handlers_attached = True
        logger.info(f"Click handlers attached to surface #{surface.generation}")
        return True

    # =========================================================================
    # VISIBILITY
    # =========================================================================

    @staticmethod
    def _set_visibility(surface: MapSurface, layer_id: str, visible: bool) -> None:
        value = "visible" if visible else "none"
        if surface.get_layout_property(layer_id, "visibility") != value:
            surface.set_layout_property(layer_id, "visibility", value)

    def apply_visibility(self, surface: MapSurface, visibility: LayerVisibility) -> None:
        """Show/hide existing layers without rebuilding them."""
        for descriptor in self.descriptors:
            if surface.has_layer(descriptor.id):
                self._set_visibility(surface, descriptor.id, visibility.is_visible(descriptor.visibility_key))

    # =========================================================================
    # ERROR FALLBACK
    # =========================================================================

    def _attach_error_handler(self, surface: MapSurface) -> None:
        if self.state.error_handler_attached:
            return
        surface.on(SurfaceEvent.ERROR, partial(self._handle_surface_error, surface))
        self.state.error_handler_attached = True

    def _handle_surface_error(self, surface: MapSurface, event: SurfaceErrorEvent) -> None:
        descriptor = next((d for d in self.descriptors if d.id == event.layer_id), None)
        if descriptor is not None and descriptor.kind == LayerKind.SYMBOL:
            logger.warning(f"Symbol layer '{descriptor.id}' failed ({event.message}), falling back to circles")
            self.replace_with_circles(surface, descriptor)
            return
        if self.handlers is not None and self.handlers.on_error is not None:
            self.handlers.on_error(event)

    def replace_with_circles(self, surface: MapSurface, descriptor: LayerDescriptor) -> None:
        """Swap a symbol layer for its circle fallback in place."""
        existing = surface.get_layer(descriptor.id)
        if existing is None or existing.kind == LayerKind.CIRCLE:
            return

        ids = surface.layer_ids()
        position = ids.index(descriptor.id)
        before_id = ids[position + 1] if position + 1 < len(ids) else None

        spec = descriptor.as_circle().build(existing.source, existing.visible)
        surface.remove_layer(descriptor.id)
        surface.add_layer(spec, before_id=before_id)
        self.state.circle_fallbacks.add(descriptor.id)

        if self.handlers is not None and self.handlers.on_layer_fallback is not None:
            self.handlers.on_layer_fallback(descriptor.id)
