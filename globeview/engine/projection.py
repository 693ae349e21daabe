"""Projection transition controller - flat ⇄ globe with visual continuity.

Uses python-statemachine to hold the projection mode:
- The mode only changes through the machine's events
- The event is sent after the surface reached the new mode, so a failed
  transition leaves the machine (and EngineState) in the previous mode

States:
    flat: Web-Mercator map
    globe: 3D globe (initial)

Transitions:
    flat -> globe: enter_globe (smooth: fog, ease, switch partway, fog again)
    globe -> flat: enter_flat  (rebuild: snapshot, tear down, new flat surface)

globe -> flat never switches in place: the renderer leaves globe-only state
behind, so it always builds a fresh surface.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from globeview.constants import MapConfig, ProjectionConfig
from globeview.model.errors import GlobeviewError, ProjectionTransitionError, SurfaceError
from globeview.model.view import CameraState, ProjectionMode, SurfaceOptions
from globeview.surface.base import MapSurface, SurfaceEvent

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[SurfaceOptions], MapSurface]
SurfaceSetup = Callable[[MapSurface], Awaitable[None]]
SurfaceTeardown = Callable[[MapSurface], None]


def fog_for(mode: ProjectionMode) -> Optional[dict]:
    return ProjectionConfig.GLOBE_FOG if mode == ProjectionMode.GLOBE else ProjectionConfig.FLAT_FOG


def target_zoom(zoom: float, target: ProjectionMode) -> float:
    """Camera zoom after entering `target`: compressed for globe, expanded for flat."""
    if target == ProjectionMode.GLOBE:
        shifted = zoom - ProjectionConfig.ZOOM_SHIFT
        return max(ProjectionConfig.GLOBE_MIN_ZOOM, min(ProjectionConfig.GLOBE_MAX_ZOOM, shifted))
    shifted = zoom + ProjectionConfig.ZOOM_SHIFT
    return max(ProjectionConfig.FLAT_MIN_ZOOM, min(ProjectionConfig.FLAT_MAX_ZOOM, shifted))


async def wait_until_loaded(surface: MapSurface, timeout_s: float = MapConfig.LOAD_TIMEOUT_S) -> None:
    """Wait for a fresh surface's "load" event.

    Raises:
        SurfaceError: If the surface does not load in time.
    """
    if surface.is_loaded():
        return
    loaded: asyncio.Future = asyncio.get_running_loop().create_future()

    def _on_load(_payload: object) -> None:
        if not loaded.done():
            loaded.set_result(None)

    surface.on(SurfaceEvent.LOAD, _on_load)
    try:
        await asyncio.wait_for(loaded, timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise SurfaceError(f"Surface #{surface.generation} did not load within {timeout_s:.0f}s") from e
    finally:
        surface.off(SurfaceEvent.LOAD, _on_load)


@dataclass
class ProjectionContext:
    """Model for the projection machine (python-statemachine model pattern)."""

    state: str | None = None


class ProjectionLogListener:
    """Logs every projection change."""

    def after_transition(self, event: str, source: State, target: State) -> None:
        logger.info(f"[PROJECTION] {source.name} --({event})--> {target.name}")


class ProjectionStateMachine(StateMachine):
    """Flat/globe projection mode."""

    flat = State("Flat", value=ProjectionMode.FLAT.value)
    globe = State("Globe", value=ProjectionMode.GLOBE.value, initial=True)

    enter_globe = flat.to(globe)
    enter_flat = globe.to(flat)

    def __init__(self, context: ProjectionContext | None = None, start_value: str | None = None) -> None:
        model = context or ProjectionContext()
        super().__init__(model=model, start_value=start_value)

    @property
    def mode(self) -> ProjectionMode:
        return ProjectionMode(self.current_state.value)


@dataclass
class TransitionResult:
    """Surface to use after a transition, plus the error if it failed.

    surface is None only when both the rebuild and the recovery failed.
    """

    surface: Optional[MapSurface]
    mode: ProjectionMode
    error: Optional[ProjectionTransitionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProjectionTransitionController:
    """Runs flat/globe transitions on the engine's surface.

    Example:
        controller = ProjectionTransitionController(surface_factory=DeckSurface)
        result = await controller.transition(surface, ProjectionMode.FLAT, style, setup, teardown)
    """

    def __init__(
        self,
        surface_factory: SurfaceFactory,
        start_mode: ProjectionMode = ProjectionMode.GLOBE,
        ease_duration_ms: int = ProjectionConfig.EASE_DURATION_MS,
        switch_fraction: float = ProjectionConfig.SWITCH_FRACTION,
        load_timeout_s: float = MapConfig.LOAD_TIMEOUT_S,
    ) -> None:
        self.surface_factory = surface_factory
        self.ease_duration_ms = ease_duration_ms
        self.switch_fraction = switch_fraction
        self.load_timeout_s = load_timeout_s
        self.machine = ProjectionStateMachine(start_value=start_mode.value)
        self.machine.add_listener(ProjectionLogListener())

    @property
    def mode(self) -> ProjectionMode:
        return self.machine.mode

    def _commit(self, target: ProjectionMode) -> None:
        event = "enter_globe" if target == ProjectionMode.GLOBE else "enter_flat"
        try:
            self.machine.send(event)
        except TransitionNotAllowed as e:
            raise ProjectionTransitionError(f"Cannot {event} from {self.mode.value}") from e

    async def transition(
        self,
        surface: MapSurface,
        target: ProjectionMode,
        style: object,
        setup: SurfaceSetup,
        teardown: Optional[SurfaceTeardown] = None,
    ) -> TransitionResult:
        """Move the surface to `target`, smoothly or by rebuilding.

        Errors are caught and returned in the result; the machine only moves
        when the transition succeeded.
        """
        current = self.mode
        if target == current:
            return TransitionResult(surface=surface, mode=current)

        if current == ProjectionMode.GLOBE and target == ProjectionMode.FLAT:
            return await self._rebuild(surface, target, style, setup, teardown)
        return await self._smooth(surface, target)

    # =========================================================================
    # SMOOTH PATH
    # =========================================================================

    async def _smooth(self, surface: MapSurface, target: ProjectionMode) -> TransitionResult:
        previous = self.mode
        try:
            camera = surface.get_camera()
            surface.set_fog(fog_for(target))
            surface.ease_to(zoom=target_zoom(camera.zoom, target), duration_ms=self.ease_duration_ms)
            # Switch partway so the swap hides inside the animation
            await asyncio.sleep(self.ease_duration_ms / 1000 * self.switch_fraction)
            surface.set_projection(target)
            surface.set_fog(fog_for(target))
            self._commit(target)
        except GlobeviewError as e:
            logger.error(f"Projection change to {target.value} failed: {e}", exc_info=True)
            if not surface.is_removed:
                try:
                    surface.set_fog(fog_for(previous))
                    surface.set_projection(previous)
                except GlobeviewError as restore_error:
                    logger.warning(f"Could not restore {previous.value} projection state: {restore_error}")
            error = e if isinstance(e, ProjectionTransitionError) else ProjectionTransitionError(str(e))
            return TransitionResult(surface=surface, mode=previous, error=error)
        return TransitionResult(surface=surface, mode=target)

    # =========================================================================
    # REBUILD PATH
    # =========================================================================

    @staticmethod
    def _tear_down(surface: MapSurface, teardown: Optional[SurfaceTeardown]) -> None:
        """Detach controls and markers, then remove the surface (always)."""
        try:
            try:
                for control in ProjectionConfig.CONTROLS:
                    surface.remove_control(control)
            finally:
                if teardown is not None:
                    teardown(surface)
        finally:
            surface.remove()

    async def _build(self, options: SurfaceOptions, setup: SurfaceSetup) -> MapSurface:
        surface = self.surface_factory(options)
        try:
            await wait_until_loaded(surface, self.load_timeout_s)
            for control in ProjectionConfig.CONTROLS:
                surface.add_control(control)
            surface.set_fog(fog_for(options.projection))
            await setup(surface)
        except GlobeviewError:
            surface.remove()
            raise
        return surface

    async def _rebuild(
        self,
        surface: MapSurface,
        target: ProjectionMode,
        style: object,
        setup: SurfaceSetup,
        teardown: Optional[SurfaceTeardown],
    ) -> TransitionResult:
        previous = self.mode
        snapshot = CameraState()
        rebuilt: Optional[MapSurface] = None
        try:
            snapshot = surface.get_camera()
            logger.info(f"Rebuilding surface for {target.value} at zoom {snapshot.zoom:.1f}")
            self._tear_down(surface, teardown)

            target_camera = CameraState(
                center=snapshot.center,
                zoom=target_zoom(snapshot.zoom, target),
                pitch=snapshot.pitch,
                bearing=snapshot.bearing,
            )
            rebuilt = await self._build(SurfaceOptions(style=style, camera=target_camera, projection=target), setup)
            self._commit(target)
        except GlobeviewError as e:
            logger.error(f"Rebuild for {target.value} failed: {e}", exc_info=True)
            error = ProjectionTransitionError(f"Could not switch to {target.value} view: {e}")
            if rebuilt is not None:
                rebuilt.remove()
        else:
            return TransitionResult(surface=rebuilt, mode=target)

        # Recover: previous mode at the snapshot
        if not surface.is_removed:
            surface.remove()
        try:
            recovered = await self._build(SurfaceOptions(style=style, camera=snapshot, projection=previous), setup)
        except GlobeviewError as e:
            logger.error(f"Recovery to {previous.value} failed: {e}", exc_info=True)
            return TransitionResult(surface=None, mode=previous, error=error)
        return TransitionResult(surface=recovered, mode=previous, error=error)
