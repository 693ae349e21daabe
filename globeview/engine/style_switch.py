"""Style/theme switch orchestrator.

A style swap wipes every source, layer and image from the surface. The
orchestrator sequences the swap so the managed layers come back:

1. Reject the request if another switch (or a projection rebuild) is running
2. Subscribe to "style.load", then call set_style()
3. Wait for "style.load", bounded by a timeout (timeout = failure)
4. Let the registry forget its per-style flags
5. Reinstall dataset and layers; on failure retry exactly once after a delay
6. Clear the busy flag, then re-sync markers

On failure the previous theme is set again and its layers reinstalled before
the error propagates, so the surface matches the theme the engine reports.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from globeview.constants import StyleSwitchConfig
from globeview.model.errors import GlobeviewError, StyleSwitchError, StyleSwitchTimeout
from globeview.model.view import MapTheme
from globeview.surface.base import MapSurface, SurfaceEvent

logger = logging.getLogger(__name__)


class StyleSwitchOutcome(Enum):
    APPLIED = "applied"
    REJECTED_BUSY = "rejected_busy"
    FAILED = "failed"


class StyleSwitchOrchestrator:
    """Serializes style changes behind a single busy flag.

    The same flag guards projection rebuilds (acquire / release).
    """

    def __init__(
        self,
        timeout_s: float = StyleSwitchConfig.TIMEOUT_S,
        retry_delay_s: float = StyleSwitchConfig.RETRY_DELAY_S,
    ) -> None:
        self.timeout_s = timeout_s
        self.retry_delay_s = retry_delay_s
        self.busy = False

    def acquire(self) -> bool:
        """Take the busy flag; False if it is already held."""
        if self.busy:
            return False
        self.busy = True
        return True

    def release(self) -> None:
        self.busy = False

    async def _wait_for_style_load(self, surface: MapSurface, theme: MapTheme) -> None:
        loaded: asyncio.Future = asyncio.get_running_loop().create_future()

        def _on_style_load(_payload: object) -> None:
            if not loaded.done():
                loaded.set_result(None)

        # Subscribe first: the renderer may signal before set_style returns
        surface.on(SurfaceEvent.STYLE_LOAD, _on_style_load)
        try:
            surface.set_style(theme.style)
            await asyncio.wait_for(loaded, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise StyleSwitchTimeout(f"Theme '{theme.name}' did not load within {self.timeout_s:.0f}s") from e
        except GlobeviewError as e:
            raise StyleSwitchError(f"Theme '{theme.name}' could not be applied: {e}") from e
        finally:
            surface.off(SurfaceEvent.STYLE_LOAD, _on_style_load)

    async def _restore(
        self,
        surface: MapSurface,
        previous: MapTheme,
        reinstall: Callable[[], Awaitable[object]],
        on_style_loaded: Optional[Callable[[], None]],
    ) -> None:
        """Best effort: put the previous style back and reinstall its layers."""
        logger.warning(f"Restoring theme '{previous.name}' after a failed switch")
        try:
            await self._wait_for_style_load(surface, previous)
        except StyleSwitchTimeout as e:
            logger.warning(f"{e}; reinstalling layers anyway")
        except StyleSwitchError as e:
            logger.error(f"Previous theme could not be restored: {e}")
            return
        if on_style_loaded is not None:
            on_style_loaded()
        try:
            await reinstall()
        except GlobeviewError as e:
            logger.error(f"Layers could not be reinstalled for '{previous.name}': {e}")

    async def switch_style(
        self,
        surface: MapSurface,
        theme: MapTheme,
        reinstall: Callable[[], Awaitable[object]],
        on_style_loaded: Optional[Callable[[], None]] = None,
        on_applied: Optional[Callable[[], None]] = None,
        previous: Optional[MapTheme] = None,
    ) -> StyleSwitchOutcome:
        """Swap the surface style and reinstall managed layers.

        Args:
            surface: Surface to restyle
            theme: Target theme
            reinstall: Coroutine factory that reinstalls dataset and layers
            on_style_loaded: Called once the new style has loaded, before reinstall
            on_applied: Called after success, once the busy flag is cleared
            previous: Theme to put back (with its layers) if the switch fails

        Returns:
            APPLIED or REJECTED_BUSY.

        Raises:
            StyleSwitchTimeout: If the style never finished loading.
            StyleSwitchError: If set_style failed or reinstall failed twice.
        """
        if not self.acquire():
            logger.warning(f"Theme switch to '{theme.name}' rejected: another switch is in progress")
            return StyleSwitchOutcome.REJECTED_BUSY

        try:
            logger.info(f"Switching theme to '{theme.name}'")
            await self._wait_for_style_load(surface, theme)
            if on_style_loaded is not None:
                on_style_loaded()

            try:
                await reinstall()
            except GlobeviewError as e:
                logger.warning(f"Layer reinstall after theme switch failed ({e}), retrying once")
                await asyncio.sleep(self.retry_delay_s)
                try:
                    await reinstall()
                except GlobeviewError as retry_error:
                    raise StyleSwitchError(
                        f"Layers could not be restored after switching to '{theme.name}': {retry_error}"
                    ) from retry_error
        except StyleSwitchError:
            if previous is not None:
                await self._restore(surface, previous, reinstall, on_style_loaded)
            raise
        finally:
            self.release()

        logger.info(f"Theme '{theme.name}' applied")
        if on_applied is not None:
            on_applied()
        return StyleSwitchOutcome.APPLIED
