"""Marker lifecycle manager - fixed-asset markers on the surface.

Markers are renderer objects outside the data layers:
- First sync, a new marker list object, or a new surface: remove and recreate all
- Same list and surface, different selection: restyle in place

Callers must sync again after a style switch or a rebuild (force=True).
"""

import logging
from typing import Callable, Optional

from globeview.constants import MarkerConfig
from globeview.model.marker import MarkerRecord
from globeview.surface.base import MapSurface, MarkerHandle, MarkerSpec, MarkerStyle

logger = logging.getLogger(__name__)

MarkerId = int | str


def marker_style(record: MarkerRecord, selected: bool) -> MarkerStyle:
    """Visual emphasis for a marker; active markers get a pulse ring."""
    color = MarkerConfig.ACTIVE_COLOR if record.is_active else MarkerConfig.OFFLINE_COLOR
    if selected:
        return MarkerStyle(
            color=color,
            dot_size_px=MarkerConfig.DOT_SIZE_SELECTED_PX,
            border_width_px=MarkerConfig.BORDER_WIDTH_SELECTED_PX,
            border_color=MarkerConfig.BORDER_COLOR_SELECTED,
            glow=MarkerConfig.GLOW_SELECTED,
            z_index=MarkerConfig.Z_INDEX_SELECTED,
            pulse_size_px=MarkerConfig.PULSE_SIZE_SELECTED_PX if record.is_active else None,
            pulse_opacity=MarkerConfig.PULSE_OPACITY_SELECTED if record.is_active else None,
        )
    return MarkerStyle(
        color=color,
        dot_size_px=MarkerConfig.DOT_SIZE_PX,
        border_width_px=MarkerConfig.BORDER_WIDTH_PX,
        border_color=MarkerConfig.BORDER_COLOR,
        glow=MarkerConfig.GLOW,
        z_index=MarkerConfig.Z_INDEX,
        pulse_size_px=MarkerConfig.PULSE_SIZE_PX if record.is_active else None,
        pulse_opacity=MarkerConfig.PULSE_OPACITY if record.is_active else None,
    )


class MarkerLifecycleManager:
    """Keeps on-surface markers in step with the marker list and selection.

    Example:
        manager = MarkerLifecycleManager(on_marker_click=engine.select_marker)
        manager.sync(surface, markers, selected_id=None)
    """

    def __init__(self, on_marker_click: Optional[Callable[[MarkerId], None]] = None) -> None:
        self.on_marker_click = on_marker_click
        self._handles: dict[MarkerId, MarkerHandle] = {}
        self._records: Optional[list[MarkerRecord]] = None
        self._generation: Optional[int] = None
        self.selected_id: Optional[MarkerId] = None

    @property
    def handles(self) -> dict[MarkerId, MarkerHandle]:
        return dict(self._handles)

    def _click_callback(self, marker_id: MarkerId) -> Optional[Callable[[], None]]:
        if self.on_marker_click is None:
            return None
        callback = self.on_marker_click
        return lambda: callback(marker_id)

    def sync(
        self,
        surface: MapSurface,
        markers: list[MarkerRecord],
        selected_id: Optional[MarkerId],
        force: bool = False,
    ) -> None:
        """Bring surface markers in line with `markers` and `selected_id`."""
        recreate = force or markers is not self._records or surface.generation != self._generation

        if recreate:
            self.detach()
            for record in markers:
                spec = MarkerSpec(
                    id=record.id,
                    lon=record.lon,
                    lat=record.lat,
                    style=marker_style(record, record.id == selected_id),
                    label=record.name,
                    on_click=self._click_callback(record.id),
                )
                self._handles[record.id] = surface.add_marker(spec)
            logger.debug(f"Recreated {len(markers)} markers on surface #{surface.generation}")
        else:
            for record in markers:
                handle = self._handles.get(record.id)
                if handle is not None:
                    handle.set_style(marker_style(record, record.id == selected_id))

        self._records = markers
        self._generation = surface.generation
        self.selected_id = selected_id

    def detach(self, surface: Optional[MapSurface] = None) -> None:
        """Remove every marker this manager placed."""
        for handle in self._handles.values():
            handle.remove()
        self._handles.clear()
        self._generation = None
