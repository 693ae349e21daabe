"""Sidebar UI renderer for the map dashboard.

Renders the left sidebar with:
- Theme and projection controls
- Layer toggles with RFI / Report subfilters
- Time filter presets
- Local search
- Selected feature card and pointer coordinates

Rendering only collects action flags; apply_actions() runs them against the
engine so app.py stays thin.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import streamlit as st

from globeview.constants import LayerConfig, TimelineConfig
from globeview.core.coordinates import CoordinateSystem, format_coordinates
from globeview.engine.controller import MapEngine
from globeview.model.feature import Feature
from globeview.model.view import MapTheme, ProjectionMode

logger = logging.getLogger(__name__)

# Property names shown on the selected feature card, in order
FEATURE_CARD_PROPERTIES = (
    "description",
    "date_created",
    "due_date",
    "priority",
    "status",
    "source",
    "target_name",
    "layer_name",
    "acquisition_date",
    "assigned_targets",
    "related_targets",
    "related_reports",
    "related_rfis",
)

LAYER_LABELS = {
    LayerConfig.VISIBILITY_HEATMAP: "Heatmap",
    LayerConfig.VISIBILITY_RFI: "RFIs",
    LayerConfig.VISIBILITY_REPORTS: "Reports",
    LayerConfig.VISIBILITY_TARGETS: "Targets",
    LayerConfig.VISIBILITY_LAYERS: "Boundaries",
}


async def apply_actions(engine: MapEngine, actions: dict[str, Any], now: Optional[datetime] = None) -> None:
    """Run the sidebar's action flags against the engine, in a fixed order."""
    if "theme" in actions:
        await engine.change_theme(actions["theme"])
    if "projection" in actions:
        await engine.set_projection(actions["projection"])
    for key, visible in actions.get("layers", []):
        await engine.toggle_layer(key, visible)
    for name, enabled in actions.get("report_subfilters", []):
        await engine.set_report_subfilter(name, enabled)
    for name, enabled in actions.get("rfi_subfilters", []):
        await engine.set_rfi_subfilter(name, enabled)
    if "time_preset" in actions:
        await engine.set_time_preset(actions["time_preset"], now=now)
    if "search_result" in actions:
        engine.select_search_result(actions["search_result"])
    if actions.get("clear_selection"):
        engine.clear_selection()
    if "marker" in actions:
        engine.select_marker(actions["marker"])
        engine.fly_to_marker(actions["marker"])


class SidebarRenderer:
    """Renders the sidebar and returns action flags."""

    def __init__(self, engine: MapEngine) -> None:
        self.engine = engine

    def render(self) -> dict[str, Any]:
        actions: dict[str, Any] = {}
        with st.sidebar:
            self._render_view_controls(actions)
            st.divider()
            self._render_layer_controls(actions)
            st.divider()
            self._render_time_controls(actions)
            st.divider()
            self._render_search(actions)
            self._render_markers(actions)
            st.divider()
            self._render_selection(actions)
            self._render_pointer()
        return actions

    def _render_view_controls(self, actions: dict[str, Any]) -> None:
        state = self.engine.state
        themes = MapTheme.all()
        ids = [theme.id for theme in themes]
        current = ids.index(state.theme.id) if state.theme.id in ids else 0

        st.subheader("🗺️ View")
        choice = st.selectbox(
            "Basemap",
            options=ids,
            index=current,
            format_func=lambda theme_id: MapTheme.by_id(theme_id).name,
            disabled=state.busy,
        )
        if choice != state.theme.id:
            actions["theme"] = choice

        globe = st.toggle("Globe view", value=state.projection == ProjectionMode.GLOBE, disabled=state.busy)
        wanted = ProjectionMode.GLOBE if globe else ProjectionMode.FLAT
        if wanted != state.projection:
            actions["projection"] = wanted

    def _render_layer_controls(self, actions: dict[str, Any]) -> None:
        visibility = self.engine.visibility
        criteria = self.engine.criteria

        st.subheader("🧭 Layers")
        layer_changes = []
        for key, label in LAYER_LABELS.items():
            shown = st.checkbox(label, value=visibility.is_visible(key), key=f"layer_{key}")
            if shown != visibility.is_visible(key):
                layer_changes.append((key, shown))
        if layer_changes:
            actions["layers"] = layer_changes

        with st.expander("Report sources"):
            report_changes = []
            for name in ("system", "legacy"):
                enabled = st.checkbox(name.title(), value=getattr(criteria.report_subfilters, name), key=f"report_{name}")
                if enabled != getattr(criteria.report_subfilters, name):
                    report_changes.append((name, enabled))
            if report_changes:
                actions["report_subfilters"] = report_changes

        with st.expander("RFI priority"):
            rfi_changes = []
            for name in ("high", "medium", "low"):
                enabled = st.checkbox(name.title(), value=getattr(criteria.rfi_subfilters, name), key=f"rfi_{name}")
                if enabled != getattr(criteria.rfi_subfilters, name):
                    rfi_changes.append((name, enabled))
            if rfi_changes:
                actions["rfi_subfilters"] = rfi_changes

    def _render_time_controls(self, actions: dict[str, Any]) -> None:
        st.subheader("🕒 Time")
        last = st.session_state.get("_time_preset", "all")
        preset = st.selectbox("Range", options=TimelineConfig.PRESETS, index=TimelineConfig.PRESETS.index(last))
        if preset != last:
            st.session_state["_time_preset"] = preset
            actions["time_preset"] = preset

        time_range = self.engine.criteria.time_range
        if time_range is not None:
            st.caption(f"{time_range.start:%Y-%m-%d} → {time_range.end:%Y-%m-%d}")

    def _render_search(self, actions: dict[str, Any]) -> None:
        st.subheader("🔎 Search")
        query = st.text_input("Find features", placeholder="Name, type, id…", label_visibility="collapsed")
        if not query:
            return
        results = self.engine.search(query)
        if not results:
            st.caption("No matches")
            return
        for result in results:
            if st.button(f"{result.name} · {result.type.value}", key=f"search_{result.id}"):
                actions["search_result"] = result

    def _render_markers(self, actions: dict[str, Any]) -> None:
        records = self.engine.marker_records
        if not records:
            return
        st.subheader("📡 Assets")
        for record in records:
            label = f"{'● ' if record.selected else ''}{record.name or record.id} ({record.status.value})"
            if st.button(label, key=f"marker_{record.id}"):
                actions["marker"] = record.id

    def _render_selection(self, actions: dict[str, Any]) -> None:
        selection = self.engine.state.selection
        if selection.is_empty or selection.feature is None:
            st.caption("Click a feature to see its relationships")
            return

        render_feature_card(selection.feature, related=len(selection.related_ids) - 1)
        if st.button("Clear selection"):
            actions["clear_selection"] = True

    def _render_pointer(self) -> None:
        pointer = self.engine.state.pointer
        if pointer is None:
            return
        use_dms = st.toggle("DMS coordinates", value=False)
        system = CoordinateSystem.DMS if use_dms else CoordinateSystem.DD
        st.caption(format_coordinates(pointer[0], pointer[1], system))


def render_feature_card(feature: Feature, related: int) -> None:
    """Presentational card for the selected feature."""
    type_name = feature.type.value if feature.type else "Feature"
    st.markdown(f"**{feature.name}**  \n`{type_name}` · `{feature.id}`")
    for prop in FEATURE_CARD_PROPERTIES:
        value = feature.properties.get(prop)
        if value in (None, "", []):
            continue
        if prop in feature.references:
            value = ", ".join(feature.refs(prop))
        st.markdown(f"- *{prop.replace('_', ' ')}*: {value}")
    st.caption(f"{related} related feature(s) highlighted")

