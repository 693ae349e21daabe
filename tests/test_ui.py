"""Tests for the UI glue: sidebar action dispatch, click deduplication ids and session setup."""

from contextlib import nullcontext
from datetime import datetime
from types import SimpleNamespace

import pytest

from globeview import app
from globeview.constants import LayerConfig
from globeview.engine.controller import MapEngine
from globeview.model.marker import MarkerRecord
from globeview.model.view import ProjectionMode
from globeview.ui.deck_click_handler import MapClickResult, _get_click_id
from globeview.ui.sidebar import apply_actions

from conftest import RFI_1_LONLAT


class TestApplyActions:
    """apply_actions runs sidebar flags against the engine."""

    @pytest.mark.asyncio
    async def test_theme_and_layers(self, engine: MapEngine) -> None:
        await engine.initialize()

        await apply_actions(
            engine,
            {
                "theme": "light",
                "layers": [(LayerConfig.VISIBILITY_TARGETS, False)],
                "rfi_subfilters": [("low", False)],
                "report_subfilters": [("legacy", False)],
            },
        )

        assert engine.state.theme.id == "light"
        assert not engine.visibility.targets
        assert not engine.criteria.rfi_subfilters.low
        assert not engine.criteria.report_subfilters.legacy
        assert engine.surface.get_layout_property(LayerConfig.TARGET_POINTS, "visibility") == "none"

    @pytest.mark.asyncio
    async def test_time_preset_uses_now(self, engine: MapEngine) -> None:
        await engine.initialize()

        await apply_actions(engine, {"time_preset": "last-month"}, now=datetime(2024, 3, 31, 15, 45))

        time_range = engine.criteria.time_range
        assert time_range.start == datetime(2024, 2, 29, 15, 45)
        assert time_range.end == datetime(2024, 3, 31, 15, 45)

    @pytest.mark.asyncio
    async def test_projection(self, engine: MapEngine) -> None:
        await engine.initialize()

        await apply_actions(engine, {"projection": ProjectionMode.GLOBE})

        assert engine.state.projection == ProjectionMode.GLOBE

    @pytest.mark.asyncio
    async def test_search_result_then_clear(self, engine: MapEngine) -> None:
        await engine.initialize()
        result = engine.search("Vessel B")[0]

        await apply_actions(engine, {"search_result": result})
        assert engine.state.selection.selected_feature_id == "TGT-2"

        await apply_actions(engine, {"clear_selection": True})
        assert engine.state.selection.is_empty

    @pytest.mark.asyncio
    async def test_marker_selects_and_flies(self, engine: MapEngine, sample_markers: list[MarkerRecord]) -> None:
        await engine.initialize()
        engine.set_markers(sample_markers)

        await apply_actions(engine, {"marker": 2})

        assert engine.state.selected_marker_id == 2
        assert engine.surface.get_camera().center == sample_markers[1].coordinates

    @pytest.mark.asyncio
    async def test_no_actions_changes_nothing(self, engine: MapEngine) -> None:
        await engine.initialize()
        engine.handle_map_click(*RFI_1_LONLAT)
        theme = engine.state.theme

        await apply_actions(engine, {})

        assert engine.state.theme == theme
        assert engine.state.selection.selected_feature_id == "RFI-1"


class TestClickIds:
    def test_empty_result(self) -> None:
        result = MapClickResult.empty()
        assert not result.has_click
        assert result.clicked_object is None

    def test_coordinate_only(self) -> None:
        assert _get_click_id(obj=None, coord=[54.377301, 24.453899]) == "coord_54.37730_24.45390"

    def test_object_and_coordinate(self) -> None:
        click_id = _get_click_id(obj={"type": "RFI", "id": "RFI-1"}, coord=[54.3773, 24.4539])
        assert click_id == "RFI_RFI-1_coord_54.37730_24.45390"


class _SessionState(dict):
    """Attribute-style dict standing in for st.session_state."""

    def __getattr__(self, name: str) -> object:
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e

    def __setattr__(self, name: str, value: object) -> None:
        self[name] = value


class TestInitSessionState:
    """init_session_state creates the engine once per session."""

    def test_session_holds_only_the_engine(self, engine: MapEngine, monkeypatch: pytest.MonkeyPatch) -> None:
        session_state = _SessionState()
        fake_st = SimpleNamespace(session_state=session_state, spinner=lambda _text: nullcontext())
        monkeypatch.setattr(app, "st", fake_st)
        monkeypatch.setattr(app, "MapEngine", lambda: engine)
        monkeypatch.setattr(app, "read_markers", lambda _path: [])

        assert app.init_session_state() is engine
        assert app.init_session_state() is engine
        assert list(session_state) == ["engine"]
        assert engine.state.loaded and engine.surface is not None
