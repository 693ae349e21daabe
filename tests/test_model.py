"""Tests for model classes: Feature ingestion, filters, view types.

Tests cover:
- Feature normalization (timestamps, ids, cross-reference encodings)
- FeatureCollection parsing and lookup
- Layer visibility and subfilter cascade
- Theme ordering and projection helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from globeview.model.feature import Feature, FeatureCollection, FeatureType, parse_id_list, parse_timestamp
from globeview.model.filters import (
    FilterCriteria,
    LayerVisibility,
    ReportSubfilters,
    RfiSubfilters,
    TimeRange,
    toggle_layer,
    toggle_report_subfilter,
    toggle_rfi_subfilter,
)
from globeview.model.marker import MarkerRecord, MarkerStatus
from globeview.model.view import MapTheme, ProjectionMode


class TestFeatureIngestion:
    """Test Feature.from_geojson normalization."""

    def test_timestamp_parsed_to_naive_utc(self) -> None:
        """Zulu and offset timestamps both become naive UTC."""
        assert parse_timestamp("2024-03-10T08:30:00Z") == datetime(2024, 3, 10, 8, 30)
        assert parse_timestamp("2024-03-10T12:30:00+04:00") == datetime(2024, 3, 10, 8, 30)

    def test_invalid_timestamp_is_none(self) -> None:
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(20240310) is None

    def test_timestamp_falls_back_through_property_names(self) -> None:
        """date_created is used when timestamp is absent."""
        feature = Feature.from_geojson(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [0, 0]},
                "properties": {"id": "R1", "type": "RFI", "date_created": "2023-06-01T12:00:00Z"},
            }
        )
        assert feature.timestamp == datetime(2023, 6, 1, 12, 0)

    def test_list_and_json_text_references_normalize_identically(self) -> None:
        """A JSON array and the same array serialized to text give the same tuple."""
        as_list = parse_id_list(["T1", "T2"])
        as_text = parse_id_list('["T1", "T2"]')
        assert as_list == as_text == ("T1", "T2")

    def test_malformed_reference_text_is_skipped(self) -> None:
        assert parse_id_list('["T1", ') == ()

    def test_unparseable_entries_are_skipped(self) -> None:
        """Non-string entries are dropped, valid ones are kept in order."""
        assert parse_id_list(["T1", None, {"id": "x"}, 7, True, " T2 "]) == ("T1", "7", "T2")

    def test_single_id_string_becomes_one_tuple_entry(self) -> None:
        assert parse_id_list("T9") == ("T9",)

    def test_missing_id_gets_positional_id(self) -> None:
        feature = Feature.from_geojson(
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {"type": "Target"}},
            index=4,
        )
        assert feature.id == "Target-4"
        assert feature.type == FeatureType.TARGET

    def test_unknown_type_is_none(self) -> None:
        feature = Feature.from_geojson(
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {"type": "Alien"}}
        )
        assert feature.type is None
        assert feature.name == f"Feature {feature.id}"

    def test_polygon_center_is_bbox_center(self, sample_collection: FeatureCollection) -> None:
        rfi_2 = sample_collection.get("RFI-2")
        assert rfi_2 is not None and rfi_2.is_polygon
        lon, lat = rfi_2.center()
        assert lon == pytest.approx(54.45)
        assert lat == pytest.approx(24.50)


class TestFeatureCollection:
    """Test FeatureCollection parsing and lookup."""

    def test_parses_sample(self, sample_collection: FeatureCollection) -> None:
        assert len(sample_collection) == 9
        assert len(sample_collection.of_type(FeatureType.RFI)) == 3
        assert len(sample_collection.of_type(FeatureType.TARGET)) == 3

    def test_json_text_refs_available_after_ingestion(self, sample_collection: FeatureCollection) -> None:
        rfi_2 = sample_collection.get("RFI-2")
        assert rfi_2 is not None
        assert rfi_2.refs("assigned_targets") == ("TGT-3",)

    def test_rejects_non_collection(self) -> None:
        with pytest.raises(ValueError, match="FeatureCollection"):
            FeatureCollection.from_geojson({"type": "Feature"})

    def test_to_geojson_keeps_ids(self, sample_collection: FeatureCollection) -> None:
        data = sample_collection.to_geojson()
        assert data["type"] == "FeatureCollection"
        assert [f["properties"]["id"] for f in data["features"]][:2] == ["RFI-1", "RFI-2"]


class TestTimeRange:
    def test_start_after_end_rejected(self) -> None:
        with pytest.raises(ValueError):
            TimeRange(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))

    def test_bounds_inclusive(self) -> None:
        window = TimeRange(start=datetime(2024, 1, 1), end=datetime(2024, 12, 31))
        assert window.contains(datetime(2024, 1, 1))
        assert window.contains(datetime(2024, 12, 31))
        assert not window.contains(datetime(2025, 1, 1))

    def test_aware_bounds_normalized_to_naive_utc(self) -> None:
        gulf = timezone(timedelta(hours=4))
        window = TimeRange(
            start=datetime(2024, 1, 1, 4, 0, tzinfo=gulf),
            end=datetime(2024, 12, 31, tzinfo=timezone.utc),
        )
        assert window.start == datetime(2024, 1, 1)
        assert window.end.tzinfo is None
        assert window.contains(parse_timestamp("2024-03-10T08:30:00Z"))


class TestSubfilterCascade:
    """Test layer toggles cascading into subfilters and back."""

    def test_hiding_reports_disables_report_subfilters(self) -> None:
        visibility, criteria = toggle_layer(LayerVisibility(), FilterCriteria(), "reports", False)
        assert not visibility.reports
        assert criteria.report_subfilters == ReportSubfilters(system=False, legacy=False)

    def test_showing_rfi_enables_all_priorities(self) -> None:
        criteria = FilterCriteria(rfi_subfilters=RfiSubfilters(high=False, medium=False, low=False))
        visibility, criteria = toggle_layer(LayerVisibility(rfi=False), criteria, "rfi", True)
        assert visibility.rfi
        assert criteria.rfi_subfilters == RfiSubfilters()

    def test_last_subfilter_off_hides_category(self) -> None:
        visibility, criteria = toggle_report_subfilter(LayerVisibility(), FilterCriteria(), "system", False)
        assert visibility.reports
        visibility, criteria = toggle_report_subfilter(visibility, criteria, "legacy", False)
        assert not visibility.reports

    def test_subfilter_on_shows_hidden_category(self) -> None:
        visibility, criteria = toggle_layer(LayerVisibility(), FilterCriteria(), "rfi", False)
        visibility, criteria = toggle_rfi_subfilter(visibility, criteria, "high", True)
        assert visibility.rfi
        assert criteria.rfi_subfilters == RfiSubfilters(high=True, medium=False, low=False)

    def test_heatmap_toggle_leaves_criteria_alone(self) -> None:
        criteria = FilterCriteria()
        visibility, new_criteria = toggle_layer(LayerVisibility(), criteria, "heatmap", True)
        assert visibility.heatmap
        assert new_criteria is criteria

    def test_unknown_names_rejected(self) -> None:
        with pytest.raises(ValueError):
            toggle_layer(LayerVisibility(), FilterCriteria(), "nope", True)
        with pytest.raises(ValueError):
            toggle_report_subfilter(LayerVisibility(), FilterCriteria(), "manual", True)
        with pytest.raises(ValueError):
            toggle_rfi_subfilter(LayerVisibility(), FilterCriteria(), "urgent", True)

    def test_unknown_tags_always_allowed(self) -> None:
        assert ReportSubfilters(system=False, legacy=False).allows(None)
        assert RfiSubfilters(high=False, medium=False, low=False).allows("Critical")


class TestViewTypes:
    def test_theme_next_wraps_around(self) -> None:
        themes = MapTheme.all()
        assert themes[0].next() == themes[1]
        assert themes[-1].next() == themes[0]

    def test_theme_by_id(self) -> None:
        assert MapTheme.by_id("light").name == "Light"
        assert MapTheme.by_id("missing") is None

    def test_projection_opposite(self) -> None:
        assert ProjectionMode.FLAT.opposite == ProjectionMode.GLOBE
        assert ProjectionMode.GLOBE.opposite == ProjectionMode.FLAT

    def test_marker_record_accessors(self) -> None:
        record = MarkerRecord(id=1, coordinates=(54.1, 24.2), status=MarkerStatus.OFFLINE)
        assert (record.lon, record.lat) == (54.1, 24.2)
        assert not record.is_active
        assert not record.selected
