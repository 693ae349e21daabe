"""Feature - geospatial records rendered by the engine.

A Feature wraps one GeoJSON feature (Point or Polygon) with its properties
normalized at ingestion:
- type: FeatureType discriminant (RFI, Report, Target, Layer)
- timestamp: first parseable of DataConfig.TIMESTAMP_PROPERTIES, naive UTC
- source / priority: Report source tag and RFI priority tag
- references: cross-reference arrays as tuples of ids

Cross-reference values arrive either as a JSON array or as an array
serialized to text ('["T1", "T2"]'). Both become the same tuple here, so
nothing downstream special-cases the encoding. Unparseable entries are
skipped with a warning.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import cached_property
from typing import Any, Iterator, Optional

from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from globeview.constants import DataConfig

logger = logging.getLogger(__name__)


class FeatureType(Enum):
    """Discriminant stored in properties.type."""

    RFI = "RFI"
    REPORT = "Report"
    TARGET = "Target"
    LAYER = "Layer"

    @staticmethod
    def parse(value: Any) -> Optional["FeatureType"]:
        """Return the matching FeatureType or None for unknown values."""
        for member in FeatureType:
            if member.value == value:
                return member
        return None


class GeometryType(Enum):
    POINT = "Point"
    POLYGON = "Polygon"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string to a naive UTC datetime, None if missing or invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_id_list(value: Any, feature_id: str = "", prop: str = "") -> tuple[str, ...]:
    """Normalize a cross-reference value to a tuple of ids.

    Accepts a list, a JSON array serialized to text, or a single id string.
    Entries that are not strings or integers are skipped.
    """
    if value is None or value == "":
        return ()

    if isinstance(value, str):
        text = value.strip()
        if not text.startswith("["):
            return (text,)
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Feature {feature_id}: malformed {prop} value {text!r}, skipping")
            return ()

    if not isinstance(value, (list, tuple)):
        logger.warning(f"Feature {feature_id}: unexpected {prop} type {type(value).__name__}, skipping")
        return ()

    ids = []
    for entry in value:
        if isinstance(entry, bool) or not isinstance(entry, (str, int)):
            logger.warning(f"Feature {feature_id}: skipping unparseable {prop} entry {entry!r}")
            continue
        entry_id = str(entry).strip()
        if entry_id:
            ids.append(entry_id)
    return tuple(ids)


@dataclass(frozen=True)
class Feature:
    """One normalized geospatial record.

    Attributes:
        id: Stable identifier (properties.id, then feature.id, then a positional id)
        type: Discriminant, None for features outside the four known categories
        geometry: Raw GeoJSON geometry dict
        properties: Raw GeoJSON properties (kept for presentational cards)
        timestamp: Naive UTC timestamp or None (Targets usually carry none)
        source: Report source tag ("System" / "Legacy")
        priority: RFI priority tag ("High" / "Medium" / "Low")
        references: Cross-reference property name -> tuple of ids
    """

    id: str
    type: Optional[FeatureType]
    geometry: dict[str, Any]
    properties: dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    source: Optional[str] = None
    priority: Optional[str] = None
    references: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_geojson(cls, data: dict[str, Any], index: int = 0) -> "Feature":
        """Build a Feature from a GeoJSON feature dict."""
        properties = dict(data.get("properties") or {})
        feature_type = FeatureType.parse(properties.get("type"))

        raw_id = properties.get("id", data.get("id"))
        if raw_id is None or raw_id == "":
            prefix = feature_type.value if feature_type else "Feature"
            raw_id = f"{prefix}-{index}"
        feature_id = str(raw_id)

        timestamp = None
        for prop in DataConfig.TIMESTAMP_PROPERTIES:
            timestamp = parse_timestamp(properties.get(prop))
            if timestamp is not None:
                break

        references = {
            prop: parse_id_list(properties.get(prop), feature_id=feature_id, prop=prop)
            for prop in DataConfig.CROSS_REFERENCE_PROPERTIES
            if prop in properties
        }

        return cls(
            id=feature_id,
            type=feature_type,
            geometry=dict(data.get("geometry") or {}),
            properties=properties,
            timestamp=timestamp,
            source=properties.get("source"),
            priority=properties.get("priority"),
            references=references,
        )

    @property
    def geometry_type(self) -> Optional[GeometryType]:
        for member in GeometryType:
            if member.value == self.geometry.get("type"):
                return member
        return None

    @property
    def is_point(self) -> bool:
        return self.geometry_type == GeometryType.POINT

    @property
    def is_polygon(self) -> bool:
        return self.geometry_type == GeometryType.POLYGON

    @cached_property
    def shape(self) -> BaseGeometry:
        """Shapely geometry for hit-testing and centering."""
        return shape(self.geometry)

    @property
    def name(self) -> str:
        props = self.properties
        label = props.get("name") or props.get("title") or props.get("target_name") or props.get("layer_name")
        if label:
            return str(label)
        type_name = self.type.value if self.type else "Feature"
        return f"{type_name} {self.id}"

    def refs(self, prop: str) -> tuple[str, ...]:
        """Cross-reference ids stored under a property name (empty if absent)."""
        return self.references.get(prop, ())

    def center(self) -> tuple[float, float]:
        """(lon, lat) of a point, or the bounding-box center of a polygon."""
        if self.is_point:
            lon, lat = self.geometry["coordinates"][:2]
            return (float(lon), float(lat))
        min_x, min_y, max_x, max_y = self.shape.bounds
        return ((min_x + max_x) / 2, (min_y + max_y) / 2)

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "geometry": self.geometry,
            "properties": {**self.properties, "id": self.id},
        }


@dataclass(frozen=True)
class FeatureCollection:
    """Immutable ordered collection of features.

    Filtering always builds a new FeatureCollection, so an identity check is
    enough to tell whether derived data changed.
    """

    features: tuple[Feature, ...] = ()

    @classmethod
    def from_geojson(cls, data: dict[str, Any]) -> "FeatureCollection":
        """Build from a GeoJSON FeatureCollection dict."""
        if data.get("type") != "FeatureCollection":
            raise ValueError(f"Expected a GeoJSON FeatureCollection, got type={data.get('type')!r}")
        raw_features = data.get("features") or []
        return cls(features=tuple(Feature.from_geojson(item, index=i) for i, item in enumerate(raw_features)))

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)

    @cached_property
    def _index(self) -> dict[str, Feature]:
        return {feature.id: feature for feature in self.features}

    def get(self, feature_id: str) -> Optional[Feature]:
        return self._index.get(feature_id)

    def of_type(self, feature_type: FeatureType) -> list[Feature]:
        return [feature for feature in self.features if feature.type == feature_type]

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "FeatureCollection", "features": [feature.to_geojson() for feature in self.features]}
