"""Local search over the base dataset."""

from dataclasses import dataclass

from globeview.model.feature import FeatureCollection, FeatureType


@dataclass(frozen=True)
class SearchResult:
    """One search hit, centered on the feature (polygon bbox center)."""

    id: str
    type: FeatureType
    name: str
    coordinates: tuple[float, float]


def search_features(collection: FeatureCollection, query: str, limit: int = 10) -> list[SearchResult]:
    """Case-insensitive match over name, type, id and description."""
    text = query.strip().lower()
    if not text:
        return []

    results = []
    for feature in collection:
        if feature.type is None:
            continue
        haystack = (
            feature.name,
            feature.type.value,
            feature.id,
            str(feature.properties.get("description") or ""),
        )
        if any(text in value.lower() for value in haystack):
            results.append(
                SearchResult(
                    id=feature.id,
                    type=feature.type,
                    name=feature.name,
                    coordinates=feature.center(),
                )
            )
            if len(results) >= limit:
                break
    return results
