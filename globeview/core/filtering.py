"""Filtering pipeline - base collection + criteria -> derived collection.

Pure and deterministic. Rules, applied in order:
1. With a time range set, drop non-Target features stamped outside it.
   Targets and unstamped features are always kept.
2. Drop Reports whose source subfilter is off.
3. Drop RFIs whose priority subfilter is off.

The result is always a new FeatureCollection, even when nothing was dropped,
so the surface sees a changed reference and replaces its data source.
"""

from globeview.model.feature import Feature, FeatureCollection, FeatureType
from globeview.model.filters import FilterCriteria


def passes_time_filter(feature: Feature, criteria: FilterCriteria) -> bool:
    if criteria.time_range is None:
        return True
    if feature.type == FeatureType.TARGET or feature.timestamp is None:
        return True
    return criteria.time_range.contains(feature.timestamp)


def passes_subfilters(feature: Feature, criteria: FilterCriteria) -> bool:
    if feature.type == FeatureType.REPORT:
        return criteria.report_subfilters.allows(feature.source)
    if feature.type == FeatureType.RFI:
        return criteria.rfi_subfilters.allows(feature.priority)
    return True


def derive(base: FeatureCollection, criteria: FilterCriteria) -> FeatureCollection:
    """Apply criteria to the cached base collection without mutating it."""
    return FeatureCollection(
        features=tuple(
            feature
            for feature in base
            if passes_time_filter(feature, criteria) and passes_subfilters(feature, criteria)
        )
    )
