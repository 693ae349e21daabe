"""Relationship traversal for feature highlighting.

Each feature type names the cross-reference properties that point at related
features:

    RFI    -> assigned_targets, related_reports
    Report -> related_targets, related_rfis
    Target -> related_rfis, related_reports
    Layer  -> (none)

Traversal is one hop: the related features' own references are not followed.
"""

from globeview.model.feature import Feature, FeatureType

RELATIONSHIP_PROPERTIES: dict[FeatureType, tuple[str, ...]] = {
    FeatureType.RFI: ("assigned_targets", "related_reports"),
    FeatureType.REPORT: ("related_targets", "related_rfis"),
    FeatureType.TARGET: ("related_rfis", "related_reports"),
    FeatureType.LAYER: (),
}


def related_ids(feature: Feature) -> frozenset[str]:
    """The feature's own id plus every id its type-specific references name."""
    ids = {feature.id}
    for prop in RELATIONSHIP_PROPERTIES.get(feature.type, ()):
        ids.update(feature.refs(prop))
    return frozenset(ids)
