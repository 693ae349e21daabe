"""Relationship highlighting - emphasizes a selected feature and its related features.

Selecting a feature computes its related ids (one hop, see core.relationships)
and rewrites paint/layout properties on the managed layers as IdCase values:

    symbol  icon-opacity  match 1.0 / faded 0.2    icon-size    base * 1.5 / base
    circle  circle-opacity match 1.0 / faded 0.2   circle-radius base * 1.5 / base
    fill    fill-opacity  0.7 / 0.05               fill-outline-color bright / dim
    line    line-color    bright / dim             line-opacity 1.0 / faded

clear() writes the construction baselines back, so select -> clear leaves
every property equal to what the layer was built with.
"""

import logging
from typing import Any

from globeview.constants import HighlightConfig
from globeview.core.relationships import related_ids
from globeview.engine.layers import LAYER_DESCRIPTORS, LayerDescriptor
from globeview.model.feature import Feature
from globeview.model.selection import SelectionState
from globeview.surface.base import IdCase, LayerKind, MapSurface

logger = logging.getLogger(__name__)

# (property, is_layout) per layer kind
_EMPHASIS_PROPERTIES: dict[LayerKind, tuple[tuple[str, bool], ...]] = {
    LayerKind.SYMBOL: (("icon-opacity", False), ("icon-size", True)),
    LayerKind.CIRCLE: (("circle-opacity", False), ("circle-radius", False)),
    LayerKind.FILL: (("fill-opacity", False), ("fill-outline-color", False)),
    LayerKind.LINE: (("line-color", False), ("line-opacity", False)),
}


def _baseline(descriptor: LayerDescriptor, name: str, is_layout: bool) -> Any:
    return (descriptor.layout if is_layout else descriptor.paint).get(name)


def _emphasis(descriptor: LayerDescriptor, name: str, is_layout: bool, ids: frozenset[str]) -> IdCase:
    base = _baseline(descriptor, name, is_layout)
    if name in ("icon-size", "circle-radius"):
        return IdCase(ids=ids, match=base * HighlightConfig.ICON_SIZE_MULTIPLIER, otherwise=base)
    if name in ("icon-opacity", "circle-opacity", "line-opacity"):
        return IdCase(ids=ids, match=HighlightConfig.MATCH_OPACITY, otherwise=HighlightConfig.FADED_OPACITY)
    if name == "fill-opacity":
        return IdCase(ids=ids, match=HighlightConfig.MATCH_FILL_OPACITY, otherwise=HighlightConfig.FADED_FILL_OPACITY)
    # Outline / line colors
    return IdCase(ids=ids, match=HighlightConfig.BRIGHT_OUTLINE_COLOR, otherwise=HighlightConfig.DIM_OUTLINE_COLOR)


class RelationshipHighlighter:
    """Owns SelectionState and projects it onto the managed layers.

    Example:
        highlighter = RelationshipHighlighter()
        highlighter.select(feature)
        highlighter.apply(surface)
    """

    def __init__(self, descriptors: tuple[LayerDescriptor, ...] = LAYER_DESCRIPTORS) -> None:
        self.descriptors = descriptors
        self.selection = SelectionState.empty()

    def select(self, feature: Feature) -> SelectionState:
        self.selection = SelectionState(
            selected_feature_id=feature.id,
            related_ids=related_ids(feature),
            feature=feature,
        )
        logger.debug(f"Selected {feature.id}, related: {sorted(self.selection.related_ids)}")
        return self.selection

    def clear(self) -> SelectionState:
        self.selection = SelectionState.empty()
        return self.selection

    def apply(self, surface: MapSurface) -> None:
        """Write emphasis (or baselines when nothing is selected) to installed layers."""
        ids = self.selection.related_ids
        for descriptor in self.descriptors:
            spec = surface.get_layer(descriptor.id)
            if spec is None:
                continue
            installed = descriptor.for_kind(spec.kind)
            for name, is_layout in _EMPHASIS_PROPERTIES.get(spec.kind, ()):
                if self.selection.is_empty:
                    value = _baseline(installed, name, is_layout)
                else:
                    value = _emphasis(installed, name, is_layout, ids)
                if is_layout:
                    surface.set_layout_property(descriptor.id, name, value)
                else:
                    surface.set_paint_property(descriptor.id, name, value)
