"""Layer descriptors - one per visual category.

Each descriptor carries the construction baseline of its layer. Relationship
highlighting overrides some of these values and restores them exactly on
clear, so the baseline lives here and nowhere else.

Z-order (back to front): heatmap → boundary fill → boundary outline →
RFI polygons → RFI points → report points → target points

Symbol layers have a circle fallback (same filter and visibility) for when
the renderer cannot place their icons.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from globeview.constants import LayerConfig, StyleConfig
from globeview.model.feature import FeatureType, GeometryType
from globeview.surface.base import LayerFilter, LayerKind, LayerSpec


@dataclass(frozen=True)
class LayerDescriptor:
    """Static definition of one managed layer.

    Attributes:
        id: Layer id on the surface
        kind: Renderer layer type
        filter: Type/geometry predicate
        visibility_key: LayerVisibility field controlling this layer
        color: Base color, also used by the circle fallback
        paint: Baseline paint properties
        layout: Baseline layout properties (without visibility)
        icon: Image name for symbol layers
    """

    id: str
    kind: LayerKind
    filter: LayerFilter
    visibility_key: str
    color: str
    paint: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)
    icon: Optional[str] = None

    @property
    def interactive(self) -> bool:
        return self.id in LayerConfig.INTERACTIVE_LAYERS

    def build(self, source_id: str, visible: bool) -> LayerSpec:
        """Fresh LayerSpec carrying the baseline values."""
        return LayerSpec(
            id=self.id,
            kind=self.kind,
            source=source_id,
            filter=self.filter,
            paint=dict(self.paint),
            layout={**self.layout, "visibility": "visible" if visible else "none"},
        )

    def as_circle(self) -> "LayerDescriptor":
        """Circle-layer stand-in for a symbol layer."""
        if self.kind != LayerKind.SYMBOL:
            return self
        return LayerDescriptor(
            id=self.id,
            kind=LayerKind.CIRCLE,
            filter=self.filter,
            visibility_key=self.visibility_key,
            color=self.color,
            paint={
                "circle-color": self.color,
                "circle-radius": StyleConfig.CIRCLE_RADIUS,
                "circle-opacity": StyleConfig.CIRCLE_OPACITY,
            },
        )

    def for_kind(self, kind: LayerKind) -> "LayerDescriptor":
        """Descriptor matching the layer kind actually installed."""
        if kind == self.kind:
            return self
        if kind == LayerKind.CIRCLE:
            return self.as_circle()
        raise ValueError(f"Layer {self.id} cannot be installed as {kind.value}")


def _symbol(layer_id: str, feature_type: FeatureType, visibility_key: str, color: str, icon: str) -> LayerDescriptor:
    return LayerDescriptor(
        id=layer_id,
        kind=LayerKind.SYMBOL,
        filter=LayerFilter(feature_type=feature_type, geometry=GeometryType.POINT),
        visibility_key=visibility_key,
        color=color,
        paint={"icon-color": color, "icon-opacity": StyleConfig.ICON_OPACITY},
        layout={"icon-image": icon, "icon-size": StyleConfig.ICON_SIZE, "icon-allow-overlap": True},
        icon=icon,
    )


HEATMAP = LayerDescriptor(
    id=LayerConfig.HEATMAP,
    kind=LayerKind.HEATMAP,
    filter=LayerFilter(geometry=GeometryType.POINT),
    visibility_key=LayerConfig.VISIBILITY_HEATMAP,
    color=StyleConfig.RFI_COLOR,
    paint={
        "heatmap-radius": StyleConfig.HEATMAP_RADIUS,
        "heatmap-intensity": StyleConfig.HEATMAP_INTENSITY,
        "heatmap-opacity": StyleConfig.HEATMAP_OPACITY,
    },
)

BOUNDARY_FILL = LayerDescriptor(
    id=LayerConfig.BOUNDARY_FILL,
    kind=LayerKind.FILL,
    filter=LayerFilter(feature_type=FeatureType.LAYER, geometry=GeometryType.POLYGON),
    visibility_key=LayerConfig.VISIBILITY_LAYERS,
    color=StyleConfig.BOUNDARY_COLOR,
    paint={
        "fill-color": StyleConfig.BOUNDARY_COLOR,
        "fill-opacity": StyleConfig.BOUNDARY_FILL_OPACITY,
        "fill-outline-color": StyleConfig.BOUNDARY_COLOR,
    },
)

BOUNDARY_OUTLINE = LayerDescriptor(
    id=LayerConfig.BOUNDARY_OUTLINE,
    kind=LayerKind.LINE,
    filter=LayerFilter(feature_type=FeatureType.LAYER, geometry=GeometryType.POLYGON),
    visibility_key=LayerConfig.VISIBILITY_LAYERS,
    color=StyleConfig.BOUNDARY_COLOR,
    paint={
        "line-color": StyleConfig.BOUNDARY_COLOR,
        "line-width": StyleConfig.BOUNDARY_LINE_WIDTH,
        "line-opacity": StyleConfig.BOUNDARY_LINE_OPACITY,
    },
)

RFI_POLYGONS = LayerDescriptor(
    id=LayerConfig.RFI_POLYGONS,
    kind=LayerKind.FILL,
    filter=LayerFilter(feature_type=FeatureType.RFI, geometry=GeometryType.POLYGON),
    visibility_key=LayerConfig.VISIBILITY_RFI,
    color=StyleConfig.RFI_COLOR,
    paint={
        "fill-color": StyleConfig.RFI_COLOR,
        "fill-opacity": StyleConfig.RFI_FILL_OPACITY,
        "fill-outline-color": StyleConfig.RFI_COLOR,
    },
)

RFI_POINTS = _symbol(
    LayerConfig.RFI_POINTS, FeatureType.RFI, LayerConfig.VISIBILITY_RFI, StyleConfig.RFI_COLOR, LayerConfig.RFI_ICON
)
REPORT_POINTS = _symbol(
    LayerConfig.REPORT_POINTS,
    FeatureType.REPORT,
    LayerConfig.VISIBILITY_REPORTS,
    StyleConfig.REPORT_COLOR,
    LayerConfig.REPORT_ICON,
)
TARGET_POINTS = _symbol(
    LayerConfig.TARGET_POINTS,
    FeatureType.TARGET,
    LayerConfig.VISIBILITY_TARGETS,
    StyleConfig.TARGET_COLOR,
    LayerConfig.TARGET_ICON,
)

# Install order = draw order (bottom first)
LAYER_DESCRIPTORS: tuple[LayerDescriptor, ...] = (
    HEATMAP,
    BOUNDARY_FILL,
    BOUNDARY_OUTLINE,
    RFI_POLYGONS,
    RFI_POINTS,
    REPORT_POINTS,
    TARGET_POINTS,
)


def get_descriptor(layer_id: str) -> Optional[LayerDescriptor]:
    return next((descriptor for descriptor in LAYER_DESCRIPTORS if descriptor.id == layer_id), None)
