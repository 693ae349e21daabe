"""Click dispatch - resolves a map click to the feature to select.

Priority:
1. Point layers (RFI / Report / Target points): small targets drawn on top
2. Polygon layers (RFI polygons, boundary fill)
Within the winning group the topmost hit wins. No hit means "clear selection".
"""

import logging
from typing import Optional

from globeview.constants import LayerConfig
from globeview.model.feature import Feature
from globeview.surface.base import MapSurface, RenderedFeature

logger = logging.getLogger(__name__)


def pick_feature(
    hits: list[RenderedFeature],
    point_layers: tuple[str, ...] = LayerConfig.POINT_LAYERS,
    polygon_layers: tuple[str, ...] = LayerConfig.POLYGON_LAYERS,
) -> Optional[Feature]:
    """Choose the feature to select from hits ordered topmost first."""
    for group in (point_layers, polygon_layers):
        for hit in hits:
            if hit.layer_id in group:
                return hit.feature
    return None


def feature_at(surface: MapSurface, lon: float, lat: float) -> Optional[Feature]:
    """Feature under (lon, lat) across the installed interactive layers."""
    layers = [layer_id for layer_id in LayerConfig.INTERACTIVE_LAYERS if surface.has_layer(layer_id)]
    if not layers:
        return None

    hits = surface.query_rendered_features(lon, lat, layers)
    feature = pick_feature(hits)
    if feature is None:
        logger.debug(f"Click at ({lon:.5f}, {lat:.5f}) hit nothing")
    else:
        logger.debug(f"Click at ({lon:.5f}, {lat:.5f}) picked {feature.id} from {len(hits)} hits")
    return feature
