"""Configuration constants for Globeview.

All configurable parameters are centralized here for easy tuning.
Components take these values as keyword defaults so tests can override them.

Classes:
    AppConfig: UI application settings
    DataConfig: Dataset location and fetch settings
    MapConfig: Default camera parameters
    ThemeConfig: Available basemap themes
    LayerConfig: Layer ids, partitions and icons
    StyleConfig: Baseline layer colors, opacities and sizes
    HighlightConfig: Relationship emphasis values
    StyleSwitchConfig: Theme switch timeout and retry
    ProjectionConfig: Fog and camera parameters for flat/globe transitions
    ClickConfig: Click picking and handler attachment
    MarkerConfig: Fixed-asset marker styling
    TimelineConfig: Time filter slider bounds and presets
"""

from datetime import datetime
from pathlib import Path

# Package root directory (where globeview/ lives)
PACKAGE_DIR = Path(__file__).parent

# Project root directory (parent of globeview/)
PROJECT_ROOT = PACKAGE_DIR.parent

# Data directory outside package
DATA_DIR = PROJECT_ROOT / "data"


class AppConfig:
    """UI application settings."""

    TITLE = "Globeview - Intelligence Map Dashboard"
    ICON = "🌍"
    LAYOUT = "wide"


class DataConfig:
    """Dataset location and fetch settings."""

    # GeoJSON FeatureCollection, local path or http(s) URL
    DATASET_PATH = DATA_DIR / "features.geojson"
    # Fixed assets shown as markers (JSON list of {id, coordinates, status, name})
    ASSETS_PATH = DATA_DIR / "assets.json"
    FETCH_TIMEOUT_S = 30

    # Feature property names
    TIMESTAMP_PROPERTIES = ("timestamp", "date_created", "acquisition_date")
    CROSS_REFERENCE_PROPERTIES = ("assigned_targets", "related_reports", "related_targets", "related_rfis")


class MapConfig:
    """Default camera parameters."""

    # Initial center: Abu Dhabi
    START_CENTER_LON = 54.3773
    START_CENTER_LAT = 24.4539
    START_ZOOM = 8.0
    DEFAULT_PITCH = 0.0
    DEFAULT_BEARING = 0.0

    # Ease in after first load
    INTRO_ZOOM = 11.0
    INTRO_DURATION_MS = 2000

    # Fly-to zoom levels
    FEATURE_ZOOM = 16.0
    PLACE_ZOOM = 12.0
    MARKER_ZOOM = 13.0
    FLY_DURATION_MS = 1000

    # Surface "load" signal
    LOAD_TIMEOUT_S = 15.0

    MAP_HEIGHT_PX = 720


class ThemeConfig:
    """Available basemap themes.

    Carto GL styles need no API key. The topographic theme is an inline
    Mapbox GL raster style built from OpenTopoMap tiles.
    """

    OPENTOPOMAP_TILES_ABC = [
        "https://a.tile.opentopomap.org/{z}/{x}/{y}.png",
        "https://b.tile.opentopomap.org/{z}/{x}/{y}.png",
        "https://c.tile.opentopomap.org/{z}/{x}/{y}.png",
    ]

    OPENTOPOMAP_STYLE: dict[str, object] = {
        "version": 8,
        "sources": {
            "opentopomap": {
                "type": "raster",
                "tiles": OPENTOPOMAP_TILES_ABC,
                "tileSize": 256,
                "attribution": "© OpenStreetMap contributors, OpenTopoMap (CC-BY-SA)",
            }
        },
        "layers": [
            {
                "id": "opentopomap",
                "type": "raster",
                "source": "opentopomap",
                "minzoom": 0,
                "maxzoom": 17,
            }
        ],
    }

    # (id, name, style)
    THEMES = [
        ("dark", "Dark", "https://basemaps.cartocdn.com/gl/dark-matter-gl-style/style.json"),
        ("light", "Light", "https://basemaps.cartocdn.com/gl/positron-gl-style/style.json"),
        ("voyager", "Voyager", "https://basemaps.cartocdn.com/gl/voyager-gl-style/style.json"),
        ("topo", "Topographic", OPENTOPOMAP_STYLE),
    ]
    DEFAULT_THEME_INDEX = 0


class LayerConfig:
    """Layer ids, category partitions and icon assets."""

    SOURCE_ID = "features"

    HEATMAP = "feature-heatmap"
    RFI_POINTS = "rfi-points"
    RFI_POLYGONS = "rfi-polygons"
    REPORT_POINTS = "report-points"
    TARGET_POINTS = "target-points"
    BOUNDARY_FILL = "boundary-fill"
    BOUNDARY_OUTLINE = "boundary-outline"

    # Click priority: point hits beat polygon hits
    POINT_LAYERS = (RFI_POINTS, REPORT_POINTS, TARGET_POINTS)
    POLYGON_LAYERS = (RFI_POLYGONS, BOUNDARY_FILL)
    INTERACTIVE_LAYERS = POINT_LAYERS + POLYGON_LAYERS

    # Visibility keys (match LayerVisibility fields)
    VISIBILITY_HEATMAP = "heatmap"
    VISIBILITY_RFI = "rfi"
    VISIBILITY_REPORTS = "reports"
    VISIBILITY_TARGETS = "targets"
    VISIBILITY_LAYERS = "layers"

    # Icons (name -> url); failed loads fall back to FALLBACK_ICON
    RFI_ICON = "rfi-icon"
    REPORT_ICON = "report-icon"
    TARGET_ICON = "target-icon"
    FALLBACK_ICON = "fallback-marker"
    ICON_URLS = {
        RFI_ICON: "https://raw.githubusercontent.com/lucide-icons/lucide/main/icons/shield.svg",
        REPORT_ICON: "https://raw.githubusercontent.com/lucide-icons/lucide/main/icons/file-text.svg",
        TARGET_ICON: "https://raw.githubusercontent.com/lucide-icons/lucide/main/icons/target.svg",
    }
    FALLBACK_ICON_URL = "https://raw.githubusercontent.com/lucide-icons/lucide/main/icons/map-pin.svg"
    ICON_PIXEL_SIZE = 48


class StyleConfig:
    """Baseline layer styling (the values restored when highlighting clears)."""

    RFI_COLOR = "#6366F1"  # indigo-500
    REPORT_COLOR = "#10B981"  # emerald-500
    TARGET_COLOR = "#F59E0B"  # amber-500
    BOUNDARY_COLOR = "#94A3B8"  # slate-400

    ICON_OPACITY = 1.0
    ICON_SIZE = 0.8
    CIRCLE_RADIUS = 6.0
    CIRCLE_OPACITY = 0.9

    RFI_FILL_OPACITY = 0.3
    BOUNDARY_FILL_OPACITY = 0.15
    BOUNDARY_LINE_WIDTH = 1.5
    BOUNDARY_LINE_OPACITY = 0.8

    HEATMAP_RADIUS = 30
    HEATMAP_INTENSITY = 1.0
    HEATMAP_OPACITY = 0.7


class HighlightConfig:
    """Emphasis applied by relationship highlighting."""

    MATCH_OPACITY = 1.0
    FADED_OPACITY = 0.2
    ICON_SIZE_MULTIPLIER = 1.5

    MATCH_FILL_OPACITY = 0.7
    FADED_FILL_OPACITY = 0.05
    BRIGHT_OUTLINE_COLOR = "#FFFFFF"
    DIM_OUTLINE_COLOR = "#334155"  # slate-700


class StyleSwitchConfig:
    """Theme switch guard parameters."""

    TIMEOUT_S = 10.0
    RETRY_DELAY_S = 0.5


class ProjectionConfig:
    """Flat/globe transition parameters."""

    GLOBE_FOG = {
        "range": [0.5, 10.0],
        "color": "#FFFFFF",
        "high-color": "#245CDF",
        "space-color": "#000000",
        "horizon-blend": 0.02,
        "star-intensity": 0.6,
    }
    FLAT_FOG = None

    # Entering globe compresses zoom, entering flat expands it
    ZOOM_SHIFT = 2.0
    GLOBE_MIN_ZOOM = 1.0
    GLOBE_MAX_ZOOM = 6.0
    FLAT_MIN_ZOOM = 3.0
    FLAT_MAX_ZOOM = 18.0

    EASE_DURATION_MS = 1200
    SWITCH_FRACTION = 0.5

    # Controls removed before a rebuild tears the surface down
    CONTROLS = ("navigation", "scale")


class ClickConfig:
    """Click picking and handler attachment."""

    PICKING_RADIUS_PX = 8
    HANDLER_ATTACH_DELAY_S = 0.1


class MarkerConfig:
    """Fixed-asset marker styling (selected vs. normal)."""

    ACTIVE_COLOR = "#10B981"
    OFFLINE_COLOR = "#EF4444"

    DOT_SIZE_PX = 10
    DOT_SIZE_SELECTED_PX = 14
    BORDER_WIDTH_PX = 1
    BORDER_WIDTH_SELECTED_PX = 3
    BORDER_COLOR = "#FFFFFF"
    BORDER_COLOR_SELECTED = "#10B981"
    GLOW = "0 0 4px rgba(0,0,0,0.5)"
    GLOW_SELECTED = "0 0 8px rgba(16, 185, 129, 0.8), 0 0 16px rgba(16, 185, 129, 0.4)"

    # Pulse ring (active markers only)
    PULSE_SIZE_PX = 14
    PULSE_SIZE_SELECTED_PX = 20
    PULSE_OPACITY = 0.4
    PULSE_OPACITY_SELECTED = 0.6

    Z_INDEX = 100
    Z_INDEX_SELECTED = 1000


class TimelineConfig:
    """Time filter slider bounds and presets."""

    MIN_DATE = datetime(2020, 1, 1)
    MAX_DATE = datetime(2025, 12, 31)
    PRESETS = [
        "all",
        "today",
        "yesterday",
        "last-week",
        "last-month",
        "last-year",
        "this-year",
        "2024",
        "2023",
        "2022",
    ]
