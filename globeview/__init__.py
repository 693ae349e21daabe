"""Globeview - map layer orchestration and feature-relationship highlighting.

An interactive intelligence map dashboard built around one engine:
- Continuously re-filtered GeoJSON dataset fed to a rendering surface
- Icon, layer and click-handler setup that survives destructive style changes
- Flat / globe projection switching with visual continuity
- Cross-feature relationship highlighting on selection

Modules:
    model: Data structures (Feature, FilterCriteria, SelectionState, MarkerRecord)
    core: Pure logic (dataset cache, filtering, relationships, search, timeline)
    surface: Rendering-surface contract and the pydeck-backed DeckSurface
    engine: Registry, style switch, projection, highlighting, markers, MapEngine
    ui: Streamlit interface components (sidebar, map click handling)

Example:
    from globeview.engine import MapEngine
    engine = MapEngine()
    await engine.initialize()
"""
