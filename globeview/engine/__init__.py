"""Map layer orchestration engine.

Core Components:
- layers.py: LayerDescriptor per visual category (baselines live here)
- registry.py: LayerRuntimeRegistry (idempotent install per surface generation)
- click_dispatch.py: point-over-polygon click resolution
- highlighting.py: RelationshipHighlighter (select / clear / apply)
- style_switch.py: StyleSwitchOrchestrator (busy flag, timeout, one retry)
- projection.py: ProjectionStateMachine + ProjectionTransitionController
- markers.py: MarkerLifecycleManager
- controller.py: MapEngine facade + EngineState
"""

from globeview.engine.controller import EngineState, MapEngine
from globeview.engine.highlighting import RelationshipHighlighter
from globeview.engine.markers import MarkerLifecycleManager
from globeview.engine.projection import ProjectionStateMachine, ProjectionTransitionController
from globeview.engine.registry import LayerRuntimeRegistry, LayerRuntimeState
from globeview.engine.style_switch import StyleSwitchOrchestrator, StyleSwitchOutcome

__all__ = [
    "MapEngine",
    "EngineState",
    "LayerRuntimeRegistry",
    "LayerRuntimeState",
    "RelationshipHighlighter",
    "StyleSwitchOrchestrator",
    "StyleSwitchOutcome",
    "ProjectionStateMachine",
    "ProjectionTransitionController",
    "MarkerLifecycleManager",
]
