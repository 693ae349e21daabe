"""Selection state owned by the relationship highlighting engine."""

from dataclasses import dataclass
from typing import Optional

from globeview.model.feature import Feature


@dataclass(frozen=True)
class SelectionState:
    """Currently selected feature and the ids emphasized alongside it.

    related_ids always contains selected_feature_id when a feature is selected.
    """

    selected_feature_id: Optional[str] = None
    related_ids: frozenset[str] = frozenset()
    feature: Optional[Feature] = None

    @staticmethod
    def empty() -> "SelectionState":
        return SelectionState()

    @property
    def is_empty(self) -> bool:
        return self.selected_feature_id is None

    def is_related(self, feature_id: str) -> bool:
        return feature_id in self.related_ids
