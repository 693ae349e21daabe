"""Marker records for fixed-point assets (cameras, sensors).

Markers live outside the filtered data layers. The marker lifecycle manager
owns their on-surface representation.
"""

from dataclasses import dataclass
from enum import Enum


class MarkerStatus(Enum):
    ACTIVE = "active"
    OFFLINE = "offline"


@dataclass(frozen=True)
class MarkerRecord:
    """One fixed asset.

    Attributes:
        id: Asset identifier
        coordinates: (lon, lat)
        status: ACTIVE markers get a pulse ring
        selected: Emphasis flag, maintained by the marker lifecycle manager
        name: Display label
    """

    id: int | str
    coordinates: tuple[float, float]
    status: MarkerStatus = MarkerStatus.ACTIVE
    selected: bool = False
    name: str = ""

    @property
    def lon(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    @property
    def is_active(self) -> bool:
        return self.status == MarkerStatus.ACTIVE
