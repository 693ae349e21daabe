"""Pointer coordinate formatting (decimal degrees or degrees/minutes/seconds)."""

import math
from enum import Enum


class CoordinateSystem(Enum):
    DD = "dd"
    DMS = "dms"

    def toggled(self) -> "CoordinateSystem":
        return CoordinateSystem.DMS if self == CoordinateSystem.DD else CoordinateSystem.DD


def to_dms(decimal: float, is_longitude: bool) -> str:
    """Format one ordinate as D°M'S.s"H, e.g. 54°22'38.3"E."""
    value = abs(decimal)
    degrees = math.floor(value)
    minutes = math.floor((value - degrees) * 60)
    seconds = ((value - degrees) * 60 - minutes) * 60
    if is_longitude:
        hemisphere = "E" if decimal >= 0 else "W"
    else:
        hemisphere = "N" if decimal >= 0 else "S"
    return f"{degrees}°{minutes}'{seconds:.1f}\"{hemisphere}"


def format_coordinates(lon: float, lat: float, system: CoordinateSystem = CoordinateSystem.DD) -> str:
    if system == CoordinateSystem.DMS:
        return f"{to_dms(lon, is_longitude=True)} {to_dms(lat, is_longitude=False)}"
    return f"{lon:.6f}, {lat:.6f}"
