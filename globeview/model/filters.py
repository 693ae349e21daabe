"""Filter criteria and layer visibility set by the UI collaborator.

FilterCriteria feeds the filtering pipeline. LayerVisibility decides which
layers are shown. Both are frozen and replaced wholesale on change.

Subfilter cascade (LayerVisibility.toggle_* helpers):
    - Turning a category off turns all of its subfilters off
    - Turning a category on turns all of its subfilters on
    - Turning every subfilter off hides the category
    - Turning any subfilter on while the category is hidden shows it
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from globeview.constants import LayerConfig


@dataclass(frozen=True)
class TimeRange:
    """Inclusive [start, end] window."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        # Feature timestamps are naive UTC
        for name in ("start", "end"):
            value = getattr(self, name)
            if value.tzinfo is not None:
                object.__setattr__(self, name, value.astimezone(timezone.utc).replace(tzinfo=None))
        if self.start > self.end:
            raise ValueError(f"TimeRange start {self.start} is after end {self.end}")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class ReportSubfilters:
    system: bool = True
    legacy: bool = True

    def allows(self, source: Optional[str]) -> bool:
        """False only for a known source tag whose flag is off."""
        if source == "System":
            return self.system
        if source == "Legacy":
            return self.legacy
        return True

    def any_enabled(self) -> bool:
        return self.system or self.legacy


@dataclass(frozen=True)
class RfiSubfilters:
    high: bool = True
    medium: bool = True
    low: bool = True

    def allows(self, priority: Optional[str]) -> bool:
        """False only for a known priority tag whose flag is off."""
        if priority == "High":
            return self.high
        if priority == "Medium":
            return self.medium
        if priority == "Low":
            return self.low
        return True

    def any_enabled(self) -> bool:
        return self.high or self.medium or self.low


@dataclass(frozen=True)
class FilterCriteria:
    """Everything the filtering pipeline reads."""

    time_range: Optional[TimeRange] = None
    report_subfilters: ReportSubfilters = field(default_factory=ReportSubfilters)
    rfi_subfilters: RfiSubfilters = field(default_factory=RfiSubfilters)


@dataclass(frozen=True)
class LayerVisibility:
    """Per-category layer visibility (keys match LayerConfig.VISIBILITY_*)."""

    heatmap: bool = False
    rfi: bool = True
    reports: bool = True
    targets: bool = True
    layers: bool = True

    def is_visible(self, key: str) -> bool:
        return bool(getattr(self, key))


def toggle_layer(
    visibility: LayerVisibility,
    criteria: FilterCriteria,
    key: str,
    visible: bool,
) -> tuple[LayerVisibility, FilterCriteria]:
    """Show/hide a category and cascade to its subfilters."""
    if not hasattr(visibility, key):
        raise ValueError(f"Unknown layer visibility key: {key}")

    visibility = replace(visibility, **{key: visible})
    if key == LayerConfig.VISIBILITY_RFI:
        criteria = replace(criteria, rfi_subfilters=RfiSubfilters(high=visible, medium=visible, low=visible))
    elif key == LayerConfig.VISIBILITY_REPORTS:
        criteria = replace(criteria, report_subfilters=ReportSubfilters(system=visible, legacy=visible))
    return visibility, criteria


def toggle_report_subfilter(
    visibility: LayerVisibility,
    criteria: FilterCriteria,
    name: str,
    enabled: bool,
) -> tuple[LayerVisibility, FilterCriteria]:
    """Flip one Report subfilter ("system" / "legacy") and cascade to the category."""
    if name not in ("system", "legacy"):
        raise ValueError(f"Unknown report subfilter: {name}")

    subfilters = replace(criteria.report_subfilters, **{name: enabled})
    criteria = replace(criteria, report_subfilters=subfilters)
    if not subfilters.any_enabled():
        visibility = replace(visibility, reports=False)
    elif not visibility.reports:
        visibility = replace(visibility, reports=True)
    return visibility, criteria


def toggle_rfi_subfilter(
    visibility: LayerVisibility,
    criteria: FilterCriteria,
    name: str,
    enabled: bool,
) -> tuple[LayerVisibility, FilterCriteria]:
    """Flip one RFI subfilter ("high" / "medium" / "low") and cascade to the category."""
    if name not in ("high", "medium", "low"):
        raise ValueError(f"Unknown RFI subfilter: {name}")

    subfilters = replace(criteria.rfi_subfilters, **{name: enabled})
    criteria = replace(criteria, rfi_subfilters=subfilters)
    if not subfilters.any_enabled():
        visibility = replace(visibility, rfi=False)
    elif not visibility.rfi:
        visibility = replace(visibility, rfi=True)
    return visibility, criteria
