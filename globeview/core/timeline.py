"""Time filter helpers: slider position mapping, month snapping, presets."""

import calendar
from datetime import datetime, timedelta

from globeview.constants import TimelineConfig
from globeview.model.filters import TimeRange


def date_to_percentage(
    moment: datetime,
    min_date: datetime = TimelineConfig.MIN_DATE,
    max_date: datetime = TimelineConfig.MAX_DATE,
) -> float:
    """Slider position (0-100) of a date, clamped to the bounds."""
    total = (max_date - min_date).total_seconds()
    offset = (moment - min_date).total_seconds()
    return max(0.0, min(100.0, offset / total * 100))


def percentage_to_date(
    percentage: float,
    min_date: datetime = TimelineConfig.MIN_DATE,
    max_date: datetime = TimelineConfig.MAX_DATE,
) -> datetime:
    total = (max_date - min_date).total_seconds()
    return min_date + timedelta(seconds=total * percentage / 100)


def snap_to_month(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def _shift_month(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(month_index, 12)
    # Clamp the day for shorter months (Mar 31 -> Feb 28)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def preset_range(preset: str, now: datetime) -> TimeRange:
    """TimeRange for a named preset relative to `now`."""
    if preset == "all":
        return TimeRange(start=TimelineConfig.MIN_DATE, end=TimelineConfig.MAX_DATE)

    day_start = datetime(now.year, now.month, now.day)
    if preset == "today":
        return TimeRange(start=day_start, end=day_start.replace(hour=23, minute=59, second=59))
    if preset == "yesterday":
        start = day_start - timedelta(days=1)
        return TimeRange(start=start, end=start.replace(hour=23, minute=59, second=59))
    if preset == "last-week":
        return TimeRange(start=now - timedelta(days=7), end=now)
    if preset == "last-month":
        return TimeRange(start=_shift_month(now, -1), end=now)
    if preset == "last-year":
        return TimeRange(start=datetime(now.year - 1, 1, 1), end=datetime(now.year - 1, 12, 31))
    if preset == "this-year":
        return TimeRange(start=datetime(now.year, 1, 1), end=now)
    if preset.isdigit() and len(preset) == 4:
        year = int(preset)
        return TimeRange(start=datetime(year, 1, 1), end=datetime(year, 12, 31))

    raise ValueError(f"Unknown timeline preset: {preset}")
