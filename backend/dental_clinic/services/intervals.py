"""Pure interval arithmetic for appointment slots.

Every interval is half-open, ``[start, end)``. Two appointments that meet at a
boundary (one ends at 11:00, the next starts at 11:00) do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterator

DEFAULT_DURATION_MINUTES = 60


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end <= self.start:
            raise ValueError("Interval end must be after its start")

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def compute_interval(
    start: datetime,
    duration_minutes: int | None,
    default_minutes: int = DEFAULT_DURATION_MINUTES,
) -> Interval:
    minutes = duration_minutes if duration_minutes is not None else default_minutes
    if minutes <= 0:
        raise ValueError("Duration must be positive")
    start = as_utc(start)
    return Interval(start, start + timedelta(minutes=minutes))


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def _local(value: datetime, tz: tzinfo | None) -> datetime:
    return as_utc(value).astimezone(tz or timezone.utc)


def is_aligned(value: datetime, granularity_minutes: int, tz: tzinfo | None = None) -> bool:
    """True when ``value`` sits on the grid counted from local midnight in ``tz``."""
    value = _local(value, tz)
    return value.second == 0 and value.microsecond == 0 and value.minute % granularity_minutes == 0


def align_up(value: datetime, granularity_minutes: int, tz: tzinfo | None = None) -> datetime:
    local = _local(value, tz)
    floored = local.replace(minute=local.minute - local.minute % granularity_minutes, second=0, microsecond=0)
    if floored < local:
        floored += timedelta(minutes=granularity_minutes)
    return as_utc(floored)


def slot_starts(interval: Interval, granularity_minutes: int, tz: tzinfo | None = None) -> Iterator[datetime]:
    """Yield the start of every grid cell the interval touches.

    The first cell is the one containing ``interval.start``; cells continue
    until one would begin at or after ``interval.end``. For a start aligned to
    the grid this claims exactly the cells the appointment occupies, so an
    aligned booking starting at the previous booking's end never shares a cell.
    """
    step = timedelta(minutes=granularity_minutes)
    start = _local(interval.start, tz)
    cursor = as_utc(
        start.replace(minute=start.minute - start.minute % granularity_minutes, second=0, microsecond=0)
    )
    while cursor < interval.end:
        yield cursor
        cursor += step
