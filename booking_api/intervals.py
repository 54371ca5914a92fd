"""Time-of-day interval helpers shared by slot computation and booking validation.

Intervals are half-open ``[start, end)`` pairs of minutes since midnight, so
two intervals that only touch at an endpoint do not overlap.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, NamedTuple, Optional, Tuple


class Interval(NamedTuple):
    start: int
    end: int

    @classmethod
    def from_times(cls, start: time, end: time) -> "Interval":
        return cls(to_minutes(start), to_minutes(end))

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def within(self, outer: "Interval") -> bool:
        return outer.start <= self.start and self.end <= outer.end


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


def add_minutes(value: time, minutes: int) -> Optional[time]:
    """Shift a time of day, returning None when the result leaves the day."""
    total = to_minutes(value) + minutes
    if total >= 24 * 60:
        return None
    return from_minutes(total)


# last representable time of day; a piece ending here covers every slot up to midnight
END_OF_DAY = time(23, 59, 59)


def day_of_week(day: date) -> int:
    """Weekday with 0 = Sunday .. 6 = Saturday."""
    return (day.weekday() + 1) % 7


def combine(day: date, value: time) -> datetime:
    return datetime.combine(day, value)


def hours_until(day: date, value: time, now: datetime) -> float:
    return (combine(day, value) - now) / timedelta(hours=1)


def tile(window: Interval, length: int) -> List[Interval]:
    """Split ``window`` into contiguous ``length``-minute intervals.

    A trailing remainder shorter than ``length`` is dropped.
    """
    if length <= 0:
        raise ValueError("length must be positive")

    tiles = []
    current = window.start
    while current + length <= window.end:
        tiles.append(Interval(current, current + length))
        current += length
    return tiles


def overlaps_any(candidate: Interval, occupied: Iterable[Interval]) -> bool:
    return any(candidate.overlaps(other) for other in occupied)


def split_by_day(start: datetime, end: datetime) -> List[Tuple[date, time, time]]:
    """Split ``[start, end)`` into ``(day, start_time, end_time)`` pieces, one per calendar day.

    Days other than the last run to END_OF_DAY. A range ending exactly at
    midnight contributes nothing for the day it ends on.
    """
    pieces = []
    day = start.date()
    while day <= end.date():
        piece_start = start.time() if day == start.date() else time(0)
        piece_end = end.time() if day == end.date() else END_OF_DAY
        if piece_end > piece_start:
            pieces.append((day, piece_start, piece_end))
        day += timedelta(days=1)
    return pieces
