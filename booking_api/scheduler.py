import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, NamedTuple, Optional

from sqlalchemy.orm import Session

from . import repository
from .errors import InvalidRequestError
from .intervals import Interval, combine, day_of_week, from_minutes, overlaps_any, tile, to_minutes

logger = logging.getLogger(__name__)

NEXT_AVAILABLE_SEARCH_DAYS = 30


class Slot(NamedTuple):
    start_time: time
    end_time: time
    available: bool = True


@dataclass
class SlotAvailability:
    date: date
    customer_name: str
    appointment_duration: int
    buffer_time: int
    working_hours: Optional[Interval] = None
    slots: List[Slot] = field(default_factory=list)
    total_slots: int = 0


def check_booking_window(target_date: date, max_advance_booking_days: int, now: datetime) -> None:
    today = now.date()
    if target_date < today:
        raise InvalidRequestError("Cannot book appointments in the past")
    if target_date > today + timedelta(days=max_advance_booking_days):
        raise InvalidRequestError(
            f"Cannot book appointments more than {max_advance_booking_days} days in advance"
        )


def mark_occupied(candidates: List[Interval], available: List[bool], occupied: List[Interval]) -> None:
    for i, candidate in enumerate(candidates):
        if overlaps_any(candidate, occupied):
            available[i] = False


def apply_buffer(
    candidates: List[Interval], available: List[bool], occupied: List[Interval], buffer_time: int
) -> None:
    """Enforce ``buffer_time`` minutes of idle time around what can be booked.

    A slot starting less than ``buffer_time`` after an occupied interval ends
    is dropped. Between offered slots the gap is checked against the next
    slot still on offer, walking the day backwards, so the slot directly
    before a booking or a block stays bookable.
    """
    if buffer_time <= 0:
        return

    for i, candidate in enumerate(candidates):
        if available[i] and any(o.end <= candidate.start < o.end + buffer_time for o in occupied):
            available[i] = False

    next_start = None
    for i in reversed(range(len(candidates))):
        if not available[i]:
            continue
        if next_start is not None and next_start - candidates[i].end < buffer_time:
            available[i] = False
            continue
        next_start = candidates[i].start


def generate_slots(db: Session, customer_id: int, target_date: date, now: Optional[datetime] = None) -> SlotAvailability:
    """Compute the bookable slots of ``customer_id`` on ``target_date``."""
    now = now or datetime.now()

    customer = repository.get_customer(db, customer_id)
    settings = repository.get_settings(db, customer_id)
    check_booking_window(target_date, settings.max_advance_booking_days, now)

    result = SlotAvailability(
        date=target_date,
        customer_name=customer.name,
        appointment_duration=settings.appointment_duration,
        buffer_time=settings.buffer_time,
    )

    hours = repository.get_working_hours(db, customer_id, day_of_week(target_date))
    if hours is None or not hours.is_working_day:
        return result

    window = Interval.from_times(hours.start_time, hours.end_time)
    result.working_hours = window

    candidates = tile(window, settings.appointment_duration)
    available = [True] * len(candidates)

    occupied = repository.list_occupancy(db, customer_id, target_date).intervals
    mark_occupied(candidates, available, occupied)
    apply_buffer(candidates, available, occupied, settings.buffer_time)

    if target_date == now.date():
        cutoff = now + timedelta(hours=settings.min_advance_booking_hours)
        for i, candidate in enumerate(candidates):
            if combine(target_date, from_minutes(candidate.start)) < cutoff:
                available[i] = False

    result.total_slots = len(candidates)
    result.slots = [
        Slot(from_minutes(c.start), from_minutes(c.end))
        for c, is_free in zip(candidates, available)
        if is_free
    ]
    return result


def find_next_available(db: Session, customer_id: int, now: Optional[datetime] = None):
    """First free slot from tomorrow onwards, as ``(date, Slot)``, or None."""
    now = now or datetime.now()

    settings = repository.get_settings(db, customer_id)
    horizon = min(NEXT_AVAILABLE_SEARCH_DAYS, settings.max_advance_booking_days)

    for offset in range(1, horizon + 1):
        day = now.date() + timedelta(days=offset)
        availability = generate_slots(db, customer_id, day, now=now)
        if availability.slots:
            return day, availability.slots[0]

    logger.info("No free slot for customer %s in the next %s days", customer_id, horizon)
    return None


def slot_fits_working_hours(db: Session, customer_id: int, target_date: date, start: time, end: time) -> bool:
    hours = repository.get_working_hours(db, customer_id, day_of_week(target_date))
    if hours is None or not hours.is_working_day:
        return False
    return Interval(to_minutes(start), to_minutes(end)).within(Interval.from_times(hours.start_time, hours.end_time))
