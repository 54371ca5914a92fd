"""Admin management of working hours, settings and blocked time ranges."""

import logging
from datetime import date, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from . import repository
from .errors import ConflictError, InvalidRequestError, ValidationError
from .intervals import Interval, overlaps_any, split_by_day
from .models import BlockedSlot, Customer, CustomerSettings, WorkingHours
from .schemas import (
    BlockedRangePayload,
    BlockedSlotPayload,
    CustomerProfileUpdate,
    SettingsUpdate,
    WorkingHoursEntry,
)

logger = logging.getLogger(__name__)

MAX_BLOCKED_RANGE_DAYS = 365


def list_blocked_slots(
    db: Session, customer_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None
) -> List[BlockedSlot]:
    query = db.query(BlockedSlot).filter(BlockedSlot.customer_id == customer_id)
    if start_date and end_date:
        query = query.filter(BlockedSlot.date >= start_date, BlockedSlot.date <= end_date)
    return query.order_by(BlockedSlot.date.desc(), BlockedSlot.start_time.asc()).all()


def _check_free(
    db: Session, customer_id: int, day: date, start: time, end: time, exclude_id: Optional[int] = None
) -> None:
    """Raise ConflictError if ``[start, end)`` on ``day`` meets an appointment or another block.

    Callers hold the schedule lock.
    """
    occupancy = repository.list_occupancy(db, customer_id, day, exclude_blocked_slot_id=exclude_id)
    interval = Interval.from_times(start, end)

    if overlaps_any(interval, occupancy.appointments):
        raise ConflictError("Blocked slot conflicts with existing appointments")
    if overlaps_any(interval, occupancy.blocked_slots):
        raise ConflictError("Blocked slot overlaps with existing blocked slot")


def _check_blocked_range(
    db: Session, customer_id: int, payload: BlockedSlotPayload, exclude_id: Optional[int] = None
) -> None:
    if payload.end_time <= payload.start_time:
        raise InvalidRequestError("End time must be after start time")

    repository.lock_schedule(db, customer_id)
    _check_free(db, customer_id, payload.date, payload.start_time, payload.end_time, exclude_id)


def create_blocked_slot(db: Session, customer_id: int, payload: BlockedSlotPayload) -> BlockedSlot:
    try:
        _check_blocked_range(db, customer_id, payload)
        blocked = BlockedSlot(
            customer_id=customer_id,
            date=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            reason=payload.reason,
        )
        db.add(blocked)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(blocked)
    logger.info("Blocked %s %s-%s for customer %s", blocked.date, blocked.start_time, blocked.end_time, customer_id)
    return blocked


def create_blocked_range(db: Session, customer_id: int, payload: BlockedRangePayload) -> List[BlockedSlot]:
    """Block a range that may span several days, stored as one row per day.

    Every day is checked under one schedule lock and the rows are committed
    together, so a conflict on any day leaves nothing behind.
    """
    if payload.end_datetime <= payload.start_datetime:
        raise InvalidRequestError("End time must be after start time")
    if payload.end_datetime - payload.start_datetime > timedelta(days=MAX_BLOCKED_RANGE_DAYS):
        raise InvalidRequestError(f"A blocked range cannot exceed {MAX_BLOCKED_RANGE_DAYS} days")

    pieces = split_by_day(payload.start_datetime, payload.end_datetime)
    if not pieces:
        raise InvalidRequestError("Blocked range is too short")

    created = []
    try:
        repository.lock_schedule(db, customer_id)
        for day, start, end in pieces:
            _check_free(db, customer_id, day, start, end)
            created.append(
                BlockedSlot(customer_id=customer_id, date=day, start_time=start, end_time=end, reason=payload.reason)
            )
        db.add_all(created)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for blocked in created:
        db.refresh(blocked)
    logger.info(
        "Blocked %s to %s (%s days) for customer %s",
        payload.start_datetime, payload.end_datetime, len(created), customer_id,
    )
    return created

def update_blocked_slot(db: Session, customer_id: int, blocked_slot_id: int, payload: BlockedSlotPayload) -> BlockedSlot:
    blocked = repository.get_blocked_slot(db, customer_id, blocked_slot_id)
    try:
        _check_blocked_range(db, customer_id, payload, exclude_id=blocked.id)
        blocked.date = payload.date
        blocked.start_time = payload.start_time
        blocked.end_time = payload.end_time
        blocked.reason = payload.reason
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(blocked)
    return blocked


def delete_blocked_slot(db: Session, customer_id: int, blocked_slot_id: int) -> None:
    blocked = repository.get_blocked_slot(db, customer_id, blocked_slot_id)
    try:
        db.delete(blocked)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Blocked slot %s removed for customer %s", blocked_slot_id, customer_id)


def replace_working_hours(db: Session, customer_id: int, entries: List[WorkingHoursEntry]) -> List[WorkingHours]:
    """Replace the whole weekly schedule of a customer in one transaction."""
    repository.get_customer(db, customer_id)
    try:
        db.query(WorkingHours).filter(WorkingHours.customer_id == customer_id).delete(synchronize_session=False)
        # flush the delete before inserting rows with the same (customer, day) key
        db.flush()
        for entry in entries:
            db.add(
                WorkingHours(
                    customer_id=customer_id,
                    day_of_week=entry.day_of_week,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    is_working_day=entry.is_working_day,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Working hours replaced for customer %s", customer_id)
    return repository.list_working_hours(db, customer_id)


def update_settings(db: Session, customer_id: int, payload: SettingsUpdate) -> CustomerSettings:
    repository.get_customer(db, customer_id)
    row = db.query(CustomerSettings).filter(CustomerSettings.customer_id == customer_id).first()
    if row is None:
        row = CustomerSettings(customer_id=customer_id)
        db.add(row)

    try:
        for key, value in payload.model_dump().items():
            setattr(row, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    logger.info("Settings updated for customer %s", customer_id)
    return row


def update_profile(db: Session, customer_id: int, payload: CustomerProfileUpdate) -> Customer:
    customer = repository.get_customer(db, customer_id)

    taken = (
        db.query(Customer.id)
        .filter(Customer.email == payload.email, Customer.id != customer_id)
        .first()
    )
    if taken is not None:
        raise ValidationError("Email already in use")

    try:
        customer.name = payload.name
        customer.email = payload.email
        customer.phone = payload.phone
        customer.address = payload.address
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(customer)
    logger.info("Profile updated for customer %s", customer_id)
    return customer
