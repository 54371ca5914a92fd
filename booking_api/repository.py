"""Persistence queries used by the scheduler and the booking service."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, UnexpectedError
from .intervals import Interval, overlaps_any
from .models import (
    Appointment,
    AppointmentStatus,
    BlockedSlot,
    Customer,
    CustomerSettings,
    WorkingHours,
)

logger = logging.getLogger(__name__)


@dataclass
class Occupancy:
    appointments: List[Interval] = field(default_factory=list)
    blocked_slots: List[Interval] = field(default_factory=list)

    @property
    def intervals(self) -> List[Interval]:
        return sorted(self.appointments + self.blocked_slots)


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def get_customer_by_subdomain(db: Session, subdomain: str) -> Customer:
    customer = db.query(Customer).filter(Customer.subdomain == subdomain).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def lock_schedule(db: Session, customer_id: int) -> Customer:
    """Lock the customer's row for the rest of the current transaction.

    Every write that first checks occupancy calls this before the check, so
    concurrent writers for the same customer run one after another.
    """
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id)
        .with_for_update()
        .first()
    )
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def get_working_hours(db: Session, customer_id: int, day_of_week: int) -> Optional[WorkingHours]:
    return (
        db.query(WorkingHours)
        .filter(WorkingHours.customer_id == customer_id, WorkingHours.day_of_week == day_of_week)
        .first()
    )


def list_working_hours(db: Session, customer_id: int) -> List[WorkingHours]:
    return (
        db.query(WorkingHours)
        .filter(WorkingHours.customer_id == customer_id)
        .order_by(WorkingHours.day_of_week)
        .all()
    )


def get_settings(db: Session, customer_id: int) -> CustomerSettings:
    """Settings for a customer, or transient defaults when no row exists."""
    row = db.query(CustomerSettings).filter(CustomerSettings.customer_id == customer_id).first()
    return row if row is not None else CustomerSettings.defaults(customer_id)


def ensure_settings(db: Session, customer_id: int) -> CustomerSettings:
    """Return the persisted settings row, creating it with defaults if needed."""
    row = db.query(CustomerSettings).filter(CustomerSettings.customer_id == customer_id).first()
    if row is None:
        row = CustomerSettings.defaults(customer_id)
        db.add(row)
        db.commit()
        db.refresh(row)
        logger.info("Created default settings for customer %s", customer_id)
    return row


def _active_appointments(db: Session, customer_id: int, day: date):
    return db.query(Appointment).filter(
        Appointment.customer_id == customer_id,
        Appointment.date == day,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )


def list_occupancy(
    db: Session,
    customer_id: int,
    day: date,
    exclude_appointment_id: Optional[int] = None,
    exclude_blocked_slot_id: Optional[int] = None,
) -> Occupancy:
    appointments = _active_appointments(db, customer_id, day)
    if exclude_appointment_id is not None:
        appointments = appointments.filter(Appointment.id != exclude_appointment_id)

    blocked = db.query(BlockedSlot).filter(BlockedSlot.customer_id == customer_id, BlockedSlot.date == day)
    if exclude_blocked_slot_id is not None:
        blocked = blocked.filter(BlockedSlot.id != exclude_blocked_slot_id)

    return Occupancy(
        appointments=[Interval.from_times(a.start_time, a.end_time) for a in appointments.all()],
        blocked_slots=[Interval.from_times(b.start_time, b.end_time) for b in blocked.all()],
    )


def get_appointment(db: Session, customer_id: int, appointment_id: int) -> Appointment:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.customer_id == customer_id)
        .first()
    )
    if appointment is None:
        raise NotFoundError("Booking not found")
    return appointment


def get_appointment_by_token(db: Session, appointment_id: int, token: str) -> Appointment:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.cancellation_token == token)
        .first()
    )
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def get_blocked_slot(db: Session, customer_id: int, blocked_slot_id: int) -> BlockedSlot:
    blocked = (
        db.query(BlockedSlot)
        .filter(BlockedSlot.id == blocked_slot_id, BlockedSlot.customer_id == customer_id)
        .first()
    )
    if blocked is None:
        raise NotFoundError("Blocked slot not found")
    return blocked


def find_conflict(occupancy: Occupancy, candidate: Interval) -> Optional[str]:
    """Name the kind of occupancy ``candidate`` collides with, if any."""
    if overlaps_any(candidate, occupancy.appointments):
        return "appointment"
    if overlaps_any(candidate, occupancy.blocked_slots):
        return "blocked"
    return None


def raise_for_conflict(occupancy: Occupancy, candidate: Interval) -> None:
    conflict = find_conflict(occupancy, candidate)
    if conflict == "appointment":
        raise ConflictError("This time slot is no longer available")
    if conflict == "blocked":
        raise ConflictError("This time slot is blocked")


def insert_appointment_if_no_conflict(db: Session, appointment: Appointment) -> Appointment:
    """Insert ``appointment`` unless its interval is already taken or blocked.

    The occupancy check and the insert share one transaction that holds the
    customer's schedule lock, so a concurrent booker for an overlapping
    interval sees this row and gets a ConflictError.
    """
    try:
        lock_schedule(db, appointment.customer_id)
        occupancy = list_occupancy(db, appointment.customer_id, appointment.date)
        raise_for_conflict(occupancy, Interval.from_times(appointment.start_time, appointment.end_time))

        db.add(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Could not store appointment for customer %s", appointment.customer_id)
        raise UnexpectedError("Could not save the appointment") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    return appointment


def update_appointment_status(db: Session, appointment: Appointment, status: AppointmentStatus) -> Appointment:
    appointment.status = status.value
    db.commit()
    db.refresh(appointment)
    return appointment
