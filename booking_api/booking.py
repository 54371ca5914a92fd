"""Booking write path: validation, atomic insert, cancellation and admin edits."""

import logging
import math
import secrets
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import repository
from .errors import NotFoundError, PolicyError, ValidationError
from .intervals import Interval, add_minutes, combine, format_time, hours_until, to_minutes
from .models import Appointment, AppointmentStatus
from .notifications import Defer, Notifier, cancellation_link, dispatch
from .scheduler import check_booking_window, slot_fits_working_hours
from .schemas import AdminBookingCreate, BookingRequest, BookingUpdate

logger = logging.getLogger(__name__)


def new_cancellation_token() -> str:
    return secrets.token_urlsafe(32)


def _notification_data(appointment: Appointment, customer_name: str) -> dict:
    return {
        "to": appointment.email,
        "name": appointment.patient_name,
        "customer_name": customer_name,
        "date": appointment.date.strftime("%d.%m.%Y"),
        "time": format_time(appointment.start_time),
    }


def _book(
    db: Session,
    customer_id: int,
    day: date,
    start: time,
    patient_name: str,
    email: str,
    phone: Optional[str],
    notes: Optional[str],
    status: AppointmentStatus,
    now: datetime,
    enforce_min_advance: bool = True,
) -> Appointment:
    try:
        repository.get_customer(db, customer_id)
        settings = repository.get_settings(db, customer_id)

        check_booking_window(day, settings.max_advance_booking_days, now)
        end = add_minutes(start, settings.appointment_duration)

        if enforce_min_advance:
            earliest = now + timedelta(hours=settings.min_advance_booking_hours)
            if combine(day, start) < earliest:
                raise PolicyError(
                    f"Bookings must be made at least {settings.min_advance_booking_hours} hours in advance"
                )

        if end is None or not slot_fits_working_hours(db, customer_id, day, start, end):
            raise PolicyError("Booking outside working hours")

        # early rejection; the authoritative check runs again under the lock
        occupancy = repository.list_occupancy(db, customer_id, day)
        repository.raise_for_conflict(occupancy, Interval(to_minutes(start), to_minutes(end)))
    except Exception:
        db.rollback()
        raise

    appointment = Appointment(
        customer_id=customer_id,
        patient_name=patient_name,
        email=email,
        phone=phone,
        date=day,
        start_time=start,
        end_time=end,
        status=status.value,
        notes=notes,
        cancellation_token=new_cancellation_token(),
    )
    return repository.insert_appointment_if_no_conflict(db, appointment)


def create_booking(
    db: Session,
    req: BookingRequest,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    defer: Optional[Defer] = None,
) -> Appointment:
    """Validate and commit a public booking, then send the confirmation.

    Raises NotFoundError, PolicyError or ConflictError; input format is
    already enforced by ``BookingRequest``.
    """
    now = now or datetime.now()
    try:
        appointment = _book(
            db,
            req.customer_id,
            req.date,
            req.start_time.replace(second=0, microsecond=0),
            req.patient_name,
            req.email,
            req.phone,
            req.remarks,
            AppointmentStatus.CONFIRMED,
            now,
        )
    except PolicyError as exc:
        logger.info("Booking for customer %s rejected: %s", req.customer_id, exc.message)
        raise

    logger.info(
        "Booked appointment %s for customer %s on %s at %s",
        appointment.id, appointment.customer_id, appointment.date, format_time(appointment.start_time),
    )

    data = _notification_data(appointment, appointment.customer.name)
    data["cancel_link"] = cancellation_link(appointment.id, appointment.cancellation_token)
    dispatch(defer, notifier, "booking_confirmation", data)
    return appointment


def admin_create_booking(
    db: Session,
    customer_id: int,
    payload: AdminBookingCreate,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    defer: Optional[Defer] = None,
) -> Appointment:
    """Booking entered by the practice itself; the minimum advance rule does not apply."""
    now = now or datetime.now()
    appointment = _book(
        db,
        customer_id,
        payload.date,
        payload.start_time.replace(second=0, microsecond=0),
        payload.patient_name,
        payload.email,
        payload.phone,
        payload.notes,
        payload.status,
        now,
        enforce_min_advance=False,
    )
    logger.info("Admin booked appointment %s for customer %s", appointment.id, customer_id)

    if appointment.status == AppointmentStatus.CONFIRMED.value:
        data = _notification_data(appointment, appointment.customer.name)
        data["cancel_link"] = cancellation_link(appointment.id, appointment.cancellation_token)
        dispatch(defer, notifier, "booking_confirmation", data)
    return appointment


def cancel_booking(
    db: Session,
    appointment_id: int,
    token: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    defer: Optional[Defer] = None,
) -> Appointment:
    """Cancel a confirmed appointment on behalf of the holder of its token."""
    now = now or datetime.now()

    appointment = (
        db.query(Appointment)
        .filter(
            Appointment.id == appointment_id,
            Appointment.cancellation_token == token,
            Appointment.status == AppointmentStatus.CONFIRMED.value,
        )
        .first()
    )
    if appointment is None:
        # same answer for a wrong token and an unknown appointment
        raise NotFoundError("Appointment not found or already cancelled")

    settings = repository.get_settings(db, appointment.customer_id)
    deadline = settings.cancellation_deadline_hours
    if hours_until(appointment.date, appointment.start_time, now) <= deadline:
        raise PolicyError(f"Cancellation deadline has passed ({deadline} hours before appointment)")

    appointment = repository.update_appointment_status(db, appointment, AppointmentStatus.CANCELLED)
    logger.info("Appointment %s cancelled by patient", appointment.id)

    dispatch(defer, notifier, "booking_cancelled", _notification_data(appointment, appointment.customer.name))
    return appointment


def get_booking_by_token(db: Session, appointment_id: int, token: str) -> Appointment:
    return repository.get_appointment_by_token(db, appointment_id, token)


def _check_reschedule(db: Session, appointment: Appointment, day: date, start: time, end: time) -> None:
    """Lock the schedule and re-run the overlap check, ignoring ``appointment`` itself."""
    repository.lock_schedule(db, appointment.customer_id)
    occupancy = repository.list_occupancy(db, appointment.customer_id, day, exclude_appointment_id=appointment.id)
    repository.raise_for_conflict(occupancy, Interval(to_minutes(start), to_minutes(end)))


def update_booking(db: Session, customer_id: int, appointment_id: int, payload: BookingUpdate) -> Appointment:
    appointment = repository.get_appointment(db, customer_id, appointment_id)

    start = payload.start_time.replace(second=0, microsecond=0)
    end = payload.end_time.replace(second=0, microsecond=0)
    if end <= start:
        raise ValidationError("End time must be after start time")

    moved = (payload.date, start, end) != (appointment.date, appointment.start_time, appointment.end_time)
    reactivated = appointment.status == AppointmentStatus.CANCELLED.value
    try:
        if payload.status != AppointmentStatus.CANCELLED and (moved or reactivated):
            _check_reschedule(db, appointment, payload.date, start, end)

        appointment.patient_name = payload.patient_name
        appointment.email = payload.email
        appointment.phone = payload.phone
        appointment.date = payload.date
        appointment.start_time = start
        appointment.end_time = end
        appointment.notes = payload.notes
        appointment.status = payload.status.value
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info("Appointment %s updated by admin", appointment.id)
    return appointment


def update_booking_status(
    db: Session, customer_id: int, appointment_id: int, status: AppointmentStatus
) -> Appointment:
    appointment = repository.get_appointment(db, customer_id, appointment_id)

    if appointment.status == AppointmentStatus.CANCELLED.value and status != AppointmentStatus.CANCELLED:
        try:
            _check_reschedule(db, appointment, appointment.date, appointment.start_time, appointment.end_time)
        except Exception:
            db.rollback()
            raise

    return repository.update_appointment_status(db, appointment, status)


def delete_booking(db: Session, customer_id: int, appointment_id: int) -> None:
    appointment = repository.get_appointment(db, customer_id, appointment_id)
    try:
        db.delete(appointment)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Appointment %s deleted by admin", appointment_id)


def list_bookings(
    db: Session,
    customer_id: int,
    day: Optional[date] = None,
    status: Optional[AppointmentStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
):
    """Return ``(appointments, total, pages)`` for one page of the filtered bookings."""
    query = db.query(Appointment).filter(Appointment.customer_id == customer_id)

    if day:
        query = query.filter(Appointment.date == day)
    if status:
        query = query.filter(Appointment.status == status.value)
    if start_date:
        query = query.filter(Appointment.date >= start_date)
    if end_date:
        query = query.filter(Appointment.date <= end_date)

    total = query.count()
    bookings = (
        query.order_by(Appointment.date.desc(), Appointment.start_time.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return bookings, total, math.ceil(total / limit)


def booking_stats(
    db: Session,
    customer_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> dict:
    today = (now or datetime.now()).date()

    query = db.query(Appointment.status, Appointment.date).filter(Appointment.customer_id == customer_id)
    if start_date and end_date:
        query = query.filter(Appointment.date.between(start_date, end_date))

    rows = query.all()
    counts = {status.value: 0 for status in AppointmentStatus}
    for status, _ in rows:
        counts[status] = counts.get(status, 0) + 1

    return {
        "total": len(rows),
        "confirmed": counts[AppointmentStatus.CONFIRMED.value],
        "pending": counts[AppointmentStatus.PENDING.value],
        "cancelled": counts[AppointmentStatus.CANCELLED.value],
        "completed": counts[AppointmentStatus.COMPLETED.value],
        "no_show": counts[AppointmentStatus.NO_SHOW.value],
        "upcoming": sum(1 for _, day in rows if day >= today),
        "past": sum(1 for _, day in rows if day < today),
    }
