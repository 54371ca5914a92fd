from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from . import booking, calendar_config, repository
from .auth import Principal, require_admin
from .database import get_db
from .dependencies import Notifier, get_notifier, get_now
from .errors import ValidationError
from .models import AppointmentStatus
from .schemas import (
    AdminBookingCreate,
    AppointmentDetails,
    BlockedRangePayload,
    BlockedSlotListResponse,
    BlockedSlotPayload,
    BlockedSlotResponse,
    BookingListResponse,
    BookingUpdate,
    BookingUpdateResponse,
    CalendarConfigResponse,
    CustomerInfo,
    CustomerProfileUpdate,
    MessageResponse,
    Pagination,
    ProfileUpdateResponse,
    SettingsResponse,
    SettingsUpdate,
    StatsOverview,
    StatsResponse,
    StatusResponse,
    StatusUpdate,
    WorkingHoursListResponse,
    WorkingHoursResponse,
    WorkingHoursUpdate,
)

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ── Bookings ────────────────────────────────────────────────────────────


@router.get("/bookings", response_model=BookingListResponse)
def list_bookings(
    date: Optional[date] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    status_filter = None
    if status:
        try:
            status_filter = AppointmentStatus.normalize(status)
        except ValueError:
            raise ValidationError("Invalid status")

    bookings, total, pages = booking.list_bookings(
        db, principal.customer_id, date, status_filter, start_date, end_date, page, limit
    )
    return BookingListResponse(
        bookings=[AppointmentDetails.from_model(b) for b in bookings],
        pagination=Pagination(page=page, limit=limit, total=total, pages=pages),
    )


@router.post("/bookings", response_model=AppointmentDetails, status_code=201)
def create_booking(
    payload: AdminBookingCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: Notifier = Depends(get_notifier),
):
    appointment = booking.admin_create_booking(
        db, principal.customer_id, payload, now=now, notifier=notifier, defer=background_tasks.add_task
    )
    return AppointmentDetails.from_model(appointment)


@router.get("/bookings/stats/overview", response_model=StatsResponse)
def booking_stats(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    stats = booking.booking_stats(db, principal.customer_id, start_date, end_date, now=now)
    return StatsResponse(overview=StatsOverview(**stats))


@router.get("/bookings/{appointment_id}", response_model=AppointmentDetails)
def get_booking(appointment_id: int, principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return AppointmentDetails.from_model(repository.get_appointment(db, principal.customer_id, appointment_id))


@router.put("/bookings/{appointment_id}", response_model=BookingUpdateResponse)
def update_booking(
    appointment_id: int,
    payload: BookingUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    appointment = booking.update_booking(db, principal.customer_id, appointment_id, payload)
    return BookingUpdateResponse(message="Booking updated successfully", booking=AppointmentDetails.from_model(appointment))


@router.delete("/bookings/{appointment_id}", response_model=MessageResponse)
def delete_booking(appointment_id: int, principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    booking.delete_booking(db, principal.customer_id, appointment_id)
    return MessageResponse(message="Booking deleted successfully")


@router.post("/bookings/{appointment_id}/status", response_model=StatusResponse)
def update_booking_status(
    appointment_id: int,
    payload: StatusUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    appointment = booking.update_booking_status(db, principal.customer_id, appointment_id, payload.status)
    return StatusResponse(message="Status updated successfully", status=appointment.status)


# ── Blocked slots ───────────────────────────────────────────────────────


@router.get("/blocked-slots", response_model=BlockedSlotListResponse)
def list_blocked_slots(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    slots = calendar_config.list_blocked_slots(db, principal.customer_id, start_date, end_date)
    return BlockedSlotListResponse(blocked_slots=[BlockedSlotResponse.from_model(s) for s in slots])


@router.post("/blocked-slots", response_model=BlockedSlotResponse, status_code=201)
def create_blocked_slot(
    payload: BlockedSlotPayload,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return BlockedSlotResponse.from_model(calendar_config.create_blocked_slot(db, principal.customer_id, payload))


@router.post("/blocked-slots/range", response_model=BlockedSlotListResponse, status_code=201)
def create_blocked_range(
    payload: BlockedRangePayload,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    slots = calendar_config.create_blocked_range(db, principal.customer_id, payload)
    return BlockedSlotListResponse(blocked_slots=[BlockedSlotResponse.from_model(s) for s in slots])


@router.put("/blocked-slots/{blocked_slot_id}", response_model=BlockedSlotResponse)
def update_blocked_slot(
    blocked_slot_id: int,
    payload: BlockedSlotPayload,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    blocked = calendar_config.update_blocked_slot(db, principal.customer_id, blocked_slot_id, payload)
    return BlockedSlotResponse.from_model(blocked)


@router.delete("/blocked-slots/{blocked_slot_id}", response_model=MessageResponse)
def delete_blocked_slot(
    blocked_slot_id: int, principal: Principal = Depends(require_admin), db: Session = Depends(get_db)
):
    calendar_config.delete_blocked_slot(db, principal.customer_id, blocked_slot_id)
    return MessageResponse(message="Blocked slot deleted successfully")


# ── Profile ─────────────────────────────────────────────────────────────


@router.put("/profile", response_model=ProfileUpdateResponse)
def update_profile(
    payload: CustomerProfileUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    customer = calendar_config.update_profile(db, principal.customer_id, payload)
    return ProfileUpdateResponse(message="Profile updated successfully", customer=CustomerInfo.from_model(customer))


# ── Working hours & settings ────────────────────────────────────────────


@router.get("/working-hours", response_model=WorkingHoursListResponse)
def get_working_hours(principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    hours = repository.list_working_hours(db, principal.customer_id)
    return WorkingHoursListResponse(working_hours=[WorkingHoursResponse.from_model(h) for h in hours])


@router.put("/working-hours", response_model=WorkingHoursListResponse)
def put_working_hours(
    payload: WorkingHoursUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    hours = calendar_config.replace_working_hours(db, principal.customer_id, payload.working_hours)
    return WorkingHoursListResponse(working_hours=[WorkingHoursResponse.from_model(h) for h in hours])


@router.get("/settings", response_model=SettingsResponse)
def get_settings(principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    repository.get_customer(db, principal.customer_id)
    return SettingsResponse.from_model(repository.ensure_settings(db, principal.customer_id))


@router.put("/settings", response_model=SettingsResponse)
def put_settings(
    payload: SettingsUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return SettingsResponse.from_model(calendar_config.update_settings(db, principal.customer_id, payload))


@router.get("/calendar-config", response_model=CalendarConfigResponse)
def calendar_config_overview(principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return CalendarConfigResponse(
        settings=SettingsResponse.from_model(repository.get_settings(db, principal.customer_id)),
        working_hours=[
            WorkingHoursResponse.from_model(h) for h in repository.list_working_hours(db, principal.customer_id)
        ],
    )
