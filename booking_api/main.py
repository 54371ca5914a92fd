import logging
from contextlib import asynccontextmanager
from datetime import date as date_type, datetime
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import booking, repository, scheduler
from .admin import router as admin_router
from .config import settings
from .database import Base, engine, get_db
from .dependencies import Notifier, get_notifier, get_now
from .errors import BookingError, ValidationError
from .intervals import format_time, from_minutes
from .schemas import (
    AppointmentDetails,
    AppointmentSummary,
    AvailabilityResponse,
    BookingRequest,
    BookingResponse,
    CustomerProfileResponse,
    MessageResponse,
    NextAvailableResponse,
    NextSlot,
    SettingsResponse,
    TimeSlot,
    WorkingHoursResponse,
    WorkingWindow,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Appointment Booking API", lifespan=lifespan)
app.include_router(admin_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def parse_date_param(value: str) -> date_type:
    """Accept YYYY-MM-DD, a full ISO datetime, or either wrapped in quotes."""
    # clients sometimes send %22...%22
    raw = value.strip()
    if (raw.startswith('"') and raw.endswith('"')) or (raw.startswith("'") and raw.endswith("'")):
        raw = raw[1:-1]

    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD or ISO format")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/customers/{subdomain}", response_model=CustomerProfileResponse)
def customer_profile(subdomain: str, db: Session = Depends(get_db)):
    customer = repository.get_customer_by_subdomain(db, subdomain)
    return CustomerProfileResponse(
        id=customer.id,
        subdomain=customer.subdomain,
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        address=customer.address,
        working_hours=[WorkingHoursResponse.from_model(h) for h in repository.list_working_hours(db, customer.id)],
        settings=SettingsResponse.from_model(repository.get_settings(db, customer.id)),
    )


@app.get("/api/slots", response_model=AvailabilityResponse)
def available_slots(
    customer_id: int,
    date: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    target = parse_date_param(date)
    result = scheduler.generate_slots(db, customer_id, target, now=now)

    window = None
    if result.working_hours is not None:
        window = WorkingWindow(
            start=format_time(from_minutes(result.working_hours.start)),
            end=format_time(from_minutes(result.working_hours.end)),
        )

    return AvailabilityResponse(
        date=target.isoformat(),
        customer_name=result.customer_name,
        working_hours=window,
        appointment_duration=result.appointment_duration,
        buffer_time=result.buffer_time,
        slots=[
            TimeSlot(start_time=format_time(s.start_time), end_time=format_time(s.end_time), available=s.available)
            for s in result.slots
        ],
        total_slots=result.total_slots,
        available_slots=len(result.slots),
        message=None if window else "No working hours for this day",
    )


@app.get("/api/slots/next-available", response_model=NextAvailableResponse)
def next_available_slot(
    customer_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    found = scheduler.find_next_available(db, customer_id, now=now)
    if found is None:
        return NextAvailableResponse(message="No available slots found in the coming days")

    day, slot = found
    return NextAvailableResponse(
        next_available_slot=NextSlot(
            date=day.isoformat(),
            start_time=format_time(slot.start_time),
            end_time=format_time(slot.end_time),
        )
    )


@app.post("/api/booking", response_model=BookingResponse, status_code=201)
def book(
    req: BookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: Notifier = Depends(get_notifier),
):
    appointment = booking.create_booking(db, req, now=now, notifier=notifier, defer=background_tasks.add_task)
    return BookingResponse(
        message="Appointment booked successfully",
        appointment=AppointmentSummary.from_model(appointment),
    )


@app.get("/api/booking/{appointment_id}", response_model=AppointmentDetails)
def booking_details(appointment_id: int, token: Optional[str] = None, db: Session = Depends(get_db)):
    if not token:
        raise ValidationError("Token is required")
    return AppointmentDetails.from_model(booking.get_booking_by_token(db, appointment_id, token))


@app.delete("/api/booking/{appointment_id}", response_model=MessageResponse)
def cancel(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: Notifier = Depends(get_notifier),
):
    if not token:
        raise ValidationError("Cancellation token is required")

    booking.cancel_booking(db, appointment_id, token, now=now, notifier=notifier, defer=background_tasks.add_task)
    return MessageResponse(message="Appointment cancelled successfully")
