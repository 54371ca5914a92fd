from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .intervals import format_time
from .models import AppointmentStatus
from .validators import validate_local_time, validate_mobile_phone, validate_person_name


def _parse_status(value):
    if isinstance(value, str):
        try:
            return AppointmentStatus.normalize(value)
        except ValueError:
            raise ValueError(f"Invalid status: {value}")
    return value


class TimeSlot(BaseModel):
    start_time: str
    end_time: str
    available: bool = True


class WorkingWindow(BaseModel):
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    date: str
    customer_name: str
    working_hours: Optional[WorkingWindow] = None
    appointment_duration: int
    buffer_time: int
    slots: List[TimeSlot]
    total_slots: int
    available_slots: int
    message: Optional[str] = None


class NextSlot(BaseModel):
    date: str
    start_time: str
    end_time: str


class NextAvailableResponse(BaseModel):
    next_available_slot: Optional[NextSlot] = None
    message: Optional[str] = None


class PatientDetails(BaseModel):
    patient_name: str = Field(max_length=255)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("patient_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_person_name(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return validate_mobile_phone(v)


class BookingRequest(PatientDetails):
    customer_id: int
    date: date
    start_time: time
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("start_time")
    @classmethod
    def check_local_time(cls, v: time) -> time:
        return validate_local_time(v)


class AdminBookingCreate(PatientDetails):
    date: date
    start_time: time
    notes: Optional[str] = Field(default=None, max_length=500)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED

    @field_validator("start_time")
    @classmethod
    def check_local_time(cls, v: time) -> time:
        return validate_local_time(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return _parse_status(v)

    @field_validator("status")
    @classmethod
    def check_initial_status(cls, v: AppointmentStatus) -> AppointmentStatus:
        if v not in (AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING):
            raise ValueError("New bookings must be confirmed or pending")
        return v


class BookingUpdate(PatientDetails):
    date: date
    start_time: time
    end_time: time
    notes: Optional[str] = Field(default=None, max_length=500)
    status: AppointmentStatus

    @field_validator("start_time", "end_time")
    @classmethod
    def check_local_time(cls, v: time) -> time:
        return validate_local_time(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return _parse_status(v)


class StatusUpdate(BaseModel):
    status: AppointmentStatus

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return _parse_status(v)


class AppointmentSummary(BaseModel):
    id: int
    patient_name: str
    email: str
    date: str
    start_time: str
    end_time: str
    status: str
    cancellation_token: str

    @classmethod
    def from_model(cls, appointment) -> "AppointmentSummary":
        return cls(
            id=appointment.id,
            patient_name=appointment.patient_name,
            email=appointment.email,
            date=appointment.date.isoformat(),
            start_time=format_time(appointment.start_time),
            end_time=format_time(appointment.end_time),
            status=appointment.status,
            cancellation_token=appointment.cancellation_token,
        )


class BookingResponse(BaseModel):
    message: str
    appointment: AppointmentSummary


class AppointmentDetails(BaseModel):
    id: int
    customer_id: int
    customer_name: Optional[str] = None
    patient_name: str
    email: str
    phone: Optional[str] = None
    date: str
    start_time: str
    end_time: str
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, appointment) -> "AppointmentDetails":
        return cls(
            id=appointment.id,
            customer_id=appointment.customer_id,
            customer_name=appointment.customer.name if appointment.customer else None,
            patient_name=appointment.patient_name,
            email=appointment.email,
            phone=appointment.phone,
            date=appointment.date.isoformat(),
            start_time=format_time(appointment.start_time),
            end_time=format_time(appointment.end_time),
            status=appointment.status,
            notes=appointment.notes,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class BookingUpdateResponse(BaseModel):
    message: str
    booking: AppointmentDetails


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BookingListResponse(BaseModel):
    bookings: List[AppointmentDetails]
    pagination: Pagination


class StatusResponse(BaseModel):
    message: str
    status: str


class StatsOverview(BaseModel):
    total: int
    confirmed: int
    pending: int
    cancelled: int
    completed: int
    no_show: int
    upcoming: int
    past: int


class StatsResponse(BaseModel):
    overview: StatsOverview


class MessageResponse(BaseModel):
    message: str


class BlockedSlotPayload(BaseModel):
    date: date
    start_time: time
    end_time: time
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_local_time(cls, v: time) -> time:
        return validate_local_time(v)


class BlockedRangePayload(BaseModel):
    """A closure from one local datetime to another, possibly over several days."""

    start_datetime: datetime
    end_datetime: datetime
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def check_local_time(cls, v: datetime) -> datetime:
        return validate_local_time(v)


class BlockedSlotResponse(BaseModel):
    id: int
    date: str
    start_time: str
    end_time: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, blocked) -> "BlockedSlotResponse":
        return cls(
            id=blocked.id,
            date=blocked.date.isoformat(),
            start_time=format_time(blocked.start_time),
            end_time=format_time(blocked.end_time),
            reason=blocked.reason,
            created_at=blocked.created_at,
        )


class BlockedSlotListResponse(BaseModel):
    blocked_slots: List[BlockedSlotResponse]


class WorkingHoursEntry(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_working_day: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def check_local_time(cls, v: time) -> time:
        return validate_local_time(v)

    @model_validator(mode="after")
    def check_ordered(self):
        if self.is_working_day and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time on working days")
        return self


class WorkingHoursUpdate(BaseModel):
    working_hours: List[WorkingHoursEntry] = Field(min_length=1, max_length=7)

    @field_validator("working_hours")
    @classmethod
    def check_unique_days(cls, v: List[WorkingHoursEntry]) -> List[WorkingHoursEntry]:
        days = [entry.day_of_week for entry in v]
        if len(days) != len(set(days)):
            raise ValueError("Each day_of_week may appear only once")
        return v


class WorkingHoursResponse(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str
    is_working_day: bool

    @classmethod
    def from_model(cls, hours) -> "WorkingHoursResponse":
        return cls(
            day_of_week=hours.day_of_week,
            start_time=format_time(hours.start_time),
            end_time=format_time(hours.end_time),
            is_working_day=hours.is_working_day,
        )


class WorkingHoursListResponse(BaseModel):
    working_hours: List[WorkingHoursResponse]


class SettingsUpdate(BaseModel):
    appointment_duration: int = Field(ge=15, le=240)
    buffer_time: int = Field(ge=0, le=60)
    max_advance_booking_days: int = Field(ge=1, le=365)
    min_advance_booking_hours: int = Field(ge=0, le=168)
    cancellation_deadline_hours: int = Field(ge=0, le=168)


class SettingsResponse(BaseModel):
    appointment_duration: int
    buffer_time: int
    max_advance_booking_days: int
    min_advance_booking_hours: int
    cancellation_deadline_hours: int

    @classmethod
    def from_model(cls, settings) -> "SettingsResponse":
        return cls(
            appointment_duration=settings.appointment_duration,
            buffer_time=settings.buffer_time,
            max_advance_booking_days=settings.max_advance_booking_days,
            min_advance_booking_hours=settings.min_advance_booking_hours,
            cancellation_deadline_hours=settings.cancellation_deadline_hours,
        )


class CalendarConfigResponse(BaseModel):
    settings: SettingsResponse
    working_hours: List[WorkingHoursResponse]


class CustomerProfileResponse(BaseModel):
    id: int
    subdomain: str
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    working_hours: List[WorkingHoursResponse]
    settings: SettingsResponse


class CustomerProfileUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_person_name(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return validate_mobile_phone(v)


class CustomerInfo(BaseModel):
    id: int
    subdomain: str
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_model(cls, customer) -> "CustomerInfo":
        return cls(
            id=customer.id,
            subdomain=customer.subdomain,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
        )


class ProfileUpdateResponse(BaseModel):
    message: str
    customer: CustomerInfo
