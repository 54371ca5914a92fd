"""Tests for input validation."""

from datetime import time

import pytest
from pydantic import ValidationError

from booking_api.models import AppointmentStatus
from booking_api.schemas import (
    AdminBookingCreate,
    BlockedRangePayload,
    BlockedSlotPayload,
    BookingRequest,
    SettingsUpdate,
    StatusUpdate,
    WorkingHoursUpdate,
)
from booking_api.validators import validate_local_time, validate_mobile_phone, validate_person_name


class TestMobilePhone:
    @pytest.mark.parametrize(
        "raw",
        ["015123456789", "+49 151 23456789", "0049-151-23456789", "(0151) 234 567 89", "0171/2345678"],
    )
    def test_accepted_formats(self, raw):
        """Common ways of writing a German mobile number normalize to +49."""
        assert validate_mobile_phone(raw).startswith("+491")

    def test_normalized(self):
        assert validate_mobile_phone("0151 23456789") == "+4915123456789"

    @pytest.mark.parametrize("raw", ["030 1234567", "+1 555 1234567", "0151", "abc"])
    def test_rejected(self, raw):
        """Landlines and foreign numbers are not accepted."""
        with pytest.raises(ValueError):
            validate_mobile_phone(raw)

    def test_blank_is_none(self):
        assert validate_mobile_phone("  ") is None
        assert validate_mobile_phone(None) is None


class TestPersonName:
    def test_collapses_whitespace(self):
        assert validate_person_name("  Erika   Mustermann ") == "Erika Mustermann"

    def test_too_short(self):
        with pytest.raises(ValueError):
            validate_person_name(" E ")


class TestSchemas:
    """Tests for request models."""

    def base_request(self, **overrides):
        values = dict(
            customer_id=1, patient_name="Erika Mustermann", email="erika@mail.de", date="2030-01-14", start_time="10:00"
        )
        values.update(overrides)
        return values

    def test_valid_request(self):
        req = BookingRequest(**self.base_request())
        assert req.start_time == time(10, 0)

    def test_remarks_limit(self):
        BookingRequest(**self.base_request(remarks="x" * 500))
        with pytest.raises(ValidationError):
            BookingRequest(**self.base_request(remarks="x" * 501))

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            BookingRequest(**self.base_request(email="not-an-email"))

    def test_hyphenated_no_show(self):
        """'no-show' is read as no_show."""
        assert StatusUpdate(status="no-show").status is AppointmentStatus.NO_SHOW
        assert StatusUpdate(status="no_show").status is AppointmentStatus.NO_SHOW

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            StatusUpdate(status="archived")

    def test_admin_create_only_open_statuses(self):
        with pytest.raises(ValidationError):
            AdminBookingCreate(
                patient_name="Max Mustermann", email="max@mail.de", date="2030-01-14", start_time="10:00", status="completed"
            )

    def test_settings_ranges(self):
        values = dict(
            appointment_duration=30,
            buffer_time=0,
            max_advance_booking_days=90,
            min_advance_booking_hours=2,
            cancellation_deadline_hours=12,
        )
        SettingsUpdate(**values)
        for key, bad in [("appointment_duration", 10), ("buffer_time", 61), ("max_advance_booking_days", 0)]:
            with pytest.raises(ValidationError):
                SettingsUpdate(**{**values, key: bad})

    def test_working_hours_duplicate_day(self):
        entry = {"day_of_week": 1, "start_time": "09:00", "end_time": "17:00"}
        with pytest.raises(ValidationError):
            WorkingHoursUpdate(working_hours=[entry, entry])

    def test_working_hours_inverted(self):
        with pytest.raises(ValidationError):
            WorkingHoursUpdate(working_hours=[{"day_of_week": 1, "start_time": "17:00", "end_time": "09:00"}])

    def test_closed_day_may_have_any_times(self):
        update = WorkingHoursUpdate(
            working_hours=[{"day_of_week": 0, "start_time": "00:00", "end_time": "00:00", "is_working_day": False}]
        )
        assert update.working_hours[0].is_working_day is False


class TestLocalTimes:
    """Times with a UTC offset are refused by every model that takes a time."""

    def test_booking_request(self):
        with pytest.raises(ValidationError):
            BookingRequest(
                customer_id=1,
                patient_name="Erika Mustermann",
                email="erika@mail.de",
                date="2030-01-14",
                start_time="10:00:00+02:00",
            )

    def test_blocked_slot(self):
        with pytest.raises(ValidationError):
            BlockedSlotPayload(date="2030-01-14", start_time="12:00", end_time="13:00Z")

    def test_blocked_range(self):
        with pytest.raises(ValidationError):
            BlockedRangePayload(start_datetime="2030-01-14T12:00:00+01:00", end_datetime="2030-01-15T12:00:00")

    def test_working_hours(self):
        with pytest.raises(ValidationError):
            WorkingHoursUpdate(working_hours=[{"day_of_week": 1, "start_time": "09:00+01:00", "end_time": "17:00"}])

    def test_validator_passes_naive_values(self):
        assert validate_local_time(time(10)) == time(10)
        assert validate_local_time(None) is None
