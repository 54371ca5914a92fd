"""Tests for the public slot and booking routes."""

import pytest

from booking_api.dependencies import get_notifier
from booking_api.main import app

from tests.conftest import FailingNotifier

BOOKING = {
    "patient_name": "Erika Mustermann",
    "email": "erika@mail.de",
    "phone": "0151 23456789",
    "date": "2030-01-14",
    "start_time": "10:00",
}


def book(client, customer_id, **overrides):
    return client.post("/api/booking", json={"customer_id": customer_id, **BOOKING, **overrides})


class TestHealthAndProfile:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_profile(self, client, customer_id):
        """The profile lists working hours and the default settings."""
        response = client.get("/api/customers/praxis-mueller")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == customer_id
        assert len(data["working_hours"]) == 6
        assert data["settings"]["appointment_duration"] == 30
        assert data["settings"]["cancellation_deadline_hours"] == 12

    def test_unknown_subdomain(self, client):
        response = client.get("/api/customers/nobody")
        assert response.status_code == 404
        assert response.json()["detail"] == "Customer not found"


class TestSlotRoutes:
    """Tests for GET /api/slots."""

    def test_free_day(self, client, customer_id):
        response = client.get("/api/slots", params={"customer_id": customer_id, "date": "2030-01-14"})
        assert response.status_code == 200
        data = response.json()
        assert data["total_slots"] == 16
        assert data["available_slots"] == 16
        assert data["working_hours"] == {"start": "09:00", "end": "17:00"}
        assert data["slots"][0] == {"start_time": "09:00", "end_time": "09:30", "available": True}

    def test_quoted_date(self, client, customer_id):
        """Dates wrapped in quotes are accepted."""
        response = client.get("/api/slots", params={"customer_id": customer_id, "date": '"2030-01-14"'})
        assert response.status_code == 200
        assert response.json()["date"] == "2030-01-14"

    def test_closed_day(self, client, customer_id):
        response = client.get("/api/slots", params={"customer_id": customer_id, "date": "2030-01-13"})
        data = response.json()
        assert data["slots"] == []
        assert data["working_hours"] is None
        assert data["message"] == "No working hours for this day"

    def test_past_date(self, client, customer_id):
        response = client.get("/api/slots", params={"customer_id": customer_id, "date": "2030-01-06"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot book appointments in the past"

    def test_bad_date(self, client, customer_id):
        response = client.get("/api/slots", params={"customer_id": customer_id, "date": "next monday"})
        assert response.status_code == 400

    def test_unknown_customer(self, client, customer_id):
        response = client.get("/api/slots", params={"customer_id": customer_id + 100, "date": "2030-01-14"})
        assert response.status_code == 404

    def test_booked_slot_disappears(self, client, customer_id):
        """After booking 10:00 the slot list no longer offers it."""
        book(client, customer_id)
        data = client.get("/api/slots", params={"customer_id": customer_id, "date": "2030-01-14"}).json()
        assert data["available_slots"] == 15
        assert "10:00" not in [s["start_time"] for s in data["slots"]]

    def test_next_available(self, client, customer_id):
        response = client.get("/api/slots/next-available", params={"customer_id": customer_id})
        assert response.json()["next_available_slot"] == {
            "date": "2030-01-08",
            "start_time": "09:00",
            "end_time": "09:30",
        }


class TestBookingRoutes:
    """Tests for POST/GET/DELETE /api/booking."""

    def test_create(self, client, customer_id, notifier):
        """A booking returns 201 with a token and queues the confirmation."""
        response = book(client, customer_id)
        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "confirmed"
        assert appointment["end_time"] == "10:30"
        assert appointment["cancellation_token"]
        assert [template for template, _ in notifier.sent] == ["booking_confirmation"]

    def test_double_booking(self, client, customer_id):
        book(client, customer_id)
        response = book(client, customer_id, patient_name="Hans Meier")
        assert response.status_code == 409
        assert response.json()["detail"] == "This time slot is no longer available"

    def test_too_soon(self, client, customer_id):
        response = book(client, customer_id, date="2030-01-07", start_time="09:00")
        assert response.status_code == 400
        assert response.json()["detail"] == "Bookings must be made at least 2 hours in advance"

    def test_outside_hours(self, client, customer_id):
        response = book(client, customer_id, start_time="18:00")
        assert response.status_code == 400
        assert response.json()["detail"] == "Booking outside working hours"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"email": "not-an-email"},
            {"phone": "030 1234567"},
            {"patient_name": "E"},
            {"remarks": "x" * 501},
            {"start_time": "25:00"},
        ],
    )
    def test_invalid_input(self, client, customer_id, overrides):
        response = book(client, customer_id, **overrides)
        assert response.status_code == 400
        assert response.json()["detail"] == "Validation failed"
        assert response.json()["errors"]

    def test_time_with_utc_offset_rejected(self, client, customer_id):
        """A start time carrying a UTC offset is a validation error, not a server error."""
        response = book(client, customer_id, start_time="10:00:00+02:00")
        assert response.status_code == 400
        assert response.json()["detail"] == "Validation failed"

    def test_beyond_advance_window(self, client, customer_id):
        """A date the calendar refuses to show cannot be booked directly."""
        slots = client.get("/api/slots", params={"customer_id": customer_id, "date": "2031-03-03"})
        assert slots.status_code == 400
        response = book(client, customer_id, date="2031-03-03")
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot book appointments more than 90 days in advance"

    def test_notification_failure_does_not_fail_booking(self, client, customer_id):
        app.dependency_overrides[get_notifier] = lambda: FailingNotifier()
        response = book(client, customer_id)
        assert response.status_code == 201

    def test_read_by_token(self, client, customer_id):
        appointment = book(client, customer_id).json()["appointment"]
        response = client.get(f"/api/booking/{appointment['id']}", params={"token": appointment["cancellation_token"]})
        assert response.status_code == 200
        assert response.json()["customer_name"] == "Praxis Dr. Müller"
        assert response.json()["phone"] == "+4915123456789"

    def test_read_requires_token(self, client, customer_id):
        appointment = book(client, customer_id).json()["appointment"]
        assert client.get(f"/api/booking/{appointment['id']}").status_code == 400
        assert client.get(f"/api/booking/{appointment['id']}", params={"token": "x"}).status_code == 404

    def test_cancel(self, client, customer_id, notifier):
        """Cancelling frees the slot and sends a cancellation notice."""
        appointment = book(client, customer_id).json()["appointment"]
        response = client.delete(
            f"/api/booking/{appointment['id']}", params={"token": appointment["cancellation_token"]}
        )
        assert response.status_code == 200
        assert notifier.sent[-1][0] == "booking_cancelled"
        assert book(client, customer_id, patient_name="Hans Meier").status_code == 201

    def test_cancel_wrong_token(self, client, customer_id):
        appointment = book(client, customer_id).json()["appointment"]
        response = client.delete(f"/api/booking/{appointment['id']}", params={"token": "guess"})
        assert response.status_code == 404

    def test_cancel_missing_token(self, client, customer_id):
        appointment = book(client, customer_id).json()["appointment"]
        assert client.delete(f"/api/booking/{appointment['id']}").status_code == 400

    def test_cancel_after_deadline(self, client, customer_id):
        """A same-day appointment four hours away is past the 12 hour deadline."""
        appointment = book(client, customer_id, date="2030-01-07", start_time="12:00").json()["appointment"]
        response = client.delete(
            f"/api/booking/{appointment['id']}", params={"token": appointment["cancellation_token"]}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Cancellation deadline has passed (12 hours before appointment)"
