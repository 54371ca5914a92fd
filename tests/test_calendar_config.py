"""Tests for admin writes when the database fails mid-transaction."""

from datetime import datetime, time

import pytest
from sqlalchemy.exc import OperationalError

from booking_api import booking, calendar_config
from booking_api.errors import ConflictError
from booking_api.models import Appointment, BlockedSlot, CustomerSettings
from booking_api.schemas import BlockedRangePayload, SettingsUpdate

from tests.conftest import MONDAY, TUESDAY, add_appointment, add_blocked_slot


def failing_commit(session):
    """A commit that writes its changes and then fails, as a lost connection would."""

    def commit():
        session.flush()
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    return commit


class TestRollbackOnFailure:
    """A failed commit leaves the session usable and the data unchanged."""

    def test_delete_booking(self, db, customer_id, monkeypatch):
        appointment = add_appointment(db, customer_id, MONDAY, time(10), time(10, 30))
        appointment_id = appointment.id

        monkeypatch.setattr(db, "commit", failing_commit(db))
        with pytest.raises(OperationalError):
            booking.delete_booking(db, customer_id, appointment_id)
        monkeypatch.undo()

        assert db.get(Appointment, appointment_id) is not None

    def test_delete_blocked_slot(self, db, customer_id, monkeypatch):
        blocked_id = add_blocked_slot(db, customer_id, MONDAY, time(12), time(13)).id

        monkeypatch.setattr(db, "commit", failing_commit(db))
        with pytest.raises(OperationalError):
            calendar_config.delete_blocked_slot(db, customer_id, blocked_id)
        monkeypatch.undo()

        assert db.get(BlockedSlot, blocked_id) is not None

    def test_update_settings(self, db, customer_id, monkeypatch):
        payload = SettingsUpdate(
            appointment_duration=60,
            buffer_time=10,
            max_advance_booking_days=30,
            min_advance_booking_hours=0,
            cancellation_deadline_hours=24,
        )

        monkeypatch.setattr(db, "commit", failing_commit(db))
        with pytest.raises(OperationalError):
            calendar_config.update_settings(db, customer_id, payload)
        monkeypatch.undo()

        assert db.query(CustomerSettings).filter(CustomerSettings.customer_id == customer_id).first() is None


class TestBlockedRange:
    """Tests for calendar_config.create_blocked_range."""

    def test_one_row_per_day(self, db, customer_id):
        payload = BlockedRangePayload(
            start_datetime=datetime(2030, 1, 14, 15), end_datetime=datetime(2030, 1, 16, 11), reason="Training"
        )
        created = calendar_config.create_blocked_range(db, customer_id, payload)
        assert [b.date for b in created] == [MONDAY, TUESDAY, datetime(2030, 1, 16).date()]
        assert all(b.reason == "Training" for b in created)
        assert db.query(BlockedSlot).count() == 3

    def test_conflict_rolls_back_every_day(self, db, customer_id):
        add_appointment(db, customer_id, TUESDAY, time(9), time(9, 30))
        payload = BlockedRangePayload(start_datetime=datetime(2030, 1, 14, 15), end_datetime=datetime(2030, 1, 16, 11))
        with pytest.raises(ConflictError):
            calendar_config.create_blocked_range(db, customer_id, payload)
        assert db.query(BlockedSlot).count() == 0
