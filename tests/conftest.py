"""Shared fixtures: a file-backed SQLite database per test, a seeded practice and a pinned clock."""

from datetime import date, datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from booking_api.auth import create_access_token
from booking_api.database import Base, build_engine, get_db
from booking_api.dependencies import get_notifier, get_now
from booking_api.main import app
from booking_api.models import Appointment, BlockedSlot, Customer, CustomerSettings, WorkingHours
from booking_api.notifications import Notifier

# Monday morning; bookings for "today" need two hours of notice
NOW = datetime(2030, 1, 7, 8, 0)
TODAY = NOW.date()
SATURDAY = date(2030, 1, 12)
SUNDAY = date(2030, 1, 13)
MONDAY = date(2030, 1, 14)
TUESDAY = date(2030, 1, 15)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify(self, template, data):
        self.sent.append((template, data))


class FailingNotifier(Notifier):
    def __init__(self):
        self.attempts = 0

    def notify(self, template, data):
        self.attempts += 1
        raise ConnectionError("SMTP server unreachable")


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_practice(session, subdomain="praxis-mueller", **settings):
    """Create a practice open Mon-Fri 09:00-17:00, closed on Sunday, with no row for Saturday."""
    customer = Customer(subdomain=subdomain, name="Praxis Dr. Müller", email="info@praxis-mueller.de")
    session.add(customer)
    session.flush()

    for day in range(1, 6):
        session.add(
            WorkingHours(customer_id=customer.id, day_of_week=day, start_time=time(9), end_time=time(17))
        )
    session.add(
        WorkingHours(
            customer_id=customer.id, day_of_week=0, start_time=time(9), end_time=time(17), is_working_day=False
        )
    )
    if settings:
        session.add(CustomerSettings(customer_id=customer.id, **settings))

    customer_id = customer.id
    session.commit()
    return customer_id


@pytest.fixture
def customer_id(session_factory):
    with session_factory() as session:
        return seed_practice(session)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def add_appointment(session, customer_id, day, start, end, status="confirmed", token=None):
    appointment = Appointment(
        customer_id=customer_id,
        patient_name="Max Mustermann",
        email="max@mail.de",
        date=day,
        start_time=start,
        end_time=end,
        status=status,
        cancellation_token=token or f"token-{day}-{start}-{status}",
    )
    session.add(appointment)
    session.commit()
    return appointment


def add_blocked_slot(session, customer_id, day, start, end, reason="Team meeting"):
    blocked = BlockedSlot(customer_id=customer_id, date=day, start_time=start, end_time=end, reason=reason)
    session.add(blocked)
    session.commit()
    return blocked


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, customer_id, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(customer_id):
    return {"Authorization": f"Bearer {create_access_token(customer_id)}"}
