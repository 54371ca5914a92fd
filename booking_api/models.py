import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class AppointmentStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @classmethod
    def normalize(cls, value: str) -> "AppointmentStatus":
        """Parse a status, accepting the hyphenated ``no-show`` spelling."""
        return cls(value.strip().lower().replace("-", "_"))


# Defaults applied when a customer has no settings row yet
DEFAULT_APPOINTMENT_DURATION = 30
DEFAULT_BUFFER_TIME = 0
DEFAULT_MAX_ADVANCE_BOOKING_DAYS = 90
DEFAULT_MIN_ADVANCE_BOOKING_HOURS = 2
DEFAULT_CANCELLATION_DEADLINE_HOURS = 12


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    subdomain = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    address = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    working_hours = relationship(
        "WorkingHours",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="WorkingHours.day_of_week",
    )
    settings = relationship(
        "CustomerSettings", back_populates="customer", uselist=False, cascade="all, delete-orphan"
    )
    appointments = relationship("Appointment", back_populates="customer", cascade="all, delete-orphan")
    blocked_slots = relationship("BlockedSlot", back_populates="customer", cascade="all, delete-orphan")


class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("customer_id", "day_of_week", name="uq_working_hours_day"),)

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    # 0 = Sunday .. 6 = Saturday
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_working_day = Column(Boolean, nullable=False, default=True)

    customer = relationship("Customer", back_populates="working_hours")


class CustomerSettings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, unique=True)
    appointment_duration = Column(Integer, nullable=False, default=DEFAULT_APPOINTMENT_DURATION)
    buffer_time = Column(Integer, nullable=False, default=DEFAULT_BUFFER_TIME)
    max_advance_booking_days = Column(Integer, nullable=False, default=DEFAULT_MAX_ADVANCE_BOOKING_DAYS)
    min_advance_booking_hours = Column(Integer, nullable=False, default=DEFAULT_MIN_ADVANCE_BOOKING_HOURS)
    cancellation_deadline_hours = Column(Integer, nullable=False, default=DEFAULT_CANCELLATION_DEADLINE_HOURS)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    customer = relationship("Customer", back_populates="settings")

    @classmethod
    def defaults(cls, customer_id: int) -> "CustomerSettings":
        """Transient settings carrying the default values (not added to a session)."""
        return cls(
            customer_id=customer_id,
            appointment_duration=DEFAULT_APPOINTMENT_DURATION,
            buffer_time=DEFAULT_BUFFER_TIME,
            max_advance_booking_days=DEFAULT_MAX_ADVANCE_BOOKING_DAYS,
            min_advance_booking_hours=DEFAULT_MIN_ADVANCE_BOOKING_HOURS,
            cancellation_deadline_hours=DEFAULT_CANCELLATION_DEADLINE_HOURS,
        )


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (Index("idx_appointments_customer_date", "customer_id", "date"),)

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)

    patient_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=AppointmentStatus.CONFIRMED.value, index=True)
    notes = Column(Text)
    cancellation_token = Column(String(64), unique=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    customer = relationship("Customer", back_populates="appointments")


class BlockedSlot(Base):
    __tablename__ = "blocked_slots"
    __table_args__ = (Index("idx_blocked_slots_customer_date", "customer_id", "date"),)

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String(500))
    created_at = Column(DateTime, default=datetime.now)

    customer = relationship("Customer", back_populates="blocked_slots")
