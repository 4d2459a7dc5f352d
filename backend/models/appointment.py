"""Appointment model definitions."""

import enum

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
    text,
)
from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    ABSENT = 'ABSENT'


class AppointmentType(str, enum.Enum):
    CONSULTATION = 'CONSULTATION'
    EXTRACTION = 'EXTRACTION'
    CONTROL = 'CONTROL'
    SURGERY = 'SURGERY'
    OTHER = 'OTHER'


OPEN_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class Appointment(Base):
    """Represents a booked appointment. Rows are never deleted."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one non-cancelled appointment per specialist slot.
        Index(
            'uq_appointments_active_slot',
            'specialist_id',
            'date',
            'start_time',
            unique=True,
            sqlite_where=text("status <> 'CANCELLED'"),
            postgresql_where=text("status <> 'CANCELLED'"),
        ),
        Index('idx_appointments_affiliate_date', 'affiliate_id', 'date'),
        # A client idempotency key books at most once per affiliate.
        Index(
            'uq_appointments_affiliate_idempotency',
            'affiliate_id',
            'idempotency_key',
            unique=True,
            sqlite_where=text('idempotency_key IS NOT NULL'),
            postgresql_where=text('idempotency_key IS NOT NULL'),
        ),
    )

    id = Column(Integer, primary_key=True)
    affiliate_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    appointment_type = Column(String, nullable=False)
    status = Column(String, nullable=False)
    clinical_notes = Column(Text)
    prescription = Column(Text)
    cancellation_reason = Column(Text)
    cancelled_by = Column(String)
    penalty_applied = Column(Boolean, default=False, nullable=False)
    parent_appointment_id = Column(Integer, ForeignKey("appointments.id"))
    idempotency_key = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
