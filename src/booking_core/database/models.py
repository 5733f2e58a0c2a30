"""SQLAlchemy database models.

Instants (`created_at`, `expires_at`...) are stored as naive UTC. Calendar
dates are `Date` columns and times of day are "HH:MM" strings, which sort
and compare correctly as text.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from booking_core.utils.clock import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    MISSED = "missed"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    """Payment state of an appointment."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    FAILED = "failed"


class PaymentMode(str, Enum):
    """How the customer pays. Only card payments go through the gateway."""

    CARD = "card"
    CASH = "cash"
    WALLET = "wallet"


class WaitlistStatus(str, Enum):
    """Waitlist entry states."""

    ACTIVE = "active"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    BOOKED = "booked"


class Offering(Base):
    """A vendor's bookable service instance."""

    __tablename__ = "offerings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Logical service (offering family); several vendors may offer the same service
    service_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    vendor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Offering(id={self.id}, service_id={self.service_id}, name={self.name})>"


class RecurrenceDefinition(Base):
    """Recurring availability of one offering for one calendar month."""

    __tablename__ = "recurrence_definitions"
    __table_args__ = (
        UniqueConstraint("offering_id", "year", "month", name="uq_recurrence_offering_month"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    offering_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("offerings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    default_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    dates: Mapped[list["RecurrenceDate"]] = relationship(
        "RecurrenceDate",
        back_populates="definition",
        cascade="all, delete-orphan",
        order_by="RecurrenceDate.entry_date",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<RecurrenceDefinition(offering_id={self.offering_id}, "
            f"{self.year}-{self.month:02d})>"
        )


class RecurrenceDate(Base):
    """A calendar date inside a recurrence definition."""

    __tablename__ = "recurrence_dates"
    __table_args__ = (UniqueConstraint("definition_id", "entry_date", name="uq_recurrence_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    definition_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("recurrence_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # "reoccurrence": capacity used by windows that don't set their own
    default_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    definition: Mapped["RecurrenceDefinition"] = relationship(
        "RecurrenceDefinition", back_populates="dates"
    )
    windows: Mapped[list["RecurrenceWindow"]] = relationship(
        "RecurrenceWindow",
        back_populates="recurrence_date",
        cascade="all, delete-orphan",
        order_by="RecurrenceWindow.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<RecurrenceDate(date={self.entry_date}, default_capacity={self.default_capacity})>"


class RecurrenceWindow(Base):
    """A time window on a recurrence date. Windows may overlap."""

    __tablename__ = "recurrence_windows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    recurrence_date_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("recurrence_dates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    recurrence_date: Mapped["RecurrenceDate"] = relationship(
        "RecurrenceDate", back_populates="windows"
    )

    def __repr__(self) -> str:
        return f"<RecurrenceWindow({self.start_time}-{self.end_time}, capacity={self.capacity})>"


class Appointment(Base):
    """One reserved unit of a slot's capacity."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "ix_appointments_slot_key",
            "offering_id",
            "appointment_date",
            "start_time",
            "end_time",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)
    offering_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("offerings.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, default=AppointmentStatus.PENDING.value
    )
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status_changed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Payment
    payment_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMode.CARD.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentStatus.PENDING.value
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    # Refund
    refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    refund_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    refund_percentage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, offering_id={self.offering_id}, "
            f"date={self.appointment_date}, {self.start_time}-{self.end_time}, status={self.status})>"
        )


class SlotLock(Base):
    """Short-lived checkout reservation of a slot.

    The unique constraint on the slot key is what makes acquisition atomic:
    at most one row per (offering, date, start, end) can exist.
    """

    __tablename__ = "slot_locks"
    __table_args__ = (
        UniqueConstraint(
            "offering_id",
            "lock_date",
            "start_time",
            "end_time",
            name="uq_slot_locks_slot_key",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    offering_id: Mapped[str] = mapped_column(String(36), nullable=False)
    lock_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    holder_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<SlotLock(offering_id={self.offering_id}, date={self.lock_date}, "
            f"{self.start_time}-{self.end_time}, holder={self.holder_id})>"
        )


class WaitlistEntry(Base):
    """A customer waiting for capacity on a date."""

    __tablename__ = "waitlist_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    offering_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("offerings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    preferred_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, default=WaitlistStatus.ACTIVE.value
    )
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, offering_id={self.offering_id}, "
            f"date={self.preferred_date}, status={self.status})>"
        )
