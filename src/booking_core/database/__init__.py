"""Database connection and session management."""

from booking_core.database.connection import (
    check_connection,
    close_engine,
    create_engine,
    get_engine,
)
from booking_core.database.models import (
    Appointment,
    AppointmentStatus,
    Base,
    Offering,
    PaymentMode,
    PaymentStatus,
    RecurrenceDate,
    RecurrenceDefinition,
    RecurrenceWindow,
    SlotLock,
    WaitlistEntry,
    WaitlistStatus,
)
from booking_core.database.session import (
    close_db,
    get_session,
    get_session_context,
    get_session_factory,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "Offering",
    "RecurrenceDefinition",
    "RecurrenceDate",
    "RecurrenceWindow",
    "Appointment",
    "AppointmentStatus",
    "PaymentMode",
    "PaymentStatus",
    "SlotLock",
    "WaitlistEntry",
    "WaitlistStatus",
    # Connection
    "get_engine",
    "create_engine",
    "close_engine",
    "check_connection",
    # Session
    "get_session",
    "get_session_context",
    "get_session_factory",
    "init_db",
    "close_db",
]
