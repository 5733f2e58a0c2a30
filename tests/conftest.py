"""Pytest configuration and fixtures."""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booking_core.config import Settings
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
)
from booking_core.services.notification_service import NotificationService
from booking_core.services.stripe_service import PaymentIntentResult, RefundResult

# In-memory SQLite for unit tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DAY = date(2030, 3, 15)
# Noon UTC the day before DAY
NOW = datetime(2030, 3, 14, 12, 0)


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Create test database session."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings():
    """Settings with defaults (UTC, 10 minute locks) independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def make_offering(session):
    """Seed an offering with one recurrence date.

    `windows` is a list of (start, end, capacity) tuples; capacity None uses
    the date's default capacity.
    """

    async def _make(
        windows=(("09:00", "10:00", None),),
        day: date = DAY,
        duration: int = 30,
        default_capacity: int = 1,
        service_id: str = "service-1",
        price: Decimal = Decimal("100.00"),
        extra_days=(),
    ) -> Offering:
        offering = Offering(
            service_id=service_id,
            vendor_id="vendor-1",
            name="Haircut",
            price=price,
            currency="usd",
            duration_minutes=duration,
            is_active=True,
        )
        session.add(offering)
        await session.flush()

        by_month = {}
        for entry_day in (day, *extra_days):
            by_month.setdefault((entry_day.year, entry_day.month), []).append(entry_day)

        for (year, month), days in by_month.items():
            definition = RecurrenceDefinition(
                offering_id=offering.id,
                year=year,
                month=month,
                default_capacity=default_capacity,
                dates=[
                    RecurrenceDate(
                        entry_date=entry_day,
                        default_capacity=default_capacity,
                        windows=[
                            RecurrenceWindow(
                                position=i, start_time=start, end_time=end, capacity=capacity
                            )
                            for i, (start, end, capacity) in enumerate(windows)
                        ],
                    )
                    for entry_day in days
                ],
            )
            session.add(definition)
        await session.flush()
        return offering

    return _make


@pytest.fixture
def make_appointment(session):
    """Seed an appointment directly, bypassing the booking checks."""

    async def _make(
        offering: Offering,
        start: str = "09:00",
        end: str = "09:30",
        day: date = DAY,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        payment_mode: PaymentMode = PaymentMode.CARD,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
        payment_intent_id: str = "pi_test_123",
        total: Decimal = Decimal("100.00"),
        customer_id: str = "customer-1",
    ) -> Appointment:
        appointment = Appointment(
            offering_id=offering.id,
            customer_id=customer_id,
            appointment_date=day,
            start_time=start,
            end_time=end,
            status=status.value,
            payment_mode=payment_mode.value,
            payment_status=payment_status.value,
            payment_intent_id=payment_intent_id if payment_mode == PaymentMode.CARD else None,
            total=total,
            currency="usd",
        )
        session.add(appointment)
        await session.flush()
        return appointment

    return _make


@pytest.fixture
def mock_payments():
    """Stripe stand-in returning canned intents and refunds."""
    payments = MagicMock()
    payments.create_payment_intent = AsyncMock(
        return_value=PaymentIntentResult(
            id="pi_test_123", client_secret="pi_test_123_secret", status="requires_payment_method", amount=10000
        )
    )
    payments.retrieve_payment_intent = AsyncMock(
        return_value=PaymentIntentResult(id="pi_test_123", client_secret=None, status="succeeded", amount=10000)
    )
    payments.refund = AsyncMock(
        return_value=RefundResult(id="re_test_123", status="succeeded", amount=5000)
    )
    return payments


@pytest.fixture
def notifier():
    """Notification service stand-in recording dispatched and sent events."""
    service = MagicMock(spec=NotificationService)
    service.enabled = True
    service.send = AsyncMock(return_value=None)
    service.dispatch = MagicMock(return_value=None)
    return service


@pytest.fixture
def redis_client():
    """Redis client mock backed by a dict, honouring SET NX."""
    store = {}

    async def _set(key, value, nx=False, ex=None):
        if nx and key in store:
            return None
        store[key] = value
        return True

    async def _exists(key):
        return int(key in store)

    async def _delete(key):
        return int(store.pop(key, None) is not None)

    client = MagicMock()
    client.set = AsyncMock(side_effect=_set)
    client.exists = AsyncMock(side_effect=_exists)
    client.delete = AsyncMock(side_effect=_delete)
    client.aclose = AsyncMock()
    client.store = store
    return client
