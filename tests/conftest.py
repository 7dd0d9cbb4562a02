import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

# Tests run against a throwaway SQLite file; set before clinicflow reads its settings
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"clinicflow_test_{os.getpid()}.db"
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ["EVENTS_ENABLED"] = "true"
os.environ["LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from clinicflow.core.redis_client import CacheManager
from clinicflow.core.security import create_access_token
from clinicflow.database import get_db
from clinicflow.dependencies import get_cache_manager, get_event_publisher
from clinicflow.main import app
from clinicflow.models import appointments, doctors, metadata, patients
from clinicflow.services.appointment_store import AppointmentStore, new_appointment_id
from clinicflow.services.availability_service import AvailabilityChecker
from clinicflow.services.directory_service import DirectoryService
from clinicflow.services.event_publisher import EventPublisher
from clinicflow.services.lifecycle_service import LifecycleManager

# Use NullPool so every session gets its own SQLite connection
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Fixed "now" for lifecycle tests: the day before the 2024-11-28 schedule
FIXED_NOW = datetime(2024, 11, 27, 8, 0, tzinfo=UTC)
BOOKING_DAY = date(2024, 11, 28)


class RecordingPublisher(EventPublisher):
    """Publisher that keeps events in memory instead of sending them."""

    def __init__(self) -> None:
        super().__init__(redis_client=None, exchange="appointment_events", enabled=True)
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> bool:
        self.events.append((topic, payload))
        return True

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.events]


def fixed_clock(moment: datetime = FIXED_NOW) -> Callable[[], datetime]:
    return lambda: moment


def offline_cache() -> CacheManager:
    """Cache manager whose Redis always misses."""
    redis = AsyncMock()
    redis.get.return_value = None
    return CacheManager(redis)


def paid_booking(**overrides: Any) -> dict[str, Any]:
    data = {
        "doctor_id": "doc_cardio_1",
        "date": BOOKING_DAY.isoformat(),
        "time": "10:00",
        "payment_status": "paid",
        "payment_method": "upi",
        "payment_id": "pay_123",
        "payment_amount": "500.00",
        "notes": "Chest pain follow-up",
    }
    data.update(overrides)
    return data


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest_asyncio.fixture
async def directory_data(db_session: AsyncSession) -> dict[str, list[dict[str, Any]]]:
    """Insert doctors and patients used across tests."""
    now = datetime.now(UTC)
    doctor_rows = [
        {
            "id": "doc_cardio_1",
            "full_name": "Dr. Asha Rao",
            "email": "asha.rao@example.com",
            "specialization": "Cardiology",
            "experience_years": 12,
            "rating": 4.8,
            "consultation_fee": 500,
            "is_active": True,
        },
        {
            "id": "doc_cardio_2",
            "full_name": "Dr. Vikram Shah",
            "email": "vikram.shah@example.com",
            "specialization": "Cardiology",
            "experience_years": 8,
            "rating": 4.5,
            "consultation_fee": 450,
            "is_active": True,
        },
        {
            "id": "doc_cardio_3",
            "full_name": "Dr. Retired Cardiologist",
            "specialization": "Cardiology",
            "rating": 5.0,
            "is_active": False,
        },
        {
            "id": "doc_derm_1",
            "full_name": "Dr. Meera Iyer",
            "email": "meera.iyer@example.com",
            "specialization": "Dermatology",
            "experience_years": 5,
            "rating": 4.2,
            "consultation_fee": 300,
            "is_active": True,
        },
    ]
    patient_rows = [
        {
            "id": "pat_1",
            "full_name": "Ravi Kumar",
            "email": "ravi@example.com",
            "phone": "+919800000001",
        },
        {
            "id": "pat_2",
            "full_name": "Anita Desai",
            "email": "anita@example.com",
            "phone": "+919800000002",
        },
    ]

    for row in doctor_rows:
        await db_session.execute(
            insert(doctors).values(created_at=now, updated_at=now, **row)
        )
    for row in patient_rows:
        await db_session.execute(
            insert(patients).values(created_at=now, updated_at=now, **row)
        )
    await db_session.commit()

    return {"doctors": doctor_rows, "patients": patient_rows}


@pytest.fixture
def insert_appointment(db_session: AsyncSession) -> Callable:
    """Insert an appointment row directly, bypassing the lifecycle rules."""

    async def _insert(**overrides: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        values = {
            "id": new_appointment_id(),
            "doctor_id": "doc_cardio_1",
            "patient_id": "pat_1",
            "doctor_name": "Dr. Asha Rao",
            "doctor_specialization": "Cardiology",
            "patient_name": "Ravi Kumar",
            "date": BOOKING_DAY,
            "time": "10:00",
            "type": "consultation",
            "status": "scheduled",
            "payment_status": "paid",
            "payment_method": "upi",
            "payment_transaction_id": "pay_seed",
            "payment_currency": "INR",
            "paid_at": now,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        await db_session.execute(insert(appointments).values(**values))
        await db_session.commit()
        return values

    return _insert


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


def build_manager(
    session: AsyncSession,
    publisher: EventPublisher,
    clock: Callable[[], datetime] | None = None,
) -> LifecycleManager:
    store = AppointmentStore(session)
    directory = DirectoryService(session)
    availability = AvailabilityChecker(store, directory)
    return LifecycleManager(store, availability, directory, publisher, clock=clock or fixed_clock())


@pytest.fixture
def manager(db_session: AsyncSession, publisher: RecordingPublisher) -> LifecycleManager:
    """Lifecycle manager with the clock pinned to ``FIXED_NOW``."""
    return build_manager(db_session, publisher)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_cache_manager] = offline_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def token_headers(actor_id: str, role: str) -> dict[str, str]:
    token = create_access_token(
        data={"sub": actor_id, "role": role},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_headers() -> dict[str, str]:
    return token_headers("pat_1", "patient")


@pytest.fixture
def other_patient_headers() -> dict[str, str]:
    return token_headers("pat_2", "patient")


@pytest.fixture
def doctor_headers() -> dict[str, str]:
    return token_headers("doc_cardio_1", "doctor")


@pytest.fixture
def other_doctor_headers() -> dict[str, str]:
    return token_headers("doc_derm_1", "doctor")
