"""Test configuration and fixtures."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WORKERS_ENABLED", "false")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

from datetime import date, timedelta  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from hypothesis import HealthCheck  # noqa: E402
from hypothesis import settings as hypothesis_settings  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from tripdesk.core.clock import local_today  # noqa: E402
from tripdesk.core.config import settings  # noqa: E402
from tripdesk.core.database import Base, configure_sqlite_locking, get_db  # noqa: E402
from tripdesk.core.permissions import Actor, Role  # noqa: E402
from tripdesk.models import *  # noqa: E402,F403 - Import all models
from tripdesk.models.batch import Batch  # noqa: E402
from tripdesk.models.trip import Trip  # noqa: E402
from tripdesk.services.notification_service import (  # noqa: E402
    LoggingNotificationSink,
    NotificationDispatcher,
    set_dispatcher,
)

# The autouse notifier fixture is function scoped; property tests never touch it
hypothesis_settings.register_profile("tripdesk", suppress_health_check=[HealthCheck.function_scoped_fixture])
hypothesis_settings.load_profile("tripdesk")

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    configure_sqlite_locking(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_session_factory(tmp_path):
    """
    Session factory over a file-backed database.

    Every session gets its own connection, so concurrent tasks really do
    contend for the write lock.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tripdesk.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    configure_sqlite_locking(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(autouse=True)
async def _dispose_app_engine():
    """Drop the app engine's pooled connection so it never outlives the test's event loop."""
    from tripdesk.core.database import engine

    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
def notifier():
    """Capture notifications in memory instead of sending them."""
    dispatcher = NotificationDispatcher(LoggingNotificationSink())
    set_dispatcher(dispatcher)
    yield dispatcher
    set_dispatcher(None)


@pytest.fixture
def traveller():
    return Actor(id="traveller-1")


@pytest.fixture
def other_traveller():
    return Actor(id="traveller-2")


@pytest.fixture
def admin():
    return Actor(id="admin-1", roles=frozenset({Role.ADMIN}))


@pytest.fixture
def super_admin():
    return Actor(id="root-1", roles=frozenset({Role.SUPER_ADMIN}))


@pytest.fixture
def finance_manager():
    return Actor(id="finance-1", roles=frozenset({Role.FINANCE_MANAGER}))


@pytest.fixture
def support_staff():
    return Actor(id="support-1", roles=frozenset({Role.SUPPORT_STAFF}))


def make_token(subject: str, roles: list[str] | None = None) -> str:
    """Bearer token as the auth service would issue it."""
    return jwt.encode(
        {"sub": subject, "roles": roles or ["user"]},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


def auth_headers(subject: str, roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(subject, roles)}"}


@pytest.fixture
def traveller_headers():
    return auth_headers("traveller-1")


@pytest.fixture
def admin_headers():
    return auth_headers("admin-1", ["admin"])


@pytest.fixture
def super_admin_headers():
    return auth_headers("root-1", ["super_admin"])


def future_date(days: int) -> date:
    return local_today() + timedelta(days=days)


async def create_trip(session: AsyncSession, **overrides) -> Trip:
    """Insert a bookable trip."""
    values = {
        "name": "Spiti Valley Circuit",
        "slug": "spiti-valley-circuit",
        "default_price": 10000,
        "origin_prices": {"delhi": 10000, "chandigarh": 9000},
        "advance_per_traveller": 2000,
        "default_capacity": 20,
        "is_active": True,
        "booking_live": True,
    }
    values.update(overrides)
    trip = Trip(**values)
    session.add(trip)
    await session.commit()
    await session.refresh(trip)
    return trip


async def create_batch(session: AsyncSession, trip: Trip, days_out: int = 40, **overrides) -> Batch:
    """Insert an active batch departing ``days_out`` days from today."""
    start = future_date(days_out)
    values = {
        "trip_id": trip.id,
        "name": f"Batch {start.isoformat()}",
        "start_date": start,
        "end_date": start + timedelta(days=6),
        "batch_size": 10,
        "seats_booked": 0,
        "status": "active",
    }
    values.update(overrides)
    values.setdefault("available_seats", values["batch_size"] - values["seats_booked"])
    batch = Batch(**values)
    session.add(batch)
    await session.commit()
    await session.refresh(batch)
    return batch


async def set_seats_booked(session: AsyncSession, batch: Batch, seats_booked: int) -> Batch:
    """Force a batch's counters, keeping the cached availability consistent."""
    await session.execute(
        update(Batch)
        .where(Batch.id == batch.id)
        .values(seats_booked=seats_booked, available_seats=Batch.batch_size - seats_booked)
    )
    await session.commit()
    await session.refresh(batch)
    return batch


@pytest_asyncio.fixture
async def trip(test_session):
    return await create_trip(test_session)


@pytest_asyncio.fixture
async def batch(test_session, trip):
    return await create_batch(test_session, trip)


@pytest.fixture
def contact():
    return {"full_name": "Asha Verma", "email": "asha@example.com", "phone": "+91 98765 43210"}


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Application wired to the test session; lifespan is not run."""
    from tripdesk.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def new_booking(
    session: AsyncSession,
    trip: Trip,
    batch: Batch | None,
    actor: Actor,
    traveller_count: int = 1,
    total_amount: int | None = 10000,
    pickup_location: str | None = None,
):
    """Create a booking through the service, as a traveller would."""
    from tripdesk.schemas.booking import CreateBookingRequest
    from tripdesk.services.booking_service import BookingService

    request = CreateBookingRequest(
        trip_id=str(trip.id),
        batch_id=str(batch.id) if batch else None,
        traveller_count=traveller_count,
        total_amount=total_amount,
        pickup_location=pickup_location,
        contact={"full_name": "Asha Verma", "email": "asha@example.com", "phone": "98765 43210"},
    )
    return await BookingService(session).create_booking(request, actor)


async def confirm_advance(session: AsyncSession, booking, owner: Actor, staff: Actor):
    """Upload and verify the advance proof, reserving the booking's seats."""
    from tripdesk.models.booking import PaymentStage
    from tripdesk.services.payment_service import PaymentService

    service = PaymentService(session)
    booking_id = str(booking.id)
    await service.upload_proof(booking_id, PaymentStage.ADVANCE, "proofs/advance.png", owner, transaction_note="UPI-1001")
    return await service.verify(booking_id, PaymentStage.ADVANCE, staff)


async def settle_balance(session: AsyncSession, booking, owner: Actor, staff: Actor):
    """Upload and verify the balance proof."""
    from tripdesk.models.booking import PaymentStage
    from tripdesk.services.payment_service import PaymentService

    service = PaymentService(session)
    booking_id = str(booking.id)
    await service.upload_proof(booking_id, PaymentStage.BALANCE, "proofs/balance.png", owner, transaction_note="UPI-2002")
    return await service.verify(booking_id, PaymentStage.BALANCE, staff)
