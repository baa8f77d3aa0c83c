"""Pytest configuration and fixtures for TrackFlow tests.

Runs against an in-memory SQLite database (aiosqlite) built from the ORM
metadata. Redis and rate limiting are switched off before the app is
imported, so revocation checks are no-ops.
"""

import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEBUG"] = "false"
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="trackflow-test-"))

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from trackflow.auth.jwt import create_access_token  # noqa: E402
from trackflow.auth.password import hash_password  # noqa: E402
from trackflow.database import Base, get_db  # noqa: E402
from trackflow.main import app  # noqa: E402
from trackflow.models.assembly import Assembly  # noqa: E402
from trackflow.models.barcode import BarcodeKind  # noqa: E402
from trackflow.models.client import Client  # noqa: E402
from trackflow.models.nfc_card import NfcCard  # noqa: E402
from trackflow.models.project import Project  # noqa: E402
from trackflow.models.user import User, UserRole  # noqa: E402
from trackflow.schemas.logistics import BatchCreate  # noqa: E402
from trackflow.services import barcodes  # noqa: E402
from trackflow.services import logistics as logistics_service  # noqa: E402


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test, with SAVEPOINT support."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session.

    Each request runs in a SAVEPOINT, so a failing request is rolled back
    the way `get_db` would roll back its transaction.
    """

    async def override_get_db():
        async with db_session.begin_nested():
            yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Users ────────────────────────────────────────────────────────

async def _make_user(
    db: AsyncSession,
    email: str,
    full_name: str,
    role: UserRole,
    worker_type: str | None = None,
) -> User:
    user = User(
        email=email,
        full_name=full_name,
        hashed_password=hash_password("testpassword123"),
        role=role,
        worker_type=worker_type,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "admin@example.com", "Ada Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def worker_user(db_session: AsyncSession) -> User:
    """Shop-floor welder."""
    return await _make_user(
        db_session, "welder@example.com", "Wes Welder", UserRole.WORKER, "welder",
    )


@pytest_asyncio.fixture
async def logistics_user(db_session: AsyncSession) -> User:
    return await _make_user(
        db_session, "logistics@example.com", "Lou Logistics", UserRole.WORKER, "logistics",
    )


@pytest_asyncio.fixture
async def worker_card(db_session: AsyncSession, worker_user: User) -> NfcCard:
    card = NfcCard(card_id="04A1B2C3", user_id=worker_user.id, is_active=True)
    db_session.add(card)
    await db_session.flush()
    return card


@pytest_asyncio.fixture
async def logistics_card(db_session: AsyncSession, logistics_user: User) -> NfcCard:
    card = NfcCard(card_id="04D4E5F6", user_id=logistics_user.id, is_active=True)
    db_session.add(card)
    await db_session.flush()
    return card


@pytest.fixture
def auth_headers(admin_user: User) -> dict:
    token = create_access_token(admin_user.id, admin_user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def worker_headers(worker_user: User) -> dict:
    token = create_access_token(worker_user.id, worker_user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ── Reference data ───────────────────────────────────────────────

@pytest_asyncio.fixture
async def client_record(db_session: AsyncSession) -> Client:
    record = Client(name="Steelworks Ltd", contact_person="Sam Steel")
    db_session.add(record)
    await db_session.flush()
    return record


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, client_record: Client) -> Project:
    record = Project(
        name="North Bridge",
        internal_number="P-100",
        client_id=client_record.id,
    )
    db_session.add(record)
    await db_session.flush()
    return record


@pytest_asyncio.fixture
async def other_project(db_session: AsyncSession, client_record: Client) -> Project:
    record = Project(
        name="South Tower",
        internal_number="P-200",
        client_id=client_record.id,
    )
    db_session.add(record)
    await db_session.flush()
    return record


# ── Production / logistics ───────────────────────────────────────

async def make_member(
    db: AsyncSession,
    project: Project,
    name: str,
    weight: float,
    quantity: int = 1,
) -> tuple[Assembly, str]:
    """Insert a scannable (non-parent) assembly and bind it a barcode."""
    assembly = Assembly(
        project_id=project.id,
        name=name,
        weight=weight,
        quantity=quantity,
        original_quantity=quantity,
        is_parent=False,
    )
    db.add(assembly)
    await db.flush()
    bound = await barcodes.bind(db, BarcodeKind.ASSEMBLY, assembly.id)
    return assembly, bound.barcode.barcode


@pytest_asyncio.fixture
async def batch(db_session: AsyncSession, project: Project, admin_user: User):
    """Pending batch for `project` with its BATCH- barcode bound."""
    result = await logistics_service.create_batch(
        db_session,
        BatchCreate(project_id=project.id, delivery_address="Quay 4, Harbour Rd"),
        admin_user.id,
    )
    assert result.barcode is not None
    return result


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
