"""Integration test fixtures -- real PostgreSQL, no mocks.

A session-scoped container (started once per test run) provides a real
PostgreSQL instance migrated with alembic. Function-scoped fixtures give
each test an isolated DB session with savepoint rollback so tests don't
leak state.
"""

import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

# ---------------------------------------------------------------------------
# Mark all tests in this directory as integration
# ---------------------------------------------------------------------------
pytestmark = pytest.mark.integration

_DB_PACKAGE = os.path.join(os.path.dirname(__file__), "..", "..", "..", "db")


# ---------------------------------------------------------------------------
# Session-scoped: container + engine + migrations
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container():
    """Start postgres:16 via testcontainers."""
    with PostgresContainer(
        image="postgres:16",
        username="test",
        password="test",
        dbname="test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def db_url(pg_container):
    """Async DB URL for asyncpg."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://test:test@{host}:{port}/test"


@pytest.fixture(scope="session", autouse=True)
def _run_migrations(db_url):
    """Run alembic upgrade head. env.py rewrites the asyncpg URL to psycopg2."""
    from alembic import command
    from alembic.config import Config

    os.environ["DATABASE_URL"] = db_url
    alembic_cfg = Config(os.path.join(_DB_PACKAGE, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(_DB_PACKAGE, "alembic"))
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session")
def async_engine(db_url, _run_migrations):
    """Create an async engine pointing at the test container."""
    engine = create_async_engine(db_url, echo=False, poolclass=NullPool)
    yield engine


@pytest.fixture(scope="session", autouse=True)
def _patch_db_module(async_engine):
    """Point db.database globals at the test container.

    ``src.main`` is imported during collection, so the module-level engine
    and ``db_service`` were built from the default settings before any
    fixture ran.
    """
    import db.database as db_mod

    db_mod.engine = async_engine
    db_mod.SessionLocal = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    db_mod.db_service = db_mod.DatabaseService(engine=async_engine)


# ---------------------------------------------------------------------------
# Function-scoped: per-test session with savepoint rollback
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_session(async_engine):
    """Per-test DB session with savepoint rollback.

    Route-level commits release a savepoint; the outer transaction is
    rolled back when the test ends.
    """
    conn = await async_engine.connect()
    txn = await conn.begin()
    session = AsyncSession(
        bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False
    )
    yield session
    await session.close()
    await txn.rollback()
    await conn.close()


@pytest.fixture
def client_factory(db_session):
    """Factory returning an async httpx client acting as ``user``."""
    import db.database as db_mod
    from db.database import get_db, get_db_service

    from src.dependencies import get_notification_service
    from src.main import app
    from src.middleware.auth import get_current_user
    from src.services.notification import NotificationService

    async def _make(user):
        async def _get_db():
            yield db_session

        async def _get_current_user():
            return user

        async def _get_db_service():
            return db_mod.db_service

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_current_user] = _get_current_user
        app.dependency_overrides[get_db_service] = _get_db_service
        app.dependency_overrides[get_notification_service] = lambda: NotificationService(
            smtp_host=""
        )
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        return httpx.AsyncClient(transport=transport, base_url="http://test")

    yield _make

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed data helper
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def seed_users(db_session):
    """Mari (future admin) and Jaan (existing account) as real rows."""
    from db.models import User

    from tests.functional.personas import JAAN_USER_ID, MARI_USER_ID

    mari = User(id=MARI_USER_ID, name="Mari Maasikas", email="mari@example.com")
    jaan = User(id=JAAN_USER_ID, name="Jaan Tamm", email="Jaan@Example.com")
    db_session.add_all([mari, jaan])
    await db_session.flush()
    return mari, jaan
