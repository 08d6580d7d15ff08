"""Integration test fixtures: in-memory app, async client, admin key."""

import os

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Force test config BEFORE any app imports
os.environ["LOG_DIR"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["RATE_LIMIT_REQUESTS"] = "1000"

import lockwarden.database as db_mod
import lockwarden.dependencies as dep_mod
from lockwarden.config import LockwardenConfig
from lockwarden.core.clock import ManualClock

ADMIN_KEY = "test-admin-key"


def _reset_singletons():
    """Reset all module-level singletons so each test starts clean."""
    db_mod._engine = None
    db_mod._session_factory = None
    dep_mod._config_instance = None
    dep_mod._protection_engine = None
    dep_mod._account_directory = None


@pytest_asyncio.fixture
async def test_app():
    """Create test app with in-memory database (shared via StaticPool)."""
    _reset_singletons()

    # Create a shared in-memory engine using StaticPool
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Inject into database module BEFORE app import
    db_mod._engine = engine
    factory = async_sessionmaker(engine, expire_on_commit=False)
    db_mod._session_factory = factory

    config = LockwardenConfig(
        _env_file=None,
        log_dir=None,
        admin_api_key=ADMIN_KEY,
        rate_limit_requests=1000,
        event_append_backoff_seconds=0.0,
    )
    dep_mod._config_instance = config
    dep_mod._protection_engine = dep_mod.build_engine(
        config,
        session_factory=factory,
        accounts=dep_mod.get_account_directory(),
        clock=ManualClock(),
    )

    from lockwarden.main import app
    from lockwarden.models.base import Base

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield app

    await engine.dispose()
    _reset_singletons()


@pytest_asyncio.fixture
async def client(test_app):
    """Async HTTP client for testing."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_headers():
    return {"X-API-Key": ADMIN_KEY}


@pytest_asyncio.fixture
async def protection_engine(test_app):
    return dep_mod.peek_protection_engine()
