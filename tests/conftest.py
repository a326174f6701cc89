"""Pytest configuration and fixtures."""

import os
import pytest
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set DATABASE_URL for tests BEFORE importing dashpilot.db
# This prevents the module from creating a database file
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

# Set encryption key for tests
from cryptography.fernet import Fernet
if "DASHPILOT_ENCRYPTION_KEY" not in os.environ:
    os.environ["DASHPILOT_ENCRYPTION_KEY"] = Fernet.generate_key().decode()

os.environ["DASHPILOT_TESTING"] = "true"

from dashpilot.db import Base
from dashpilot.models import *  # Import all models to ensure they're registered


@pytest.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session with automatic rollback."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )

    async with async_session_maker() as session:
        # Commits within fixtures persist for the rest of the test
        yield session
        await session.rollback()


@pytest.fixture
def mock_async_session_local(db):
    """Mock AsyncSessionLocal to return test database session.

    Services that open their own sessions (webhook queue, scheduler) use the
    test's in-memory database instead of the configured one.
    """
    from unittest.mock import patch

    class MockAsyncSessionLocal:
        """Mock async context manager for database sessions."""

        def __call__(self):
            """Return self to act as context manager."""
            return self

        async def __aenter__(self):
            """Enter context manager, return test db session."""
            return db

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            """Exit context manager."""
            # Don't close the session - let the test fixture manage it
            return False

    mock_session_local = MockAsyncSessionLocal()

    with patch('dashpilot.services.scheduler.AsyncSessionLocal', mock_session_local), \
         patch('dashpilot.services.webhook_queue.AsyncSessionLocal', mock_session_local), \
         patch('dashpilot.main.AsyncSessionLocal', mock_session_local):
        yield mock_session_local


@pytest.fixture
def make_webhook():
    """Factory fixture to create Webhook instances with valid required fields.

    Usage:
        webhook = make_webhook(url="https://example.com/hook", secret=encrypt_value("s3cret"))
    """
    def _make_webhook(**kwargs):
        from dashpilot.models.webhook import Webhook

        defaults = {
            "owner_id": 1,
            "name": "Test Webhook",
            "url": "https://example.com/webhook",
            "events": ["alert_created"],
            "is_active": True,
        }
        return Webhook(**{**defaults, **kwargs})

    return _make_webhook


@pytest.fixture
def make_site():
    """Factory fixture to create Site instances with valid required fields."""
    counter = {"n": 0}

    def _make_site(**kwargs):
        from dashpilot.models.site import Site

        counter["n"] += 1
        defaults = {
            "name": f"Site {counter['n']}",
            "url": f"https://site{counter['n']}.example.com",
            "type": "wordpress",
            "status": "healthy",
            "health_score": 100,
            "wp_api_url": f"https://site{counter['n']}.example.com",
        }
        return Site(**{**defaults, **kwargs})

    return _make_site


@pytest.fixture
def public_dns():
    """Resolve every hostname to a public address (93.184.216.34)."""
    from unittest.mock import patch

    def fake_getaddrinfo(host, port, family=0, type=0, proto=0, flags=0):
        return [(2, 1, 6, "", ("93.184.216.34", 0))]

    with patch("dashpilot.utils.url_validation.socket.getaddrinfo", side_effect=fake_getaddrinfo) as mock:
        yield mock


@pytest.fixture
async def app():
    """Create FastAPI app for testing."""
    from dashpilot.main import app as application
    return application


@pytest.fixture
async def client(app, db):
    """Create async test client bound to the test database."""
    from httpx import AsyncClient, ASGITransport
    from dashpilot.db import get_db

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def mock_queue():
    """Webhook queue whose scheduler is a MagicMock (nothing actually runs)."""
    from unittest.mock import MagicMock
    from dashpilot.services.webhook_queue import WebhookQueue

    scheduler = MagicMock()
    scheduler.running = False
    return WebhookQueue(scheduler=scheduler)
