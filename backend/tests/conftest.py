"""
HardbanRecords Publishing API - Test Configuration (conftest.py)
================================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before the package is imported, so the
       settings singleton and the database engine are built for tests
       (SQLite URL, memory rate limit store, CORS gate off).

Fixture Hierarchy (all function-scoped):
    ├── test_settings:     Settings for the test environment
    ├── mock_db_session:   AsyncSession stand-in (no real database)
    ├── memory_store:      Fresh MemoryRateLimitStore
    ├── fake_redis:        fakeredis client for the Redis store
    ├── make_token:        Signs JWTs for authenticated requests
    ├── app:               App built with the fixtures above
    └── test_client:       HTTPX AsyncClient over ASGITransport
"""

import os

os.environ["NODE_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["SUPABASE_URL"] = "https://project.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-at-least-32-bytes!!"
os.environ["RATE_LIMIT_REDIS_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import date, datetime, timedelta, timezone  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from hardban_publishing.config import Settings  # noqa: E402
from hardban_publishing.database import get_db_session  # noqa: E402
from hardban_publishing.main import create_app  # noqa: E402
from hardban_publishing.services.rate_limit_store import MemoryRateLimitStore  # noqa: E402

JWT_SECRET = os.environ["JWT_SECRET"]


@pytest.fixture
def test_settings():
    return Settings(_env_file=None)


@pytest.fixture
def mock_db_session():
    """
    AsyncSession stand-in.

    Query results are set per test:
        result = MagicMock()
        result.scalars.return_value.all.return_value = [model]
        mock_db_session.execute = AsyncMock(return_value=result)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def memory_store():
    return MemoryRateLimitStore()


@pytest_asyncio.fixture
async def fake_redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def make_token():
    """Signs a short-lived token: make_token(role="author", subscriptionTier="premium")."""

    def _make(user_id: str = "user-1", **claims) -> str:
        payload = {
            "id": user_id,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            **claims,
        }
        return jwt.encode(payload, JWT_SECRET, algorithm="HS256")

    return _make


@pytest.fixture
def sample_rights_row():
    """Row shape produced by database.row_from_model for publishing_rights."""
    return {
        "id": uuid4(),
        "publication_id": uuid4(),
        "right_type": "ebook",
        "territory": "US",
        "language": "en",
        "license_type": "exclusive_license",
        "exclusive": True,
        "sublicensing_allowed": False,
        "start_date": date(2024, 1, 1),
        "end_date": date(2026, 1, 1),
        "status": "active",
        "royalty_rate": 12.5,
        "advance_amount": 5000,
        "minimum_guarantee": None,
        "currency": "USD",
        "payment_terms": None,
        "royalty_basis": None,
        "contract_details": '{"contract_number": "C-001", "governing_law": "New York"}',
        "compliance_data": None,
        "workflow_data": None,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 1, 2, tzinfo=timezone.utc),
    }


@pytest.fixture
def sample_chapter_row():
    """Row shape produced by database.row_from_model for chapters."""
    return {
        "id": uuid4(),
        "publication_id": uuid4(),
        "title": "The Beginning",
        "content": "<p>It was a <strong>dark</strong> night.</p>",
        "excerpt": "It was a dark night.",
        "order_index": 1,
        "word_count": 5,
        "reading_time": 1,
        "status": "draft",
        "keywords": '["night", "storm"]',
        "metadata": '{"pov": "first person"}',
        "collaboration_data": None,
        "content_analysis": None,
        "version_info": None,
        "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 3, 2, tzinfo=timezone.utc),
    }


@pytest.fixture
def app(test_settings, memory_store, mock_db_session):
    application = create_app(app_settings=test_settings, rate_limit_store=memory_store)

    async def override_db_session():
        yield mock_db_session

    application.dependency_overrides[get_db_session] = override_db_session
    return application


@pytest_asyncio.fixture
async def test_client(app):
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
