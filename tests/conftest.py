"""Shared test fixtures and configuration."""
import pytest
import os
from unittest.mock import Mock, AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+15005550006")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BASE_URL", "https://outreach.example.com")
os.environ.setdefault("COMPANY_NAME", "ArrayLink AI")

from app.main import app
from app.db.database import Base, get_db
from app.core.dependencies import (
    get_generative_gateway,
    get_outbound_dialer,
    get_session_store,
)
from app.services.agent.gateway import GenerativeGateway
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import ProductContext
from app.services.call_session.store import InMemorySessionStore


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_BASE_URL = "https://outreach.example.com"


def make_completion(content):
    """Chat completion shaped like the OpenAI SDK response."""
    completion = Mock()
    completion.choices = [Mock(message=Mock(content=content))]
    return completion


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def override_get_db():
    """
    Override get_db dependency with a test database.

    Tables are created on first use so that the engine is only ever driven
    from the test client's event loop.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    state = {"ready": False}

    async def _override_get_db():
        if not state["ready"]:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            state["ready"] = True
        async with session_factory() as session:
            yield session

    return _override_get_db


@pytest.fixture
def completion_factory():
    """Builder for SDK-shaped chat completions."""
    return make_completion


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_client.chat.completions.create = AsyncMock(
        return_value=make_completion(
            "Our organic coffee is roasted fresh every week. Many hotels find guests prefer it."
        )
    )
    return mock_client


@pytest.fixture
def gateway(mock_openai):
    """Generative gateway backed by the mocked client, without retry delays."""
    return GenerativeGateway(
        client=mock_openai,
        model="test-model",
        timeout_ms=1000,
        max_retries=2,
        retry_delay_ms=0,
    )


@pytest.fixture
def session_store():
    """Fresh in-memory session store."""
    return InMemorySessionStore(ttl_seconds=1800, chunk_size=10)


@pytest.fixture
def session_manager(session_store, gateway):
    """Call session manager wired to the test store and gateway."""
    return CallSessionManager(session_store, gateway, llm_timeout_ms=1000)


@pytest.fixture
def product_context():
    """Campaign fields for a typical outreach call."""
    return ProductContext(
        manager_name="Jordan",
        hotel_name="Seaside Inn",
        recommended_product="Organic Coffee Beans",
        last_product="House Blend Coffee",
    )


@pytest.fixture
def mock_dialer():
    """Outbound dialer that never reaches the provider."""
    dialer = Mock()
    dialer.is_configured = True
    dialer.place_call = AsyncMock(return_value="CA1234567890abcdef")
    return dialer


@pytest.fixture
def test_client(override_get_db, session_store, gateway, mock_dialer):
    """Create FastAPI test client with overrides."""
    # Override dependencies
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_generative_gateway] = lambda: gateway
    app.dependency_overrides[get_outbound_dialer] = lambda: mock_dialer

    with TestClient(app) as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()
