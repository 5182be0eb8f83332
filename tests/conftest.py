"""Shared test fixtures and configuration."""
import base64
import hashlib
import hmac
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dialer.main import app
from dialer.core.config import Settings
from dialer.core.dependencies import (
    get_dialog_agent,
    get_gateway_factory,
    get_settings,
    get_speech_factory,
    get_voice_agent_factory,
)
from dialer.db.database import get_db
from dialer.db.models import AgentConfig, Base, Profile, Prospect
from dialer.services.dialog.agent import DialogAgent
from dialer.services.telephony.client import PlacedCall

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_BASE_URL = "https://dialer.test"
TEST_AUTH_TOKEN = "test-auth-token-0123456789abcdef"
TEST_ELEVENLABS_KEY = "sk_test_0123456789abcdef0123456789abcdef"


@pytest.fixture
def test_settings():
    """Settings for testing."""
    return Settings(
        openai_api_key="test-key",
        database_url=TEST_DATABASE_URL,
        base_url=TEST_BASE_URL,
        max_conversation_turns=3,
        brokerage_name="Test Realty",
    )


@pytest.fixture
async def test_db_engine():
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
async def seeded(test_db):
    """A user with Twilio credentials, one prospect and one agent configuration."""
    profile = Profile(
        email="agent@example.com",
        full_name="Test Agent",
        twilio_account_sid="AC" + "0" * 32,
        twilio_auth_token=TEST_AUTH_TOKEN,
        twilio_phone_number="+15550001111",
    )
    test_db.add(profile)
    await test_db.flush()

    prospect = Prospect(
        user_id=profile.id,
        first_name="Jamie",
        last_name="Rivera",
        phone_number="5551234567",
        property_address="12 Elm Street",
    )
    agent_config = AgentConfig(
        user_id=profile.id,
        config_name="Listing outreach",
        system_prompt="Hi, I'm Alex. I'm calling from Test Realty about your home on Elm Street.",
    )
    test_db.add_all([prospect, agent_config])
    await test_db.commit()

    return SimpleNamespace(profile=profile, prospect=prospect, agent_config=agent_config)


def make_completion(content):
    """An object shaped like an OpenAI chat completion."""
    return Mock(choices=[Mock(message=Mock(content=content))])


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_client.chat.completions.create = AsyncMock(
        return_value=make_completion("That's great to hear. Are you thinking of selling this year?")
    )
    return mock_client


@pytest.fixture
def dialog_agent(test_settings, mock_openai):
    return DialogAgent(settings=test_settings, client=mock_openai)


@pytest.fixture
def mock_gateway():
    """Twilio gateway double."""
    gateway = Mock()
    gateway.place_call = AsyncMock(return_value=PlacedCall(sid="CA" + "f" * 32, status="queued"))
    gateway.end_call = AsyncMock(return_value=None)
    gateway.fetch_call = AsyncMock()
    gateway.fetch_account = AsyncMock()
    return gateway


@pytest.fixture
def gateway_factory(mock_gateway):
    factory = Mock(return_value=mock_gateway)
    return factory


@pytest.fixture
def mock_speech():
    """ElevenLabs TTS double."""
    speech = Mock()
    speech.synthesize_speech = AsyncMock(return_value=b"ID3fake-mp3")
    return speech


@pytest.fixture
def speech_factory(mock_speech):
    return Mock(return_value=mock_speech)


@pytest.fixture
def mock_voice_agent():
    """ElevenLabs outbound-call double."""
    voice_agent = Mock()
    voice_agent.place_call = AsyncMock(return_value="CA" + "e" * 32)
    return voice_agent


@pytest.fixture
def voice_agent_factory(mock_voice_agent):
    return Mock(return_value=mock_voice_agent)


@pytest.fixture
async def api_client(test_db, test_settings, dialog_agent, gateway_factory, speech_factory, voice_agent_factory):
    """In-process HTTP client with test dependencies."""
    async def _override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_dialog_agent] = lambda: dialog_agent
    app.dependency_overrides[get_gateway_factory] = lambda: gateway_factory
    app.dependency_overrides[get_speech_factory] = lambda: speech_factory
    app.dependency_overrides[get_voice_agent_factory] = lambda: voice_agent_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=TEST_BASE_URL) as client:
        yield client

    app.dependency_overrides.clear()


def sign(url, params, auth_token=TEST_AUTH_TOKEN):
    """Signature Twilio would send for a POST of ``params`` to ``url``."""
    data = url.split("?")[0] + "".join(f"{key}{value}" for key, value in sorted(params.items()))
    digest = hmac.new(auth_token.encode(), data.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


async def post_signed(client, url, params, auth_token=TEST_AUTH_TOKEN):
    """POST a form the way Twilio does, signed."""
    return await client.post(
        url,
        data=params,
        headers={"X-Twilio-Signature": sign(url, params, auth_token)},
    )
