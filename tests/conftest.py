"""Shared test fixtures and configuration."""
import os
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.main import app
from app.db.database import Base
from app.db.models import Agent
from app.core.config import Settings
from app.core.dependencies import get_call_session_manager
from app.services.cache.audio import AudioBlobCache
from app.services.cache.idempotency import IdempotencyGuard
from app.services.call_session.history import CallerHistoryPrefetcher
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.pipeline import TurnPipeline
from app.services.call_session.registry import CallStateRegistry
from app.services.call_session.tasks import TaskSupervisor
from app.services.telephony.twiml import TwimlBuilder


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BASE_URL = "https://voice.example.com"
HOLD_MUSIC_URL = "https://music.example.com/hold.mp3"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        openai_api_key="test-key",
        twilio_account_sid="test-sid",
        twilio_auth_token="test-token",
        database_url=TEST_DATABASE_URL,
        base_url=BASE_URL,
    )


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
def session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_agent(test_db):
    """An active agent callers can dial."""
    agent = Agent(
        id="agent-1",
        name="Acme Dental",
        context="Front desk of a dental practice. Open 9am to 5pm on weekdays.",
    )
    test_db.add(agent)
    await test_db.commit()
    return agent


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_recordings():
    """Recording fetcher returning a fixed WAV payload."""
    recordings = Mock()
    recordings.fetch = AsyncMock(return_value=b"RIFF....WAVEfmt ")
    return recordings


@pytest.fixture
def mock_stt():
    stt = Mock()
    stt.transcribe_audio = AsyncMock(return_value="What are your hours?")
    return stt


@pytest.fixture
def mock_tts():
    tts = Mock()
    tts.synthesize_speech = AsyncMock(return_value=b"ID3-mp3-bytes")
    return tts


@pytest.fixture
def mock_backend():
    """Generation backend; keepalive returns at once unless a test says otherwise."""
    backend = Mock()
    backend.generate_reply = AsyncMock(return_value="We're open nine to five, Monday to Friday.")
    backend.keepalive = AsyncMock(return_value=None)
    backend.end_session = AsyncMock(return_value=None)
    return backend


@pytest.fixture
def mock_call_control():
    """Call control that records every redirect instead of calling Twilio."""
    call_control = Mock()
    call_control.redirect = AsyncMock(return_value=None)
    return call_control


@pytest.fixture
def mock_summarizer():
    summarizer = Mock()
    summarizer.summarize = AsyncMock(return_value="Caller asked about opening hours.")
    return summarizer


@pytest.fixture
def twiml_builder():
    return TwimlBuilder(record_max_length=30, record_timeout=3)


@pytest.fixture
def audio_cache(clock):
    return AudioBlobCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def pipeline(
    session_factory,
    mock_recordings,
    mock_stt,
    mock_backend,
    mock_tts,
    audio_cache,
    mock_call_control,
    twiml_builder,
):
    return TurnPipeline(
        session_factory=session_factory,
        recordings=mock_recordings,
        stt=mock_stt,
        backend=mock_backend,
        tts=mock_tts,
        audio_cache=audio_cache,
        call_control=mock_call_control,
        twiml=twiml_builder,
        max_turns=40,
    )


@pytest.fixture
async def call_session_manager(
    session_factory,
    clock,
    audio_cache,
    pipeline,
    mock_backend,
    mock_call_control,
    mock_summarizer,
    twiml_builder,
):
    """Fully wired manager with external services mocked out."""
    supervisor = TaskSupervisor()
    manager = CallSessionManager(
        session_factory=session_factory,
        registry=CallStateRegistry(ttl_seconds=7200, clock=clock),
        idempotency=IdempotencyGuard(ttl_seconds=300, clock=clock),
        audio_cache=audio_cache,
        pipeline=pipeline,
        history=CallerHistoryPrefetcher(session_factory, supervisor=supervisor),
        backend=mock_backend,
        call_control=mock_call_control,
        summarizer=mock_summarizer,
        supervisor=supervisor,
        twiml=twiml_builder,
        hold_music_url=HOLD_MUSIC_URL,
        max_consecutive_failures=3,
    )

    yield manager

    await supervisor.cancel_all()


@pytest.fixture
async def test_client(call_session_manager, test_settings, monkeypatch):
    """
    HTTP client bound to the app with the test manager injected.

    Runs on the test's event loop so background tasks can be drained.
    """
    app.dependency_overrides[get_call_session_manager] = lambda: call_session_manager

    # Override settings in modules that use it
    monkeypatch.setattr("app.api.webhooks.voice.settings", test_settings)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def start_call(call_session_manager, test_agent):
    """Run the incoming-call flow and let the history prefetch settle."""

    async def _start_call(call_sid="CA100", caller="+15550001111", agent_id="agent-1"):
        manager = call_session_manager
        document = await manager.handle_incoming_call(call_sid, caller, agent_id, base_url=BASE_URL)
        await manager.supervisor.drain()
        return document, manager.registry.get_by_call_sid(call_sid)

    return _start_call
