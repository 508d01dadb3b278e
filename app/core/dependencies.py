"""FastAPI dependencies."""
from typing import Optional

from fastapi import Depends

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.agent.backend import AgentBackendClient
from app.services.agent.summary import CallSummarizer
from app.services.cache.audio import AudioBlobCache
from app.services.cache.idempotency import IdempotencyGuard
from app.services.call_session.history import CallerHistoryPrefetcher
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.pipeline import TurnPipeline
from app.services.call_session.registry import CallStateRegistry
from app.services.call_session.tasks import TaskSupervisor
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService
from app.services.telephony.client import CallControlClient
from app.services.telephony.recordings import RecordingFetcher
from app.services.telephony.twiml import TwimlBuilder

# Process-wide instance; call state must survive across requests
_call_session_manager: Optional[CallSessionManager] = None


def build_call_session_manager() -> CallSessionManager:
    """Wire the orchestrator and its collaborators from settings."""
    supervisor = TaskSupervisor()
    audio_cache = AudioBlobCache(ttl_seconds=settings.audio_cache_ttl_seconds)
    backend = AgentBackendClient()
    call_control = CallControlClient()
    twiml = TwimlBuilder(
        record_max_length=settings.record_max_length,
        record_timeout=settings.record_timeout,
    )
    pipeline = TurnPipeline(
        session_factory=AsyncSessionLocal,
        recordings=RecordingFetcher(),
        stt=SpeechToTextService(),
        backend=backend,
        tts=TextToSpeechService(),
        audio_cache=audio_cache,
        call_control=call_control,
        twiml=twiml,
        max_turns=settings.max_turns,
    )
    return CallSessionManager(
        session_factory=AsyncSessionLocal,
        registry=CallStateRegistry(ttl_seconds=settings.session_ttl_seconds),
        idempotency=IdempotencyGuard(ttl_seconds=settings.idempotency_ttl_seconds),
        audio_cache=audio_cache,
        pipeline=pipeline,
        history=CallerHistoryPrefetcher(
            AsyncSessionLocal,
            supervisor=supervisor,
            limit=settings.caller_history_limit,
            turns_per_call=settings.caller_history_turns,
        ),
        backend=backend,
        call_control=call_control,
        summarizer=CallSummarizer(),
        supervisor=supervisor,
        twiml=twiml,
        hold_music_url=settings.hold_music_url,
        max_consecutive_failures=settings.max_consecutive_failures,
    )


def get_call_session_manager() -> CallSessionManager:
    """Get the call session manager."""
    global _call_session_manager
    if _call_session_manager is None:
        _call_session_manager = build_call_session_manager()
    return _call_session_manager


def get_audio_cache(
    session_manager: CallSessionManager = Depends(get_call_session_manager),
) -> AudioBlobCache:
    """Get the audio cache shared with the turn pipeline."""
    return session_manager.audio_cache
