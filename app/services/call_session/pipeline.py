"""Per-turn workflow: transcribe, persist, generate, synthesize, redirect."""
import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.agent.backend import AgentBackendClient, AgentProfile, to_transcript
from app.services.cache.audio import AudioBlobCache
from app.services.call_session.models import CallSession
from app.services.persistence.calls import CallPersistenceService
from app.services.persistence.turns import Speaker, TurnPersistenceService
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService
from app.services.telephony.client import CallControlClient
from app.services.telephony.recordings import RecordingFetcher
from app.services.telephony.twiml import TwimlBuilder, callback_url

logger = logging.getLogger(__name__)


class TurnOutcome(str, Enum):
    """How a successfully completed pipeline left the call."""

    REPROMPTED = "reprompted"  # Nothing was said; asked the caller to repeat
    RESPONDED = "responded"  # Reply is playing, next recording pending
    CLOSED = "closed"  # Closing statement with hangup issued

    def __str__(self) -> str:
        return self.value


class TurnPipeline:
    """
    Runs one turn after the webhook has already been answered.

    Stages run strictly in order. Any stage error propagates out of ``run``
    unchanged; the caller decides how to recover.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recordings: RecordingFetcher,
        stt: SpeechToTextService,
        backend: AgentBackendClient,
        tts: TextToSpeechService,
        audio_cache: AudioBlobCache,
        call_control: CallControlClient,
        twiml: TwimlBuilder,
        max_turns: int = 40,
    ):
        self.session_factory = session_factory
        self.recordings = recordings
        self.stt = stt
        self.backend = backend
        self.tts = tts
        self.audio_cache = audio_cache
        self.call_control = call_control
        self.twiml = twiml
        self.max_turns = max_turns

    async def run(self, session: CallSession, recording_url: str) -> TurnOutcome:
        started = time.monotonic()

        def elapsed() -> str:
            return f"{(time.monotonic() - started) * 1000:.0f}ms"

        tag = f"[PIPELINE] callId: {session.call_id}, CallSid: {session.call_sid}"

        # 1. Download recording
        audio = await self.recordings.fetch(recording_url)
        logger.info(f"{tag} - Downloaded recording: {len(audio)} bytes ({elapsed()})")

        # 2. Speech to text
        user_text = (await self.stt.transcribe_audio(audio)).strip()
        logger.info(f"{tag} - STT: '{user_text[:200]}' ({elapsed()})")

        if not user_text:
            await self.call_control.redirect(
                session.call_sid,
                twiml=self.twiml.reprompt(session.base_url, session.agent_id, session.call_id),
            )
            logger.info(f"{tag} - Empty transcript, re-prompted caller ({elapsed()})")
            return TurnOutcome.REPROMPTED

        async with self.session_factory() as db:
            turns = TurnPersistenceService(db)
            calls = CallPersistenceService(db)

            # 3. Save caller turn. Numbering follows the stored turns, so a caller
            # turn left unanswered by a failed generation is kept and the next
            # caller turn follows it directly.
            turn_order = await turns.count_turns(session.call_id) + 1
            await turns.append_turn(
                session.call_id, turn_order, Speaker.CALLER, user_text, audio_url=recording_url
            )
            session.turn_count = turn_order

            # 4. Turn limit
            if turn_order >= self.max_turns:
                await self.call_control.redirect(session.call_sid, twiml=self.twiml.closing())
                logger.info(f"{tag} - Turn limit reached at turn {turn_order}, closing call")
                return TurnOutcome.CLOSED

            # 5. Agent context and transcript so far
            agent = await calls.get_agent(session.agent_id)
            if agent is None:
                await self.call_control.redirect(
                    session.call_sid,
                    twiml=self.twiml.speak_and_hangup("This agent is no longer available."),
                )
                logger.warning(f"{tag} - Agent {session.agent_id} disappeared mid-call")
                return TurnOutcome.CLOSED
            profile = AgentProfile(id=agent.id, name=agent.name, context=agent.context)
            history = to_transcript(
                [turn for turn in await turns.list_turns(session.call_id) if turn.turn_order < turn_order]
            )

        caller_history = None
        if turn_order == 1:
            caller_history = await self._take_caller_history(session)

        # 6. Generate reply
        reply = await self.backend.generate_reply(
            session.call_id, profile, history, user_text, caller_history=caller_history
        )
        logger.info(f"{tag} - Reply: '{reply[:200]}' ({elapsed()})")

        # 7. Save agent turn
        async with self.session_factory() as db:
            await TurnPersistenceService(db).append_turn(
                session.call_id, turn_order + 1, Speaker.AGENT, reply
            )
        session.turn_count = turn_order + 1

        # 8. Text to speech
        speech = await self.tts.synthesize_speech(reply)
        audio_id = str(uuid.uuid4())
        self.audio_cache.put(audio_id, speech)
        logger.info(f"{tag} - TTS cached: {audio_id} ({len(speech)} bytes, {elapsed()})")

        # 9. Interrupt hold music: play the reply, then record the next turn
        await self.call_control.redirect(
            session.call_sid,
            url=callback_url(session.base_url, session.agent_id, audio_id, session.call_id),
        )
        logger.info(f"{tag} - Call redirected, total processing: {elapsed()}")
        return TurnOutcome.RESPONDED

    async def _take_caller_history(self, session: CallSession) -> Optional[str]:
        task = session.take_caller_history()
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return None
        except Exception as e:
            # History is optional context; a failed lookup never fails the turn
            logger.warning(
                f"[PIPELINE] callId: {session.call_id} - Caller history unavailable: "
                f"{type(e).__name__}: {e}"
            )
            return None
