"""Call session manager."""
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import AgentNotFound, CallControlFailure, InvalidTransition
from app.services.agent.backend import AgentBackendClient, to_transcript
from app.services.agent.summary import CallSummarizer
from app.services.cache.audio import AudioBlobCache
from app.services.cache.idempotency import IdempotencyGuard, recording_key
from app.services.call_session.history import CallerHistoryPrefetcher
from app.services.call_session.models import CallPhase, CallSession
from app.services.call_session.pipeline import TurnOutcome, TurnPipeline
from app.services.call_session.registry import CallStateRegistry
from app.services.call_session.tasks import TaskSupervisor
from app.services.persistence.calls import CallPersistenceService
from app.services.persistence.turns import TurnPersistenceService
from app.services.telephony.client import CallControlClient
from app.services.telephony.twiml import TwimlBuilder

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "busy", "failed", "no-answer", "canceled"})

OUTCOME_PHASES = {
    TurnOutcome.REPROMPTED: CallPhase.RESPONDED_AWAITING_RECORDING,
    TurnOutcome.RESPONDED: CallPhase.RESPONDED_AWAITING_RECORDING,
    TurnOutcome.CLOSED: CallPhase.CLOSING,
}


class CallSessionManager:
    """
    Orchestrates the call flow across webhooks that share no memory.

    Webhook handlers answer synchronously with TwiML; everything slow runs in
    tasks owned by the supervisor.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: CallStateRegistry,
        idempotency: IdempotencyGuard,
        audio_cache: AudioBlobCache,
        pipeline: TurnPipeline,
        history: CallerHistoryPrefetcher,
        backend: AgentBackendClient,
        call_control: CallControlClient,
        summarizer: CallSummarizer,
        supervisor: TaskSupervisor,
        twiml: TwimlBuilder,
        hold_music_url: str,
        max_consecutive_failures: int = 3,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.idempotency = idempotency
        self.audio_cache = audio_cache
        self.pipeline = pipeline
        self.history = history
        self.backend = backend
        self.call_control = call_control
        self.summarizer = summarizer
        self.supervisor = supervisor
        self.twiml = twiml
        self.hold_music_url = hold_music_url
        self.max_consecutive_failures = max_consecutive_failures

    # ------------------------------------------------------------------
    # Incoming call
    # ------------------------------------------------------------------

    async def handle_incoming_call(
        self, call_sid: str, caller: Optional[str], agent_id: str, base_url: str
    ) -> str:
        """Register the call and return the greeting document."""
        try:
            session, agent_name = await self._start_session(call_sid, caller, agent_id, base_url)
        except AgentNotFound:
            logger.warning(
                f"[INCOMING CALL] Agent {agent_id} not available - CallSid: {call_sid}"
            )
            return self.twiml.agent_unavailable()

        session.caller_history = self.history.prefetch(
            caller, agent_id, exclude_call_id=session.call_id
        )
        session.keepalive = self.supervisor.spawn(
            self.backend.keepalive(session.call_id), name=f"keepalive:{session.call_id}"
        )
        self.registry.transition(session, CallPhase.GREETED_AWAITING_RECORDING)

        logger.info(
            f"[INCOMING CALL] Session started - CallSid: {call_sid}, callId: {session.call_id}, "
            f"agent: {agent_id}, caller: {caller}"
        )
        return self.twiml.greeting(agent_name, base_url, agent_id, session.call_id)

    async def _start_session(
        self, call_sid: str, caller: Optional[str], agent_id: str, base_url: str
    ) -> tuple[CallSession, str]:
        async with self.session_factory() as db:
            calls = CallPersistenceService(db)
            agent = await calls.get_agent(agent_id)
            if agent is None or agent.status != "active":
                raise AgentNotFound(agent_id)
            # A retried incoming webhook reuses the call row created the first time
            call = await calls.create_call(str(uuid.uuid4()), call_sid, agent_id, caller)
            agent_name = agent.name

        session = self.registry.create(
            call_sid, call.id, agent_id, caller=caller, base_url=base_url
        )
        return session, agent_name

    # ------------------------------------------------------------------
    # Recorded turn
    # ------------------------------------------------------------------

    async def handle_turn_recording(
        self,
        call_sid: str,
        agent_id: str,
        call_id: str,
        recording_url: Optional[str],
        base_url: str,
        recording_sid: Optional[str] = None,
    ) -> str:
        """
        Accept a recorded turn and answer with the hold document at once.

        The turn pipeline is started at most once per recording.
        """
        if not recording_url:
            # Recording status callbacks arrive without a RecordingUrl
            logger.debug(f"[RESPOND] No recording in payload - CallSid: {call_sid}, callId: {call_id}")
            return self.twiml.empty()

        # Twilio posts the Record action when the caller hangs up mid-recording
        if await self._call_has_ended(call_sid, call_id):
            logger.info(
                f"[RESPOND] Recording for ended call ignored - CallSid: {call_sid}, callId: {call_id}"
            )
            return self.twiml.empty()

        hold = self.twiml.hold(self.hold_music_url)
        key = recording_key(call_sid, recording_sid or recording_url)
        if not self.idempotency.try_acquire(key):
            logger.info(
                f"[RESPOND] Duplicate recording webhook ignored - CallSid: {call_sid}, "
                f"callId: {call_id}, recording: {recording_sid or recording_url}"
            )
            return hold

        session = self.registry.restore(call_sid, call_id, agent_id, base_url=base_url)
        if not self.registry.try_begin_processing(session):
            logger.warning(
                f"[RESPOND] Call not accepting a new turn (phase: {session.phase}) - "
                f"CallSid: {call_sid}, callId: {call_id}"
            )
            return hold

        self.supervisor.spawn(
            self._run_turn(session, recording_url),
            name=f"turn:{call_id}",
            on_error=lambda exc: self._recover(session, exc),
        )
        logger.info(
            f"[RESPOND] Recording received, background processing started - "
            f"CallSid: {call_sid}, callId: {call_id}"
        )
        return hold

    async def _call_has_ended(self, call_sid: str, call_id: str) -> bool:
        if self.idempotency.has_ended(call_sid, call_id):
            return True
        if self.registry.get_by_call_id(call_id) is not None:
            return False
        # Unknown here (restart or reaped); the stored record decides
        async with self.session_factory() as db:
            call = await CallPersistenceService(db).get_call(call_id)
        return call is not None and call.status != "in_progress"

    async def _run_turn(self, session: CallSession, recording_url: str) -> TurnOutcome:
        outcome = await self.pipeline.run(session, recording_url)
        session.consecutive_failures = 0
        self._advance(session, OUTCOME_PHASES[outcome])
        return outcome

    async def _recover(self, session: CallSession, error: BaseException) -> None:
        """The single recovery action after a failed turn."""
        if session.is_terminated:
            logger.info(
                f"[RECOVERY] Call already ended, skipping recovery - callId: {session.call_id}"
            )
            return

        session.consecutive_failures += 1
        giving_up = session.consecutive_failures >= self.max_consecutive_failures
        if giving_up:
            document = self.twiml.giving_up()
            target = CallPhase.CLOSING
        else:
            document = self.twiml.recovery(session.base_url, session.agent_id, session.call_id)
            target = CallPhase.RECOVERY_AWAITING_RECORDING

        stage = getattr(error, "stage", "unexpected")
        logger.warning(
            f"[RECOVERY] Turn failed at {stage} stage - callId: {session.call_id}, "
            f"CallSid: {session.call_sid}, consecutive failures: {session.consecutive_failures}"
            f"{', hanging up' if giving_up else ''}"
        )

        try:
            await self.call_control.redirect(session.call_sid, twiml=document)
        except CallControlFailure as e:
            # No further retries; the call is left to end on its own
            logger.error(
                f"[RECOVERY] Recovery redirect failed - callId: {session.call_id}, "
                f"CallSid: {session.call_sid}, Error: {e}"
            )
            self.registry.remove(session.call_id)
            return
        self._advance(session, target)

    def _advance(self, session: CallSession, target: CallPhase) -> None:
        try:
            self.registry.transition(session, target)
        except InvalidTransition:
            # The status webhook may have ended the call while the turn ran
            logger.debug(
                f"[CALL SESSION] Ignoring transition to {target} for callId: {session.call_id} "
                f"(phase: {session.phase})"
            )

    def reply_document(
        self,
        agent_id: str,
        audio_id: Optional[str],
        call_id: Optional[str],
        base_url: str,
    ) -> str:
        """Document the pipeline redirects to: play the reply, then record."""
        if not audio_id or not call_id:
            return self.twiml.error()
        return self.twiml.play_and_record(base_url, agent_id, audio_id, call_id)

    # ------------------------------------------------------------------
    # Call end
    # ------------------------------------------------------------------

    def handle_terminal_status(
        self, call_sid: str, call_status: str, call_id: Optional[str] = None
    ) -> bool:
        """
        Tear down a finished call. Returns True when cleanup was started.

        Never waits on the backend or storage.
        """
        if call_status not in TERMINAL_STATUSES:
            return False

        call_id = call_id or self.registry.resolve_call_id(call_sid)
        self.idempotency.mark_ended(call_sid, call_id, call_status)
        if not call_id:
            logger.info(
                f"[CALL STATUS] No session for CallSid {call_sid} (status: {call_status}) - "
                f"looking up the stored call"
            )
            self.supervisor.spawn(
                self._close_out_by_sid(call_sid, call_status), name=f"close-out:{call_sid}"
            )
            return True

        session = self.registry.remove(call_id)
        if session is not None:
            pending_history = session.take_caller_history()
            if pending_history is not None:
                pending_history.cancel()

        self.supervisor.spawn(self.backend.end_session(call_id), name=f"end-session:{call_id}")
        self.supervisor.spawn(
            self._close_out_call(call_id, call_status), name=f"close-out:{call_id}"
        )
        logger.info(f"[CALL STATUS] Call {call_id} ended (status: {call_status}, CallSid: {call_sid})")
        return True

    async def _close_out_by_sid(self, call_sid: str, call_status: str) -> None:
        async with self.session_factory() as db:
            call = await CallPersistenceService(db).get_call_by_sid(call_sid)
        if call is None or call.status != "in_progress":
            logger.info(f"[CALL STATUS] No open call for CallSid {call_sid} - nothing to close")
            return

        self.supervisor.spawn(self.backend.end_session(call.id), name=f"end-session:{call.id}")
        await self._close_out_call(call.id, call_status)

    async def _close_out_call(self, call_id: str, call_status: str) -> None:
        """Record how the call ended; summarize it when it completed normally."""
        async with self.session_factory() as db:
            calls = CallPersistenceService(db)
            call = await calls.finish_call(call_id, call_status)
            if call is None:
                logger.info(
                    f"[CALL STATUS] No open call record for callId: {call_id} "
                    f"(status: {call_status}) - already finished or unknown"
                )
                return
            if call_status != "completed":
                return

            turns = await TurnPersistenceService(db).list_turns(call_id)
            summary = await self.summarizer.summarize(to_transcript(turns))
            await calls.update_call_summary(call_id, summary)
        logger.info(f"[CALL STATUS] Summary stored for callId: {call_id} ({len(turns)} turns)")

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def sweep(self) -> None:
        """Drop expired audio, idempotency markers and idle sessions."""
        self.audio_cache.sweep()
        self.idempotency.sweep()
        for session in self.registry.prune_expired():
            self.supervisor.spawn(
                self.backend.end_session(session.call_id), name=f"end-session:{session.call_id}"
            )
            self.supervisor.spawn(
                self._close_out_call(session.call_id, "expired"),
                name=f"close-out:{session.call_id}",
            )
