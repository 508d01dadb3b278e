"""Process-wide registry of live call sessions."""
import logging
import time
from threading import Lock
from typing import Callable, Dict, List, Optional

from app.services.call_session.models import CallPhase, CallSession

logger = logging.getLogger(__name__)


class CallStateRegistry:
    """
    Maps Twilio CallSids and internal call ids to live sessions.

    One coarse lock guards both indexes; per-call contention is low. The
    registry is local to one process, so running several workers needs a
    shared store with the same contract.
    """

    def __init__(self, ttl_seconds: float = 7200.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._by_call_id: Dict[str, CallSession] = {}
        self._by_call_sid: Dict[str, str] = {}
        self._lock = Lock()

    def create(
        self,
        call_sid: str,
        call_id: str,
        agent_id: str,
        caller: Optional[str] = None,
        base_url: str = "",
        phase: CallPhase = CallPhase.INITIATED,
    ) -> CallSession:
        """Register a new session, replacing any previous one for the same CallSid."""
        session = CallSession(
            call_sid=call_sid,
            call_id=call_id,
            agent_id=agent_id,
            caller=caller,
            base_url=base_url,
            phase=phase,
            created_at=self._clock(),
        )
        with self._lock:
            previous_id = self._by_call_sid.get(call_sid)
            if previous_id:
                stale = self._by_call_id.pop(previous_id, None)
                if stale is not None:
                    stale.cancel_keepalive()
            self._by_call_id[call_id] = session
            self._by_call_sid[call_sid] = call_id
        logger.debug(f"[REGISTRY] Registered {session}")
        return session

    def restore(
        self, call_sid: str, call_id: str, agent_id: str, base_url: str = ""
    ) -> CallSession:
        """
        Return the session for ``call_id``, re-registering it if this process
        never saw the call start (e.g. after a restart).
        """
        with self._lock:
            session = self._by_call_id.get(call_id)
            if session is not None:
                return session
        logger.info(f"[REGISTRY] Restoring unknown call {call_id} (CallSid: {call_sid})")
        return self.create(
            call_sid,
            call_id,
            agent_id,
            base_url=base_url,
            phase=CallPhase.RESPONDED_AWAITING_RECORDING,
        )

    def get_by_call_id(self, call_id: str) -> Optional[CallSession]:
        with self._lock:
            return self._by_call_id.get(call_id)

    def get_by_call_sid(self, call_sid: str) -> Optional[CallSession]:
        with self._lock:
            call_id = self._by_call_sid.get(call_sid)
            return self._by_call_id.get(call_id) if call_id else None

    def resolve_call_id(self, call_sid: str) -> Optional[str]:
        with self._lock:
            return self._by_call_sid.get(call_sid)

    def transition(self, session: CallSession, target: CallPhase) -> None:
        """Advance a session's phase under the registry lock."""
        with self._lock:
            session.advance(target)
            session.updated_at = self._clock()

    def try_begin_processing(self, session: CallSession) -> bool:
        """
        Move a session into PROCESSING unless a pipeline already owns it.

        Returns False when the call is already processing or has ended.
        """
        with self._lock:
            if session.phase in (CallPhase.PROCESSING, CallPhase.TERMINATED, CallPhase.CLOSING):
                return False
            session.advance(CallPhase.PROCESSING)
            session.updated_at = self._clock()
            return True

    def remove(self, call_id: str) -> Optional[CallSession]:
        """Drop a session from both indexes and mark it terminated."""
        with self._lock:
            session = self._by_call_id.pop(call_id, None)
            if session is None:
                return None
            if self._by_call_sid.get(session.call_sid) == call_id:
                del self._by_call_sid[session.call_sid]
            if not session.is_terminated:
                session.advance(CallPhase.TERMINATED)
        session.cancel_keepalive()
        return session

    def prune_expired(self) -> List[CallSession]:
        """Reap sessions that saw no activity for longer than the TTL."""
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [s.call_id for s in self._by_call_id.values() if s.updated_at <= cutoff]
        reaped = []
        for call_id in expired:
            session = self.remove(call_id)
            if session is not None:
                logger.warning(f"[REGISTRY] Reaped idle call {call_id} (CallSid: {session.call_sid})")
                reaped.append(session)
        return reaped

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_call_id)

    def __contains__(self, call_id: str) -> bool:
        return self.get_by_call_id(call_id) is not None
