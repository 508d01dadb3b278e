"""Call session models."""
import asyncio
import time
from enum import Enum
from typing import Dict, FrozenSet, Optional

from app.core.errors import InvalidTransition


class CallPhase(str, Enum):
    """Where a live call is in the turn-taking cycle."""

    INITIATED = "initiated"
    GREETED_AWAITING_RECORDING = "greeted_awaiting_recording"
    PROCESSING = "processing"  # Only while a detached turn pipeline runs
    RESPONDED_AWAITING_RECORDING = "responded_awaiting_recording"
    CLOSING = "closing"
    RECOVERY_AWAITING_RECORDING = "recovery_awaiting_recording"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value


ALLOWED_TRANSITIONS: Dict[CallPhase, FrozenSet[CallPhase]] = {
    CallPhase.INITIATED: frozenset({CallPhase.GREETED_AWAITING_RECORDING, CallPhase.TERMINATED}),
    CallPhase.GREETED_AWAITING_RECORDING: frozenset({CallPhase.PROCESSING, CallPhase.TERMINATED}),
    CallPhase.PROCESSING: frozenset(
        {
            CallPhase.RESPONDED_AWAITING_RECORDING,
            CallPhase.CLOSING,
            CallPhase.RECOVERY_AWAITING_RECORDING,
            CallPhase.TERMINATED,
        }
    ),
    CallPhase.RESPONDED_AWAITING_RECORDING: frozenset({CallPhase.PROCESSING, CallPhase.TERMINATED}),
    CallPhase.RECOVERY_AWAITING_RECORDING: frozenset({CallPhase.PROCESSING, CallPhase.TERMINATED}),
    CallPhase.CLOSING: frozenset({CallPhase.TERMINATED}),
    CallPhase.TERMINATED: frozenset(),
}


def can_transition(current: CallPhase, target: CallPhase) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class CallSession:
    """Call session model. Owned by the call state registry."""

    def __init__(
        self,
        call_sid: str,
        call_id: str,
        agent_id: str,
        caller: Optional[str] = None,
        base_url: str = "",
        phase: CallPhase = CallPhase.INITIATED,
        created_at: Optional[float] = None,
    ):
        self.call_sid = call_sid
        self.call_id = call_id  # Internal id, stable across turns
        self.agent_id = agent_id
        self.caller = caller
        self.base_url = base_url
        self.phase = phase
        self.turn_count = 0
        self.consecutive_failures = 0
        self.keepalive: Optional[asyncio.Task] = None
        self.caller_history: Optional[asyncio.Task] = None
        self.created_at = created_at if created_at is not None else time.monotonic()
        self.updated_at = self.created_at

    def advance(self, target: CallPhase) -> None:
        """Move to ``target``, rejecting transitions the call flow does not allow."""
        if not can_transition(self.phase, target):
            raise InvalidTransition(
                f"Call {self.call_id} cannot move from {self.phase} to {target}"
            )
        self.phase = target

    def take_caller_history(self) -> Optional[asyncio.Task]:
        """Hand over the prefetched history task once; later calls get None."""
        task, self.caller_history = self.caller_history, None
        return task

    def cancel_keepalive(self) -> bool:
        """Cancel the backend keepalive, if one is running."""
        task, self.keepalive = self.keepalive, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    @property
    def is_terminated(self) -> bool:
        return self.phase == CallPhase.TERMINATED

    def __repr__(self) -> str:
        return (
            f"CallSession(call_sid={self.call_sid!r}, call_id={self.call_id!r}, "
            f"agent_id={self.agent_id!r}, phase={self.phase.value})"
        )
