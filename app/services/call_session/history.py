"""Prefetch of a caller's previous calls for cross-call memory."""
import asyncio
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Call
from app.services.call_session.tasks import TaskSupervisor
from app.services.persistence.calls import CallPersistenceService

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds or 0), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def render_call(call: Call, max_turns: int) -> str:
    """Render one prior call as a short block."""
    date = call.started_at.strftime("%Y-%m-%d") if call.started_at else "unknown date"
    lines = [f"Call on {date} ({format_duration(call.duration_seconds)})"]
    if call.summary:
        lines.append(f"Summary: {call.summary}")
    for turn in list(call.turns)[:max_turns]:
        lines.append(f"{turn.speaker.capitalize()}: {turn.text}")
    return "\n".join(lines)


def render_history(calls: List[Call], max_turns: int) -> Optional[str]:
    if not calls:
        return None
    blocks = [render_call(call, max_turns) for call in calls]
    header = f"This caller has called {len(calls)} time(s) before (most recent first):"
    return header + "\n\n" + "\n\n".join(blocks)


class CallerHistoryPrefetcher:
    """Loads and renders prior calls in the background while the greeting plays."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        supervisor: Optional[TaskSupervisor] = None,
        limit: int = 5,
        turns_per_call: int = 4,
    ):
        self.session_factory = session_factory
        self.supervisor = supervisor
        self.limit = limit
        self.turns_per_call = turns_per_call

    def prefetch(
        self, caller: Optional[str], agent_id: str, exclude_call_id: Optional[str] = None
    ) -> asyncio.Task:
        """Start loading history; the task resolves to the rendered text or None."""
        coro = self.load(caller, agent_id, exclude_call_id)
        name = f"caller-history:{exclude_call_id or agent_id}"
        if self.supervisor is not None:
            return self.supervisor.spawn(coro, name=name)
        return asyncio.create_task(coro, name=name)

    async def load(
        self, caller: Optional[str], agent_id: str, exclude_call_id: Optional[str] = None
    ) -> Optional[str]:
        if not caller:
            return None
        try:
            async with self.session_factory() as db:
                calls = await CallPersistenceService(db).list_prior_calls(
                    caller, agent_id, limit=self.limit, exclude_call_id=exclude_call_id
                )
        except SQLAlchemyError as e:
            logger.warning(
                f"[CALLER HISTORY] Lookup failed for caller {caller}, agent {agent_id}: "
                f"{type(e).__name__}: {e}"
            )
            return None

        history = render_history(calls, self.turns_per_call)
        logger.info(
            f"[CALLER HISTORY] {len(calls)} prior call(s) for caller {caller}, agent {agent_id}"
        )
        return history
