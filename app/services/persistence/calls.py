"""Call persistence service."""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.orm import selectinload

from app.db.models import Agent, Call


class CallPersistenceService:
    """Service for persisting agents and call records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        """Get an agent by ID."""
        result = await self.db.execute(select(Agent).where(Agent.id == agent_id))
        return result.scalar_one_or_none()

    async def create_call(
        self,
        call_id: str,
        call_sid: str,
        agent_id: str,
        caller: Optional[str] = None,
    ) -> Call:
        """Create a new call record or return existing one for the same CallSid."""
        existing_call = await self.get_call_by_sid(call_sid)
        if existing_call:
            return existing_call

        call = Call(
            id=call_id,
            call_sid=call_sid,
            agent_id=agent_id,
            caller=caller,
            status="in_progress",
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call(self, call_id: str) -> Optional[Call]:
        """Get call by internal ID."""
        result = await self.db.execute(select(Call).where(Call.id == call_id))
        return result.scalar_one_or_none()

    async def get_call_by_sid(self, call_sid: str) -> Optional[Call]:
        """Get call by Twilio call SID."""
        result = await self.db.execute(
            select(Call).where(Call.call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def finish_call(
        self, call_id: str, status: str, ended_at: Optional[datetime] = None
    ) -> Optional[Call]:
        """
        Record the terminal status, end time and duration of a call.

        Only a call still in progress is finalized; returns None when there
        is no such call, so the first terminal status recorded wins.
        """
        call = await self.get_call(call_id)
        if call is None or call.status != "in_progress":
            return None

        ended_at = ended_at or datetime.utcnow()
        call.status = status
        call.ended_at = ended_at
        call.duration_seconds = max(0, int((ended_at - call.started_at).total_seconds()))
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def update_call_summary(self, call_id: str, summary: str) -> Optional[Call]:
        """Update call summary."""
        call = await self.get_call(call_id)
        if call:
            call.summary = summary
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def list_prior_calls(
        self,
        caller: str,
        agent_id: str,
        limit: int,
        exclude_call_id: Optional[str] = None,
    ) -> List[Call]:
        """Completed calls from the same caller to the same agent, most recent first."""
        stmt = (
            select(Call)
            .where(
                Call.caller == caller,
                Call.agent_id == agent_id,
                Call.status == "completed",
            )
            .options(selectinload(Call.turns))
            .order_by(desc(Call.started_at))
            .limit(limit)
        )
        if exclude_call_id:
            stmt = stmt.where(Call.id != exclude_call_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
