"""Conversation turn persistence service."""
import uuid
from enum import Enum
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.db.models import ConversationTurn


class Speaker(str, Enum):
    """Who spoke a turn."""

    CALLER = "caller"
    AGENT = "agent"

    def __str__(self) -> str:
        return self.value


class TurnPersistenceService:
    """Service for appending and reading conversation turns."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_turns(self, call_id: str) -> int:
        """Number of turns already stored for a call."""
        result = await self.db.execute(
            select(func.count(ConversationTurn.id)).where(ConversationTurn.call_id == call_id)
        )
        return result.scalar() or 0

    async def append_turn(
        self,
        call_id: str,
        turn_order: int,
        speaker: Speaker,
        text: str,
        audio_url: Optional[str] = None,
    ) -> ConversationTurn:
        """Insert a turn. Turns are never updated after this."""
        turn = ConversationTurn(
            id=str(uuid.uuid4()),
            call_id=call_id,
            turn_order=turn_order,
            speaker=str(speaker),
            text=text,
            audio_url=audio_url,
        )
        self.db.add(turn)
        await self.db.commit()
        await self.db.refresh(turn)
        return turn

    async def list_turns(self, call_id: str) -> List[ConversationTurn]:
        """All turns of a call in speaking order."""
        result = await self.db.execute(
            select(ConversationTurn)
            .where(ConversationTurn.call_id == call_id)
            .order_by(ConversationTurn.turn_order)
        )
        return list(result.scalars().all())
