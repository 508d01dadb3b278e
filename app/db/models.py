"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Agent(Base):
    """Voice agent reachable on a phone number."""

    __tablename__ = "agents"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    context = Column(Text, nullable=True)  # Persona / knowledge handed to the generation backend
    status = Column(String, default="active", nullable=False)  # active, inactive
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    calls = relationship("Call", back_populates="agent")


class Call(Base):
    """Call metadata model."""

    __tablename__ = "calls"

    id = Column(String, primary_key=True, index=True)  # Internal call id, stable across turns
    agent_id = Column(String, ForeignKey("agents.id"), nullable=False, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    caller = Column(String, nullable=True, index=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, default=0, nullable=False)
    status = Column(String, default="in_progress", nullable=False)  # in_progress or a terminal Twilio status
    summary = Column(Text, nullable=True)

    # Relationships
    agent = relationship("Agent", back_populates="calls")
    turns = relationship(
        "ConversationTurn",
        back_populates="call",
        cascade="all, delete-orphan",
        order_by="ConversationTurn.turn_order",
    )


class ConversationTurn(Base):
    """One utterance within a call. Append-only."""

    __tablename__ = "conversation_turns"
    __table_args__ = (UniqueConstraint("call_id", "turn_order", name="uq_turn_order"),)

    id = Column(String, primary_key=True)
    call_id = Column(String, ForeignKey("calls.id"), nullable=False, index=True)
    turn_order = Column(Integer, nullable=False)  # 1-based, caller first
    speaker = Column(String, nullable=False)  # caller, agent
    text = Column(Text, nullable=False)
    audio_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    call = relationship("Call", back_populates="turns")
