"""Unit tests for caller history prefetch."""
from datetime import datetime, timedelta

import pytest

from app.db.models import Call, ConversationTurn
from app.services.call_session.history import (
    CallerHistoryPrefetcher,
    format_duration,
    render_history,
)


async def add_prior_call(db, call_id, caller="+15550001111", days_ago=1, summary=None, turns=()):
    db.add(Call(
        id=call_id,
        call_sid=f"CA-{call_id}",
        agent_id="agent-1",
        caller=caller,
        status="completed",
        started_at=datetime(2026, 10, 1, 12, 0) - timedelta(days=days_ago),
        duration_seconds=125,
        summary=summary,
    ))
    for order, (speaker, text) in enumerate(turns, start=1):
        db.add(ConversationTurn(
            id=f"{call_id}-{order}", call_id=call_id, turn_order=order, speaker=speaker, text=text
        ))
    await db.commit()


class TestRendering:
    """Test history formatting."""

    def test_format_duration(self):
        assert format_duration(0) == "0s"
        assert format_duration(59) == "59s"
        assert format_duration(125) == "2m 5s"

    def test_render_history_empty(self):
        assert render_history([], max_turns=4) is None


class TestCallerHistoryPrefetcher:
    """Test loading a caller's previous calls."""

    @pytest.mark.asyncio
    async def test_no_caller_means_no_history(self, session_factory):
        prefetcher = CallerHistoryPrefetcher(session_factory)
        assert await prefetcher.load(None, "agent-1") is None

    @pytest.mark.asyncio
    async def test_first_time_caller(self, session_factory, test_agent):
        prefetcher = CallerHistoryPrefetcher(session_factory)
        assert await prefetcher.load("+15550001111", "agent-1") is None

    @pytest.mark.asyncio
    async def test_renders_prior_calls(self, session_factory, test_db, test_agent):
        await add_prior_call(
            test_db,
            "prior-1",
            days_ago=1,
            summary="Caller booked a cleaning for Tuesday.",
            turns=[
                ("caller", "Can I book a cleaning?"),
                ("agent", "Sure, Tuesday at ten works."),
                ("caller", "Great."),
                ("agent", "See you then."),
                ("caller", "Bye."),
            ],
        )
        await add_prior_call(test_db, "prior-2", days_ago=5)
        await add_prior_call(test_db, "someone-else", caller="+19998887777")
        prefetcher = CallerHistoryPrefetcher(session_factory, limit=5, turns_per_call=4)

        history = await prefetcher.load("+15550001111", "agent-1", exclude_call_id="current")

        assert history.startswith("This caller has called 2 time(s) before (most recent first):")
        assert "Call on 2026-09-30 (2m 5s)" in history
        assert "Summary: Caller booked a cleaning for Tuesday." in history
        assert "Caller: Can I book a cleaning?" in history
        assert "Agent: See you then." in history
        # Only the first four turns of each call
        assert "Caller: Bye." not in history
        assert history.index("2026-09-30") < history.index("2026-09-26")

    @pytest.mark.asyncio
    async def test_prefetch_runs_in_background(self, session_factory, test_db, test_agent):
        await add_prior_call(test_db, "prior-1", summary="Asked about insurance.")
        prefetcher = CallerHistoryPrefetcher(session_factory)

        task = prefetcher.prefetch("+15550001111", "agent-1", exclude_call_id="current")

        assert "Asked about insurance." in await task
