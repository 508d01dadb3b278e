"""HTTP client for the response-generation backend."""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import BackendError, BackendTimeout

logger = logging.getLogger(__name__)


class AgentProfile(BaseModel):
    """What the backend needs to know about the agent on the call."""

    id: str
    name: str
    context: Optional[str] = None


class TranscriptLine(BaseModel):
    """One turn of the transcript sent to the backend."""

    speaker: str
    text: str


class AgentBackendClient:
    """
    Talks to the generation backend, which keeps its own per-call session
    memory between turns.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.agent_backend_url).rstrip("/")
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.generation_timeout_seconds
        )
        self.transport = transport

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or httpx.Timeout(10.0),
            transport=self.transport,
        )

    async def generate_reply(
        self,
        call_id: str,
        agent: AgentProfile,
        history: Sequence[TranscriptLine],
        message: str,
        caller_history: Optional[str] = None,
    ) -> str:
        """
        Ask the backend for the agent's next utterance.

        The whole exchange is bounded by ``timeout_seconds``, which has to
        cover several reasoning rounds inside the backend.

        Raises:
            BackendTimeout: if no reply arrives within the deadline
            BackendError: on transport errors, non-2xx responses or empty text
        """
        payload: Dict[str, Any] = {
            "callId": call_id,
            "agentId": agent.id,
            "agentName": agent.name,
            "agentContext": agent.context or "",
            "history": [line.model_dump() for line in history],
            "message": message,
        }
        if caller_history:
            payload["callerHistory"] = caller_history

        try:
            response = await asyncio.wait_for(
                self._post_respond(payload), timeout=self.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise BackendTimeout(
                f"Generation exceeded {self.timeout_seconds:.0f}s for call {call_id}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(f"Generation request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise BackendError(f"Generation backend returned {response.status_code}")
        try:
            text = (response.json().get("text") or "").strip()
        except ValueError as e:
            raise BackendError("Generation backend returned invalid JSON") from e
        if not text:
            raise BackendError("Generation backend returned no response text")
        return text

    async def _post_respond(self, payload: Dict[str, Any]) -> httpx.Response:
        timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        async with self._client(timeout) as client:
            return await client.post("/call/respond", json=payload)

    async def keepalive(self, call_id: str) -> None:
        """
        Hold a streaming connection open so the backend stays warm for this call.

        Best-effort: errors are logged and swallowed. Cancel the task running
        this coroutine to close the connection.
        """
        timeout = httpx.Timeout(10.0, read=None)
        try:
            async with self._client(timeout) as client:
                async with client.stream(
                    "GET", "/call/keepalive", params={"callId": call_id}
                ) as response:
                    if response.status_code >= 400:
                        logger.warning(
                            f"[BACKEND] Keepalive rejected for call {call_id}: {response.status_code}"
                        )
                        return
                    async for _ in response.aiter_lines():
                        pass
            logger.debug(f"[BACKEND] Keepalive for call {call_id} closed by backend")
        except httpx.HTTPError as e:
            logger.warning(
                f"[BACKEND] Keepalive failed for call {call_id}: {type(e).__name__}: {e}"
            )

    async def end_session(self, call_id: str) -> None:
        """Tell the backend to drop its session for this call. Best-effort."""
        try:
            async with self._client() as client:
                response = await client.post("/call/end", json={"callId": call_id})
                if response.status_code >= 400:
                    logger.warning(
                        f"[BACKEND] End-session for call {call_id} returned {response.status_code}"
                    )
        except httpx.HTTPError as e:
            logger.error(
                f"[BACKEND] Failed to notify backend of call end - callId: {call_id}, "
                f"Error: {type(e).__name__}: {e}"
            )


def to_transcript(turns: List[Any]) -> List[TranscriptLine]:
    """Convert stored turns to the backend's transcript lines."""
    return [TranscriptLine(speaker=turn.speaker, text=turn.text) for turn in turns]
