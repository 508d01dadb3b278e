"""Post-call transcript summaries used for cross-call memory."""
import logging
from typing import Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.services.agent.backend import TranscriptLine

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize this phone call in 1-2 concise sentences. Focus on: what the caller "
    "wanted, what was resolved, any commitments made.\n\nTranscript:\n{transcript}\n\nSummary:"
)

EMPTY_CALL_SUMMARY = "No conversation recorded."


class CallSummarizer:
    """Summarizes finished calls with an OpenAI chat model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.openai_summary_model

    async def summarize(self, turns: Sequence[TranscriptLine]) -> str:
        if not turns:
            return EMPTY_CALL_SUMMARY

        transcript = "\n".join(f"{turn.speaker.capitalize()}: {turn.text}" for turn in turns)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "user", "content": SUMMARY_PROMPT.format(transcript=transcript)},
                ],
                temperature=0.3,
            )
        except OpenAIError as e:
            logger.error(f"[SUMMARY] Summarization failed: {type(e).__name__}: {e}")
            raise

        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip() or "Call completed."
