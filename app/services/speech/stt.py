"""Speech-to-text service."""
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.errors import TranscriptionFailure

logger = logging.getLogger(__name__)


class SpeechToTextService:
    """Service for converting speech to text."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def transcribe_audio(
        self, audio_data: bytes, format: str = "wav"
    ) -> str:
        """
        Transcribe audio to text using OpenAI Whisper.

        Args:
            audio_data: Raw audio bytes
            format: Audio format (wav, mp3, etc.)

        Returns:
            Transcribed text, possibly empty when nothing was said
        """
        try:
            transcript = await self.client.audio.transcriptions.create(
                model="whisper-1",
                file=(f"recording.{format}", audio_data, f"audio/{format}"),
            )
        except OpenAIError as e:
            raise TranscriptionFailure(f"Transcription failed: {str(e)}") from e
        return transcript.text or ""
