"""Text-to-speech service."""
from typing import Optional
from openai import AsyncOpenAI, OpenAIError
from app.core.config import settings
from app.core.errors import SynthesisFailure


class TextToSpeechService:
    """Service for converting text to speech."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def synthesize_speech(
        self,
        text: str,
        voice: Optional[str] = None,
        model: Optional[str] = None,
    ) -> bytes:
        """
        Synthesize speech from text using OpenAI TTS.

        Args:
            text: Text to convert to speech
            voice: Voice to use (alloy, echo, fable, onyx, nova, shimmer)
            model: Model to use (tts-1 or tts-1-hd)

        Returns:
            Audio bytes (MP3 format)
        """
        try:
            response = await self.client.audio.speech.create(
                model=model or settings.openai_tts_model,
                voice=voice or settings.openai_tts_voice,
                input=text,
                response_format="mp3",
            )
        except OpenAIError as e:
            raise SynthesisFailure(f"TTS synthesis failed: {str(e)}") from e
        if not response.content:
            raise SynthesisFailure("TTS synthesis returned no audio")
        return response.content
