"""Serves synthesized speech to Twilio's <Play> verb."""
import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app.core.dependencies import get_audio_cache
from app.services.cache.audio import AudioBlobCache

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/audio/{audio_id}")
async def get_audio(audio_id: str, audio_cache: AudioBlobCache = Depends(get_audio_cache)):
    """Return cached audio; 404 once it has expired."""
    audio = audio_cache.get(audio_id)
    if audio is None:
        logger.warning(f"[AUDIO] Not found or expired: {audio_id}")
        raise HTTPException(status_code=404, detail="Audio not found")

    logger.info(f"[AUDIO] Serving {audio_id}: {len(audio)} bytes")
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": "no-cache"},
    )
