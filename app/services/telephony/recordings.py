"""Retrieval of Twilio call recordings."""
import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.core.errors import DownloadFailure

logger = logging.getLogger(__name__)


class RecordingFetcher:
    """Downloads recorded turns using the account's credentials."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.auth = (
            account_sid or settings.twilio_account_sid,
            auth_token or settings.twilio_auth_token,
        )
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, recording_url: str) -> bytes:
        """
        Download a recording as WAV.

        Raises:
            DownloadFailure: on any transport error or non-2xx status
        """
        url = f"{recording_url}.wav"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, auth=self.auth, follow_redirects=True)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownloadFailure(
                f"Failed to download recording: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DownloadFailure(f"Failed to download recording: {type(e).__name__}: {e}") from e

        if not response.content:
            raise DownloadFailure("Recording was empty")
        logger.debug(f"[RECORDING] Downloaded {len(response.content)} bytes from {url}")
        return response.content
