"""Twilio call-control client."""
import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from app.core.config import settings
from app.core.errors import CallControlFailure

logger = logging.getLogger(__name__)


class CallControlClient:
    """Redirects in-progress calls to new TwiML or to a TwiML URL."""

    def __init__(self, client: Optional[TwilioClient] = None):
        self.client = client or TwilioClient(
            settings.twilio_account_sid, settings.twilio_auth_token
        )

    def _update(self, call_sid: str, params: Dict[str, Any]) -> None:
        self.client.calls(call_sid).update(**params)

    async def redirect(
        self, call_sid: str, twiml: Optional[str] = None, url: Optional[str] = None
    ) -> None:
        """
        Apply new instructions to a live call.

        Args:
            call_sid: Twilio call SID
            twiml: Inline TwiML document
            url: URL Twilio should fetch TwiML from

        Raises:
            CallControlFailure: if Twilio rejects the update or cannot be reached
        """
        if twiml is None and url is None:
            raise ValueError("redirect needs twiml or url")

        params: Dict[str, Any] = {}
        if twiml is not None:
            params["twiml"] = twiml
        if url is not None:
            params["url"] = url
            params["method"] = "POST"

        try:
            # The Twilio SDK is blocking
            await asyncio.to_thread(self._update, call_sid, params)
        except (TwilioException, OSError) as e:
            raise CallControlFailure(
                f"Redirect failed for CallSid {call_sid}: {type(e).__name__}: {e}"
            ) from e
        logger.debug(
            f"[CALL CONTROL] Redirected CallSid: {call_sid} "
            f"({'url' if url is not None else 'inline twiml'})"
        )
