"""Twilio voice webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Request, Form, Depends, Query
from fastapi.responses import Response

from app.core.config import settings
from app.core.dependencies import get_call_session_manager
from app.services.call_session.manager import CallSessionManager

router = APIRouter()
logger = logging.getLogger(__name__)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set, otherwise constructs from
    request. Background redirects reuse the value captured here.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')

    return str(request.base_url).rstrip('/')


def twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


def client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# Declared before the /voice/{agent_id} routes so "status" is never taken for an agent id
@router.post("/voice/status", status_code=204)
async def handle_call_status(
    request: Request,
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    callId: Optional[str] = Query(None),
    session_manager: CallSessionManager = Depends(get_call_session_manager),
):
    """
    Handle call status updates from Twilio.

    Terminal statuses tear the call down; everything else is acknowledged
    and ignored. Always answers 204 so Twilio does not retry.
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, Client: {client_host(request)}"
    )

    if not CallSid or not CallStatus:
        logger.warning(
            f"[CALL STATUS] Missing CallSid or CallStatus - CallSid: {CallSid}, CallStatus: {CallStatus}"
        )
        return Response(status_code=204)

    try:
        handled = session_manager.handle_terminal_status(CallSid, CallStatus, call_id=callId)
        if not handled:
            logger.debug(
                f"[CALL STATUS] Status update received but no action needed - "
                f"CallSid: {CallSid}, CallStatus: {CallStatus}"
            )
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallSid: {CallSid}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )

    return Response(status_code=204)


@router.post("/voice/{agent_id}")
async def handle_incoming_call(
    request: Request,
    agent_id: str,
    CallSid: str = Form(...),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_call_session_manager),
):
    """
    Handle incoming call from Twilio.

    Greets the caller and records the first turn.
    """
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - CallSid: {CallSid}, "
        f"agent: {agent_id}, From: {From}, To: {To}, Client: {client_host(request)}"
    )

    try:
        twiml = await session_manager.handle_incoming_call(
            CallSid, From, agent_id, base_url=get_base_url(request)
        )
    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        twiml = session_manager.twiml.error()

    return twiml_response(twiml)


@router.post("/voice/{agent_id}/respond")
async def handle_recording(
    request: Request,
    agent_id: str,
    callId: Optional[str] = Query(None),
    CallSid: Optional[str] = Form(None),
    RecordingUrl: Optional[str] = Form(None),
    RecordingSid: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_call_session_manager),
):
    """
    Handle a recorded turn from Twilio.

    Answers with hold music immediately; the reply is delivered later by
    redirecting the live call.
    """
    logger.info(
        f"[RESPOND] Received recording webhook - CallSid: {CallSid}, callId: {callId}, "
        f"RecordingSid: {RecordingSid}, Client: {client_host(request)}"
    )

    if not callId or not CallSid:
        logger.warning(f"[RESPOND] Missing callId or CallSid - CallSid: {CallSid}, callId: {callId}")
        return twiml_response(session_manager.twiml.error())

    base_url = get_base_url(request)
    try:
        twiml = await session_manager.handle_turn_recording(
            CallSid,
            agent_id,
            callId,
            RecordingUrl,
            base_url=base_url,
            recording_sid=RecordingSid,
        )
    except Exception as e:
        logger.error(
            f"[RESPOND] Error accepting recording - CallSid: {CallSid}, callId: {callId}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        # Return a graceful error response to Twilio
        twiml = session_manager.twiml.recovery(base_url, agent_id, callId)

    return twiml_response(twiml)


@router.post("/voice/{agent_id}/callback")
async def handle_reply_ready(
    request: Request,
    agent_id: str,
    audioId: Optional[str] = Query(None),
    callId: Optional[str] = Query(None),
    session_manager: CallSessionManager = Depends(get_call_session_manager),
):
    """
    Twilio lands here when the turn pipeline redirects the call.

    Plays the cached reply and records the next turn.
    """
    logger.info(f"[CALLBACK] Reply ready - callId: {callId}, audioId: {audioId}")
    twiml = session_manager.reply_document(agent_id, audioId, callId, get_base_url(request))
    return twiml_response(twiml)
