"""Twilio voice webhook endpoints."""
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.dependencies import get_session_manager
from app.db.database import get_db
from app.services.agent.constants import TERMINAL_CALL_STATUSES
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import ProductContext
from app.services.persistence.calls import CallRecordService
from app.services.speech.input import extract_call_sid
from app.services.speech.twiml import build_safe_fallback

router = APIRouter()
logger = logging.getLogger(__name__)

TWIML_MEDIA_TYPE = "text/xml"
REQUIRED_SCRIPT_PARAMS = ("managerName", "hotelName", "recommendedProduct")


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g., behind a proxy),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')
    return str(request.base_url).rstrip('/')


async def read_form(request: Request) -> Dict[str, Any]:
    """Form fields of the request, empty for bodies that are not forms."""
    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"[WEBHOOK] Could not parse form body: {type(e).__name__}: {str(e)}")
        return {}
    return {key: value for key, value in form.items() if isinstance(value, str)}


def twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type=TWIML_MEDIA_TYPE)


def _parse_duration(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@router.api_route("/call-script", methods=["GET", "POST"])
async def handle_call_script(
    request: Request,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Serve the opening document for an outbound call.

    Twilio fetches this when the callee answers. Campaign fields arrive on
    the query string (or form body); all three required fields must be
    present before a session is created.
    """
    form = await read_form(request)
    params: Dict[str, Any] = dict(request.query_params)
    params.update(form)

    missing = [
        name for name in REQUIRED_SCRIPT_PARAMS if not str(params.get(name) or "").strip()
    ]
    if missing:
        logger.warning(
            f"[CALL SCRIPT] Rejected request, missing parameters: {missing} - "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )
        return JSONResponse(
            status_code=400,
            content={"error": f"Missing required parameters: {', '.join(missing)}"},
        )

    call_sid = extract_call_sid(form, request.query_params) or f"session_{int(time.time() * 1000)}"
    logger.info(
        f"[CALL SCRIPT] Received script request - CallSid: {call_sid}, Method: {request.method}"
    )

    try:
        product_context = ProductContext(
            manager_name=str(params["managerName"]).strip(),
            hotel_name=str(params["hotelName"]).strip(),
            recommended_product=str(params["recommendedProduct"]).strip(),
            last_product=str(params.get("lastProduct") or "").strip() or None,
        )
        twiml = await session_manager.start_call(
            call_sid, product_context, get_base_url(request)
        )
    except Exception as e:
        logger.error(
            f"[CALL SCRIPT] Error processing script request - CallSid: {call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        twiml = build_safe_fallback()

    logger.info(f"[CALL SCRIPT] TwiML sent - CallSid: {call_sid}, Length: {len(twiml)} bytes")
    return twiml_response(twiml)


@router.post("/call-response")
async def handle_call_response(
    request: Request,
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle gathered caller input.

    Always answers 200 with a valid document, whatever the caller said.
    """
    try:
        form = await read_form(request)
        call_sid = extract_call_sid(form, request.query_params)
        logger.info(
            f"[CALL RESPONSE] Received caller input - CallSid: {call_sid}, "
            f"Fields: {sorted(form.keys())}"
        )
        twiml = await session_manager.process_turn(call_sid, form, get_base_url(request))
    except Exception as e:
        logger.error(
            f"[CALL RESPONSE] Error handling caller input - Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        twiml = build_safe_fallback()

    return twiml_response(twiml)


async def _record_status_update(
    session_manager: CallSessionManager,
    db: AsyncSession,
    call_sid: Optional[str],
    call_status: Optional[str],
    call_duration: Optional[str],
    from_number: Optional[str],
    to_number: Optional[str],
) -> None:
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {call_sid}, "
        f"CallStatus: {call_status}, Duration: {call_duration or 'N/A'}, "
        f"From: {from_number}, To: {to_number}"
    )
    if not call_sid or not call_status:
        logger.warning("[CALL STATUS] Status update without CallSid or CallStatus ignored")
        return

    try:
        is_terminal = call_status in TERMINAL_CALL_STATUSES
        if is_terminal:
            await session_manager.end_session(call_sid, status=call_status)

        await CallRecordService(db).update_call_status(
            call_sid,
            call_status,
            duration_seconds=_parse_duration(call_duration),
            from_number=from_number,
            to_number=to_number,
            ended_at=datetime.utcnow() if is_terminal else None,
        )
    except Exception as e:
        # Still acknowledged so Twilio does not retry
        logger.error(
            f"[CALL STATUS] Error handling status update - CallSid: {call_sid}, "
            f"CallStatus: {call_status}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )


@router.post("/call-status")
async def handle_call_status(
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    CallDuration: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
    db: AsyncSession = Depends(get_db),
):
    """Handle call status updates from Twilio."""
    await _record_status_update(
        session_manager, db, CallSid, CallStatus, CallDuration, From, To
    )
    return Response(content="OK", media_type="text/plain")


@router.post("/twilio/status-callback")
async def handle_status_callback(
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    CallDuration: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
    db: AsyncSession = Depends(get_db),
):
    """Status callback registered by older campaign setups."""
    await _record_status_update(
        session_manager, db, CallSid, CallStatus, CallDuration, From, To
    )
    return {"received": True}
