"""Outbound outreach API endpoint."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.webhooks.voice import get_base_url
from app.core.dependencies import get_outbound_dialer
from app.db.database import get_db
from app.services.call_session.models import ProductContext
from app.services.outbound.dialer import (
    OutboundCallError,
    OutboundDialer,
    OutboundNotConfiguredError,
    normalize_phone_number,
)
from app.services.persistence.calls import CallRecordService

router = APIRouter()
logger = logging.getLogger(__name__)


class OutreachRequest(BaseModel):
    """Outreach request. Fields are checked by the handler so all are optional here."""
    model_config = ConfigDict(populate_by_name=True)

    prospect_id: Optional[str] = Field(default=None, alias="prospectId")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    manager_name: Optional[str] = Field(default=None, alias="managerName")
    hotel_name: Optional[str] = Field(default=None, alias="hotelName")
    recommended_product: Optional[str] = Field(default=None, alias="recommendedProduct")
    last_product: Optional[str] = Field(default=None, alias="lastProduct")

    def missing_fields(self) -> list[str]:
        required = {
            "phoneNumber": self.phone_number,
            "managerName": self.manager_name,
            "hotelName": self.hotel_name,
            "recommendedProduct": self.recommended_product,
        }
        return [name for name, value in required.items() if not (value or "").strip()]


def _describe_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in e.errors()
    )


def _error(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


@router.post("/api/outreach")
async def start_outreach(
    request: Request,
    dialer: OutboundDialer = Depends(get_outbound_dialer),
    db: AsyncSession = Depends(get_db),
):
    """Place an outbound recommendation call to a prospect."""
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning(f"[OUTREACH] Rejected request, body is not valid JSON: {str(e)}")
        return _error(400, "Invalid request body: expected a JSON object", error=str(e))

    if not isinstance(body, dict):
        logger.warning(f"[OUTREACH] Rejected request, body is not an object: {type(body).__name__}")
        return _error(400, "Invalid request body: expected a JSON object")

    try:
        payload = OutreachRequest.model_validate(body)
    except ValidationError as e:
        detail = _describe_validation_error(e)
        logger.warning(f"[OUTREACH] Rejected request, invalid fields: {detail}")
        return _error(400, "Invalid request fields", error=detail)

    logger.info(
        f"[OUTREACH] Request received - ProspectId: {payload.prospect_id}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    missing = payload.missing_fields()
    if missing:
        logger.warning(f"[OUTREACH] Rejected request, missing fields: {missing}")
        return _error(400, f"Missing required fields: {', '.join(missing)}")

    to_number = normalize_phone_number(payload.phone_number)
    if to_number is None:
        logger.warning(f"[OUTREACH] Rejected request, invalid phone number: {payload.phone_number}")
        return _error(400, f"Invalid phone number: {payload.phone_number}")

    product_context = ProductContext(
        manager_name=payload.manager_name.strip(),
        hotel_name=payload.hotel_name.strip(),
        recommended_product=payload.recommended_product.strip(),
        last_product=(payload.last_product or "").strip() or None,
    )

    try:
        call_sid = await dialer.place_call(to_number, product_context, get_base_url(request))
    except OutboundNotConfiguredError as e:
        logger.error(f"[OUTREACH] {e.message}")
        return _error(500, e.message)
    except OutboundCallError as e:
        logger.error(
            f"[OUTREACH] Failed to place call - ProspectId: {payload.prospect_id}, "
            f"Status: {e.status_code}, Error: {e.message}"
        )
        return _error(500, "Failed to initiate call", error=e.message)

    try:
        await CallRecordService(db).create_call_record(
            call_sid,
            phone_number=to_number,
            prospect_id=payload.prospect_id,
            manager_name=product_context.manager_name,
            hotel_name=product_context.hotel_name,
            recommended_product=product_context.recommended_product,
            last_product=product_context.last_product,
        )
    except Exception as e:
        # The call is already ringing; a missing record must not fail the request
        logger.error(
            f"[OUTREACH] Failed to record call - CallSid: {call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )

    return {
        "success": True,
        "message": (
            f"Outreach call initiated for prospect ID: {payload.prospect_id}"
            if payload.prospect_id
            else "Outreach call initiated"
        ),
        "callSid": call_sid,
    }
