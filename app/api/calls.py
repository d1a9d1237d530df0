"""Call history API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.services.persistence.calls import CallRecordService

router = APIRouter()
logger = logging.getLogger(__name__)


class CallRecordResponse(BaseModel):
    """Call record response model."""
    id: int
    call_sid: str
    prospect_id: str | None = None
    phone_number: str | None = None
    manager_name: str | None = None
    hotel_name: str | None = None
    recommended_product: str | None = None
    last_product: str | None = None
    status: str
    duration_seconds: int | None = None
    created_at: str
    ended_at: str | None = None


@router.get("/api/calls/history", response_model=List[CallRecordResponse])
async def get_call_history(
    request: Request,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Get the most recent outreach calls."""
    logger.info(
        f"[CALLS HISTORY] Request received - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        records = await CallRecordService(db).list_calls(limit=limit)
        logger.info(f"[CALLS HISTORY] Found {len(records)} calls in database")
        return [
            CallRecordResponse(
                id=record.id,
                call_sid=record.call_sid,
                prospect_id=record.prospect_id,
                phone_number=record.phone_number,
                manager_name=record.manager_name,
                hotel_name=record.hotel_name,
                recommended_product=record.recommended_product,
                last_product=record.last_product,
                status=record.status,
                duration_seconds=record.duration_seconds,
                created_at=record.created_at.isoformat() if record.created_at else "",
                ended_at=record.ended_at.isoformat() if record.ended_at else None,
            )
            for record in records
        ]

    except Exception as e:
        logger.error(
            f"[CALLS HISTORY] Error fetching call history - "
            f"limit: {limit}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        raise HTTPException(status_code=500, detail=f"Error fetching call history: {str(e)}")
