"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_session_store
from app.services.call_session.store import SessionStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    store: SessionStore = Depends(get_session_store),
):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy", "active_sessions": await store.count()}
