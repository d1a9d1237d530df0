"""FastAPI dependencies."""
from functools import lru_cache

from fastapi import Depends

from app.core.config import settings
from app.services.agent.gateway import GenerativeGateway
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.store import InMemorySessionStore, SessionStore
from app.services.outbound.dialer import OutboundDialer


@lru_cache
def get_session_store() -> SessionStore:
    """Process-wide session store, built once."""
    return InMemorySessionStore(
        ttl_seconds=settings.session_ttl_seconds,
        chunk_size=settings.session_sweep_chunk_size,
    )


@lru_cache
def get_generative_gateway() -> GenerativeGateway:
    """Process-wide generative gateway."""
    return GenerativeGateway()


@lru_cache
def get_outbound_dialer() -> OutboundDialer:
    """Process-wide outbound dialer."""
    return OutboundDialer()


def get_session_manager(
    store: SessionStore = Depends(get_session_store),
    gateway: GenerativeGateway = Depends(get_generative_gateway),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(store, gateway)
