"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.dependencies import get_session_store
from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import calls, health, outreach
from app.api.webhooks import voice
from app.services.call_session.store import SessionSweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    sweeper = SessionSweeper(get_session_store(), settings.session_sweep_interval_seconds)
    sweeper.start()
    yield
    # Shutdown
    await sweeper.stop()


app = FastAPI(
    title="Hotel Outreach Voice Agent",
    description="Outbound voice agent for hotel product recommendations",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/api", tags=["webhooks"])
app.include_router(outreach.router, tags=["outreach"])
app.include_router(calls.router, tags=["calls"])


@app.get("/")
async def root():
    return {
        "message": "Hotel Outreach Voice Agent API",
        "version": "0.1.0",
    }
