"""Session store interface and in-memory implementation."""
import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from app.services.call_session.models import (
    CallSession,
    ProductContext,
    SessionPatch,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_SWEEP_CHUNK_SIZE = 100


class SessionStore(ABC):
    """Abstract per-call session store."""

    @abstractmethod
    async def get(self, call_sid: str) -> CallSession:
        """Get a snapshot of the session, or a fresh default one if none is live."""
        pass

    @abstractmethod
    async def create(self, call_sid: str, product_context: ProductContext) -> CallSession:
        """Create the session for a newly initiated call."""
        pass

    @abstractmethod
    async def apply(self, call_sid: str, patch: SessionPatch) -> CallSession:
        """Apply one turn's changes atomically for this call identifier."""
        pass

    @abstractmethod
    async def set(self, session: CallSession) -> None:
        """Replace a session wholesale."""
        pass

    @abstractmethod
    async def delete(self, call_sid: str) -> bool:
        """Remove a session. Returns True if one existed."""
        pass

    @abstractmethod
    async def exists(self, call_sid: str) -> bool:
        """Check whether a live session exists."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored sessions."""
        pass

    @abstractmethod
    async def sweep(self) -> int:
        """Evict expired sessions. Returns the number evicted."""
        pass


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    Reads hand out deep copies so a turn can never mutate stored state
    directly; all writes go through ``apply``/``create``, which hold a lock
    per call identifier for the read-modify-write.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        chunk_size: int = DEFAULT_SWEEP_CHUNK_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.chunk_size = max(1, chunk_size)
        self.clock = clock or utc_now
        self._sessions: Dict[str, CallSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, call_sid: str) -> asyncio.Lock:
        lock = self._locks.get(call_sid)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_sid] = lock
        return lock

    def _is_expired(self, session: CallSession, now: datetime) -> bool:
        return now - session.last_updated > self.ttl

    def _live_session(self, call_sid: str, now: datetime) -> Optional[CallSession]:
        session = self._sessions.get(call_sid)
        if session is None:
            return None
        if self._is_expired(session, now):
            logger.info(f"[SESSION STORE] Session expired on access - CallSid: {call_sid}")
            self._sessions.pop(call_sid, None)
            self._release_lock(call_sid)
            return None
        return session

    def _release_lock(self, call_sid: str) -> None:
        # A held lock belongs to a write in progress
        lock = self._locks.get(call_sid)
        if lock is not None and not lock.locked():
            self._locks.pop(call_sid, None)

    async def get(self, call_sid: str) -> CallSession:
        now = self.clock()
        session = self._live_session(call_sid, now)
        if session is None:
            return CallSession(call_sid=call_sid, start_time=now, last_updated=now)
        return session.model_copy(deep=True)

    async def create(self, call_sid: str, product_context: ProductContext) -> CallSession:
        async with self._lock_for(call_sid):
            now = self.clock()
            existing = self._live_session(call_sid, now)
            if existing is not None:
                # Product context is fixed at first initiation
                logger.info(
                    f"[SESSION STORE] Session already initiated, keeping original "
                    f"product context - CallSid: {call_sid}"
                )
                return existing.model_copy(deep=True)

            session = CallSession(
                call_sid=call_sid,
                start_time=now,
                last_updated=now,
                product_context=product_context,
            )
            self._sessions[call_sid] = session
            logger.debug(f"[SESSION STORE] Session created - CallSid: {call_sid}")
            return session.model_copy(deep=True)

    async def apply(self, call_sid: str, patch: SessionPatch) -> CallSession:
        async with self._lock_for(call_sid):
            now = self.clock()
            current = self._live_session(call_sid, now)
            if current is None:
                current = CallSession(call_sid=call_sid, start_time=now, last_updated=now)
            updated = patch.apply_to(current, now)
            self._sessions[call_sid] = updated
            return updated.model_copy(deep=True)

    async def set(self, session: CallSession) -> None:
        async with self._lock_for(session.call_sid):
            stored = session.model_copy(deep=True)
            stored.last_updated = self.clock()
            self._sessions[session.call_sid] = stored

    async def delete(self, call_sid: str) -> bool:
        existed = self._sessions.pop(call_sid, None) is not None
        self._release_lock(call_sid)
        return existed

    async def exists(self, call_sid: str) -> bool:
        return self._live_session(call_sid, self.clock()) is not None

    async def count(self) -> int:
        return len(self._sessions)

    async def sweep(self) -> int:
        """
        Evict sessions idle longer than the TTL.

        Works over a snapshot of the keys in chunks, yielding to the event
        loop between chunks so concurrent turns are never blocked for the
        whole sweep. Each entry is re-checked before eviction since a turn
        may have refreshed it in the meantime.
        """
        now = self.clock()
        call_sids = list(self._sessions.keys())
        evicted = 0

        for start in range(0, len(call_sids), self.chunk_size):
            for call_sid in call_sids[start:start + self.chunk_size]:
                session = self._sessions.get(call_sid)
                if session is not None and self._is_expired(session, now):
                    await self.delete(call_sid)
                    evicted += 1
            await asyncio.sleep(0)

        for call_sid in list(self._locks.keys()):
            if call_sid not in self._sessions:
                self._release_lock(call_sid)

        if evicted:
            logger.info(f"[SESSION STORE] Cleaned up {evicted} expired sessions")
        return evicted


class SessionSweeper:
    """Background task that periodically sweeps a session store."""

    def __init__(self, store: SessionStore, interval_seconds: float):
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"[SESSION STORE] Sweeper started (interval: {self.interval_seconds}s)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("[SESSION STORE] Sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.store.sweep()
            except Exception as e:
                logger.error(
                    f"[SESSION STORE] Sweep failed - Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
