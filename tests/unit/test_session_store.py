"""Unit tests for the in-memory session store."""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from app.services.agent.intent import IntentTag
from app.services.agent.stages import PromptType
from app.services.call_session.models import (
    ProductContext,
    SessionPatch,
    SpeechEntry,
)
from app.services.call_session.store import InMemorySessionStore, SessionSweeper
from app.services.speech.input import InputModality


class FakeClock:
    """Manually advanced clock."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def _speech(text):
    return SpeechEntry(input=text, confidence=0.9, modality=InputModality.SPEECH)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore(ttl_seconds=1800, chunk_size=2, clock=clock)


class TestSessionLifecycle:
    """Test create, get and delete."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_unsaved_default(self, store):
        """Test reading an unknown call does not store anything."""
        session = await store.get("CA_missing")

        assert session.call_sid == "CA_missing"
        assert session.product_context == ProductContext()
        assert session.turn == 0
        assert await store.exists("CA_missing") is False
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_create_and_get(self, store, product_context):
        """Test a created session is readable."""
        await store.create("CA1", product_context)

        session = await store.get("CA1")
        assert session.product_context == product_context
        assert await store.exists("CA1") is True

    @pytest.mark.asyncio
    async def test_snapshots_are_isolated(self, store, product_context):
        """Test mutating a read snapshot does not change stored state."""
        await store.create("CA1", product_context)

        snapshot = await store.get("CA1")
        snapshot.speech_history.append(_speech("yes"))
        snapshot.last_intent = IntentTag.CONFIRM

        stored = await store.get("CA1")
        assert stored.speech_history == []
        assert stored.last_intent is None

    @pytest.mark.asyncio
    async def test_create_keeps_original_product_context(self, store, product_context):
        """Test product context cannot be replaced by a second initiation."""
        await store.create("CA1", product_context)
        other = ProductContext(manager_name="Sam", hotel_name="Other Hotel", recommended_product="Tea")

        session = await store.create("CA1", other)

        assert session.product_context == product_context

    @pytest.mark.asyncio
    async def test_delete(self, store, product_context):
        """Test deleting a session."""
        await store.create("CA1", product_context)

        assert await store.delete("CA1") is True
        assert await store.delete("CA1") is False
        assert await store.exists("CA1") is False


class TestApply:
    """Test atomic patch application."""

    @pytest.mark.asyncio
    async def test_apply_merges_patch(self, store, product_context):
        """Test histories append and set scalars overwrite."""
        await store.create("CA1", product_context)

        session = await store.apply(
            "CA1",
            SessionPatch(
                last_intent=IntentTag.DECLINE,
                last_prompt_type=PromptType.FOLLOW_UP,
                speech_entries=[_speech("no")],
                llm_cache={"key": "answer"},
            ),
        )

        assert session.last_intent == IntentTag.DECLINE
        assert session.last_prompt_type == PromptType.FOLLOW_UP
        assert [entry.input for entry in session.speech_history] == ["no"]
        assert session.llm_cache == {"key": "answer"}
        assert session.turn == 1

    @pytest.mark.asyncio
    async def test_unset_scalars_are_kept(self, store, product_context):
        """Test a patch without scalars leaves them unchanged."""
        await store.create("CA1", product_context)
        await store.apply("CA1", SessionPatch(last_prompt_type=PromptType.YES_NO_QUESTION))

        session = await store.apply("CA1", SessionPatch(speech_entries=[_speech("hmm")]))

        assert session.last_prompt_type == PromptType.YES_NO_QUESTION
        assert session.turn == 2

    @pytest.mark.asyncio
    async def test_concurrent_applies_lose_nothing(self, store, product_context):
        """Test overlapping turns for one call keep every history entry."""
        await store.create("CA1", product_context)

        await asyncio.gather(
            *(store.apply("CA1", SessionPatch(speech_entries=[_speech(f"turn {i}")])) for i in range(20))
        )

        session = await store.get("CA1")
        assert len(session.speech_history) == 20
        assert session.turn == 20

    def test_patch_merge_later_scalars_win(self):
        """Test merging patches."""
        first = SessionPatch(last_intent=IntentTag.QUESTION, speech_entries=[_speech("what")])
        second = SessionPatch(last_prompt_type=PromptType.LLM_RESPONSE, llm_cache={"a": "b"})

        merged = first.merge(second)

        assert merged.last_intent == IntentTag.QUESTION
        assert merged.last_prompt_type == PromptType.LLM_RESPONSE
        assert len(merged.speech_entries) == 1
        assert merged.llm_cache == {"a": "b"}


class TestExpiry:
    """Test idle expiry and sweeping."""

    @pytest.mark.asyncio
    async def test_expired_session_reads_as_new(self, store, clock, product_context):
        """Test a session idle past the TTL is treated as absent."""
        await store.create("CA1", product_context)
        clock.advance(1801)

        session = await store.get("CA1")

        assert session.product_context == ProductContext()
        assert await store.exists("CA1") is False
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_activity_refreshes_ttl(self, store, clock, product_context):
        """Test applying a patch extends the session's lifetime."""
        await store.create("CA1", product_context)
        clock.advance(1000)
        await store.apply("CA1", SessionPatch())
        clock.advance(1000)

        assert await store.exists("CA1") is True

    @pytest.mark.asyncio
    async def test_sweep_evicts_only_expired(self, store, clock, product_context):
        """Test the sweep removes idle sessions in chunks."""
        for i in range(5):
            await store.create(f"CA_old_{i}", product_context)
        clock.advance(1000)
        await store.create("CA_new", product_context)
        clock.advance(900)

        evicted = await store.sweep()

        assert evicted == 5
        assert await store.count() == 1
        assert await store.exists("CA_new") is True

    @pytest.mark.asyncio
    async def test_expired_reads_release_locks(self, store, clock, product_context):
        """Test sessions expiring on read leave no per-call locks behind."""
        for i in range(50):
            await store.create(f"CA_{i}", product_context)
        clock.advance(1801)

        for i in range(50):
            await store.get(f"CA_{i}")
        await store.sweep()

        assert await store.count() == 0
        assert store._locks == {}

    @pytest.mark.asyncio
    async def test_sweep_drops_orphaned_locks(self, store, product_context):
        """Test the sweep frees idle locks whose session is gone."""
        await store.create("CA1", product_context)
        store._sessions.pop("CA1")

        await store.sweep()

        assert "CA1" not in store._locks

    @pytest.mark.asyncio
    async def test_sweeper_runs_periodically(self, clock, product_context):
        """Test the background sweeper evicts without being called."""
        store = InMemorySessionStore(ttl_seconds=0, clock=clock)
        await store.create("CA1", product_context)
        clock.advance(1)

        sweeper = SessionSweeper(store, interval_seconds=0.01)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert not sweeper.running
        assert await store.count() == 0
