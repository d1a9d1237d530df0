"""Call session models."""
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.agent.intent import Intent, IntentTag
from app.services.agent.stages import PromptType
from app.services.speech.input import InputModality


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProductContext(BaseModel):
    """Campaign substitution values, fixed when the call is initiated."""

    model_config = ConfigDict(frozen=True)

    manager_name: str = ""
    hotel_name: str = ""
    recommended_product: str = ""
    last_product: Optional[str] = None

    def fingerprint(self) -> str:
        """Stable serialization used in generative cache keys."""
        return json.dumps(self.model_dump(), sort_keys=True)


class SpeechEntry(BaseModel):
    """One caller response as received."""

    input: str
    confidence: float
    modality: InputModality
    timestamp: datetime = Field(default_factory=utc_now)


class LlmExchange(BaseModel):
    """One generative question/answer pair."""

    query: str
    response: str
    latency_ms: float
    cached: bool
    timestamp: datetime = Field(default_factory=utc_now)


class CallSession(BaseModel):
    """Mutable per-call context shared by every turn of one call."""

    call_sid: str
    start_time: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)
    product_context: ProductContext = Field(default_factory=ProductContext)
    last_intent: Optional[IntentTag] = None
    last_prompt_type: Optional[PromptType] = None
    speech_history: List[SpeechEntry] = []
    intents: List[Intent] = []
    llm_cache: Dict[str, str] = {}
    llm_history: List[LlmExchange] = []
    turn: int = 0  # Number of patches applied

    def cache_key(self, sanitized_input: str) -> str:
        """Generative cache key for a sanitized query in this call's context."""
        return f"{sanitized_input}_{self.product_context.fingerprint()}"

    def summary(self) -> Dict[str, object]:
        """Short description for log lines."""
        return {
            "call_sid": self.call_sid,
            "start_time": self.start_time.isoformat(),
            "last_intent": str(self.last_intent) if self.last_intent else None,
            "last_prompt_type": str(self.last_prompt_type) if self.last_prompt_type else None,
            "speech_history_count": len(self.speech_history),
            "turn": self.turn,
        }


class SessionPatch(BaseModel):
    """
    Changes one turn makes to a session.

    List and mapping fields are appended/merged; scalar fields are applied
    only when explicitly set on the patch.
    """

    last_intent: Optional[IntentTag] = None
    last_prompt_type: Optional[PromptType] = None
    speech_entries: List[SpeechEntry] = []
    intents: List[Intent] = []
    llm_cache: Dict[str, str] = {}
    llm_history: List[LlmExchange] = []

    def merge(self, other: "SessionPatch") -> "SessionPatch":
        """Combine two patches, later scalar values winning."""
        merged = SessionPatch(
            speech_entries=self.speech_entries + other.speech_entries,
            intents=self.intents + other.intents,
            llm_cache={**self.llm_cache, **other.llm_cache},
            llm_history=self.llm_history + other.llm_history,
        )
        for name in ("last_intent", "last_prompt_type"):
            if name in other.model_fields_set:
                setattr(merged, name, getattr(other, name))
            elif name in self.model_fields_set:
                setattr(merged, name, getattr(self, name))
        return merged

    def apply_to(self, session: CallSession, now: datetime) -> CallSession:
        """Return a copy of the session with this patch applied."""
        updated = session.model_copy(deep=True)
        updated.speech_history.extend(self.speech_entries)
        updated.intents.extend(self.intents)
        updated.llm_cache.update(self.llm_cache)
        updated.llm_history.extend(self.llm_history)
        if "last_intent" in self.model_fields_set:
            updated.last_intent = self.last_intent
        if "last_prompt_type" in self.model_fields_set:
            updated.last_prompt_type = self.last_prompt_type
        updated.turn += 1
        updated.last_updated = now
        return updated
