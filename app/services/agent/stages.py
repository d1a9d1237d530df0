"""Turn pipeline stages and prompt types."""
from enum import Enum


class TurnStage(str, Enum):
    """Stages a single webhook turn moves through."""

    RECEIVED = "received"
    NORMALIZED = "normalized"
    CLASSIFIED = "classified"
    FAST_PATH = "fast_path"  # Canned reply keyed by a classified intent
    GENERATIVE_PATH = "generative_path"  # Free-text answer from the language model
    UNMATCHED_FALLBACK = "unmatched_fallback"  # Re-prompt for unrecognised input
    BUILT = "built"
    VALIDATED = "validated"
    SENT = "sent"
    ERROR = "error"
    SAFE_FALLBACK = "safe_fallback"

    def __str__(self) -> str:
        """Return the string value of the stage."""
        return self.value


class PromptType(str, Enum):
    """What kind of input the last document solicited."""

    YES_NO_QUESTION = "YES_NO_QUESTION"
    LLM_RESPONSE = "LLM_RESPONSE"
    FOLLOW_UP = "FOLLOW_UP"
    CLOSING = "CLOSING"

    def __str__(self) -> str:
        return self.value
