"""Caller input normalization for gather webhooks."""
import logging
import re
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Speech recognition below this confidence is treated as noise
MIN_SPEECH_CONFIDENCE = 0.5

# Providers and API versions report the transcript under different names
SPEECH_FIELDS = ("SpeechResult", "Speech", "RecognizedSpeech", "SpeechText")
CONFIDENCE_FIELDS = ("Confidence",)
DIGITS_FIELDS = ("Digits",)
CALL_SID_FIELDS = ("CallSid", "callSid", "call_sid")

_STRIP_PATTERN = re.compile(r"[^\w\s]")


class InputModality(str, Enum):
    """How the caller answered."""

    SPEECH = "speech"
    DTMF = "dtmf"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


class CallerInput(BaseModel):
    """Fixed-shape record of one caller response."""

    text: str = ""  # Trimmed original, used for anything echoed back
    normalized: str = ""  # Lowercased and stripped, used for matching
    modality: InputModality = InputModality.NONE
    confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.normalized


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, trim and drop everything but word characters and whitespace."""
    if not text:
        return ""
    return _STRIP_PATTERN.sub("", str(text).lower()).strip()


def lookup_field(payload: Mapping[str, Any], names: Sequence[str]) -> Optional[str]:
    """
    Return the first non-empty value found under any of the given field names.

    Exact names are tried first, then a case-insensitive match.
    """
    for name in names:
        value = payload.get(name)
        if value is not None and str(value) != "":
            return str(value)

    lowered = {str(key).lower(): value for key, value in payload.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value is not None and str(value) != "":
            return str(value)
    return None


def parse_confidence(raw: Optional[str]) -> float:
    """Parse a reported confidence, treating anything unparseable as 0."""
    if raw is None:
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(value, 1.0))


def normalize_caller_input(payload: Mapping[str, Any]) -> CallerInput:
    """
    Extract the caller's answer from a webhook payload.

    Speech wins when its transcript is non-empty and its confidence is above
    MIN_SPEECH_CONFIDENCE; otherwise keypad digits are used; otherwise the
    input is empty.
    """
    speech = (lookup_field(payload, SPEECH_FIELDS) or "").strip()
    confidence = parse_confidence(lookup_field(payload, CONFIDENCE_FIELDS))
    digits = (lookup_field(payload, DIGITS_FIELDS) or "").strip()

    if speech and confidence > MIN_SPEECH_CONFIDENCE:
        return CallerInput(
            text=speech,
            normalized=normalize_text(speech),
            modality=InputModality.SPEECH,
            confidence=confidence,
        )

    if speech:
        logger.info(
            f"[INPUT] Rejected low-confidence speech (confidence: {confidence:.2f}, "
            f"length: {len(speech)})"
        )

    if digits:
        return CallerInput(
            text=digits,
            normalized=normalize_text(digits),
            modality=InputModality.DTMF,
            confidence=1.0,
        )

    return CallerInput()


def extract_call_sid(*payloads: Mapping[str, Any]) -> Optional[str]:
    """Find the provider call identifier in the first payload that has one."""
    for payload in payloads:
        call_sid = lookup_field(payload, CALL_SID_FIELDS)
        if call_sid:
            return call_sid.strip()
    return None
