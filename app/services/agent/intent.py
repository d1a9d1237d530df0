"""Phrase-based intent classifier for the fast path."""
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from app.services.agent.constants import (
    COMPOUND_QUESTION_CONFIDENCE_BOOST,
    COMPOUND_QUESTION_PRIORITY_BOOST,
    INTENT_PHRASES,
    INTENT_PRIORITY,
    MULTI_INTENT_THRESHOLD,
    QUESTION_INDICATORS,
    SINGLE_INTENT_THRESHOLD,
)
from app.services.speech.input import normalize_text

logger = logging.getLogger(__name__)


class IntentTag(str, Enum):
    """Intent categories the classifier can produce."""

    CONFIRM = "CONFIRM"
    DECLINE = "DECLINE"
    REPEAT = "REPEAT"
    SCHEDULE = "SCHEDULE"
    QUESTION = "QUESTION"

    def __str__(self) -> str:
        return self.value


class Intent(BaseModel):
    """A classification result."""

    tag: IntentTag
    confidence: float
    matched_phrase: str
    priority: int = 0
    position_score: float = 0.0


def _build_phrase_table() -> List[Tuple[IntentTag, str]]:
    # Phrases go through the same normalization as caller input so that
    # "i'll take it" still matches once apostrophes are stripped.
    table = []
    for tag, phrases in INTENT_PHRASES.items():
        for phrase in phrases:
            normalized = normalize_text(phrase)
            if normalized:
                table.append((IntentTag(tag), normalized))
    return table


_PHRASE_TABLE = _build_phrase_table()
_QUESTION_INDICATORS = [normalize_text(marker) for marker in QUESTION_INDICATORS]


def detect_intent(
    text: Optional[str], confidence_threshold: float = SINGLE_INTENT_THRESHOLD
) -> Optional[Intent]:
    """
    Detect the single best intent in caller input.

    An exact phrase match returns immediately with confidence 1.0. Otherwise
    every contained phrase scores 0.7 + 0.3 * (phrase length / input length)
    and the best score at or above the threshold wins.

    Args:
        text: Caller input (normalized or raw)
        confidence_threshold: Minimum confidence to accept a match

    Returns:
        The best Intent, or None when nothing clears the threshold
    """
    normalized = normalize_text(text)
    if not normalized:
        return None

    best: Optional[Intent] = None
    for tag, phrase in _PHRASE_TABLE:
        if normalized == phrase:
            return Intent(
                tag=tag,
                confidence=1.0,
                matched_phrase=phrase,
                priority=INTENT_PRIORITY[tag.value],
                position_score=1.0,
            )

        if phrase in normalized:
            coverage = len(phrase) / len(normalized)
            confidence = 0.7 + coverage * 0.3
            if best is None or confidence > best.confidence:
                best = Intent(
                    tag=tag,
                    confidence=confidence,
                    matched_phrase=phrase,
                    priority=INTENT_PRIORITY[tag.value],
                    position_score=1 - normalized.index(phrase) / len(normalized),
                )

    if best is not None and best.confidence >= confidence_threshold:
        return best
    return None


def detect_multiple_intents(
    text: Optional[str], confidence_threshold: float = MULTI_INTENT_THRESHOLD
) -> List[Intent]:
    """
    Detect every intent present in a compound utterance.

    Matches are ordered by priority, then by how early the phrase occurs,
    then by confidence. When CONFIRM and QUESTION co-occur the QUESTION
    matches are boosted so "yes, but what about..." is answered as a question.
    """
    normalized = normalize_text(text)
    if not normalized:
        return []

    matches: List[Intent] = []
    for tag, phrase in _PHRASE_TABLE:
        if phrase not in normalized:
            continue
        coverage = len(phrase) / len(normalized)
        confidence = 0.6 + coverage * 0.4
        if confidence < confidence_threshold:
            continue
        position = normalized.index(phrase) / len(normalized)
        matches.append(
            Intent(
                tag=tag,
                confidence=confidence,
                matched_phrase=phrase,
                priority=INTENT_PRIORITY[tag.value],
                position_score=1 - position,
            )
        )

    tags = {match.tag for match in matches}
    if IntentTag.CONFIRM in tags and IntentTag.QUESTION in tags:
        for match in matches:
            if match.tag == IntentTag.QUESTION:
                match.priority += COMPOUND_QUESTION_PRIORITY_BOOST
                match.confidence = min(
                    match.confidence + COMPOUND_QUESTION_CONFIDENCE_BOOST, 1.0
                )

    matches.sort(
        key=lambda m: (m.priority, m.position_score, m.confidence), reverse=True
    )
    return matches


def needs_llm_processing(text: Optional[str]) -> bool:
    """Whether the input contains an interrogative or comparison marker."""
    normalized = normalize_text(text)
    if not normalized:
        return False
    return any(marker in normalized for marker in _QUESTION_INDICATORS)


def summarize_intents(intents: List[Intent]) -> List[Dict[str, object]]:
    """Compact representation of detected intents for log lines."""
    return [
        {"tag": i.tag.value, "confidence": round(i.confidence, 2), "phrase": i.matched_phrase}
        for i in intents
    ]
