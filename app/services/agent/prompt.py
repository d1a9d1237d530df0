"""Generative prompt construction and caller input sanitization."""
import re
from typing import List, Pattern

from app.core.config import settings
from app.services.call_session.models import ProductContext

MAX_QUERY_LENGTH = 200
FILTERED_MARKER = "[FILTERED]"
CODE_REMOVED_MARKER = "[CODE REMOVED]"

_PLACEHOLDER_PATTERN = re.compile(r"\[.*?\]")
_CODE_FENCE_PATTERN = re.compile(r"```[\s\S]*?```")

# Prompt-injection phrases replaced before the query reaches the model
INJECTION_PATTERNS: List[Pattern] = [
    re.compile(r"ignore (all )?previous instructions", re.IGNORECASE),
    re.compile(r"ignore all instructions", re.IGNORECASE),
    re.compile(r"disregard (all |the )?(previous |above )?instructions", re.IGNORECASE),
    re.compile(r"system prompt", re.IGNORECASE),
    re.compile(r"as an ai", re.IGNORECASE),
    re.compile(r"you are a", re.IGNORECASE),
    re.compile(r"act as", re.IGNORECASE),
    re.compile(r"pretend to be", re.IGNORECASE),
    re.compile(r"reset the system", re.IGNORECASE),
    re.compile(r"delete all", re.IGNORECASE),
    re.compile(r"change (your|the) (role|behavior|behaviour|instructions)", re.IGNORECASE),
    re.compile(r"\b(exploit|admin|token|override|bypass|hack)\w*", re.IGNORECASE),
]


def sanitize_user_input(text: str) -> str:
    """
    Make caller speech safe to embed in a generative prompt.

    Truncates to MAX_QUERY_LENGTH, drops bracketed placeholders, replaces
    code fences and known injection phrases with markers, and collapses
    whitespace.
    """
    if not text:
        return ""

    sanitized = text[:MAX_QUERY_LENGTH]
    sanitized = _PLACEHOLDER_PATTERN.sub("", sanitized)
    sanitized = _CODE_FENCE_PATTERN.sub(CODE_REMOVED_MARKER, sanitized)
    for pattern in INJECTION_PATTERNS:
        sanitized = pattern.sub(FILTERED_MARKER, sanitized)
    return re.sub(r"\s+", " ", sanitized).strip()


def build_generative_prompt(sanitized_query: str, product_context: ProductContext) -> str:
    """
    Build the rule-constrained prompt for one caller question.

    Only the sanitized query and the campaign's product context are embedded.
    """
    last_product = product_context.last_product or "N/A"
    recommended_product = product_context.recommended_product or "N/A"
    hotel_name = product_context.hotel_name or "the hotel"

    return f"""You are a friendly voice assistant for {settings.company_name}, a hotel supply company, speaking on a live phone call with the manager of {hotel_name}.

RULES:
- Only answer questions about food and hotel supply products
- Keep responses under 3 sentences
- Never mention anything outside the hotel supply context
- If unsure, recommend the product but don't make up information
- Be conversational and friendly, but concise
- Plain spoken text only: no lists, markdown, or special characters

PRODUCT CONTEXT:
- Last purchased product: {last_product}
- Recommended product: {recommended_product}

USER QUERY: "{sanitized_query}"

Your short, helpful response:"""


def split_sentences(text: str) -> List[str]:
    """Split an answer into sentences for paced delivery."""
    if not text:
        return []
    return [s.strip() for s in re.split(r"(?<=[.!?])\s+", text.strip()) if s.strip()]


def clean_completion(text: str) -> str:
    """Strip markdown and placeholder residue from a model answer."""
    cleaned = text.replace("**", "").replace("__", "")
    cleaned = _PLACEHOLDER_PATTERN.sub("", cleaned)
    cleaned = re.sub(r"^\s*[#>*\-]+\s*", "", cleaned, flags=re.MULTILINE)
    return re.sub(r"\s+", " ", cleaned).strip()

