"""TwiML markup primitives and validation.

Every dynamic string that reaches a document goes through ``escape_xml``
inside the primitive that embeds it; callers pass plain text.
"""
import logging
import re
from typing import Optional, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
ROOT_TAG = "Response"

DEFAULT_VOICE = "alice"
DEFAULT_LANGUAGE = "en-US"

# Hardcoded so it cannot be broken by anything computed at runtime
SAFE_FALLBACK_TWIML = (
    XML_DECLARATION
    + "<Response>"
    + '<Say voice="alice" language="en-US">'
    + "I&apos;m sorry, there was a problem with our system. Please try again later."
    + "</Say>"
    + '<Pause length="1"/>'
    + '<Say voice="alice" language="en-US">Thank you for your understanding. Goodbye.</Say>'
    + "</Response>"
)

_TAG_PATTERN = re.compile(r"<(/?)([A-Za-z][\w:.\-]*)((?:\s[^<>]*?)?)(/?)>")
_ROOT_OPEN_PATTERN = re.compile(r"<Response(\s[^<>]*)?>")
_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)")


class TwimlValidation(BaseModel):
    """Outcome of validating a document."""

    is_valid: bool
    error: Optional[str] = None


def escape_xml(text: Optional[object]) -> str:
    """Escape the five XML metacharacters."""
    if text is None:
        return ""
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def _format_number(value: Union[int, float]) -> str:
    return f"{value:g}"


def say(
    text: str,
    voice: str = DEFAULT_VOICE,
    language: str = DEFAULT_LANGUAGE,
    loop: int = 1,
) -> str:
    """Build a <Say> element."""
    return (
        f'<Say voice="{escape_xml(voice)}" language="{escape_xml(language)}" '
        f'loop="{int(loop)}">{escape_xml(text)}</Say>'
    )


def pause(length: Union[int, float] = 1) -> str:
    """Build a <Pause/> element."""
    return f'<Pause length="{_format_number(length)}"/>'


def hangup() -> str:
    """Build a <Hangup/> element."""
    return "<Hangup/>"


def gather(
    prompt_text: str,
    action: str,
    method: str = "POST",
    input_types: str = "dtmf speech",
    timeout: int = 7,
    speech_timeout: Union[int, str] = 5,
    speech_model: str = "phone_call",
    hints: str = "",
    num_digits: Optional[int] = None,
    voice: str = DEFAULT_VOICE,
    language: str = DEFAULT_LANGUAGE,
) -> str:
    """
    Build a <Gather> element that speaks a prompt and collects the answer.

    Args:
        prompt_text: Text spoken while waiting for input
        action: Webhook the provider posts the answer to
        method: HTTP method for the action webhook
        input_types: Accepted modalities ("dtmf", "speech" or both)
        timeout: Seconds to wait for the caller to start answering
        speech_timeout: Seconds of silence that end speech input
        speech_model: Provider speech recognition model
        hints: Comma separated phrases to bias recognition
        num_digits: Number of keypad digits that completes input

    Returns:
        TwiML fragment
    """
    attrs = (
        f'input="{escape_xml(input_types)}" timeout="{int(timeout)}" '
        f'speechTimeout="{escape_xml(speech_timeout)}" '
        f'speechModel="{escape_xml(speech_model)}" '
        f'action="{escape_xml(action)}" method="{escape_xml(method)}" '
        f'language="{escape_xml(language)}"'
    )
    if hints:
        attrs += f' hints="{escape_xml(hints)}"'
    if num_digits:
        attrs += f' numDigits="{int(num_digits)}"'

    return f"<Gather {attrs}>{say(prompt_text, voice=voice, language=language)}</Gather>"


def build_twiml(*fragments: str) -> str:
    """Wrap fragments in the root element, declaration first with nothing before it."""
    return XML_DECLARATION + f"<{ROOT_TAG}>" + "".join(fragments) + f"</{ROOT_TAG}>"


def validate_twiml(twiml: Optional[str]) -> TwimlValidation:
    """
    Check a document before it is returned to the provider.

    Checks, in order: non-empty, exact declaration at byte zero, root element
    opened and closed, then a stack-based balance check over every tag.
    Text between tags must not hold a raw '<' or a bare '&'.
    """
    if not twiml:
        return TwimlValidation(is_valid=False, error="TwiML is empty")

    if not twiml.startswith(XML_DECLARATION):
        return TwimlValidation(
            is_valid=False,
            error="Missing XML declaration or characters before it",
        )

    body = twiml[len(XML_DECLARATION):].strip()
    if not _ROOT_OPEN_PATTERN.match(body):
        return TwimlValidation(
            is_valid=False, error=f"Document does not open with <{ROOT_TAG}>"
        )
    if not body.endswith(f"</{ROOT_TAG}>"):
        return TwimlValidation(
            is_valid=False, error=f"Document does not close with </{ROOT_TAG}>"
        )

    stack = []
    position = 0
    for match in _TAG_PATTERN.finditer(body):
        text_error = _check_text(body[position:match.start()])
        if text_error:
            return TwimlValidation(is_valid=False, error=text_error)
        position = match.end()

        closing, name, _attrs, self_closing = match.groups()
        if closing:
            if not stack:
                return TwimlValidation(
                    is_valid=False, error=f"Unexpected closing tag </{name}>"
                )
            expected = stack.pop()
            if expected != name:
                return TwimlValidation(
                    is_valid=False,
                    error=f"Unbalanced tags: expected </{expected}> but found </{name}>",
                )
            if not stack and match.end() != len(body):
                return TwimlValidation(
                    is_valid=False, error="Content found after the root element"
                )
        elif not self_closing:
            stack.append(name)

    text_error = _check_text(body[position:])
    if text_error:
        return TwimlValidation(is_valid=False, error=text_error)

    if stack:
        unclosed = ", ".join(f"<{name}>" for name in stack)
        return TwimlValidation(is_valid=False, error=f"Unclosed tags detected: {unclosed}")

    return TwimlValidation(is_valid=True)


def _check_text(segment: str) -> Optional[str]:
    if "<" in segment:
        return "Unescaped '<' or malformed tag in text content"
    if _BARE_AMPERSAND.search(segment):
        return "Unescaped '&' in text content"
    return None


def build_safe_fallback() -> str:
    """Return the minimal apology document."""
    return SAFE_FALLBACK_TWIML


def finalize_twiml(twiml: Optional[str], call_sid: str = "unknown") -> str:
    """Return the document if it validates, otherwise the safe fallback."""
    validation = validate_twiml(twiml)
    if validation.is_valid:
        return twiml
    logger.error(
        f"[TWIML] Invalid TwiML discarded - CallSid: {call_sid}, "
        f"Reason: {validation.error}, Length: {len(twiml) if twiml else 0}"
    )
    return build_safe_fallback()
