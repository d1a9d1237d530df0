"""Call-flow documents for each kind of turn.

Builders are pure: they read the session and return the document together
with the SessionPatch the orchestrator should apply. None of them mutate the
session they are given.
"""
from typing import Tuple

from app.core.config import settings
from app.services.agent.intent import Intent, IntentTag
from app.services.agent.prompt import split_sentences
from app.services.agent.stages import PromptType
from app.services.call_session.models import CallSession, SessionPatch
from app.services.speech import twiml

RESPONSE_PATH = "/api/call-response"

YES_NO_HINTS = "yes,no,maybe,tell me more,what is the difference,why,how,details"
FOLLOW_UP_HINTS = "yes,no,tell me more"
RETRY_HINTS = "yes,no,repeat,tell me more"

NO_RESPONSE_GOODBYE = "We didn't receive your response. Thank you for your time. Goodbye."

ScriptResult = Tuple[str, SessionPatch]


def response_action_url(base_url: str) -> str:
    """Absolute URL the provider posts gathered input to."""
    return f"{base_url.rstrip('/')}{RESPONSE_PATH}"


def _say(text: str) -> str:
    return twiml.say(text, voice=settings.voice, language=settings.language)


def _gather(prompt_text: str, action_url: str, hints: str) -> str:
    return twiml.gather(
        prompt_text,
        action=action_url,
        hints=hints,
        speech_timeout=5,
        voice=settings.voice,
        language=settings.language,
    )


def _product(session: CallSession) -> str:
    return session.product_context.recommended_product or "our product"


def build_initial_prompt(session: CallSession, action_url: str) -> ScriptResult:
    """Greeting, product recommendation and the yes/no question."""
    context = session.product_context
    fragments = [
        _say(
            f"Hello {context.manager_name}, this is {settings.company_name} "
            f"calling for {context.hotel_name}."
        ),
        twiml.pause(1),
    ]
    if context.last_product:
        fragments.append(
            _say(
                f"We noticed you've been ordering {context.last_product} regularly. "
                f"We'd like to recommend trying our {_product(session)}."
            )
        )
    else:
        fragments.append(_say(f"We'd like to recommend trying our {_product(session)}."))
    fragments.extend(
        [
            twiml.pause(1),
            _gather(
                "Would you be interested in adding this to your next order?",
                action_url,
                YES_NO_HINTS,
            ),
            _say(NO_RESPONSE_GOODBYE),
        ]
    )
    return twiml.build_twiml(*fragments), SessionPatch(
        last_prompt_type=PromptType.YES_NO_QUESTION
    )


def build_intent_response(
    intent: Intent, session: CallSession, action_url: str
) -> ScriptResult:
    """Canned reply for a fast-path intent."""
    product = _product(session)
    after_follow_up = session.last_prompt_type == PromptType.FOLLOW_UP

    if intent.tag == IntentTag.REPEAT:
        return build_initial_prompt(session, action_url)

    if intent.tag == IntentTag.CONFIRM:
        if after_follow_up:
            # "Yes" to "would you like to know more" replays the pitch
            return build_initial_prompt(session, action_url)
        document = twiml.build_twiml(
            _say(f"Great! I'll add {product} to your next order."),
            twiml.pause(1),
            _say("Thank you for your business. Have a wonderful day!"),
            twiml.hangup(),
        )
        return document, SessionPatch(last_prompt_type=PromptType.CLOSING)

    if intent.tag == IntentTag.DECLINE:
        if after_follow_up:
            document = twiml.build_twiml(
                _say("No problem at all. Thank you for your time."),
                twiml.pause(1),
                _say("Have a wonderful day. Goodbye."),
                twiml.hangup(),
            )
            return document, SessionPatch(last_prompt_type=PromptType.CLOSING)
        document = twiml.build_twiml(
            _say("No problem at all. We appreciate your consideration."),
            twiml.pause(1),
            _say("Is there anything else you'd like to know about our products?"),
            _gather(
                "You can say yes for more information or no to end this call.",
                action_url,
                FOLLOW_UP_HINTS,
            ),
            _say("Thank you for your time. Goodbye."),
        )
        return document, SessionPatch(last_prompt_type=PromptType.FOLLOW_UP)

    if intent.tag == IntentTag.SCHEDULE:
        document = twiml.build_twiml(
            _say("I understand you'd like to discuss this later."),
            twiml.pause(1),
            _say(
                "We'll call you back at a more convenient time. "
                "Thank you and have a great day!"
            ),
            twiml.hangup(),
        )
        return document, SessionPatch(last_prompt_type=PromptType.CLOSING)

    document = twiml.build_twiml(
        _say("I understand. Thank you for your feedback."),
        twiml.pause(1),
        _say("Have a wonderful day!"),
    )
    return document, SessionPatch(last_prompt_type=PromptType.CLOSING)


def build_llm_response(answer: str, action_url: str) -> ScriptResult:
    """Generative answer delivered sentence by sentence, then a yes/no follow-up."""
    fragments = []
    sentences = split_sentences(answer)
    for index, sentence in enumerate(sentences):
        fragments.append(_say(sentence))
        if index < len(sentences) - 1:
            fragments.append(twiml.pause(1))

    fragments.extend(
        [
            twiml.pause(1),
            _gather(
                "Would you like to add this product to your next order?",
                action_url,
                "yes,no,maybe,tell me more",
            ),
            _say(NO_RESPONSE_GOODBYE),
        ]
    )
    return twiml.build_twiml(*fragments), SessionPatch(
        last_prompt_type=PromptType.LLM_RESPONSE
    )


def fallback_message(session: CallSession) -> str:
    """Re-prompt wording chosen from what the call last asked and heard."""
    if not session.last_intent:
        return (
            "I'm sorry, I didn't catch that. Would you like to hear about "
            "our recommended product for your hotel?"
        )
    if session.last_intent == IntentTag.QUESTION:
        return (
            "I'm sorry, I didn't understand your question. Would you like me "
            f"to tell you more about {_product(session)}?"
        )
    if session.last_prompt_type == PromptType.YES_NO_QUESTION:
        return (
            "I'm sorry, I didn't catch that. Please say yes if you're interested, "
            "or no if you're not."
        )
    return (
        "I'm sorry, I didn't catch that. Would you like me to repeat the product "
        "recommendation or answer a question about it?"
    )


def build_context_aware_fallback(session: CallSession, action_url: str) -> ScriptResult:
    """Re-prompt for unmatched input. Leaves the session's prompt type as it was."""
    document = twiml.build_twiml(
        _say(fallback_message(session)),
        _gather("Please try again.", action_url, RETRY_HINTS),
        _say(NO_RESPONSE_GOODBYE),
    )
    return document, SessionPatch()
