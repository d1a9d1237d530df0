"""Call session manager: per-turn orchestration of the outreach call."""
import logging
import time
from typing import Any, Mapping, Optional, Tuple

from app.core.config import settings
from app.services.agent.constants import FAST_PATH_INTENTS, TERMINAL_CALL_STATUSES
from app.services.agent.gateway import GenerativeGateway
from app.services.agent.intent import (
    IntentTag,
    detect_intent,
    detect_multiple_intents,
    needs_llm_processing,
    summarize_intents,
)
from app.services.agent.prompt import build_generative_prompt, sanitize_user_input
from app.services.agent.stages import TurnStage
from app.services.call_session.models import (
    CallSession,
    LlmExchange,
    ProductContext,
    SessionPatch,
    SpeechEntry,
)
from app.services.call_session.store import SessionStore
from app.services.speech.input import CallerInput, normalize_caller_input
from app.services.speech.scripts import (
    build_context_aware_fallback,
    build_initial_prompt,
    build_intent_response,
    build_llm_response,
    response_action_url,
)
from app.services.speech.twiml import build_safe_fallback, finalize_twiml

logger = logging.getLogger(__name__)


class CallSessionManager:
    """Manages call sessions and orchestrates each webhook turn."""

    def __init__(
        self,
        store: SessionStore,
        gateway: GenerativeGateway,
        llm_timeout_ms: Optional[int] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.llm_timeout_ms = (
            llm_timeout_ms if llm_timeout_ms is not None else settings.llm_timeout_ms
        )

    async def start_call(
        self, call_sid: str, product_context: ProductContext, base_url: str
    ) -> str:
        """
        Create the session for a new call and build its greeting.

        Product context must already be validated; the call leg exists by the
        time this runs, so any failure here still yields a valid document.

        Returns:
            TwiML XML response
        """
        try:
            session = await self.store.create(call_sid, product_context)
            document, patch = build_initial_prompt(session, response_action_url(base_url))
            await self.store.apply(call_sid, patch)
            logger.info(
                f"[CALL SCRIPT] Initial prompt built - CallSid: {call_sid}, "
                f"Session: {session.summary()}"
            )
            return finalize_twiml(document, call_sid)
        except Exception as e:
            logger.error(
                f"[CALL SCRIPT] Error building initial prompt - CallSid: {call_sid}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return build_safe_fallback()

    async def process_turn(
        self, call_sid: Optional[str], payload: Mapping[str, Any], base_url: str
    ) -> str:
        """
        Process one caller response and build the next document.

        Never raises: any failure along the way is logged and answered with
        the safe fallback document.

        Args:
            call_sid: Provider call identifier (may be missing on malformed posts)
            payload: Webhook form fields
            base_url: Public base URL for the next gather action

        Returns:
            TwiML XML response
        """
        started = time.monotonic()
        stage = TurnStage.RECEIVED
        try:
            caller_input = normalize_caller_input(payload)
            stage = TurnStage.NORMALIZED

            if not call_sid:
                logger.warning("[TURN] Turn received without CallSid, answering statelessly")

            session = await self.store.get(call_sid or "unknown")
            stage = TurnStage.CLASSIFIED
            path, document, patch = await self._route(
                session, caller_input, response_action_url(base_url)
            )
            stage = TurnStage.BUILT

            if call_sid:
                session = await self.store.apply(call_sid, patch)

            validated = finalize_twiml(document, call_sid or "unknown")
            stage = TurnStage.VALIDATED
            if validated is not document:
                path = TurnStage.SAFE_FALLBACK
            logger.info(
                f"[TURN] Response ready - CallSid: {call_sid}, Path: {path}, "
                f"Turn: {session.turn}, Elapsed: {(time.monotonic() - started) * 1000:.0f}ms"
            )
            return validated

        except Exception as e:
            logger.error(
                f"[TURN] {TurnStage.ERROR} during stage {stage} - CallSid: {call_sid}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            logger.info(
                f"[TURN] Response ready - CallSid: {call_sid}, Path: {TurnStage.SAFE_FALLBACK}, "
                f"Elapsed: {(time.monotonic() - started) * 1000:.0f}ms"
            )
            return build_safe_fallback()

    async def _route(
        self, session: CallSession, caller_input: CallerInput, action_url: str
    ) -> Tuple[TurnStage, str, SessionPatch]:
        """Classify the input and build the document for the chosen path."""
        patch = SessionPatch(
            speech_entries=[
                SpeechEntry(
                    input=caller_input.text,
                    confidence=caller_input.confidence,
                    modality=caller_input.modality,
                )
            ]
        )

        intent = detect_intent(caller_input.normalized)
        intents = detect_multiple_intents(caller_input.normalized)
        if intent:
            patch.last_intent = intent.tag
            patch.intents = [intent]
            logger.info(
                f"[TURN] Intent detected - CallSid: {session.call_sid}, "
                f"Intent: {intent.tag} ({intent.confidence:.2f}), Phrase: '{intent.matched_phrase}'"
            )
        if len(intents) > 1:
            logger.debug(
                f"[TURN] Multiple intents - CallSid: {session.call_sid}, "
                f"Intents: {summarize_intents(intents)}"
            )

        if intent and intent.tag.value in FAST_PATH_INTENTS:
            document, script_patch = build_intent_response(intent, session, action_url)
            return TurnStage.FAST_PATH, document, patch.merge(script_patch)

        if self._wants_generative_answer(caller_input, intents):
            if intent is None:
                patch.last_intent = IntentTag.QUESTION
            document, answer_patch = await self._answer_question(
                session, caller_input, action_url
            )
            return TurnStage.GENERATIVE_PATH, document, patch.merge(answer_patch)

        document, script_patch = build_context_aware_fallback(session, action_url)
        return TurnStage.UNMATCHED_FALLBACK, document, patch.merge(script_patch)

    @staticmethod
    def _wants_generative_answer(caller_input: CallerInput, intents: list) -> bool:
        if needs_llm_processing(caller_input.normalized):
            return True
        return any(i.tag == IntentTag.QUESTION for i in intents)

    async def _answer_question(
        self, session: CallSession, caller_input: CallerInput, action_url: str
    ) -> Tuple[str, SessionPatch]:
        """Answer from the per-call cache or the generative gateway."""
        started = time.monotonic()
        sanitized = sanitize_user_input(caller_input.text)
        cache_key = session.cache_key(sanitized)

        cached_answer = session.llm_cache.get(cache_key)
        if cached_answer is not None:
            answer = cached_answer
        else:
            prompt = build_generative_prompt(sanitized, session.product_context)
            answer = await self.gateway.get_response_with_timeout(prompt, self.llm_timeout_ms)

        latency_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[LLM] Answer ready - CallSid: {session.call_sid}, Query: '{sanitized}', "
            f"Cached: {cached_answer is not None}, Latency: {latency_ms:.0f}ms"
        )

        patch = SessionPatch(
            llm_history=[
                LlmExchange(
                    query=sanitized,
                    response=answer,
                    latency_ms=latency_ms,
                    cached=cached_answer is not None,
                )
            ]
        )
        # Fallback sentences are not cached so a repeat question can retry
        if cached_answer is None and not self.gateway.is_fallback(answer):
            patch.llm_cache = {cache_key: answer}

        document, script_patch = build_llm_response(answer, action_url)
        return document, patch.merge(script_patch)

    async def end_session(self, call_sid: str, status: str = "completed") -> bool:
        """
        Drop the session once the provider reports a terminal status.

        Returns:
            True if a session was removed
        """
        if status not in TERMINAL_CALL_STATUSES:
            return False
        removed = await self.store.delete(call_sid)
        logger.info(
            f"[CALL STATUS] Session ended - CallSid: {call_sid}, Status: {status}, "
            f"Removed: {removed}"
        )
        return removed

    async def active_sessions(self) -> int:
        return await self.store.count()
