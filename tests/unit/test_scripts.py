"""Unit tests for call-flow documents."""
from app.services.agent.intent import Intent, IntentTag
from app.services.agent.stages import PromptType
from app.services.call_session.models import CallSession, ProductContext
from app.services.speech.scripts import (
    build_context_aware_fallback,
    build_initial_prompt,
    build_intent_response,
    build_llm_response,
    fallback_message,
    response_action_url,
)
from app.services.speech.twiml import validate_twiml

ACTION_URL = "https://outreach.example.com/api/call-response"


def _intent(tag, phrase="x"):
    return Intent(tag=tag, confidence=1.0, matched_phrase=phrase)


def _session(product_context, **kwargs):
    return CallSession(call_sid="CA1", product_context=product_context, **kwargs)


class TestInitialPrompt:
    """Test the opening document."""

    def test_greeting_and_recommendation(self, product_context):
        """Test the greeting uses the campaign fields."""
        document, patch = build_initial_prompt(_session(product_context), ACTION_URL)

        assert validate_twiml(document).is_valid
        assert "Hello Jordan, this is ArrayLink AI calling for Seaside Inn." in document
        assert "We noticed you&apos;ve been ordering House Blend Coffee regularly." in document
        assert "Organic Coffee Beans" in document
        assert f'action="{ACTION_URL}"' in document
        assert patch.last_prompt_type == PromptType.YES_NO_QUESTION

    def test_without_last_product(self):
        """Test the order history line is skipped when unknown."""
        context = ProductContext(manager_name="Jordan", hotel_name="Seaside Inn", recommended_product="Tea")
        document, _ = build_initial_prompt(_session(context), ACTION_URL)

        assert "We noticed" not in document
        assert "recommend trying our Tea" in document

    def test_campaign_fields_are_escaped(self):
        """Test metacharacters in campaign fields keep the document valid."""
        context = ProductContext(
            manager_name="O'Brien",
            hotel_name="Smith & Sons <Lodge>",
            recommended_product="Salt & Pepper",
        )
        document, _ = build_initial_prompt(_session(context), ACTION_URL)

        assert validate_twiml(document).is_valid
        assert "Smith &amp; Sons &lt;Lodge&gt;" in document

    def test_response_action_url(self):
        """Test the action URL is built from the base URL."""
        assert response_action_url("https://outreach.example.com/") == ACTION_URL


class TestIntentResponses:
    """Test fast-path replies."""

    def test_confirm_closes_with_product(self, product_context):
        """Test CONFIRM acknowledges the product and hangs up."""
        document, patch = build_intent_response(
            _intent(IntentTag.CONFIRM, "yes"), _session(product_context), ACTION_URL
        )

        assert "Organic Coffee Beans to your next order" in document
        assert "<Hangup/>" in document
        assert patch.last_prompt_type == PromptType.CLOSING

    def test_decline_offers_follow_up(self, product_context):
        """Test the first DECLINE offers one more chance."""
        document, patch = build_intent_response(
            _intent(IntentTag.DECLINE, "no"), _session(product_context), ACTION_URL
        )

        assert "<Gather " in document
        assert "<Hangup/>" not in document
        assert patch.last_prompt_type == PromptType.FOLLOW_UP

    def test_decline_after_follow_up_closes(self, product_context):
        """Test a second DECLINE ends the call."""
        session = _session(product_context, last_prompt_type=PromptType.FOLLOW_UP)
        document, patch = build_intent_response(_intent(IntentTag.DECLINE, "no"), session, ACTION_URL)

        assert "<Hangup/>" in document
        assert patch.last_prompt_type == PromptType.CLOSING

    def test_confirm_after_follow_up_replays_pitch(self, product_context):
        """Test 'yes' to the follow-up repeats the recommendation."""
        session = _session(product_context, last_prompt_type=PromptType.FOLLOW_UP)
        document, patch = build_intent_response(_intent(IntentTag.CONFIRM, "yes"), session, ACTION_URL)

        assert document == build_initial_prompt(session, ACTION_URL)[0]
        assert patch.last_prompt_type == PromptType.YES_NO_QUESTION

    def test_repeat_reissues_initial_prompt(self, product_context):
        """Test REPEAT returns the opening document unchanged."""
        session = _session(product_context, last_prompt_type=PromptType.LLM_RESPONSE)
        document, _ = build_intent_response(_intent(IntentTag.REPEAT, "repeat"), session, ACTION_URL)

        assert document == build_initial_prompt(session, ACTION_URL)[0]

    def test_schedule_closes(self, product_context):
        """Test SCHEDULE promises a call back and hangs up."""
        document, patch = build_intent_response(
            _intent(IntentTag.SCHEDULE, "call back"), _session(product_context), ACTION_URL
        )

        assert "call you back" in document
        assert "<Hangup/>" in document
        assert patch.last_prompt_type == PromptType.CLOSING

    def test_all_replies_validate(self, product_context):
        """Test every fast-path document is valid."""
        for tag in IntentTag:
            document, _ = build_intent_response(_intent(tag), _session(product_context), ACTION_URL)
            assert validate_twiml(document).is_valid, tag


class TestLlmResponse:
    """Test generative answer documents."""

    def test_sentences_paced_with_pauses(self):
        """Test each sentence is spoken separately."""
        document, patch = build_llm_response("It is fresh. It is local. It ships fast.", ACTION_URL)

        assert validate_twiml(document).is_valid
        assert document.count("<Say ") == 5  # three sentences, the gather prompt and the goodbye
        assert "It is fresh.</Say><Pause length=\"1\"/>" in document
        assert "<Gather " in document
        assert patch.last_prompt_type == PromptType.LLM_RESPONSE


class TestContextAwareFallback:
    """Test re-prompts for unmatched input."""

    def test_no_intent_yet(self, product_context):
        """Test the first unmatched turn."""
        message = fallback_message(_session(product_context))

        assert "didn't catch that" in message
        assert "recommended product" in message

    def test_after_question(self, product_context):
        """Test an unmatched turn after a question."""
        session = _session(product_context, last_intent=IntentTag.QUESTION)

        assert "didn't understand your question" in fallback_message(session)
        assert "Organic Coffee Beans" in fallback_message(session)

    def test_after_yes_no_prompt(self, product_context):
        """Test an unmatched answer to the yes/no question."""
        session = _session(
            product_context,
            last_intent=IntentTag.CONFIRM,
            last_prompt_type=PromptType.YES_NO_QUESTION,
        )

        assert "say yes if you're interested" in fallback_message(session)

    def test_fallback_is_idempotent(self, product_context):
        """Test repeated fallbacks produce the same document and change nothing."""
        session = _session(product_context, last_prompt_type=PromptType.YES_NO_QUESTION)

        first, first_patch = build_context_aware_fallback(session, ACTION_URL)
        second, _ = build_context_aware_fallback(session, ACTION_URL)

        assert first == second
        assert validate_twiml(first).is_valid
        assert "didn&apos;t catch that" in first
        assert first_patch.model_fields_set == set()
