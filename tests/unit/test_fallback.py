"""Unit tests for the rule-based responder."""
import pytest

from outreach_voice.services.agent.constants import FALLBACK_REPLIES
from outreach_voice.services.agent.fallback import (
    RuleBasedResponder,
    extract_email,
    extract_phone_number,
)


class TestExtraction:
    """Test identifier detection in caller speech."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("my number is 9876543210", "9876543210"),
            ("it's +91 9876543210", "9876543210"),
            ("9 8 7 6 5 4 3 2 1 0", "9876543210"),
            ("call 12345", None),
        ],
    )
    def test_phone_number(self, text, expected):
        assert extract_phone_number(text) == expected

    def test_email(self):
        assert extract_email("it is Ravi.K@Gmail.com") == "ravi.k@gmail.com"

    def test_spoken_email(self):
        assert extract_email("ravi at gmail dot com") == "ravi@gmail.com"

    def test_no_email(self):
        assert extract_email("I don't use email") is None


class TestRuleBasedResponder:
    """Test the deterministic keyword table."""

    def setup_method(self):
        self.responder = RuleBasedResponder()

    def test_interest_asks_for_whatsapp(self):
        response = self.responder.respond("Yes, tell me more")
        assert response.message == FALLBACK_REPLIES["ask_whatsapp"]
        assert response.should_end_call is False
        assert response.extracted_data["customer_interest"] == "interested"

    def test_phone_asks_for_email(self):
        response = self.responder.respond("my whatsapp is 9876543210")
        assert response.message == FALLBACK_REPLIES["ask_email"]
        assert response.extracted_data["whatsapp_number"] == "9876543210"

    def test_email_after_phone_closes_call(self):
        response = self.responder.respond(
            "owner@lab.com", collected={"whatsapp_number": "9876543210"}
        )
        assert response.message == FALLBACK_REPLIES["complete"]
        assert response.should_end_call is True
        assert response.extracted_data["email"] == "owner@lab.com"
        assert response.extracted_data["contact_complete"] == "yes"

    def test_email_first_asks_for_whatsapp(self):
        response = self.responder.respond("owner@lab.com")
        assert response.message == FALLBACK_REPLIES["ask_whatsapp_after_email"]
        assert response.should_end_call is False

    def test_negative_terminates_politely(self):
        response = self.responder.respond("No, not interested")
        assert response.message == FALLBACK_REPLIES["decline"]
        assert response.should_end_call is True
        assert response.extracted_data["customer_interest"] == "not_interested"

    def test_negative_matches_whole_words_only(self):
        response = self.responder.respond("I know about it, okay")
        assert response.should_end_call is False

    def test_question_explains(self):
        response = self.responder.respond("What is this about?")
        assert response.message == FALLBACK_REPLIES["explain"]

    def test_greeting(self):
        response = self.responder.respond("Hello")
        assert response.message == FALLBACK_REPLIES["greeting"]

    def test_default_asks_for_identifier(self):
        response = self.responder.respond("hmm")
        assert response.message == FALLBACK_REPLIES["default"]
        assert "hmm" in response.extracted_data["notes"]
