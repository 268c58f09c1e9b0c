"""
Tests for the conversational email assistant.

No GROQ_API_KEY is set unless a test sets it, so answers come from the local
fallback.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from flowsphere.assistant.email_assistant import (
    ACTION_SUGGESTIONS,
    ConversationMessage,
    EmailAssistant,
)
from flowsphere.observability.telemetry import get_counter
from flowsphere.storage.email_database import EmailDatabase
from flowsphere.storage.models import EmailCategory

WORK_QUERY = "Summarize work emails about DOLE"


@pytest.fixture
def db() -> EmailDatabase:
    return EmailDatabase()


@pytest.fixture
def assistant(db) -> EmailAssistant:
    return EmailAssistant(database=db)


def test_general_question_is_handed_off(assistant):
    response = assistant.ask("What's the weather tomorrow?")

    assert response.handoff_to_general is True
    assert response.handoff_query == "What's the weather tomorrow?"
    assert response.query_type == "handoff"
    assert response.emails == []
    assert get_counter("assistant.handoff") == 1


class TestAsk:
    def test_category_override(self, assistant, db, make_email):
        db.store_emails(
            [
                make_email(subject="Sprint notes", category=EmailCategory.WORK),
                make_email(subject="Family photos", category=EmailCategory.PERSONAL),
            ]
        )

        response = assistant.ask("show emails", category="work")

        assert [e.subject for e in response.emails] == ["Sprint notes"]
        assert response.searched_category == "work"
        assert response.suggestions[-2:] == ACTION_SUGGESTIONS[:2]
        assert get_counter("assistant.queries") == 1

    def test_no_emails_keeps_default_suggestions(self, assistant):
        response = assistant.ask("show emails")

        assert response.emails == []
        assert response.searched_category == "all"
        assert "Summarize this" not in response.suggestions

    def test_work_first_finds_keyword_in_work(self, assistant, db, make_email):
        db.store_emails(
            [
                make_email(subject="DOLE inspection", category=EmailCategory.WORK),
                make_email(subject="DOLE newsletter", category=EmailCategory.SUBSCRIPTION),
            ]
        )

        response = assistant.ask(WORK_QUERY)

        assert [e.subject for e in response.emails] == ["DOLE inspection"]
        assert response.searched_category == "work"
        assert response.needs_confirmation is False

    def test_work_first_without_matches_asks_to_widen(self, assistant, db, make_email):
        db.store_emails([make_email(subject="DOLE newsletter", category=EmailCategory.PERSONAL)])

        response = assistant.ask(WORK_QUERY)

        assert response.needs_confirmation is True
        assert response.confirmation_type == "search_other_categories"
        assert 'work category emails for "DOLE"' in response.summary
        assert response.emails == []

    def test_yes_searches_all_categories(self, assistant, db, make_email):
        db.store_emails([make_email(subject="DOLE newsletter", category=EmailCategory.PERSONAL)])
        first = assistant.ask(WORK_QUERY)
        history = [
            ConversationMessage(role="user", content=WORK_QUERY),
            ConversationMessage(role="assistant", content=first.summary),
        ]

        response = assistant.ask("yes", history=history)

        assert [e.subject for e in response.emails] == ["DOLE newsletter"]
        assert response.searched_category == "all"
        assert response.summary.startswith('Here are your emails with "DOLE" from all categories')

    def test_yes_without_prompt_is_a_normal_query(self, assistant):
        history = [ConversationMessage(role="assistant", content="Here you go.")]

        response = assistant.ask("yes", history=history)

        assert response.searched_category == "all"
        assert not response.summary.startswith("Here are your emails with")

    def test_draft_uses_email_context(self, assistant, make_email):
        email = make_email(subject="Contract", sender="anna@corp.com", sender_name="Anna")

        response = assistant.ask("Draft a reply", email_context=email)

        assert response.emails == [email]
        assert response.draft_email.to == "anna@corp.com"


class TestDrafting:
    def test_draft_reply_to_email(self, assistant, make_email):
        email = make_email(subject="Re: Contract", sender="anna@corp.com", sender_name="Anna")

        draft = assistant.draft_reply_to_email(email)

        assert draft.to == "anna@corp.com"
        assert draft.subject == "Re: Contract"
        assert draft.reply_to == email

    def test_llm_draft_is_readdressed_to_sender(self, assistant, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        email = make_email(subject="Contract", sender="anna@corp.com")

        with patch(
            "flowsphere.llm.groq.groq_chat",
            return_value="TO: someone@else.com\nSUBJECT: Hello\nBODY:\nSigned and attached.",
        ):
            draft = assistant.draft_reply_to_email(email, "Draft a reply saying it is signed")

        assert draft.to == "anna@corp.com"
        assert draft.subject == "Re: Contract"
        assert draft.body == "Signed and attached."

    def test_compose_email_without_context(self, assistant):
        draft = assistant.compose_email("ask the landlord about repairs")

        assert draft.to == ""
        assert "**New Email Draft**" in draft.body


class TestOverview:
    def test_empty_inbox(self, assistant):
        assert assistant.get_email_overview().startswith("Your inbox is empty!")

    def test_unread_and_urgent_counts(self, assistant, db, make_email):
        db.store_emails(
            [
                make_email(subject="Server down in prod", category=EmailCategory.WORK),
                make_email(subject="Lunch photos", read=True),
            ]
        )

        overview = assistant.get_email_overview()

        assert "You have 1 unread email. " in overview
        assert "1 needs urgent attention!" in overview

    def test_database_failure_returns_greeting(self, assistant, db):
        with patch.object(db, "get_stats", side_effect=RuntimeError("locked")):
            overview = assistant.get_email_overview()

        assert overview == "I'm ready to help with your emails! Ask me anything."
