"""
Tests for assistant response generation.

Groq calls are patched; without GROQ_API_KEY the local fallback is used.
"""

from __future__ import annotations

from unittest.mock import patch

from flowsphere.assistant.responses import (
    LOCAL_FALLBACK_FOOTER,
    NO_EMAILS_FOUND,
    extract_topics,
    format_email_preview,
    generate_ai_response,
    generate_local_fallback_response,
    generate_suggestions,
    parse_draft,
    prepare_email_content_for_ai,
)
from flowsphere.observability.telemetry import get_counter
from flowsphere.storage.models import EmailCategory

GROQ_CHAT = "flowsphere.llm.groq.groq_chat"


class TestPrepareEmailContent:
    def test_no_emails(self):
        assert prepare_email_content_for_ai([]) == "No emails found."

    def test_blocks_include_metadata_and_content(self, make_email):
        email = make_email(
            subject="Contract", body="Please sign by Friday", category=EmailCategory.WORK
        )

        text = prepare_email_content_for_ai([email])

        assert "EMAIL #1 [UNREAD] [WORK]" in text
        assert "From: Friend <friend@example.com>" in text
        assert "Please sign by Friday" in text

    def test_long_content_is_truncated(self, make_email):
        text = prepare_email_content_for_ai([make_email(body="x" * 2000)])

        assert "x" * 1500 + "..." in text
        assert "x" * 1501 not in text

    def test_max_emails(self, make_email):
        text = prepare_email_content_for_ai([make_email() for _ in range(4)], max_emails=2)

        assert "EMAIL #2" in text
        assert "EMAIL #3" not in text


class TestParseDraft:
    def test_parses_fields(self):
        draft = parse_draft("TO: anna@corp.com\nSUBJECT: Re: Contract\nBODY:\nHi Anna,\n\nSigned.")

        assert draft.to == "anna@corp.com"
        assert draft.subject == "Re: Contract"
        assert draft.body == "Hi Anna,\n\nSigned."

    def test_missing_body(self):
        assert parse_draft("SUBJECT: Hello") is None


class TestGenerateAIResponse:
    def test_without_key_uses_local_fallback(self, make_email):
        with patch(GROQ_CHAT) as mock_chat:
            response = generate_ai_response("show emails", [make_email()], "search")

        mock_chat.assert_not_called()
        assert response.summary.endswith(LOCAL_FALLBACK_FOOTER)
        assert get_counter("assistant.response.local") == 1

    def test_no_emails_with_key(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")

        assert generate_ai_response("anything", [], "search").summary == NO_EMAILS_FOUND

    def test_groq_answer_is_returned(self, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")

        with patch(GROQ_CHAT, return_value="You have one email from Friend.") as mock_chat:
            response = generate_ai_response("summarize", [make_email()], "summary")

        assert response.summary == "You have one email from Friend."
        assert response.draft_email is None
        kwargs = mock_chat.call_args.kwargs
        assert kwargs["temperature"] == 0.6
        assert kwargs["max_tokens"] == 2048
        messages = mock_chat.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert 'User asked: "summarize"' in messages[1]["content"]

    def test_draft_is_parsed_from_groq_answer(self, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")

        with patch(GROQ_CHAT, return_value="TO: a@x.com\nSUBJECT: Re: Hi\nBODY:\nThanks!"):
            response = generate_ai_response("draft a reply", [make_email()], "draft")

        assert response.draft_email.to == "a@x.com"
        assert response.draft_email.body == "Thanks!"

    def test_groq_failure_falls_back(self, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")

        with patch(GROQ_CHAT, side_effect=RuntimeError("timeout")):
            response = generate_ai_response("show emails", [make_email()], "search")

        assert response.summary.endswith(LOCAL_FALLBACK_FOOTER)


class TestLocalFallback:
    def test_summary_breakdown(self, make_email):
        emails = [
            make_email(subject="Server outage", category=EmailCategory.WORK),
            make_email(subject="Family photos", category=EmailCategory.PERSONAL, read=True),
            make_email(subject="Invoice due", category=EmailCategory.SUBSCRIPTION, read=True),
        ]

        summary = generate_local_fallback_response("summary", emails, "summary").summary

        assert "**Email Summary** (3 emails found)" in summary
        assert "**Urgent Items (1):**" in summary
        assert "**Unread Messages (1):**" in summary
        assert "Work: 1 | Personal: 1 | Subscriptions: 1" in summary

    def test_action_items(self, make_email):
        emails = [make_email(subject="Please approve the budget"), make_email(subject="Photos")]

        summary = generate_local_fallback_response("todo", emails, "action").summary

        assert "Please approve the budget" in summary
        assert "Photos" not in summary

    def test_question(self, make_email):
        summary = generate_local_fallback_response("who?", [make_email()], "question").summary

        assert '**Search Results for: "who?"**' in summary
        assert "Found 1 relevant emails" in summary

    def test_draft_reply_without_footer(self, make_email):
        email = make_email(subject="Contract", sender="anna@corp.com", sender_name="Anna")

        response = generate_local_fallback_response("draft", [email], "draft")

        assert not response.summary.endswith(LOCAL_FALLBACK_FOOTER)
        assert response.draft_email.to == "anna@corp.com"
        assert response.draft_email.subject == "Re: Contract"
        assert response.draft_email.body.startswith("Hi Anna,")

    def test_compose_without_emails(self):
        response = generate_local_fallback_response("write", [], "compose")

        assert "**New Email Draft**" in response.summary
        assert response.draft_email is None

    def test_default_lists_unread(self, make_email):
        emails = [make_email(subject="New one"), make_email(subject="Seen", read=True)]

        summary = generate_local_fallback_response("emails", emails, "search").summary

        assert "**Found 2 emails**" in summary
        assert "**1 unread:**" in summary


def test_format_email_preview(make_email):
    email = make_email(subject="Hello", snippet="y" * 120, sender_name="")

    preview = format_email_preview(email, 0)

    assert preview.startswith("1. **Hello** [UNREAD]")
    assert "From: friend (" in preview
    assert preview.endswith("y" * 100 + "...")


def test_extract_topics_ranks_by_email_count(make_email):
    emails = [
        make_email(subject="Project deadline"),
        make_email(subject="Project update"),
        make_email(subject="Invoice"),
    ]

    assert extract_topics(emails)[0] == "project"


class TestSuggestions:
    def test_suggestions_from_results(self, make_email):
        emails = [
            make_email(subject="Server outage", category=EmailCategory.WORK, sender_name="Ops"),
        ]

        suggestions = generate_suggestions("show emails", emails, "search")

        assert suggestions == [
            "Summarize my unread emails",
            "What urgent items need attention?",
            "Summarize work emails this week",
            "Draft a reply to the first email",
        ]

    def test_defaults_without_emails(self):
        assert generate_suggestions("anything", [], "search") == [
            "What needs my attention today?",
            "Summarize this week's emails",
            "Any upcoming deadlines?",
        ]

    def test_sender_suggestion_when_room(self, make_email):
        emails = [make_email(subject="Lunch", read=True, sender_name="Anna")]

        suggestions = generate_suggestions("lunch", emails, "search")

        assert suggestions == ["Draft a reply to the first email", "Show all emails from Anna"]
