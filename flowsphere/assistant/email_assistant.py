"""
Conversational email assistant.

Routes a user query to the right slice of the local email index and asks the
LLM (or the local fallback) to answer from the actual email content.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from flowsphere.assistant.intent import (
    QueryType,
    TimeFilter,
    analyze_query_intent,
    detect_non_email_query,
)
from flowsphere.assistant.responses import (
    DraftEmail,
    generate_ai_response,
    generate_suggestions,
)
from flowsphere.assistant.search import (
    has_urgent_flag,
    matches_keywords,
    search_emails_for_query,
    search_work_archive,
)
from flowsphere.config import ASSISTANT_RESPONSE_EMAIL_LIMIT
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.storage.email_database import EmailDatabase, email_database
from flowsphere.storage.models import Email

logger = get_logger(__name__)

SEARCH_OTHERS_PROMPT = "shall i search on other categories"

HANDOFF_SUMMARY = (
    "This looks like a general question rather than an email-related request. "
    "I'm the Email Assistant, so I specialize in managing your inbox.\n\n"
    "Would you like me to hand this off to the General AI Assistant? They can help with:\n"
    "- General knowledge questions\n"
    "- Smart home controls\n"
    "- Tasks and reminders\n"
    "- And much more!\n\n"
    "Click the button below to continue with the General Assistant."
)

ACTION_SUGGESTIONS = [
    "Summarize this",
    "Help me reply to this",
    "What should I do?",
    "Is this urgent?",
    "Compare these emails",
]

QUICK_ACTIONS: list[dict[str, str]] = [
    {
        "label": "What's urgent?",
        "query": "Summarize my urgent emails - what do they say and what action is needed?",
        "icon": "warning",
    },
    {
        "label": "Today's summary",
        "query": "Give me a detailed summary of all emails I received today",
        "icon": "briefcase",
    },
    {
        "label": "Unread overview",
        "query": "Read and summarize all my unread emails",
        "icon": "envelope",
    },
    {
        "label": "Meeting requests",
        "query": "Do I have any meeting requests? What are the details?",
        "icon": "calendar",
    },
    {
        "label": "Action items",
        "query": "What emails need me to take action? Be specific about what's needed.",
        "icon": "check",
    },
    {
        "label": "Work updates",
        "query": "Summarize my work-related emails from this week",
        "icon": "user",
    },
]


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    emails: list[Email] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AssistantResponse(BaseModel):
    summary: str
    emails: list[Email] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    query_type: QueryType | Literal["handoff"] = "search"
    draft_email: DraftEmail | None = None
    needs_confirmation: bool = False
    confirmation_type: Literal["search_other_categories", "search_archive"] | None = None
    searched_category: str | None = None
    handoff_to_general: bool = False
    handoff_query: str | None = None


def _is_yes(lower: str) -> bool:
    return lower in ("yes", "yeah", "sure", "ok", "yes please") or "yes" in lower


class EmailAssistant:
    """
    Args:
        database: Local email index to search
    """

    def __init__(self, database: EmailDatabase = email_database) -> None:
        self.database = database

    def ask(
        self,
        query: str,
        category: str | None = None,
        time_range: TimeFilter | None = None,
        email_context: Email | None = None,
        history: list[ConversationMessage] | None = None,
    ) -> AssistantResponse:
        """
        Answer one assistant turn.

        Side Effects:
            - Reads the email index (and archive for work-first searches)
            - May call the Groq API
        """
        logger.info("Email assistant query (%d chars)", len(query))
        counter("assistant.queries")

        if detect_non_email_query(query):
            counter("assistant.handoff")
            return AssistantResponse(
                summary=HANDOFF_SUMMARY,
                suggestions=[
                    "Show my unread emails",
                    "What emails need action?",
                    "Summarize today's emails",
                ],
                query_type="handoff",
                handoff_to_general=True,
                handoff_query=query,
            )

        history = history or []
        assistant_turns = [m for m in history if m.role == "assistant"]
        asked_to_search_others = bool(assistant_turns) and (
            SEARCH_OTHERS_PROMPT in assistant_turns[-1].content.lower()
        )
        if asked_to_search_others and _is_yes(query.lower()):
            return self._search_all_categories(history)

        intent = analyze_query_intent(query)
        updates: dict[str, object] = {}
        if category:
            updates["category_filter"] = category
        if time_range:
            updates["time_filter"] = time_range
        if updates:
            intent = intent.model_copy(update=updates)

        searched_category = intent.category_filter or "all"

        if email_context is not None and intent.query_type in ("draft", "compose"):
            emails = [email_context]
        elif intent.should_search_work_first and intent.specific_keywords:
            emails = [
                e
                for e in self.database.get_emails_by_category("work")
                if matches_keywords(e, intent.specific_keywords, intent.search_terms)
            ]
            searched_category = "work"

            if not emails:
                logger.info("No matches in work category, checking archive")
                emails = search_work_archive(
                    intent.search_terms, intent.specific_keywords, database=self.database
                )
                if not emails:
                    keywords = ", ".join(intent.specific_keywords)
                    return AssistantResponse(
                        summary=(
                            f'No such email found in your work category emails for "{keywords}".'
                            "\n\nShall I search on other categories instead?"
                        ),
                        suggestions=[
                            "Yes, search all categories",
                            "No, that's fine",
                            "Search archive (5 years)",
                        ],
                        query_type=intent.query_type,
                        needs_confirmation=True,
                        confirmation_type="search_other_categories",
                        searched_category="work",
                    )
                searched_category = "work (archive)"
        else:
            emails = search_emails_for_query(
                intent.search_terms,
                intent.time_filter,
                intent.category_filter,
                database=self.database,
            )

        logger.info("Found %d emails for query", len(emails))

        generated = generate_ai_response(query, emails, intent.query_type)
        suggestions = generate_suggestions(query, emails, intent.query_type)
        if emails:
            suggestions = [*suggestions[:2], *ACTION_SUGGESTIONS[:2]]

        log_event(
            "assistant.answered",
            query_type=intent.query_type,
            searched_category=searched_category,
            email_count=len(emails),
        )
        return AssistantResponse(
            summary=generated.summary,
            emails=emails[:ASSISTANT_RESPONSE_EMAIL_LIMIT],
            suggestions=suggestions,
            query_type=intent.query_type,
            draft_email=generated.draft_email,
            searched_category=searched_category,
        )

    def _search_all_categories(self, history: list[ConversationMessage]) -> AssistantResponse:
        """Follow-up to a declined work search: rerun the earlier query over every email."""
        user_turns = [m for m in history if m.role == "user"]
        # The "yes" itself may not be in history yet; the original query precedes it
        previous = user_turns[-2:][0].content if user_turns else ""
        intent = analyze_query_intent(previous)

        emails = [
            e
            for e in self.database.get_all_emails()
            if matches_keywords(e, intent.specific_keywords, intent.search_terms)
        ]
        generated = generate_ai_response(previous, emails, intent.query_type)

        return AssistantResponse(
            summary=(
                f'Here are your emails with "{", ".join(intent.specific_keywords)}" '
                f"from all categories:\n\n{generated.summary}"
            ),
            emails=emails[:ASSISTANT_RESPONSE_EMAIL_LIMIT],
            suggestions=["Summarize these", "Which one is most relevant?", "Help me draft a response"],
            query_type=intent.query_type,
            searched_category="all",
        )

    def get_email_overview(self) -> str:
        try:
            stats = self.database.get_stats()
            if stats["total"] == 0:
                return (
                    "Your inbox is empty! Connect your email accounts to get started. "
                    "I'll help you manage and summarize your emails."
                )
            urgent = sum(1 for e in self.database.get_all_emails() if has_urgent_flag(e))
        except Exception as e:
            logger.error("Failed to get email overview: %s", e)
            return "I'm ready to help with your emails! Ask me anything."

        unread = stats["unread"]
        overview = "Hi! I'm your AI Email Assistant. "
        if unread > 0:
            overview += f"You have {unread} unread email{'s' if unread > 1 else ''}. "
        if urgent > 0:
            overview += f"{urgent} need{'s' if urgent == 1 else ''} urgent attention! "
        return overview + "Ask me to summarize, search, or help draft replies."

    def draft_reply_to_email(self, email: Email, instructions: str | None = None) -> DraftEmail:
        """Draft addressed to the original sender with a single "Re:" prefix."""
        response = self.ask(
            instructions or "Draft a professional reply to this email", email_context=email
        )
        subject = email.subject if email.subject.startswith("Re:") else f"Re: {email.subject}"

        if response.draft_email is not None:
            return response.draft_email.model_copy(
                update={"to": email.sender.email, "subject": subject, "reply_to": email}
            )
        return DraftEmail(
            to=email.sender.email,
            subject=subject,
            body=response.summary,
            reply_to=email,
        )

    def compose_email(self, instructions: str) -> DraftEmail:
        response = self.ask(f"Compose a new email: {instructions}")
        return response.draft_email or DraftEmail(body=response.summary)


email_assistant = EmailAssistant()
