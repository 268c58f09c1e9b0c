"""
Query intent detection for the email assistant.

Keyword routing only - no LLM call. The first matching rule wins within each
dimension (time, category, query type).
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field

TimeFilter = Literal["today", "week", "month", "all"]
QueryType = Literal["search", "summary", "action", "question", "draft", "compose", "analyze", "compare"]

# Special category filters that are not EmailCategory values
URGENT_FLAG = "urgent_flag"
MEETING_SEARCH = "meeting_search"

EMAIL_KEYWORDS = [
    "email", "emails", "mail", "inbox", "unread", "read", "reply", "forward",
    "draft", "compose", "send", "sent", "received", "from", "subject",
    "attachment", "urgent", "important", "meeting", "calendar invite",
    "newsletter", "subscription", "billing", "receipt", "notification", "alert",
    "message", "messages", "correspondence", "work email", "personal email",
    "spam", "promotions", "updates",
]

NON_EMAIL_PATTERNS = [
    re.compile(r"^(what|who|when|where|why|how|can you|could you|tell me|explain|define)\s+", re.I),
    re.compile(r"(weather|temperature|news|current events|stock|price|market)", re.I),
    re.compile(r"(calculate|compute|solve|math|equation|formula)", re.I),
    re.compile(
        r"(code|programming|javascript|python|react|api|database|sql|css|html|bug|error|debug)", re.I
    ),
    re.compile(r"(set (a )?reminder|add (a )?task|create (a )?todo|schedule|timer|alarm)", re.I),
    re.compile(r"(turn (on|off)|lights|thermostat|temperature|devices|smart home|lock|camera)", re.I),
    re.compile(r"(help me (with|understand|learn)|teach me|show me how|recipe|directions|navigate)", re.I),
    re.compile(r"(hello|hi|hey|thanks|thank you|goodbye|bye|how are you)", re.I),
    re.compile(r"(write a (poem|story|song|joke)|generate|create (a|an) (image|picture|logo))", re.I),
]

GREETINGS = ["hello", "hi", "hey", "sup", "yo", "thanks", "thank", "bye", "goodbye"]

STOP_WORDS = frozenset(
    [
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
        "her", "was", "one", "our", "out", "has", "have", "been", "from", "this",
        "that", "what", "give", "summary", "show", "find", "search", "get", "any",
        "some", "emails", "email", "inbox", "messages", "message", "please",
        "could", "would", "about", "with", "read", "tell", "summarize", "today",
        "week", "month", "work", "personal", "urgent", "yes", "other",
        "categories", "instead",
    ]
)

_TIME_RULES: list[tuple[TimeFilter, tuple[str, ...]]] = [
    ("today", ("today", "this morning", "tonight")),
    ("week", ("this week", "week", "past few days")),
    ("month", ("this month", "month", "recently")),
]

_CATEGORY_RULES: list[tuple[str, tuple[str, ...], bool]] = [
    (URGENT_FLAG, ("urgent", "important", "critical"), False),
    (MEETING_SEARCH, ("meeting", "calendar", "invite", "schedule"), False),
    ("emergency", ("emergency", "alarm", "security alert"), False),
    ("work", ("work email", "work emails", "from work", "office email"), True),
    ("work", ("work", "project", "office", "team"), False),
    ("personal", ("personal", "family", "friend"), False),
    ("subscription", ("subscription", "bill", "newsletter", "promo"), False),
]

_TYPE_RULES: list[tuple[QueryType, tuple[str, ...]]] = [
    ("draft", ("draft", "reply", "respond to", "respond/reply")),
    ("compose", ("compose", "write", "create email", "new email", "create a draft")),
    ("compare", ("compare", "which one", "difference between", "vs", "versus")),
    (
        "analyze",
        (
            "analyze", "what is it about", "check sender", "check raw",
            "give comment", "is it urgent", "is this", "tell me about",
        ),
    ),
    ("summary", ("summary", "summarize", "overview", "what do", "what are")),
    ("action", ("action", "need to", "should i", "to-do", "todo", "help me")),
    ("search", ("search", "look for", "find", "show me", "pull")),
]

_QUESTION_PREFIXES = ("what", "who", "when", "how", "do i", "did i", "have i")


class QueryIntent(BaseModel):
    search_terms: list[str] = Field(default_factory=list)
    time_filter: TimeFilter = "all"
    category_filter: str | None = None
    query_type: QueryType = "search"
    should_search_work_first: bool = False
    # Quoted phrases and CAPS words, e.g. "DOLE"
    specific_keywords: list[str] = Field(default_factory=list)


def detect_non_email_query(query: str) -> str | None:
    """
    Return the query when it belongs to the general assistant, else None.

    Any email keyword keeps the query here; unclear queries default to email.
    """
    lower = query.lower()
    if any(keyword in lower for keyword in EMAIL_KEYWORDS):
        return None

    if any(pattern.search(lower) for pattern in NON_EMAIL_PATTERNS):
        return query

    if len(query.split()) <= 2 and any(greeting in lower for greeting in GREETINGS):
        return query

    return None


def _time_filter(lower: str) -> TimeFilter:
    for value, phrases in _TIME_RULES:
        if any(phrase in lower for phrase in phrases):
            return value
    return "all"


def _query_type(lower: str) -> QueryType:
    for value, phrases in _TYPE_RULES:
        if any(phrase in lower for phrase in phrases):
            return value
    if lower.startswith(_QUESTION_PREFIXES) or "?" in lower:
        return "question"
    return "search"


def extract_search_terms(query: str) -> list[str]:
    cleaned = re.sub(r"[?!.,]", "", query.lower())
    return [word for word in cleaned.split(" ") if len(word) > 2 and word not in STOP_WORDS]


def extract_specific_keywords(query: str) -> list[str]:
    quoted = re.findall(r'"([^"]+)"', query)
    caps = re.findall(r"\b[A-Z]{2,}\b", query)
    return quoted + caps


def analyze_query_intent(query: str) -> QueryIntent:
    lower = query.lower()

    category_filter: str | None = None
    work_first = False
    for value, phrases, is_work_first in _CATEGORY_RULES:
        if any(phrase in lower for phrase in phrases):
            category_filter = value
            work_first = is_work_first
            break

    return QueryIntent(
        search_terms=extract_search_terms(query),
        time_filter=_time_filter(lower),
        category_filter=category_filter,
        query_type=_query_type(lower),
        should_search_work_first=work_first,
        specific_keywords=extract_specific_keywords(query),
    )
