"""
Synonym-expanded email search.

The query is widened with a fixed synonym table (Philippine government
agencies, meetings, billing, deadlines) plus its own longer words. An email
matches when any term appears in its text; matches are ranked by how often
and where the terms occur.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from flowsphere.config import SEMANTIC_SEARCH_LIMIT
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.storage.email_database import EmailDatabase, email_database
from flowsphere.storage.models import Email, EmailCategory

logger = get_logger(__name__)

SYNONYMS: dict[str, list[str]] = {
    "dole": ["department of labor", "labor department", "employment"],
    "bir": ["bureau of internal revenue", "tax", "revenue"],
    "sss": ["social security", "social security system"],
    "philhealth": ["phil health", "health insurance"],
    "pag-ibig": ["pagibig", "hdmf", "housing fund"],
    "meeting": ["conference", "call", "zoom", "meet", "discussion"],
    "urgent": ["important", "asap", "critical", "emergency", "priority"],
    "bill": ["invoice", "payment", "billing", "charge", "subscription"],
    "deadline": ["due date", "due", "expires", "expiration"],
    "work": ["office", "job", "project", "task", "team"],
    "personal": ["private", "family", "home"],
    "spam": ["junk", "promotional", "advertisement"],
}

# Query words shorter than this are not searched on their own
MIN_WORD_LENGTH = 4

SUBJECT_MATCH_BONUS = 5
SUBJECT_QUERY_BONUS = 10
RECENT_WEEK_BONUS = 3
RECENT_DAY_BONUS = 5
UNREAD_BONUS = 2
CATEGORY_BONUS = {EmailCategory.EMERGENCY: 10, EmailCategory.IMPORTANT: 5}


class SemanticSearchResult(BaseModel):
    emails: list[Email] = Field(default_factory=list)
    total_count: int = 0
    categories: dict[str, int] = Field(default_factory=dict)
    expanded_terms: list[str] = Field(default_factory=list)


def expand_search_terms(query: str) -> list[str]:
    """
    Widen a query into search terms.

    The first term is always the query itself; synonyms follow for every
    table key the query contains, then each query word of four or more
    letters. Duplicates are dropped, order kept.
    """
    lowered = query.lower()
    terms = [query]
    for key, values in SYNONYMS.items():
        if key in lowered:
            terms.extend(values)
    terms.extend(word for word in lowered.split() if len(word) >= MIN_WORD_LENGTH)
    return list(dict.fromkeys(terms))


def _match_text(email: Email) -> str:
    recipients = " ".join(address.email for address in email.to)
    return f"{email.search_text()} {recipients.lower()}"


def relevance_score(email: Email, terms: list[str], now: datetime | None = None) -> int:
    """Occurrence count plus subject, recency, unread and category bonuses."""
    if not terms:
        return 0

    now = now or datetime.now(UTC)
    text = email.search_text()
    subject = email.subject.lower()
    query_in_subject = terms[0].lower() in subject

    score = 0
    for term in terms:
        needle = term.lower()
        score += text.count(needle)
        if needle in subject:
            score += SUBJECT_MATCH_BONUS
        if query_in_subject:
            score += SUBJECT_QUERY_BONUS

    age_days = (now - email.timestamp).total_seconds() / 86400
    if age_days < 7:
        score += RECENT_WEEK_BONUS
    if age_days < 1:
        score += RECENT_DAY_BONUS
    if not email.read:
        score += UNREAD_BONUS
    score += CATEGORY_BONUS.get(email.category, 0)
    return score


def count_by_category(emails: list[Email]) -> dict[str, int]:
    """Per-category counts; every category is present, uncategorized counts as regular."""
    counts = {category.value: 0 for category in EmailCategory}
    for email in emails:
        category = email.category or EmailCategory.REGULAR
        counts[category.value] += 1
    return counts


def semantic_email_search(
    query: str,
    category: EmailCategory | str | None = None,
    unread_only: bool = False,
    limit: int = SEMANTIC_SEARCH_LIMIT,
    database: EmailDatabase | None = None,
    now: datetime | None = None,
) -> SemanticSearchResult:
    """
    Search stored emails with synonym expansion.

    A blank query returns the filtered emails in stored order. Counts and
    ``total_count`` cover every match; only ``emails`` is cut to ``limit``.
    """
    database = database or email_database
    counter("assistant.semantic_search")

    if category:
        emails = database.get_emails_by_category(category)
    else:
        try:
            emails = database.get_all_emails()
        except Exception as e:
            logger.error("Failed to load emails for search: %s", e)
            emails = []

    if unread_only:
        emails = [email for email in emails if not email.read]

    if not query.strip():
        return SemanticSearchResult(
            emails=emails[:limit],
            total_count=len(emails),
            categories=count_by_category(emails),
        )

    terms = expand_search_terms(query)
    logger.debug("Semantic search expanded to %d terms", len(terms))

    lowered_terms = [term.lower() for term in terms]
    matches = [
        email
        for email in emails
        if any(term in _match_text(email) for term in lowered_terms)
    ]
    now = now or datetime.now(UTC)
    matches.sort(key=lambda email: relevance_score(email, terms, now), reverse=True)

    log_event("assistant.semantic_search", terms=len(terms), matches=len(matches))
    return SemanticSearchResult(
        emails=matches[:limit],
        total_count=len(matches),
        categories=count_by_category(matches),
        expanded_terms=terms,
    )


def get_email_stats(database: EmailDatabase | None = None) -> dict[str, int]:
    """Stored counts folded into the buckets the inbox UI shows."""
    stats = (database or email_database).get_stats()
    by_category = stats["by_category"]
    return {
        "total": stats["total"],
        "urgent": by_category.get("emergency", 0) + by_category.get("important", 0),
        "work": by_category.get("work", 0),
        "personal": by_category.get("personal", 0),
        "subscription": by_category.get("subscription", 0),
        "misc": by_category.get("regular", 0),
    }
