"""
Email lookup for assistant queries.

Urgency here is a flag that can overlap any category, so it is computed from
trigger words and senders rather than read from the stored category.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from flowsphere.assistant.intent import MEETING_SEARCH, URGENT_FLAG, TimeFilter
from flowsphere.config import ARCHIVE_SEARCH_YEARS_BACK, ASSISTANT_SEARCH_LIMIT
from flowsphere.observability.logging import get_logger
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.email_database import EmailDatabase, email_database
from flowsphere.storage.models import Email

logger = get_logger(__name__)

URGENT_TRIGGER_WORDS = [
    # Emergency
    "urgent", "asap", "immediate", "immediately", "now", "emergency",
    "emergencies", "critical", "action required", "help needed", "help me",
    "need help",
    # Family
    "family emergency", "family matter", "family issue", "mom", "dad", "parent",
    "child", "kids", "son", "daughter", "wife", "husband", "spouse", "accident",
    "injured", "hurt", "sick", "ill", "passed away", "death",
    # Medical
    "hospital", "hospitalized", "medical", "doctor", "clinic", "er ",
    "emergency room", "ambulance", "surgery", "operation", "diagnosis",
    "test results", "lab results", "prescription", "medication", "health alert",
    "medical emergency",
    # Work
    "outage", "down", "crash", "server down", "system down", "production issue",
    "fix now", "call me", "call asap", "important", "high priority", "p0", "p1",
    "reply by eod", "due today", "deadline today", "due tomorrow",
    # Security
    "account compromised", "unauthorized access", "security alert", "breach",
    "suspicious activity", "verify now", "action needed immediately",
    # Final notices
    "final notice", "last notice", "expiring today", "expires soon",
    "last chance", "account suspended", "service termination", "payment overdue",
]

URGENT_SENDER_PATTERNS = [
    "hospital", "clinic", "medical", "health", "emergency", "police", "fire",
    "ambulance", "911", "security", "fraud", "alert",
]

PROMOTIONAL_WORDS = [
    "newsletter", "digest", "weekly", "tips", "best practices", "get the most",
    "promotion", "deal", "discount", "flash sale", "exclusive offer",
    "limited time", "sale", "voucher", "coupon", "shop now", "buy now", "% off",
]

AUTH_KEYWORDS = [
    "sign in", "log in", "login", "signin", "secure link", "magic link",
    "verification", "verify your", "verify email", "confirm your email",
    "password reset", "reset password", "forgot password", "two-factor", "2fa",
    "authentication code", "verification code", "one-time password", "otp",
    "security code", "let's get you signed in", "sign in to", "log in to",
]

AUTH_SENDERS = [
    "noreply", "no-reply", "mail.anthropic.com", "accounts.google.com",
    "account.google.com", "auth0", "okta", "microsoft.com", "apple.com",
    "github.com", "gitlab.com", "facebook.com", "twitter.com", "x.com",
]

RETAIL_STORES = ["lazada", "shopee", "amazon", "zalora", "alibaba", "aliexpress", "shein"]

MEETING_KEYWORDS = [
    "meeting", "calendar", "invite", "invitation", "schedule", "scheduled",
    "zoom", "google meet", "teams", "webex", "conference", "call", "join us",
    "join meeting", "rsvp", "accept", "decline", "agenda", "appointment", "sync",
    "standup", "check-in",
]

CALENDAR_SENDERS = ["calendar", "meet", "zoom", "teams"]

DATE_MENTION_PATTERNS = [
    re.compile(
        r"\b(today|tomorrow|this week|next week|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        re.I,
    ),
    re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\w*\s+\d{1,2}", re.I),
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"),
]


def _content(email: Email) -> str:
    return f"{email.subject} {email.content_text()}".lower()


def has_urgent_flag(email: Email) -> bool:
    """
    True for time-sensitive emails.

    Auth/login mail, promotions and retail are never urgent; hospital, police
    and security senders always are.
    """
    text = _content(email)
    sender_email = email.sender.email.lower()
    sender_name = email.sender.name.lower()

    if any(k in text for k in AUTH_KEYWORDS) or any(s in sender_email for s in AUTH_SENDERS):
        return False

    if any(w in text for w in PROMOTIONAL_WORDS):
        return False
    if any(s in sender_email or s in sender_name for s in RETAIL_STORES):
        return False

    if any(p in sender_email or p in sender_name for p in URGENT_SENDER_PATTERNS):
        return True

    subject = email.subject
    return (
        any(trigger in text for trigger in URGENT_TRIGGER_WORDS)
        or (len(subject) > 10 and subject == subject.upper())
        or subject.count("!") >= 2
    )


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def is_upcoming_meeting(email: Email, now: datetime) -> bool:
    """Meeting mail received today, or older mail that mentions a date."""
    text = _content(email)
    sender = email.sender.email.lower()
    if not any(k in text for k in MEETING_KEYWORDS) and not any(
        s in sender for s in CALENDAR_SENDERS
    ):
        return False

    if email.timestamp >= _start_of_day(now):
        return True
    return any(pattern.search(text) for pattern in DATE_MENTION_PATTERNS)


def apply_time_filter(emails: list[Email], time_filter: TimeFilter, now: datetime) -> list[Email]:
    if time_filter == "today":
        cutoff = _start_of_day(now)
    elif time_filter == "week":
        cutoff = now - timedelta(days=7)
    elif time_filter == "month":
        cutoff = now - timedelta(days=30)
    else:
        return emails
    return [email for email in emails if email.timestamp >= cutoff]


def search_emails_for_query(
    search_terms: list[str],
    time_filter: TimeFilter,
    category_filter: str | None,
    database: EmailDatabase = email_database,
    now: datetime | None = None,
) -> list[Email]:
    """
    Emails for an analyzed query, newest first, at most ASSISTANT_SEARCH_LIMIT.

    The term filter is dropped when it would leave nothing, so summary-style
    queries still see the whole window.
    """
    now = now or datetime.now(UTC)

    if category_filter == URGENT_FLAG:
        emails = [e for e in database.get_all_emails() if has_urgent_flag(e)]
        logger.info("Found %d emails with urgent flag", len(emails))
    elif category_filter == MEETING_SEARCH:
        emails = [e for e in database.get_all_emails() if is_upcoming_meeting(e, now)]
        logger.info("Found %d meeting emails (today and upcoming)", len(emails))
    elif category_filter:
        emails = database.get_emails_by_category(category_filter)
    else:
        emails = database.get_all_emails()

    emails = apply_time_filter(emails, time_filter, now)

    if search_terms:
        matched = [e for e in emails if any(term in e.search_text() for term in search_terms)]
        if matched:
            emails = matched

    emails.sort(key=lambda e: e.timestamp, reverse=True)
    return emails[:ASSISTANT_SEARCH_LIMIT]


def matches_keywords(email: Email, specific_keywords: list[str], search_terms: list[str]) -> bool:
    text = f"{email.subject} {email.body} {email.snippet}".lower()
    return any(k.lower() in text for k in specific_keywords) or any(
        term in text for term in search_terms
    )


def search_work_archive(
    search_terms: list[str],
    specific_keywords: list[str],
    database: EmailDatabase = email_database,
) -> list[Email]:
    """Archive lookup for work emails (5-year window). Empty when the gate is off."""
    terms = [*search_terms, *specific_keywords]
    if not terms or not feature_gates.is_enabled("archive_search"):
        return []

    query = " ".join(terms)
    try:
        results = database.search_archive(query, years_back=ARCHIVE_SEARCH_YEARS_BACK)
    except Exception as e:
        logger.error("Archive search failed: %s", e)
        return []

    logger.info("Archive search for %d terms found %d emails", len(terms), len(results))
    return results
