"""
Subscription billing extraction for the analysis board.

Emails are grouped by sender and each group becomes at most one
subscription. With a Groq key the newest emails of a group are sent to the
model for service, amount, currency, cycle, next billing date and status;
without one (or when the model output is unusable) amounts and cycles are
read with regexes.
"""

from __future__ import annotations

import calendar
import re
import uuid
from datetime import UTC, date, datetime
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field

from flowsphere.classification.prompts import (
    SUBSCRIPTION_EXTRACT_SYSTEM,
    build_subscription_extract_prompt,
)
from flowsphere.config import (
    SUBSCRIPTION_EXTRACT_EMAILS_PER_SENDER,
    SUBSCRIPTION_EXTRACT_MAX_TOKENS,
    SUBSCRIPTION_EXTRACT_TEMPERATURE,
    SUBSCRIPTION_MIN_CONFIDENCE,
    SUBSCRIPTION_SPEND_INSIGHT_THRESHOLD,
    SUBSCRIPTION_UPCOMING_DAYS,
)
from flowsphere.errors import ClassificationError
from flowsphere.llm import groq
from flowsphere.llm.parsing import extract_json_object
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.storage.models import Email

logger = get_logger(__name__)

ServiceCategory = Literal[
    "streaming", "software", "fitness", "utilities", "ai-services", "cloud", "productivity", "other"
]
BillingCycle = Literal["monthly", "yearly", "weekly", "quarterly"]
SubscriptionStatus = Literal["active", "cancelled", "failed", "pending"]

BILLING_CYCLES: tuple[str, ...] = ("monthly", "yearly", "weekly", "quarterly")
STATUSES: tuple[str, ...] = ("active", "cancelled", "failed", "pending")

# Monthly equivalent of one charge
MONTHLY_FACTOR: dict[str, float] = {
    "weekly": 4.0,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}

KNOWN_SERVICES: dict[str, tuple[ServiceCategory, BillingCycle]] = {
    "anthropic": ("ai-services", "monthly"),
    "openai": ("ai-services", "monthly"),
    "claude": ("ai-services", "monthly"),
    "chatgpt": ("ai-services", "monthly"),
    "netflix": ("streaming", "monthly"),
    "spotify": ("streaming", "monthly"),
    "apple music": ("streaming", "monthly"),
    "youtube premium": ("streaming", "monthly"),
    "disney+": ("streaming", "monthly"),
    "hbo max": ("streaming", "monthly"),
    "amazon prime": ("streaming", "yearly"),
    "hulu": ("streaming", "monthly"),
    "adobe": ("software", "monthly"),
    "microsoft 365": ("productivity", "yearly"),
    "office 365": ("productivity", "yearly"),
    "google one": ("cloud", "monthly"),
    "icloud+": ("cloud", "monthly"),
    "dropbox": ("cloud", "monthly"),
    "notion": ("productivity", "monthly"),
    "slack": ("productivity", "monthly"),
    "zoom": ("productivity", "monthly"),
    "canva": ("software", "monthly"),
    "figma": ("software", "monthly"),
    "github": ("software", "monthly"),
    "aws": ("cloud", "monthly"),
    "google cloud": ("cloud", "monthly"),
    "vercel": ("cloud", "monthly"),
    "railway": ("cloud", "monthly"),
    "heroku": ("cloud", "monthly"),
    "gym": ("fitness", "monthly"),
    "peloton": ("fitness", "monthly"),
}

_CATEGORY_HINTS: list[tuple[ServiceCategory, tuple[str, ...]]] = [
    ("ai-services", ("anthropic", "openai", "claude", "chatgpt", "gemini", "mistral")),
    ("streaming", ("netflix", "spotify", "hulu", "disney", "hbo", "youtube", "apple music")),
    ("cloud", ("aws", "google cloud", "azure", "vercel", "railway", "heroku", "dropbox", "icloud")),
    ("productivity", ("notion", "slack", "zoom", "microsoft", "office")),
    ("software", ("adobe", "figma", "canva", "github", "jetbrains")),
    ("fitness", ("gym", "fitness", "peloton", "workout")),
]

BILLING_KEYWORDS = [
    "receipt", "invoice", "payment", "charged", "billing", "subscription", "renewal", "amount",
]

AMOUNT_PATTERNS = [
    re.compile(r"\$(\d+(?:\.\d{2})?)"),
    re.compile(r"(\d+(?:\.\d{2})?)\s*usd", re.IGNORECASE),
    re.compile(r"amount[:\s]*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE),
    re.compile(r"total[:\s]*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE),
    re.compile(r"charged[:\s]*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE),
]


class KnownService(NamedTuple):
    name: str
    category: ServiceCategory
    default_cycle: BillingCycle


class ExtractedSubscription(BaseModel):
    id: str = Field(default_factory=lambda: f"sub-{uuid.uuid4().hex[:12]}")
    service_name: str
    category: ServiceCategory = "other"
    amount: float = 0.0
    currency: str = "USD"
    billing_cycle: BillingCycle = "monthly"
    next_billing_date: date | None = None
    last_billing_date: date | None = None
    detected_from_email: str = ""
    confidence: float = 0.0
    email_count: int = 0
    sender_email: str
    status: SubscriptionStatus = "active"
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def monthly_cost(self) -> float:
        return self.amount * MONTHLY_FACTOR[self.billing_cycle]


class UpcomingBill(BaseModel):
    subscription: ExtractedSubscription
    days_until: int
    amount: float


class SubscriptionAnalysis(BaseModel):
    subscriptions: list[ExtractedSubscription] = Field(default_factory=list)
    total_monthly_spend: float = 0.0
    total_yearly_spend: float = 0.0
    upcoming_bills: list[UpcomingBill] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


# --- Helpers ---


def group_emails_by_sender(emails: list[Email]) -> dict[str, list[Email]]:
    """Lowercased sender address -> that sender's emails, newest first."""
    groups: dict[str, list[Email]] = {}
    for email in emails:
        groups.setdefault(email.sender.email.lower(), []).append(email)
    for sender_emails in groups.values():
        sender_emails.sort(key=lambda e: e.timestamp, reverse=True)
    return groups


def detect_known_service(sender_email: str, subject: str, body: str) -> KnownService | None:
    text = f"{sender_email} {subject} {body}".lower()
    for name, (category, cycle) in KNOWN_SERVICES.items():
        if name in text:
            return KnownService(name, category, cycle)
    return None


def detect_category(service_name: str) -> ServiceCategory:
    name = service_name.lower()
    for category, hints in _CATEGORY_HINTS:
        if any(hint in name for hint in hints):
            return category
    return "other"


def service_name_from_sender(sender_email: str) -> str:
    """First label of the sender's domain, capitalized: billing@netflix.com -> Netflix."""
    domain = sender_email.split("@")[1] if "@" in sender_email else sender_email
    name = domain.split(".")[0] or domain
    return name[:1].upper() + name[1:]


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return day.replace(year=year, month=month, day=min(day.day, calendar.monthrange(year, month)[1]))


def _advance(day: date, cycle: str) -> date:
    if cycle == "weekly":
        return date.fromordinal(day.toordinal() + 7)
    if cycle == "quarterly":
        return _add_months(day, 3)
    if cycle == "yearly":
        return _add_months(day, 12)
    return _add_months(day, 1)


def calculate_next_billing_date(last_billing: date, cycle: str, today: date | None = None) -> date:
    """
    One cycle after the last charge, rolled forward until it is not in the past.

    Month arithmetic clamps to the last day of shorter months (Jan 31 -> Feb 28).
    """
    today = today or datetime.now(UTC).date()
    next_date = _advance(last_billing, cycle)
    while next_date < today:
        next_date = _advance(next_date, cycle)
    return next_date


def _coerce_amount(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            return float(match.group())
    return 0.0


def _parse_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


# --- Extraction ---


def extract_with_patterns(
    sender_email: str,
    emails: list[Email],
    known: KnownService | None,
    today: date | None = None,
) -> ExtractedSubscription | None:
    """Regex extraction from the newest email; None when nothing looks like billing."""
    latest = emails[0]
    content = f"{latest.subject} {latest.content_text()}".lower()

    if not known and not any(keyword in content for keyword in BILLING_KEYWORDS):
        return None

    amount = 0.0
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(content)
        if match:
            amount = float(match.group(1))
            break

    cycle: BillingCycle = "monthly"
    if any(word in content for word in ("annual", "yearly", "/year")):
        cycle = "yearly"
    elif "weekly" in content or "/week" in content:
        cycle = "weekly"
    elif "quarter" in content:
        cycle = "quarterly"
    if known:
        cycle = known.default_cycle

    service_name = known.name if known else service_name_from_sender(sender_email)
    last_billing = latest.timestamp.date()
    return ExtractedSubscription(
        service_name=service_name,
        category=known.category if known else detect_category(service_name),
        amount=amount,
        billing_cycle=cycle,
        next_billing_date=calculate_next_billing_date(last_billing, cycle, today),
        last_billing_date=last_billing,
        detected_from_email=latest.subject,
        confidence=0.8 if known else 0.6,
        email_count=len(emails),
        sender_email=sender_email,
    )


def extract_with_groq(
    sender_email: str,
    emails: list[Email],
    known: KnownService | None,
    today: date | None = None,
) -> ExtractedSubscription | None:
    """
    Ask Groq for the billing details of one sender.

    Returns None when the model says this is not a subscription or is less
    than 50% sure. Unparseable output or a failed call falls back to
    :func:`extract_with_patterns`.
    """
    prompt = build_subscription_extract_prompt(
        sender_email,
        emails[:SUBSCRIPTION_EXTRACT_EMAILS_PER_SENDER],
        known.name if known else None,
        known.category if known else "subscription",
    )
    try:
        content = groq.groq_chat(
            [
                {"role": "system", "content": SUBSCRIPTION_EXTRACT_SYSTEM},
                {"role": "user", "content": prompt},
            ],
            temperature=SUBSCRIPTION_EXTRACT_TEMPERATURE,
            max_tokens=SUBSCRIPTION_EXTRACT_MAX_TOKENS,
        )
        data = extract_json_object(content)
    except ClassificationError:
        logger.warning("No JSON in subscription extraction response")
        counter("subscriptions.fallback.parse")
        return extract_with_patterns(sender_email, emails, known, today)
    except Exception as e:
        logger.error("Groq subscription extraction failed: %s", e)
        counter("subscriptions.fallback.llm_error")
        return extract_with_patterns(sender_email, emails, known, today)

    confidence = data.get("confidence")
    confidence = float(confidence) if isinstance(confidence, int | float) else 0.7
    if data.get("isSubscription") is not True or confidence < SUBSCRIPTION_MIN_CONFIDENCE:
        return None

    latest = emails[0]
    cycle = data.get("billingCycle")
    if cycle not in BILLING_CYCLES:
        cycle = known.default_cycle if known else "monthly"
    status = data.get("status")
    if status not in STATUSES:
        status = "active"

    service_name = (
        str(data.get("serviceName") or "")
        or (known.name if known else "")
        or service_name_from_sender(sender_email)
    )
    last_billing = latest.timestamp.date()
    next_billing = _parse_date(data.get("nextBillingDate")) or calculate_next_billing_date(
        last_billing, cycle, today
    )

    return ExtractedSubscription(
        service_name=service_name,
        category=known.category if known else detect_category(service_name),
        amount=_coerce_amount(data.get("amount")),
        currency=str(data.get("currency") or "USD").upper(),
        billing_cycle=cycle,
        next_billing_date=next_billing,
        last_billing_date=last_billing,
        detected_from_email=latest.subject,
        confidence=confidence,
        email_count=len(emails),
        sender_email=sender_email,
        status=status,
    )


def extract_subscription_for_sender(
    sender_email: str, emails: list[Email], today: date | None = None
) -> ExtractedSubscription | None:
    if not emails:
        return None
    latest = emails[0]
    known = detect_known_service(sender_email, latest.subject, latest.content_text())
    if groq.is_groq_configured():
        return extract_with_groq(sender_email, emails, known, today)
    return extract_with_patterns(sender_email, emails, known, today)


def extract_subscriptions_from_emails(
    emails: list[Email], today: date | None = None
) -> list[ExtractedSubscription]:
    """
    One subscription per sender that looks like recurring billing.

    Side Effects:
        - Calls the Groq API once per sender when a key is configured
    """
    subscriptions: list[ExtractedSubscription] = []
    for sender_email, sender_emails in group_emails_by_sender(emails).items():
        try:
            extracted = extract_subscription_for_sender(sender_email, sender_emails, today)
        except Exception as e:
            logger.error("Subscription extraction failed for a sender group: %s", e)
            counter("subscriptions.extract_error")
            continue
        if extracted:
            subscriptions.append(extracted)

    log_event("subscriptions.extracted", senders=len(subscriptions), emails=len(emails))
    return subscriptions


# --- Analysis ---


def analyze_subscriptions(
    subscriptions: list[ExtractedSubscription], today: date | None = None
) -> SubscriptionAnalysis:
    """Monthly/yearly spend over active subscriptions, bills due within 30 days and insights."""
    today = today or datetime.now(UTC).date()
    active = [sub for sub in subscriptions if sub.status == "active"]
    total_monthly = sum(sub.monthly_cost for sub in active)

    upcoming = sorted(
        (
            UpcomingBill(
                subscription=sub,
                days_until=(sub.next_billing_date - today).days,
                amount=sub.amount,
            )
            for sub in active
            if sub.next_billing_date
            and 0 <= (sub.next_billing_date - today).days <= SUBSCRIPTION_UPCOMING_DAYS
        ),
        key=lambda bill: bill.days_until,
    )

    insights: list[str] = []
    if total_monthly > SUBSCRIPTION_SPEND_INSIGHT_THRESHOLD:
        insights.append(
            f"You're spending ${total_monthly:.2f}/month on subscriptions. "
            "Consider reviewing for unused services."
        )

    ai_services = [sub for sub in subscriptions if sub.category == "ai-services"]
    if len(ai_services) > 1:
        insights.append(
            f"You have {len(ai_services)} AI service subscriptions. "
            "Consider consolidating to save money."
        )

    due_soon = [bill for bill in upcoming if bill.days_until <= 7]
    if due_soon:
        total_due = sum(bill.amount for bill in due_soon)
        plural = "s" if len(due_soon) > 1 else ""
        insights.append(
            f"{len(due_soon)} subscription{plural} due this week totaling ${total_due:.2f}"
        )

    return SubscriptionAnalysis(
        subscriptions=subscriptions,
        total_monthly_spend=total_monthly,
        total_yearly_spend=total_monthly * 12,
        upcoming_bills=upcoming,
        insights=insights,
    )
