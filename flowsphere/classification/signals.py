"""
Deterministic trigger-word signals used by the fallback classifier.

All checks are pure functions of the email content so they can be reused
without a provider or database.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from flowsphere.storage.models import Email

EMERGENCY_KEYWORDS = [
    "emergency",
    "motion detected",
    "alarm triggered",
    "security breach",
    "sos",
    "911",
    "hospital",
    "accident",
    "danger",
    "intruder",
    "fire alarm",
    "break-in",
]

NEWSLETTER_INDICATORS = [
    "newsletter",
    "digest",
    "unsubscribe",
    "weekly",
    "monthly",
    "tips",
    "best practices",
    "get the most",
]

EMERGENCY_PROMO_INDICATORS = ["sale", "discount", "off", "deal", "gift", "sneakers", "shop", "buy"]

URGENT_TRIGGER_WORDS = [
    "urgent",
    "asap",
    "immediate",
    "now",
    "today",
    "tomorrow",
    "emergency",
    "critical",
    "action required",
    "help needed",
    "outage",
    "down",
    "crash",
    "fix now",
    "call me",
    "important",
    "high priority",
    "reply by eod",
    "due today",
]

MISC_TRIGGER_WORDS = [
    "click here",
    "free offer",
    "win a prize",
    "congratulations you won",
    "verify your account",
    "enlarge",
    "viagra",
    "prince from nigeria",
    "act now",
    "limited spots",
    "guarantee",
    "100% free",
]

FALLBACK_PROMO_SENDERS = [
    "promotion",
    "promo",
    "marketing",
    "newsletter",
    "noreply",
    "no-reply",
    "deals",
    "offers",
    "sales",
    "campaign",
    "mailer",
    "info@",
    "support@",
]

FALLBACK_PROMO_CONTENT = [
    "sale",
    "% off",
    "discount",
    "voucher",
    "coupon",
    "deal",
    "offer",
    "free shipping",
    "limited time",
    "shop now",
    "buy now",
    "exclusive",
    "12.12",
    "11.11",
    "10.10",
    "black friday",
    "cyber monday",
    "flash sale",
    "clearance",
    "save",
    "win",
    "prize",
    "giveaway",
    "spree",
]

RETAIL_STORES = [
    "lazada",
    "shopee",
    "amazon",
    "zalora",
    "shein",
    "aliexpress",
    "ebay",
    "wish",
    "taobao",
    "uniqlo",
    "h&m",
    "zara",
    "nike",
    "adidas",
]

SUBSCRIPTION_WITH_MONEY = re.compile(
    r"subscription[\s\w]*(\$[\d.,]+|[\d.,]+\$|amounting[\s]*\$?[\d.,]+"
    r"|[\d.,]+[\s]?(dollars?|usd|eur|gbp|php|peso))",
    re.IGNORECASE,
)
SUBSCRIPTION_TO = re.compile(r"subscription\s+to\s+([\w\s]+)", re.IGNORECASE)

SUBSCRIPTION_PAYMENT_PATTERNS = [
    "payment.*subscription",
    "subscription.*payment",
    "subscription.*charge",
    "subscription.*renewal",
    "subscription.*billing",
    "subscription.*cancelled",
    "subscription.*canceled",
    "subscription.*suspended",
    "subscription.*expired",
    "subscription.*unsuccessful",
    "renew.*subscription",
    "cancel.*subscription",
]

KNOWN_SUBSCRIPTION_SERVICES = [
    "netflix",
    "spotify",
    "amazon prime",
    "apple music",
    "youtube premium",
    "hulu",
    "disney+",
    "hbo max",
    "adobe",
    "microsoft 365",
    "dropbox",
    "google one",
    "icloud",
    "slack",
    "notion",
    "figma",
    "github",
    "anthropic",
    "openai",
    "patreon",
    "substack",
    "flowsphere",
    "google play",
    "app store",
]

BILLING_CONTEXT_WORDS = [
    "billing",
    "payment",
    "charge",
    "invoice",
    "receipt",
    "renewal",
    "trial",
    "unsuccessful",
    "failed",
    "declined",
    "expired",
    "suspended",
]

GENERIC_BILLING_TRIGGERS = [
    "your membership",
    "account billing",
    "billing statement",
    "payment receipt",
    "monthly charge",
    "recurring payment",
    "auto-renewal",
    "subscription plan",
    "your plan",
    "plan renewal",
]

LEGACY_SUBSCRIPTION_DOMAINS = [
    "netflix.com",
    "spotify.com",
    "amazon.com",
    "apple.com",
    "google.com",
    "microsoft.com",
    "adobe.com",
    "stripe.com",
    "paypal.com",
]


class SubscriptionCheck(NamedTuple):
    is_subscription: bool
    reason: str
    confidence: float


def _content(email: Email) -> str:
    return f"{email.subject} {email.content_text()}".lower()


def is_real_subscription_email(email: Email) -> SubscriptionCheck:
    """
    A subscription email needs "subscription" plus an amount or company,
    or an unmistakable billing phrase.

    Examples:
        "your subscription to FlowSphere amounting $35 is unsuccessful" -> 0.95
        "Netflix renewal receipt" -> 0.85 (known service + billing context)
        "Gift sneakers $80 and under" -> not a subscription
    """
    text = _content(email)

    if SUBSCRIPTION_WITH_MONEY.search(text):
        return SubscriptionCheck(True, 'Contains "subscription" with money amount', 0.95)

    match = SUBSCRIPTION_TO.search(text)
    if match:
        return SubscriptionCheck(True, f'Contains "subscription to {match.group(1).strip()}"', 0.9)

    for pattern in SUBSCRIPTION_PAYMENT_PATTERNS:
        if re.search(pattern, text, re.IGNORECASE):
            return SubscriptionCheck(
                True, f'Matches subscription payment pattern: "{pattern}"', 0.9
            )

    has_billing_context = any(word in text for word in BILLING_CONTEXT_WORDS)
    for service in KNOWN_SUBSCRIPTION_SERVICES:
        if service in text and has_billing_context:
            return SubscriptionCheck(
                True, f'Known service "{service}" with billing context', 0.85
            )

    for trigger in GENERIC_BILLING_TRIGGERS:
        if trigger in text:
            return SubscriptionCheck(True, f'Contains generic billing trigger: "{trigger}"', 0.7)

    return SubscriptionCheck(
        False, 'No subscription pattern found (need "subscription" + amount/company)', 0.3
    )


def contains_emergency_keywords(email: Email) -> bool:
    """Strict emergency check; newsletters and promos never qualify."""
    text = f"{email.subject} {email.body}".lower()

    if any(ind in text for ind in NEWSLETTER_INDICATORS):
        return False
    if any(ind in text for ind in EMERGENCY_PROMO_INDICATORS):
        return False

    return any(keyword in text for keyword in EMERGENCY_KEYWORDS)


def has_urgent_flag(email: Email) -> bool:
    """Urgent wording, an ALL CAPS subject (>5 chars), or "!!" in the subject."""
    text = _content(email)
    subject = email.subject

    if any(trigger in text for trigger in URGENT_TRIGGER_WORDS):
        return True
    if len(subject) > 5 and subject == subject.upper():
        return True
    return subject.count("!") >= 2


def is_misc_email(email: Email) -> bool:
    text = _content(email)
    return any(trigger in text for trigger in MISC_TRIGGER_WORDS)


def is_promotional_for_fallback(email: Email) -> bool:
    """Broader promo check than the rules store, including retail senders."""
    text = _content(email)
    sender_email = email.sender.email.lower()
    sender_name = (email.sender.name or "").lower()

    if any(p in sender_email or p in sender_name for p in FALLBACK_PROMO_SENDERS):
        return True
    if any(p in text for p in FALLBACK_PROMO_CONTENT):
        return True
    return any(r in sender_email or r in sender_name for r in RETAIL_STORES)


def detect_subscription_service(email: Email) -> bool:
    """Known billing domains count only when the content is a real subscription."""
    sender = email.sender.email
    if any(domain in sender for domain in LEGACY_SUBSCRIPTION_DOMAINS):
        return is_real_subscription_email(email).is_subscription
    return False
