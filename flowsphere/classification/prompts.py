"""Prompt templates for remote email classification."""

from __future__ import annotations

from flowsphere.config import CLASSIFIER_BODY_CHARS
from flowsphere.storage.models import Email, WorkCategorizationSettings
from flowsphere.utils.redaction import sanitize_for_prompt

NOT_CONFIGURED = "NOT CONFIGURED BY USER"

SYSTEM_PROMPT = """You are FlowSphere's intelligent email classification AI. Accurate classification is CRITICAL for the app's flow.

**MOST IMPORTANT: USER'S CUSTOM SETTINGS ARE PRIMARY**
The user has configured their own work keywords, work domains, and personal domains.
You MUST use these settings as the PRIMARY classifier. Do NOT use generic keywords.

CRITICAL RULES:
- Promotional/marketing emails = REGULAR (never work, never urgent)
- If user's work domains = "myflowsphere.com" and email from "lazada.com.ph" -> REGULAR
- When in doubt: REGULAR
- isUrgent = RARELY true (only real emergencies)

Respond with valid JSON only."""

SETTINGS_NOT_CONFIGURED = """
=== USER CATEGORIZATION SETTINGS: NOT YET CONFIGURED ===

The user has NOT set up their email categorization preferences yet.
This means you should:
1. DO NOT classify any email as WORK (no work domains/keywords defined)
2. DO NOT classify any email as PERSONAL (no personal domains defined)
3. Use only the standard categories: EMERGENCY, IMPORTANT, SUBSCRIPTION, REGULAR
4. When in doubt, classify as REGULAR

**IMPORTANT:** Without user settings, be very conservative. Most emails should be REGULAR.
Only use EMERGENCY for true safety alerts, IMPORTANT for security/login emails, and SUBSCRIPTION for billing.
"""

SETTINGS_CONFIGURED = """
=== USER'S CUSTOM CATEGORIZATION SETTINGS (PRIMARY - MUST FOLLOW) ===

These are the user's EXPLICIT rules. They OVERRIDE general classification logic.

**WORK Keywords (user-defined):** {work_keywords}
**WORK Domains (user-defined):** {work_domains}
-> ONLY classify as WORK if:
  1. Email sender domain MATCHES one of the user's work domains, OR
  2. Email subject/body contains one of the user's work keywords
-> If the user hasn't configured any work keywords/domains = NOTHING should be classified as WORK by default

**PERSONAL Domains (user-defined):** {personal_domains}
-> ONLY classify as PERSONAL if sender is from one of these domains AND it's a real person (not automated)

**CRITICAL RULE:**
If an email does NOT match the user's work keywords/domains, it is NOT WORK.
Promotional emails, sales, newsletters are NEVER work even if they have generic "business" words.
"""

CATEGORY_GUIDE = """
=== CLASSIFICATION CATEGORIES (in priority order) ===

**FIRST: CHECK IF PROMOTIONAL/MARKETING (always REGULAR)**
- Sender contains: "promotion", "promo", "marketing", "newsletter", "noreply", "no-reply", "deals", "offers", "sales"
- Subject contains: "sale", "% off", "discount", "voucher", "coupon", "deal", "offer", "free shipping", "limited time"
- Content about shopping, products, sales events (12.12, 11.11, Black Friday, etc.)
-> If ANY of these match, classify as REGULAR. Do NOT classify promos as work/personal/important.

1. **EMERGENCY** - Life/safety/security critical issues ONLY:
   motion detected, alarm triggered, security breach, intruder, accident, hospital, 911,
   fire alarm, break-in, production outage, data breach. NEVER marketing.

2. **SUBSCRIPTION** - Recurring billing/membership emails.
   MUST contain "subscription" plus a money amount, a service name ("subscription to X"),
   or a billing action (renewal, cancelled, failed, unsuccessful, expired, suspended).
   Sales, one-time orders and newsletters are NOT subscription.

3. **WORK** - ONLY when the email matches the user's work keywords or work domains above.
   Retail/shopping promos are never work.

4. **PERSONAL** - ONLY when the sender matches the user's personal domains and is a real person.

5. **IMPORTANT** - Account/security notifications: login links, magic links, password resets,
   2FA codes, verification, banking alerts. These are NOT urgent.

6. **REGULAR** - Everything else: promotions, sales, newsletters, digests, vouchers,
   social notifications, retail stores.

=== URGENT FLAG (VERY STRICT) ===
Only set isUrgent=true for real emergencies, work deadlines due TODAY or TOMORROW from a real
team member, time-sensitive requests from people the user knows, production outages, or travel
departing within hours. Login/verification emails and promotions are NEVER urgent.

=== RESPONSE FORMAT ===
Respond ONLY with valid JSON:
{
  "category": "emergency|subscription|work|personal|important|regular",
  "priority": "high|medium|low",
  "summary": "one sentence summary of the email",
  "tags": ["relevant", "tags"],
  "isUrgent": true|false,
  "requiresAction": true|false,
  "suggestedActions": ["action if needed"],
  "classificationReason": "brief reason for this classification"
}"""

SUBSCRIPTION_VERIFY_SYSTEM = (
    'You are a subscription email detector. Be strict: only emails with "subscription" + '
    "billing/payment context are true subscription emails. Newsletters, promos, and order "
    "confirmations are NOT subscription emails."
)

SUBSCRIPTION_VERIFY_TEMPLATE = """Determine if this email is a TRUE SUBSCRIPTION/BILLING email.

EMAIL:
From: {sender_name} <{sender_email}>
Subject: {subject}
Content: {content}

=== SUBSCRIPTION EMAIL CRITERIA ===
A TRUE subscription email MUST have "subscription" + at least ONE of:
- Money/payment amount ($, charge, payment, fee)
- Company/service name ("subscription to [Name]")
- Billing action (renewal, cancelled, failed, expired, suspended)

NOT subscription: newsletters, tips, promos/sales, one-time order confirmations.

Respond ONLY in JSON:
{{
  "isSubscription": true|false,
  "reason": "specific explanation referencing the criteria",
  "confidence": 0.0-1.0
}}"""


def user_settings_section(settings: WorkCategorizationSettings) -> str:
    if settings.is_empty():
        return SETTINGS_NOT_CONFIGURED

    return SETTINGS_CONFIGURED.format(
        work_keywords=", ".join(settings.work_keywords) or NOT_CONFIGURED,
        work_domains=", ".join(settings.work_domains) or NOT_CONFIGURED,
        personal_domains=", ".join(settings.personal_domains) or NOT_CONFIGURED,
    )


def build_classification_prompt(email: Email, settings: WorkCategorizationSettings) -> str:
    """User prompt for one email: settings section, the email, then the category guide."""
    content = sanitize_for_prompt(email.snippet or email.body, CLASSIFIER_BODY_CHARS)
    subject = sanitize_for_prompt(email.subject, 300)
    return (
        "You are FlowSphere's email classification AI. "
        "Analyze this email and classify it accurately.\n"
        f"{user_settings_section(settings)}\n"
        "=== EMAIL TO CLASSIFY ===\n"
        f"FROM: {email.sender.name} <{email.sender.email}>\n"
        f"SUBJECT: {subject}\n"
        f"BODY: {content}\n"
        f"{CATEGORY_GUIDE}"
    )


def build_subscription_verify_prompt(email: Email) -> str:
    return SUBSCRIPTION_VERIFY_TEMPLATE.format(
        sender_name=email.sender.name,
        sender_email=email.sender.email,
        subject=sanitize_for_prompt(email.subject, 300),
        content=sanitize_for_prompt(email.content_text(), CLASSIFIER_BODY_CHARS),
    )


SUBSCRIPTION_EXTRACT_SYSTEM = """You are FlowSphere's Subscription Extraction AI. Your job is to parse subscription-related emails and extract billing information.

IMPORTANT: Only extract if this is a REAL subscription/billing email (receipts, invoices, payment confirmations, renewal notices).
DO NOT extract from: newsletters, marketing emails, promotional emails, welcome emails without billing info.

Extract the following information in JSON format:
{
  "isSubscription": true/false,
  "serviceName": "Name of the service",
  "amount": 0.00,
  "currency": "USD",
  "billingCycle": "monthly|yearly|weekly|quarterly",
  "status": "active|cancelled|failed|pending",
  "nextBillingDate": "YYYY-MM-DD or null",
  "confidence": 0.0-1.0
}

Rules:
- Amount should be a number (no $ sign)
- If you can't determine something, use null
- Confidence should reflect how certain you are this is a real subscription"""

SUBSCRIPTION_EXTRACT_EMAIL = """--- EMAIL {index} ---
From: {sender_name} <{sender_email}>
Subject: {subject}
Date: {date}
Content:
{content}
"""


def build_subscription_extract_prompt(
    sender_email: str,
    emails: list[Email],
    known_service: str | None = None,
    known_category: str = "subscription",
) -> str:
    """User prompt covering the newest emails from one sender."""
    blocks = [
        SUBSCRIPTION_EXTRACT_EMAIL.format(
            index=i,
            sender_name=email.sender.name or "Unknown",
            sender_email=email.sender.email,
            subject=sanitize_for_prompt(email.subject, 300),
            date=email.timestamp.date().isoformat(),
            content=sanitize_for_prompt(email.content_text(), CLASSIFIER_BODY_CHARS),
        )
        for i, email in enumerate(emails, start=1)
    ]
    note = (
        f"NOTE: This appears to be {known_service}, a known {known_category} service.\n\n"
        if known_service
        else ""
    )
    return (
        f"Analyze these emails from {sender_email} and extract subscription details:\n\n"
        + "\n".join(blocks)
        + "\n"
        + note
        + "Return ONLY valid JSON with the subscription details. "
        'If this is NOT a subscription email, return {"isSubscription": false}'
    )
