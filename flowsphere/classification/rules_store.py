"""User-configurable keyword/domain rules for email categorization

There are NO automatic work/personal/urgent defaults: those categories stay
disabled until the categorization setup wizard has been completed. Only the
subscription and bill rules ship with safe, specific patterns.

Rules and wizard settings persist in the app_settings table.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field

from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter
from flowsphere.storage import settings_store
from flowsphere.storage.models import EmailCategory, WorkCategorizationSettings
from flowsphere.utils.email import extract_domain_only

logger = get_logger(__name__)

RuleCategory = Literal["urgent", "work", "personal", "subs", "bills"]
RuleResult = Literal["urgent", "work", "personal", "subs", "bills", "all"]

RULE_CATEGORIES: tuple[RuleCategory, ...] = ("urgent", "work", "personal", "subs", "bills")

# bills > subs > work > personal > urgent (urgent last, it is the noisiest)
MATCH_ORDER: tuple[RuleCategory, ...] = ("bills", "subs", "work", "personal", "urgent")

RULES_KEY = "email_classification_rules"
WIZARD_SETTINGS_KEY = "work_categorization"
WIZARD_COMPLETE_KEY = "email_categorization_complete"

RULE_TO_EMAIL_CATEGORY: dict[str, EmailCategory] = {
    "urgent": EmailCategory.EMERGENCY,
    "work": EmailCategory.WORK,
    "personal": EmailCategory.PERSONAL,
    "subs": EmailCategory.SUBSCRIPTION,
    "bills": EmailCategory.REGULAR,
    "all": EmailCategory.REGULAR,
}

PROMO_SENDER_PATTERNS = [
    "marketing",
    "promo",
    "newsletter",
    "noreply",
    "no-reply",
    "news@",
    "info@",
    "hello@",
    "team@",
    "updates@",
]

PROMO_CONTENT_PATTERNS = [
    "sale",
    "% off",
    "discount",
    "deal",
    "offer",
    "free shipping",
    "limited time",
    "shop now",
    "buy now",
    "exclusive",
    "save",
    "unsubscribe",
    "view in browser",
    "click here",
    "learn more",
]

MARKETING_COMPANIES = [
    "bubble",
    "shopify",
    "squarespace",
    "wix",
    "canva",
    "figma",
    "notion",
    "slack",
    "zoom",
    "dropbox",
    "mailchimp",
    "hubspot",
]

BILLING_CONTEXT = ["subscription", "billing", "payment", "renewal"]

URGENT_SPECIFIC_KEYWORDS = [
    "emergency",
    "security breach",
    "account compromised",
    "action required immediately",
]


class CategoryRule(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    sender_emails: list[str] = Field(default_factory=list)
    sender_domains: list[str] = Field(default_factory=list)
    enabled: bool = False


class RuleMatch(NamedTuple):
    category: RuleResult
    confidence: float
    matched_rule: str | None = None


def empty_rules() -> dict[str, CategoryRule]:
    """Fresh copy of the built-in rules (only subs and bills enabled)."""
    return {
        "urgent": CategoryRule(),
        "work": CategoryRule(),
        "personal": CategoryRule(),
        "subs": CategoryRule(
            keywords=[
                "subscription",
                "billing",
                "renewal",
                "payment was unsuccessful",
                "payment unsuccessful",
                "payment declined",
                "subscription suspended",
                "subscription cancelled",
                "subscription canceled",
                "trial ending",
                "trial expires",
            ],
            sender_emails=["billing@", "subscriptions@", "payments@"],
            sender_domains=[
                "netflix.com",
                "spotify.com",
                "adobe.com",
                "microsoft.com",
                "apple.com",
                "google.com",
            ],
            enabled=True,
        ),
        "bills": CategoryRule(
            keywords=[
                "bill",
                "statement",
                "payment due",
                "amount due",
                "overdue",
                "past due",
                "late fee",
                "disconnection notice",
            ],
            sender_emails=["billing@", "statements@", "ebill@"],
            sender_domains=[
                "meralco.com.ph",
                "pldt.com.ph",
                "globe.com.ph",
                "maynilad.com.ph",
                "manilawater.com",
            ],
            enabled=True,
        ),
    }


def is_promotional_email(subject: str, body: str, sender_email: str, sender_name: str = "") -> bool:
    """
    Promotional/marketing emails are never urgent or work.

    Examples:
        >>> is_promotional_email("Weekly picks", "", "news@shop.com")
        True
        >>> is_promotional_email("Q3 numbers", "see attached", "cfo@corp.com", "CFO")
        False
    """
    text = f"{subject} {body}".lower()
    email = (sender_email or "").lower()
    name = (sender_name or "").lower()

    if any(p in email or p in name for p in PROMO_SENDER_PATTERNS):
        return True
    if any(p in text for p in PROMO_CONTENT_PATTERNS):
        return True
    return any(c in email or c in name for c in MARKETING_COMPANIES)


class ClassificationRulesStore:
    """
    Rules built from the wizard settings, overlaid with stored custom overrides.

    Subscribers are called with the full rule set after every save.
    """

    def __init__(self) -> None:
        self._subscribers: list[Callable[[dict[str, CategoryRule]], None]] = []
        self._lock = threading.Lock()

    # --- Wizard settings ---

    def is_setup_complete(self) -> bool:
        return bool(settings_store.get_setting(WIZARD_COMPLETE_KEY, False))

    def get_wizard_settings(self) -> WorkCategorizationSettings:
        stored = settings_store.get_setting(WIZARD_SETTINGS_KEY)
        if not isinstance(stored, dict):
            return WorkCategorizationSettings()
        try:
            return WorkCategorizationSettings.model_validate(stored)
        except ValueError:
            logger.warning("Ignoring unreadable work categorization settings")
            return WorkCategorizationSettings()

    def save_wizard_settings(
        self, settings: WorkCategorizationSettings, complete: bool = True
    ) -> None:
        """
        Side Effects:
            - Writes wizard settings and completion flag to app_settings
            - Notifies subscribers with the rebuilt rules
        """
        settings_store.set_setting(WIZARD_SETTINGS_KEY, settings.model_dump())
        settings_store.set_setting(WIZARD_COMPLETE_KEY, complete)
        self._notify(self.get_rules())

    def _build_rules_from_wizard(self) -> dict[str, CategoryRule]:
        wizard = self.get_wizard_settings()
        setup_complete = self.is_setup_complete()

        rules = empty_rules()
        rules["work"] = CategoryRule(
            keywords=list(wizard.work_keywords),
            sender_domains=list(wizard.work_domains),
            enabled=setup_complete and bool(wizard.work_keywords or wizard.work_domains),
        )
        rules["personal"] = CategoryRule(
            sender_domains=list(wizard.personal_domains),
            enabled=setup_complete and bool(wizard.personal_domains),
        )
        return rules

    # --- Rules ---

    def get_rules(self) -> dict[str, CategoryRule]:
        """
        Current rules: wizard-derived rules with stored overrides merged per category.
        """
        rules = self._build_rules_from_wizard()
        stored = settings_store.get_setting(RULES_KEY)
        if not isinstance(stored, dict):
            return rules

        for category in RULE_CATEGORIES:
            override = stored.get(category)
            if not isinstance(override, dict):
                continue
            merged = {**rules[category].model_dump(), **override}
            try:
                rules[category] = CategoryRule.model_validate(merged)
            except ValueError:
                logger.warning("Ignoring invalid stored rule override for %s", category)
        return rules

    def save_rules(self, rules: dict[str, CategoryRule]) -> None:
        """
        Side Effects:
            - Writes rules to app_settings
            - Notifies subscribers
        """
        settings_store.set_setting(
            RULES_KEY, {name: rule.model_dump() for name, rule in rules.items()}
        )
        counter("rules.saved")
        self._notify(rules)

    def update_category_rules(self, category: RuleCategory, **updates: Any) -> CategoryRule:
        rules = self.get_rules()
        rules[category] = rules[category].model_copy(update=updates)
        self.save_rules(rules)
        return rules[category]

    def add_keyword(self, category: RuleCategory, keyword: str) -> None:
        rules = self.get_rules()
        value = keyword.lower()
        if value not in rules[category].keywords:
            rules[category].keywords.append(value)
            self.save_rules(rules)

    def remove_keyword(self, category: RuleCategory, keyword: str) -> None:
        rules = self.get_rules()
        rules[category].keywords = [
            k for k in rules[category].keywords if k.lower() != keyword.lower()
        ]
        self.save_rules(rules)

    def add_sender_email(self, category: RuleCategory, email: str) -> None:
        rules = self.get_rules()
        value = email.lower()
        if value not in rules[category].sender_emails:
            rules[category].sender_emails.append(value)
            self.save_rules(rules)

    def add_sender_domain(self, category: RuleCategory, domain: str) -> None:
        rules = self.get_rules()
        value = domain.lower().removeprefix("@")
        if value not in rules[category].sender_domains:
            rules[category].sender_domains.append(value)
            self.save_rules(rules)

    def reset_to_defaults(self) -> None:
        self.save_rules(empty_rules())

    # --- Subscriptions ---

    def subscribe(
        self, callback: Callable[[dict[str, CategoryRule]], None]
    ) -> Callable[[], None]:
        """Register a change listener; returns the unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, rules: dict[str, CategoryRule]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(rules)
            except Exception as e:
                logger.warning("Rules subscriber failed: %s", e)

    # --- Matching ---

    def classify_by_rules(
        self, subject: str, body: str, sender_email: str, sender_name: str = ""
    ) -> RuleMatch:
        """
        Classify an email from user rules alone (fast, no AI)

        Promotional mail is resolved first and never lands in urgent or work.
        Sender domains beat sender patterns, which beat keywords.
        """
        text = f"{subject} {body}".lower()
        email = (sender_email or "").lower()
        domain = extract_domain_only(email)

        if is_promotional_email(subject, body, sender_email, sender_name):
            if any(k in text for k in BILLING_CONTEXT):
                return RuleMatch("subs", 0.7, "promotional with billing context")
            return RuleMatch("all", 0.8, "promotional/marketing email")

        rules = self.get_rules()
        for category in MATCH_ORDER:
            rule = rules[category]
            if not rule.enabled:
                continue

            for rule_domain in rule.sender_domains:
                rule_domain = rule_domain.lower()
                if domain == rule_domain or f"@{rule_domain}" in email:
                    return RuleMatch(category, 0.85, f'domain: "{rule_domain}"')

            for pattern in rule.sender_emails:
                if pattern.lower() in email:
                    return RuleMatch(category, 0.8, f'sender: "{pattern}"')

            if category == "urgent":
                if any(k in text for k in URGENT_SPECIFIC_KEYWORDS):
                    return RuleMatch(category, 0.75, "specific urgent keyword")
                continue

            for keyword in rule.keywords:
                if keyword.lower() in text:
                    return RuleMatch(category, 0.7, f'keyword: "{keyword}"')

        return RuleMatch("all", 0.5, None)


rules_store = ClassificationRulesStore()
