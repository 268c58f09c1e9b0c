"""
Email classifier - rules first, remote LLM only for ambiguous emails.

Strategy:
1. Rules-based classification (instant, no API). Confidence >= 0.7 wins.
2. AI classification through the provider chain when the plan allows it.
3. Deterministic trigger-word fallback whenever AI is unavailable or fails.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

from flowsphere.classification import signals
from flowsphere.classification.ai_plan import AIPlanManager, ai_plan_manager
from flowsphere.classification.prompts import (
    SUBSCRIPTION_VERIFY_SYSTEM,
    SYSTEM_PROMPT,
    build_classification_prompt,
    build_subscription_verify_prompt,
)
from flowsphere.classification.providers import ProviderChain
from flowsphere.classification.rules_store import (
    RULE_TO_EMAIL_CATEGORY,
    ClassificationRulesStore,
    rules_store,
)
from flowsphere.config import (
    AI_TOKENS_PER_CLASSIFICATION,
    CLASSIFIER_BATCH_SIZE,
    RULES_CONFIDENCE_THRESHOLD,
)
from flowsphere.errors import FlowSphereError
from flowsphere.llm import groq
from flowsphere.llm.parsing import extract_json_object
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event, time_block
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.models import (
    Email,
    EmailCategory,
    EmailClassification,
    Priority,
    WorkCategorizationSettings,
)
from flowsphere.utils.redaction import redact_subject

logger = get_logger(__name__)

_VALID_CATEGORIES = {c.value for c in EmailCategory}
_VALID_PRIORITIES = {p.value for p in Priority}


def _coerce_classification(data: dict[str, Any], email: Email) -> EmailClassification:
    """Fill missing/invalid LLM fields with safe defaults."""
    category = data.get("category")
    if not isinstance(category, str) or category.lower() not in _VALID_CATEGORIES:
        category = EmailCategory.REGULAR.value

    priority = data.get("priority")
    if not isinstance(priority, str) or priority.lower() not in _VALID_PRIORITIES:
        priority = Priority.MEDIUM.value

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = email.subject

    tags = data.get("tags")
    tags = [str(t) for t in tags] if isinstance(tags, list) else []

    actions = data.get("suggestedActions")
    actions = [str(a) for a in actions] if isinstance(actions, list) else None

    return EmailClassification(
        category=EmailCategory(category.lower()),
        priority=Priority(priority.lower()),
        summary=summary,
        tags=tags,
        is_urgent=data.get("isUrgent") is True,
        requires_action=data.get("requiresAction") is True,
        suggested_actions=actions,
    )


class EmailAIClassifier:
    """
    Rules-first classifier with AI fallback.

    Args:
        rules: Rules store used for the fast path and wizard settings
        chain: Provider chain for remote classification
        plan_manager: AI plan gate (tier limits, BYOK keys, usage recording)
    """

    def __init__(
        self,
        rules: ClassificationRulesStore = rules_store,
        chain: ProviderChain | None = None,
        plan_manager: AIPlanManager = ai_plan_manager,
    ) -> None:
        self.rules = rules
        self.plan_manager = plan_manager
        self.chain = chain or ProviderChain(plan_manager=plan_manager)
        self.settings = WorkCategorizationSettings()

    def reload_settings(self) -> WorkCategorizationSettings:
        """Re-read the wizard settings (called before every classification)."""
        self.settings = self.rules.get_wizard_settings()
        return self.settings

    def classify_email(self, email: Email) -> EmailClassification:
        """
        Classify one email.

        Never raises: every failure path ends in get_default_classification().

        Side Effects:
            - Records AI usage (ai_usage_log, monthly counter) when the LLM is used
            - Emits classifier.* counters
        """
        settings = self.reload_settings()

        match = self.rules.classify_by_rules(
            email.subject, email.content_text(), email.sender.email, email.sender.name
        )
        logger.debug(
            "Rules result for %s: %s (%.2f) %s",
            redact_subject(email.subject),
            match.category,
            match.confidence,
            match.matched_rule or "",
        )

        if match.confidence >= RULES_CONFIDENCE_THRESHOLD:
            counter("classifier.rules_hit")
            if match.category == "urgent":
                priority = Priority.HIGH
            elif match.category == "work":
                priority = Priority.MEDIUM
            else:
                priority = Priority.LOW
            return EmailClassification(
                category=RULE_TO_EMAIL_CATEGORY.get(match.category, EmailCategory.REGULAR),
                priority=priority,
                summary=email.subject,
                tags=[match.category],
                is_urgent=match.category == "urgent",
                requires_action=match.category in ("urgent", "bills"),
            )

        access = self.plan_manager.can_use_ai()
        if not access.allowed:
            logger.debug("AI not available: %s", access.reason)
            counter("classifier.fallback.plan")
            return self.get_default_classification(email)

        if not feature_gates.is_enabled("ai_classification"):
            counter("classifier.fallback.gate")
            return self.get_default_classification(email)

        if self.chain.get_available_provider() is None:
            logger.debug("No AI providers configured, using fallback classification")
            counter("classifier.fallback.no_provider")
            return self.get_default_classification(email)

        try:
            prompt = build_classification_prompt(email, settings)
            with time_block("classifier.llm.latency"):
                content = self.chain.complete(prompt, SYSTEM_PROMPT)
            if not content:
                counter("classifier.fallback.llm_unavailable")
                return self.get_default_classification(email)

            data = extract_json_object(content)
            classification = _coerce_classification(data, email)

            self.plan_manager.record_usage(
                email.id,
                "ai-classifier",
                AI_TOKENS_PER_CLASSIFICATION,
                classification.category.value,
            )
            counter("classifier.llm_success")
            log_event(
                "classifier.llm_classified",
                category=classification.category.value,
                priority=classification.priority.value,
                urgent=classification.is_urgent,
            )
            return classification
        except FlowSphereError as e:
            logger.warning("AI classification failed, using fallback: %s", e)
            counter("classifier.fallback.llm_error")
            return self.get_default_classification(email)
        except Exception as e:
            logger.error("Unexpected AI classification error, using fallback: %s", e)
            counter("classifier.fallback.llm_error")
            return self.get_default_classification(email)

    def classify_emails(self, emails: list[Email]) -> dict[str, EmailClassification]:
        """Classify in parallel batches of CLASSIFIER_BATCH_SIZE; keyed by email id."""
        results: dict[str, EmailClassification] = {}
        if not emails:
            return results

        with ThreadPoolExecutor(max_workers=CLASSIFIER_BATCH_SIZE) as executor:
            for start in range(0, len(emails), CLASSIFIER_BATCH_SIZE):
                batch = emails[start : start + CLASSIFIER_BATCH_SIZE]
                for email, classification in zip(
                    batch, executor.map(self.classify_email, batch), strict=True
                ):
                    results[email.id] = classification
        return results

    # --- Fallback ---

    def is_work_email(self, email: Email) -> bool:
        """Matches the user's work keywords or work domains (settings only)."""
        text = f"{email.subject} {email.body}".lower()
        sender = email.sender.email.lower()
        if any(k.lower() in text for k in self.settings.work_keywords):
            return True
        return any(d.lower() in sender for d in self.settings.work_domains)

    def is_personal_email(self, email: Email) -> bool:
        """Personal domain from the settings and a human (non-noreply) sender."""
        sender = email.sender.email.lower()
        from_personal_domain = any(d.lower() in sender for d in self.settings.personal_domains)
        is_individual = not any(p in sender for p in ("noreply", "no-reply", "donotreply"))
        return from_personal_domain and is_individual

    def get_default_classification(self, email: Email) -> EmailClassification:
        """
        Deterministic classification from trigger words and user settings.

        Order: misc/spam, promotional, subscription, emergency, work, personal,
        legacy service domains, regular.
        """
        subject = email.subject

        if signals.is_misc_email(email):
            return EmailClassification(
                category=EmailCategory.REGULAR,
                priority=Priority.LOW,
                summary=subject,
                tags=["bills"],
            )

        is_urgent = signals.has_urgent_flag(email)
        subscription = signals.is_real_subscription_email(email)

        if signals.is_promotional_for_fallback(email) and not subscription.is_subscription:
            return EmailClassification(
                category=EmailCategory.REGULAR,
                priority=Priority.LOW,
                summary=subject,
                tags=["promo", "retail"],
            )

        if subscription.is_subscription:
            reason = subscription.reason
            return EmailClassification(
                category=EmailCategory.SUBSCRIPTION,
                priority=Priority.HIGH if is_urgent else Priority.MEDIUM,
                summary=subject,
                tags=["subscription", "service"],
                is_urgent=is_urgent,
                requires_action="payment" in reason or "unsuccessful" in reason,
            )

        if signals.contains_emergency_keywords(email):
            return EmailClassification(
                category=EmailCategory.EMERGENCY,
                priority=Priority.HIGH,
                summary=subject,
                tags=["alert", "urgent"],
                is_urgent=True,
                requires_action=True,
            )

        if self.is_work_email(email):
            return EmailClassification(
                category=EmailCategory.WORK,
                priority=Priority.HIGH if is_urgent else Priority.MEDIUM,
                summary=subject,
                tags=["work", "business"],
                is_urgent=is_urgent,
                requires_action=True,
            )

        if self.is_personal_email(email):
            return EmailClassification(
                category=EmailCategory.PERSONAL,
                priority=Priority.HIGH if is_urgent else Priority.LOW,
                summary=subject,
                tags=["personal"],
                is_urgent=is_urgent,
            )

        if signals.detect_subscription_service(email):
            return EmailClassification(
                category=EmailCategory.SUBSCRIPTION,
                priority=Priority.MEDIUM,
                summary=subject,
                tags=["billing", "service"],
            )

        return EmailClassification(
            category=EmailCategory.REGULAR,
            priority=Priority.LOW,
            summary=subject,
        )

    def verify_subscription_with_ai(self, email: Email) -> signals.SubscriptionCheck:
        """
        Second opinion on subscription status from Groq (temperature 0.1).

        Falls back to the local pattern check without a key or on any failure.
        """
        if not groq.is_groq_configured():
            logger.debug("No Groq key for subscription verification, using local check")
            return signals.is_real_subscription_email(email)

        try:
            content = groq.groq_chat(
                [
                    {"role": "system", "content": SUBSCRIPTION_VERIFY_SYSTEM},
                    {"role": "user", "content": build_subscription_verify_prompt(email)},
                ],
                temperature=0.1,
                max_tokens=250,
            )
            data = extract_json_object(content)
            confidence = data.get("confidence", 0.5)
            return signals.SubscriptionCheck(
                is_subscription=data.get("isSubscription") is True,
                reason=str(data.get("reason") or "No reason available"),
                confidence=float(confidence) if isinstance(confidence, int | float) else 0.5,
            )
        except Exception as e:
            logger.warning("Groq subscription verification failed: %s", e)
            return signals.is_real_subscription_email(email)


_classifier: EmailAIClassifier | None = None


def get_classifier() -> EmailAIClassifier:
    """Process-wide classifier instance."""
    global _classifier
    if _classifier is None:
        _classifier = EmailAIClassifier()
    return _classifier
