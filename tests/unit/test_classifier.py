"""
Unit tests for EmailAIClassifier.

Tests the rules -> AI -> fallback cascade without network access: the
provider chain is a mock and the plan manager uses the test database.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest

from flowsphere.classification.ai_plan import AIPlanManager
from flowsphere.classification.classifier import EmailAIClassifier
from flowsphere.classification.rules_store import ClassificationRulesStore
from flowsphere.observability.telemetry import get_counter
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.models import EmailCategory, Priority, WorkCategorizationSettings


@pytest.fixture
def plan_manager() -> AIPlanManager:
    return AIPlanManager()


@pytest.fixture
def chain() -> MagicMock:
    """Provider chain with one available provider."""
    mock_chain = MagicMock()
    mock_chain.get_available_provider.return_value = MagicMock(name="groq")
    return mock_chain


@pytest.fixture
def classifier(plan_manager, chain) -> EmailAIClassifier:
    return EmailAIClassifier(
        rules=ClassificationRulesStore(), chain=chain, plan_manager=plan_manager
    )


@pytest.fixture
def ambiguous_email(make_email):
    """An email no rule matches."""
    return make_email(subject="Quick question", body="Can we talk later?", sender="sam@corp.io")


class TestRulesFastPath:
    def test_bill_rule_skips_ai(self, classifier, chain, make_email):
        """Confident rule matches never reach the provider chain."""
        email = make_email(subject="Your statement", sender="ebill@meralco.com.ph")

        result = classifier.classify_email(email)

        assert result.category == EmailCategory.REGULAR
        assert result.priority == Priority.LOW
        assert result.tags == ["bills"]
        assert result.requires_action is True
        chain.complete.assert_not_called()
        assert get_counter("classifier.rules_hit") == 1

    def test_urgent_rule_is_high_priority_emergency(self, classifier, make_email):
        classifier.rules.update_category_rules("urgent", enabled=True)
        email = make_email(subject="Account compromised", sender="it@corp.io")

        result = classifier.classify_email(email)

        assert result.category == EmailCategory.EMERGENCY
        assert result.priority == Priority.HIGH
        assert result.is_urgent is True

    def test_work_rule_after_wizard(self, classifier, make_email):
        classifier.rules.save_wizard_settings(
            WorkCategorizationSettings(work_domains=["corp.io"])
        )

        result = classifier.classify_email(make_email(subject="Standup notes", sender="sam@corp.io"))

        assert result.category == EmailCategory.WORK
        assert result.priority == Priority.MEDIUM


class TestAIPath:
    def test_free_tier_uses_fallback(self, classifier, chain, ambiguous_email):
        result = classifier.classify_email(ambiguous_email)

        assert result.category == EmailCategory.REGULAR
        chain.complete.assert_not_called()
        assert get_counter("classifier.fallback.plan") == 1

    def test_llm_result_is_used_and_recorded(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("basic")
        chain.complete.return_value = (
            '```json\n{"category": "work", "priority": "high", "summary": "Needs a call",'
            ' "tags": ["meeting"], "isUrgent": true, "requiresAction": true,'
            ' "suggestedActions": ["Reply"]}\n```'
        )

        result = classifier.classify_email(ambiguous_email)

        assert result.category == EmailCategory.WORK
        assert result.priority == Priority.HIGH
        assert result.summary == "Needs a call"
        assert result.is_urgent is True
        assert result.suggested_actions == ["Reply"]
        assert plan_manager.get_plan().ai_usage_this_month == 1
        assert plan_manager.get_recent_usage()[-1]["email_id"] == ambiguous_email.id

    def test_invalid_llm_fields_get_defaults(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        chain.complete.return_value = '{"category": "spam", "priority": "extreme", "isUrgent": "yes"}'

        result = classifier.classify_email(ambiguous_email)

        assert result.category == EmailCategory.REGULAR
        assert result.priority == Priority.MEDIUM
        assert result.summary == "Quick question"
        assert result.is_urgent is False
        assert result.tags == []

    def test_unparseable_llm_output_falls_back(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        chain.complete.return_value = "I think this is a work email."

        result = classifier.classify_email(ambiguous_email)

        assert result.category == EmailCategory.REGULAR
        assert get_counter("classifier.fallback.llm_error") == 1
        assert plan_manager.get_plan().ai_usage_this_month == 0

    def test_exhausted_providers_fall_back(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        chain.complete.return_value = None

        classifier.classify_email(ambiguous_email)

        assert get_counter("classifier.fallback.llm_unavailable") == 1

    def test_no_provider_configured(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        chain.get_available_provider.return_value = None

        classifier.classify_email(ambiguous_email)

        chain.complete.assert_not_called()
        assert get_counter("classifier.fallback.no_provider") == 1

    def test_gate_disables_ai(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        feature_gates.disable("ai_classification")

        classifier.classify_email(ambiguous_email)

        chain.complete.assert_not_called()
        assert get_counter("classifier.fallback.gate") == 1

    def test_unexpected_chain_error_never_raises(self, classifier, chain, plan_manager, ambiguous_email):
        plan_manager.upgrade_tier("pro")
        chain.complete.side_effect = RuntimeError("boom")

        result = classifier.classify_email(ambiguous_email)

        assert result.category == EmailCategory.REGULAR

    def test_classify_emails_keys_results_by_id(self, classifier, make_email):
        emails = [make_email(subject=f"Note {i}", sender="sam@corp.io") for i in range(7)]

        results = classifier.classify_emails(emails)

        assert set(results) == {email.id for email in emails}

    def test_classify_emails_empty(self, classifier):
        assert classifier.classify_emails([]) == {}

    def test_parallel_batch_counts_every_ai_call(self, classifier, chain, plan_manager, make_email):
        """Usage from concurrent batch workers is not lost."""
        plan_manager.upgrade_tier("basic")

        def slow_complete(prompt, system_prompt):
            time.sleep(0.05)
            return '{"category": "personal", "priority": "low"}'

        chain.complete.side_effect = slow_complete
        emails = [
            make_email(subject=f"Quick question {i}", body="Can we talk?", sender="sam@corp.io")
            for i in range(20)
        ]

        results = classifier.classify_emails(emails)

        assert chain.complete.call_count == 20
        assert all(r.category == EmailCategory.PERSONAL for r in results.values())
        assert plan_manager.get_plan().ai_usage_this_month == 20
        assert len(plan_manager.get_recent_usage()) == 20


class TestDefaultClassification:
    def test_misc_spam(self, classifier, make_email):
        result = classifier.get_default_classification(
            make_email(subject="Verify your account to continue", sender="x@y.io")
        )

        assert result.category == EmailCategory.REGULAR
        assert result.priority == Priority.LOW

    def test_promotional(self, classifier, make_email):
        result = classifier.get_default_classification(
            make_email(subject="Flash sale this weekend", sender="store@shop.io")
        )

        assert result.category == EmailCategory.REGULAR
        assert result.tags == ["promo", "retail"]

    def test_subscription(self, classifier, make_email):
        result = classifier.get_default_classification(
            make_email(
                subject="Your subscription to FlowSphere amounting $35 is unsuccessful",
                sender="billing@flowsphere.app",
            )
        )

        assert result.category == EmailCategory.SUBSCRIPTION
        assert result.priority == Priority.MEDIUM

    def test_emergency(self, classifier, make_email):
        result = classifier.get_default_classification(
            make_email(subject="Motion detected at front door", sender="camera@ring-home.net")
        )

        assert result.category == EmailCategory.EMERGENCY
        assert result.priority == Priority.HIGH
        assert result.is_urgent is True

    def test_work_from_settings(self, classifier, make_email):
        classifier.settings = WorkCategorizationSettings(work_keywords=["roadmap"])

        result = classifier.get_default_classification(
            make_email(subject="Q3 roadmap review", sender="boss@acme.com")
        )

        assert result.category == EmailCategory.WORK
        assert result.priority == Priority.MEDIUM
        assert result.requires_action is True

    def test_personal_from_settings(self, classifier, make_email):
        classifier.settings = WorkCategorizationSettings(personal_domains=["family.net"])

        result = classifier.get_default_classification(
            make_email(subject="Dinner plans", sender="mom@family.net")
        )

        assert result.category == EmailCategory.PERSONAL
        assert result.priority == Priority.LOW

    def test_plain_email_is_regular(self, classifier, make_email):
        result = classifier.get_default_classification(
            make_email(subject="Lunch?", body="see you at noon", sender="bob@corp.io")
        )

        assert result.category == EmailCategory.REGULAR
        assert result.priority == Priority.LOW
        assert result.tags == []


class TestSubscriptionVerification:
    def test_without_key_uses_local_check(self, classifier, make_email):
        email = make_email(subject="Netflix renewal receipt")

        with patch("flowsphere.llm.groq.groq_chat") as mock_chat:
            result = classifier.verify_subscription_with_ai(email)

        mock_chat.assert_not_called()
        assert result.is_subscription
        assert result.confidence == 0.85

    def test_with_key_uses_groq(self, classifier, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        email = make_email(subject="Payment receipt")

        with patch(
            "flowsphere.llm.groq.groq_chat",
            return_value='{"isSubscription": true, "reason": "Monthly charge", "confidence": 0.9}',
        ):
            result = classifier.verify_subscription_with_ai(email)

        assert result.is_subscription is True
        assert result.reason == "Monthly charge"
        assert result.confidence == 0.9

    def test_groq_failure_uses_local_check(self, classifier, make_email, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "test-key")
        email = make_email(subject="Gift sneakers $80 and under")

        with patch("flowsphere.llm.groq.groq_chat", side_effect=RuntimeError("down")):
            result = classifier.verify_subscription_with_ai(email)

        assert result.is_subscription is False
