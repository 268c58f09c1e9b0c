"""
Tests for the classification rules store.

Validates:
1. Only subs/bills ship enabled; work/personal wait for the setup wizard
2. Match order and confidence levels (domain > sender > keyword)
3. Promotional mail never lands in work/urgent
4. Rule edits persist and notify subscribers
"""

from __future__ import annotations

import pytest

from flowsphere.classification.rules_store import (
    RULE_TO_EMAIL_CATEGORY,
    ClassificationRulesStore,
    is_promotional_email,
)
from flowsphere.storage.models import EmailCategory, WorkCategorizationSettings


@pytest.fixture
def store():
    return ClassificationRulesStore()


class TestDefaults:
    def test_only_subs_and_bills_enabled(self, store):
        rules = store.get_rules()

        assert rules["subs"].enabled
        assert rules["bills"].enabled
        assert not rules["work"].enabled
        assert not rules["personal"].enabled
        assert not rules["urgent"].enabled
        assert rules["work"].keywords == []

    def test_setup_incomplete_by_default(self, store):
        assert store.is_setup_complete() is False
        assert store.get_wizard_settings().is_empty()

    def test_rule_category_mapping(self):
        assert RULE_TO_EMAIL_CATEGORY["urgent"] == EmailCategory.EMERGENCY
        assert RULE_TO_EMAIL_CATEGORY["subs"] == EmailCategory.SUBSCRIPTION
        assert RULE_TO_EMAIL_CATEGORY["bills"] == EmailCategory.REGULAR
        assert RULE_TO_EMAIL_CATEGORY["all"] == EmailCategory.REGULAR


class TestClassifyByRules:
    def test_bill_sender_domain_matches_with_high_confidence(self, store):
        match = store.classify_by_rules("Your statement", "", "ebills@meralco.com.ph")

        assert match.category == "bills"
        assert match.confidence == 0.85
        assert "meralco.com.ph" in match.matched_rule

    def test_bill_sender_pattern(self, store):
        match = store.classify_by_rules("March account", "", "statements@citybank.ph")

        assert match.category == "bills"
        assert match.confidence == 0.8

    def test_subscription_keyword(self, store):
        match = store.classify_by_rules("Trial ending soon", "", "alice@randomcorp.io")

        assert match.category == "subs"
        assert match.confidence == 0.7

    def test_promotional_email_is_all(self, store):
        match = store.classify_by_rules("Weekly picks", "", "news@shop.com")

        assert match.category == "all"
        assert match.confidence == 0.8

    def test_promotional_with_billing_context_is_subs(self, store):
        match = store.classify_by_rules(
            "Your subscription update", "", "newsletter@service.com"
        )

        assert match.category == "subs"
        assert match.confidence == 0.7
        assert match.matched_rule == "promotional with billing context"

    def test_no_match_returns_all_with_low_confidence(self, store):
        match = store.classify_by_rules("Q3 roadmap", "draft attached", "boss@acme.com")

        assert match.category == "all"
        assert match.confidence == 0.5
        assert match.matched_rule is None

    def test_work_domain_after_wizard(self, store):
        store.save_wizard_settings(WorkCategorizationSettings(work_domains=["acme.com"]))

        match = store.classify_by_rules("Q3 roadmap", "draft attached", "boss@acme.com")

        assert match.category == "work"
        assert match.confidence == 0.85

    def test_work_keyword_needs_completed_wizard(self, store):
        settings = WorkCategorizationSettings(work_keywords=["roadmap"])
        store.save_wizard_settings(settings, complete=False)

        assert store.classify_by_rules("Q3 roadmap", "", "boss@acme.com").category == "all"

        store.save_wizard_settings(settings, complete=True)

        match = store.classify_by_rules("Q3 roadmap", "", "boss@acme.com")
        assert match.category == "work"
        assert match.confidence == 0.7

    def test_personal_domain(self, store):
        store.save_wizard_settings(WorkCategorizationSettings(personal_domains=["family.net"]))

        match = store.classify_by_rules("Dinner Sunday", "", "mom@family.net")

        assert match.category == "personal"

    def test_bills_beat_work(self, store):
        store.save_wizard_settings(WorkCategorizationSettings(work_keywords=["statement"]))

        match = store.classify_by_rules("Monthly statement", "", "cfo@acme.com")

        assert match.category == "bills"

    def test_urgent_only_matches_specific_phrases(self, store):
        store.update_category_rules("urgent", enabled=True, keywords=["asap"])

        assert store.classify_by_rules("Reply asap", "", "it@corp.com").category == "all"

        match = store.classify_by_rules("Security breach detected", "", "it@corp.com")
        assert match.category == "urgent"
        assert match.confidence == 0.75

    def test_promotional_never_urgent_or_work(self, store):
        store.save_wizard_settings(WorkCategorizationSettings(work_domains=["acme.com"]))

        match = store.classify_by_rules("Flash sale for the team", "", "marketing@acme.com")

        assert match.category == "all"


class TestRuleEditing:
    def test_add_keyword_lowercases_and_dedupes(self, store):
        store.add_keyword("bills", "Water Bill")
        store.add_keyword("bills", "water bill")

        keywords = store.get_rules()["bills"].keywords
        assert keywords.count("water bill") == 1

    def test_remove_keyword_is_case_insensitive(self, store):
        store.remove_keyword("bills", "OVERDUE")

        assert "overdue" not in store.get_rules()["bills"].keywords

    def test_add_sender_domain_strips_at(self, store):
        store.add_sender_domain("subs", "@Hulu.com")

        assert "hulu.com" in store.get_rules()["subs"].sender_domains

    def test_add_sender_email_lowercases(self, store):
        store.add_sender_email("bills", "Invoices@")

        assert "invoices@" in store.get_rules()["bills"].sender_emails

    def test_rules_persist_across_instances(self, store):
        store.add_keyword("subs", "membership fee")

        assert "membership fee" in ClassificationRulesStore().get_rules()["subs"].keywords

    def test_reset_to_defaults(self, store):
        store.add_keyword("bills", "custom")
        store.reset_to_defaults()

        assert "custom" not in store.get_rules()["bills"].keywords

    def test_subscribers_notified_until_unsubscribed(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)

        store.add_keyword("bills", "tuition")
        unsubscribe()
        store.add_keyword("bills", "rent")

        assert len(seen) == 1
        assert "tuition" in seen[0]["bills"].keywords

    def test_failing_subscriber_does_not_block_save(self, store):
        def boom(_rules):
            raise RuntimeError("listener crashed")

        store.subscribe(boom)
        store.add_keyword("bills", "tuition")

        assert "tuition" in store.get_rules()["bills"].keywords


class TestIsPromotionalEmail:
    @pytest.mark.parametrize(
        ("subject", "sender", "name"),
        [
            ("Hello", "noreply@service.com", ""),
            ("50% off everything", "store@shop.com", ""),
            ("New templates", "hi@x.com", "Canva"),
            ("Shop now", "person@corp.com", ""),
        ],
    )
    def test_promotional(self, subject, sender, name):
        assert is_promotional_email(subject, "", sender, name)

    def test_plain_email_not_promotional(self):
        assert not is_promotional_email("Lunch?", "see you at noon", "bob@corp.com", "Bob")
