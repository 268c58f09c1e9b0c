"""Tests for synonym-expanded email search."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from flowsphere.assistant.semantic_search import (
    count_by_category,
    expand_search_terms,
    get_email_stats,
    relevance_score,
    semantic_email_search,
)
from flowsphere.observability.telemetry import get_counter
from flowsphere.storage.email_database import EmailDatabase
from flowsphere.storage.models import EmailCategory


@pytest.fixture
def db() -> EmailDatabase:
    return EmailDatabase()


class TestExpandSearchTerms:
    def test_query_first_then_synonyms_then_words(self):
        terms = expand_search_terms("Meeting with DOLE")

        assert terms[0] == "Meeting with DOLE"
        assert terms[1:4] == ["department of labor", "labor department", "employment"]
        assert {"conference", "zoom", "meeting", "with", "dole"} <= set(terms)

    def test_short_words_are_not_terms(self):
        assert expand_search_terms("the bir form") == [
            "the bir form",
            "bureau of internal revenue",
            "tax",
            "revenue",
            "form",
        ]

    def test_no_duplicates(self):
        terms = expand_search_terms("urgent urgent")

        assert terms.count("urgent") == 1


class TestRelevanceScore:
    def test_subject_hits_outrank_body_hits(self, make_email):
        terms = expand_search_terms("invoice")
        month_old = timedelta(days=30)
        in_subject = make_email(subject="Invoice for March", read=True, age=month_old)
        in_body = make_email(subject="Hello", body="invoice attached", read=True, age=month_old)

        assert relevance_score(in_subject, terms) > relevance_score(in_body, terms)

    def test_recency_unread_and_emergency_bonuses(self, make_email):
        now = datetime(2026, 5, 1, tzinfo=UTC)
        old = make_email(subject="x", read=True, age=timedelta(days=30), now=now)
        fresh = make_email(
            subject="x", age=timedelta(hours=2), category=EmailCategory.EMERGENCY, now=now
        )

        assert relevance_score(old, ["zzz"], now) == 0
        assert relevance_score(fresh, ["zzz"], now) == 3 + 5 + 2 + 10

    def test_no_terms(self, make_email):
        assert relevance_score(make_email(), []) == 0


def test_count_by_category_lists_every_category(make_email):
    counts = count_by_category(
        [make_email(category=EmailCategory.WORK), make_email(category=None)]
    )

    assert counts == {
        "emergency": 0,
        "subscription": 0,
        "important": 0,
        "regular": 1,
        "work": 1,
        "personal": 0,
    }


class TestSemanticEmailSearch:
    def test_synonym_match_ranked_below_direct_match(self, db, make_email):
        db.store_emails(
            [
                make_email(subject="Employment certificate", category=EmailCategory.PERSONAL),
                make_email(subject="DOLE registration", category=EmailCategory.WORK),
                make_email(subject="Lunch plans", category=EmailCategory.PERSONAL),
            ]
        )

        result = semantic_email_search("DOLE", database=db)

        assert [e.subject for e in result.emails] == [
            "DOLE registration",
            "Employment certificate",
        ]
        assert result.total_count == 2
        assert result.categories["work"] == 1
        assert result.categories["personal"] == 1
        assert "employment" in result.expanded_terms
        assert get_counter("assistant.semantic_search") == 1

    def test_recipient_address_matches(self, db, make_email):
        email = make_email(subject="Fwd", category=EmailCategory.WORK)
        email = email.model_copy(
            update={"to": [email.sender.model_copy(update={"email": "hr@dole.gov.ph"})]}
        )
        db.store_emails([email])

        assert semantic_email_search("dole", database=db).total_count == 1

    def test_category_and_unread_filters(self, db, make_email):
        db.store_emails(
            [
                make_email(subject="Team invoice", category=EmailCategory.WORK),
                make_email(subject="Old invoice", category=EmailCategory.WORK, read=True),
                make_email(subject="Home invoice", category=EmailCategory.PERSONAL),
            ]
        )

        result = semantic_email_search("invoice", category="work", unread_only=True, database=db)

        assert [e.subject for e in result.emails] == ["Team invoice"]

    def test_blank_query_returns_filtered_emails(self, db, make_email):
        db.store_emails(
            [
                make_email(subject=f"Note {i}", category=EmailCategory.PERSONAL)
                for i in range(3)
            ]
        )

        result = semantic_email_search("  ", limit=2, database=db)

        assert len(result.emails) == 2
        assert result.total_count == 3
        assert result.categories["personal"] == 3
        assert result.expanded_terms == []

    def test_limit_keeps_full_counts(self, db, make_email):
        db.store_emails(
            [
                make_email(subject=f"Payment {i}", category=EmailCategory.SUBSCRIPTION)
                for i in range(4)
            ]
        )

        result = semantic_email_search("payment", limit=1, database=db)

        assert len(result.emails) == 1
        assert result.total_count == 4
        assert result.categories["subscription"] == 4

    def test_database_failure_returns_empty(self, db):
        with patch.object(db, "get_all_emails", side_effect=RuntimeError("locked")):
            result = semantic_email_search("dole", database=db)

        assert result.total_count == 0
        assert result.emails == []


def test_get_email_stats_folds_urgent_buckets(db, make_email):
    db.store_emails(
        [
            make_email(category=EmailCategory.EMERGENCY),
            make_email(category=EmailCategory.IMPORTANT),
            make_email(category=EmailCategory.WORK),
            make_email(category=EmailCategory.SUBSCRIPTION),
        ]
    )

    assert get_email_stats(db) == {
        "total": 4,
        "urgent": 2,
        "work": 1,
        "personal": 0,
        "subscription": 1,
        "misc": 0,
    }
