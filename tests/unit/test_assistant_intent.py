"""
Tests for assistant query intent detection (keyword routing, no LLM).
"""

from __future__ import annotations

import pytest

from flowsphere.assistant.intent import (
    MEETING_SEARCH,
    URGENT_FLAG,
    analyze_query_intent,
    detect_non_email_query,
    extract_search_terms,
    extract_specific_keywords,
)


class TestDetectNonEmailQuery:
    @pytest.mark.parametrize(
        "query",
        ["What's the weather tomorrow?", "hi", "Solve this equation for x", "Turn off the lights"],
    )
    def test_general_queries_hand_off(self, query):
        assert detect_non_email_query(query) == query

    @pytest.mark.parametrize(
        "query",
        ["Show my unread emails", "What did the billing reply say?", "Any urgent mail?"],
    )
    def test_email_keywords_stay_here(self, query):
        assert detect_non_email_query(query) is None

    def test_unclear_query_defaults_to_email(self):
        assert detect_non_email_query("quarterly budget numbers") is None


class TestAnalyzeQueryIntent:
    def test_urgent_today_question(self):
        intent = analyze_query_intent("Any urgent emails today?")

        assert intent.category_filter == URGENT_FLAG
        assert intent.time_filter == "today"
        assert intent.query_type == "question"
        assert intent.search_terms == []
        assert intent.should_search_work_first is False

    def test_work_summary_searches_work_first(self):
        intent = analyze_query_intent("Summarize work emails from this week")

        assert intent.category_filter == "work"
        assert intent.should_search_work_first is True
        assert intent.time_filter == "week"
        assert intent.query_type == "summary"

    def test_plain_work_word_does_not_force_work_first(self):
        intent = analyze_query_intent("Show me project updates")

        assert intent.category_filter == "work"
        assert intent.should_search_work_first is False
        assert intent.query_type == "search"

    def test_meeting_question(self):
        intent = analyze_query_intent("What meetings do I have?")

        assert intent.category_filter == MEETING_SEARCH
        assert intent.query_type == "question"

    def test_specific_keywords_and_search_type(self):
        intent = analyze_query_intent('Find emails about "budget review" from DOLE')

        assert intent.specific_keywords == ["budget review", "DOLE"]
        assert intent.query_type == "search"
        assert intent.category_filter is None
        assert intent.time_filter == "all"

    @pytest.mark.parametrize(
        ("query", "query_type"),
        [
            ("Draft a reply to Anna", "draft"),
            ("Write a new email to the landlord", "compose"),
            ("Compare the two offers", "compare"),
            ("Is this legit?", "analyze"),
            ("What should I do next", "action"),
            ("invoices", "search"),
        ],
    )
    def test_query_types(self, query, query_type):
        assert analyze_query_intent(query).query_type == query_type

    def test_time_filters(self):
        assert analyze_query_intent("mail from this morning").time_filter == "today"
        assert analyze_query_intent("what came in recently").time_filter == "month"


def test_extract_search_terms_drops_stop_words_and_short_words():
    assert extract_search_terms("Budget report for Q3!") == ["budget", "report"]


def test_extract_specific_keywords():
    assert extract_specific_keywords('Check "Project Falcon" from HR and IT') == [
        "Project Falcon",
        "HR",
        "IT",
    ]
