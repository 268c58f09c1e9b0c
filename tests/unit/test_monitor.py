"""
Tests for the background email monitor.

A fake provider and a fixed clock drive each check; the database and
account store are the real SQLite-backed ones.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from flowsphere.errors import ProviderError, TokenRefreshError
from flowsphere.monitor import email_monitor as monitor_module
from flowsphere.monitor.accounts import EmailAccountStore
from flowsphere.monitor.email_monitor import EmailMonitor
from flowsphere.observability.telemetry import get_counter
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.email_database import EmailDatabase
from flowsphere.storage.models import (
    EmailAccount,
    EmailCategory,
    EmailClassification,
    EmailProvider,
    Priority,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class FakeProvider:
    def __init__(self, emails=None) -> None:
        self.emails = list(emails or [])
        self.since_calls: list[datetime | None] = []
        self.refresh_calls = 0
        self.refresh_error: TokenRefreshError | None = None
        self.fetch_error: Exception | None = None

    def refresh_access_token(self, account: EmailAccount) -> EmailAccount:
        self.refresh_calls += 1
        if self.refresh_error:
            raise self.refresh_error
        return account.model_copy(
            update={"access_token": "fresh-token", "expires_at": _ms(NOW + timedelta(hours=1))}
        )

    def search_emails(self, account, options):
        raise NotImplementedError

    def get_new_emails(self, account, since=None):
        self.since_calls.append(since)
        if self.fetch_error:
            raise self.fetch_error
        return list(self.emails)


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    def __call__(self, level: str, title: str, description: str = "") -> None:
        self.calls.append((level, title, description))

    @property
    def titles(self) -> list[str]:
        return [title for _, title, _ in self.calls]


def _classification_for(email) -> EmailClassification:
    subject = email.subject.lower()
    if "fire" in subject:
        return EmailClassification(category=EmailCategory.EMERGENCY, priority=Priority.HIGH)
    if "standup" in subject:
        return EmailClassification(category=EmailCategory.WORK, priority=Priority.MEDIUM)
    return EmailClassification(
        category=EmailCategory.REGULAR, priority=Priority.LOW, summary=email.subject
    )


@pytest.fixture
def accounts() -> EmailAccountStore:
    return EmailAccountStore()


@pytest.fixture
def account(accounts) -> EmailAccount:
    acct = EmailAccount(
        id="acct-1",
        provider=EmailProvider.GMAIL,
        email="me@gmail.com",
        name="Me",
        access_token="token",
        refresh_token="refresh",
        expires_at=_ms(NOW + timedelta(hours=1)),
    )
    accounts.save_account(acct)
    return acct


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def classifier() -> MagicMock:
    mock_classifier = MagicMock()
    mock_classifier.classify_email.side_effect = _classification_for
    return mock_classifier


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def database() -> EmailDatabase:
    return EmailDatabase()


@pytest.fixture
def monitor(provider, classifier, database, accounts, notifier) -> EmailMonitor:
    return EmailMonitor(
        providers={EmailProvider.GMAIL: provider},
        classifier=classifier,
        database=database,
        accounts=accounts,
        notifier=notifier,
        interval=0.01,
        clock=lambda: NOW,
    )


class TestCheckNewEmails:
    def test_first_check_uses_24h_window(self, monitor, provider, account):
        monitor.check_new_emails()

        assert provider.since_calls == [NOW - timedelta(hours=24)]
        assert monitor.last_check_times["acct-1"] == NOW

    def test_later_checks_use_last_check_time(self, monitor, provider, account):
        earlier = NOW - timedelta(minutes=5)
        monitor.last_check_times["acct-1"] = earlier

        monitor.check_new_emails()

        assert provider.since_calls == [earlier]

    def test_new_emails_are_classified_stored_and_alerted(
        self, monitor, provider, database, account, make_email
    ):
        provider.emails = [
            make_email(subject="Standup moved", now=NOW, age=timedelta(minutes=10)),
            make_email(subject="Hello", now=NOW, age=timedelta(hours=2)),
        ]

        assert monitor.check_new_emails() == 2

        stored = {e.subject: e for e in database.get_all_emails()}
        assert stored["Standup moved"].category == EmailCategory.WORK
        assert stored["Standup moved"].ai_analysis.category == "work"
        assert len(monitor.get_stored_alerts()) == 2
        assert get_counter("monitor.new_emails") == 2

    def test_first_check_stores_older_emails_for_search(
        self, monitor, provider, classifier, database, account, make_email
    ):
        provider.emails = [
            make_email(subject="Recent", now=NOW, age=timedelta(hours=1)),
            make_email(subject="Last week", now=NOW, age=timedelta(days=3)),
        ]

        assert monitor.check_new_emails() == 1

        assert classifier.classify_email.call_count == 1
        assert {e.subject for e in database.get_all_emails()} == {"Recent", "Last week"}

    def test_emergency_and_work_notifications(self, monitor, provider, notifier, account, make_email):
        provider.emails = [
            make_email(subject="Fire alarm triggered", sender_name="Home", now=NOW),
            make_email(subject="Standup moved", now=NOW),
            make_email(subject="Hello", now=NOW),
        ]

        monitor.check_new_emails()

        levels = {title: level for level, title, _ in notifier.calls}
        assert levels == {"Emergency Email": "error", "Important Email": "warning"}
        assert get_counter("monitor.alerts.emergency") == 1
        assert get_counter("monitor.alerts.important") == 1

    def test_gate_silences_notifications(self, monitor, provider, notifier, account, make_email):
        feature_gates.disable("monitor_toasts")
        provider.emails = [make_email(subject="Fire alarm triggered", now=NOW)]

        monitor.check_new_emails()

        assert notifier.calls == []
        assert len(monitor.get_stored_alerts()) == 1

    def test_callback_receives_alerts(self, monitor, provider, account, make_email):
        received = []
        monitor._on_new_email = received.append
        provider.emails = [make_email(subject="Hello", now=NOW)]

        monitor.check_new_emails()

        assert [alert.email.subject for alert in received] == ["Hello"]
        assert received[0].timestamp == NOW

    def test_unsupported_provider_is_skipped(self, monitor, provider, accounts, account):
        accounts.save_account(
            account.model_copy(update={"id": "acct-2", "provider": EmailProvider.OUTLOOK})
        )

        monitor.check_new_emails()

        assert len(provider.since_calls) == 1

    def test_inactive_accounts_are_ignored(self, monitor, provider, accounts, account):
        accounts.save_account(account.model_copy(update={"is_active": False}))

        monitor.check_new_emails()

        assert provider.since_calls == []

    def test_provider_auth_error_notifies_and_continues(
        self, monitor, provider, notifier, account
    ):
        provider.fetch_error = ProviderError("gmail", "unauthorized", 401)

        assert monitor.check_new_emails() == 0

        assert notifier.titles == ["Gmail authentication expired - please reconnect"]
        assert get_counter("monitor.account_errors") == 1
        assert "acct-1" not in monitor.last_check_times


class TestTokenRefresh:
    def test_token_expiring_soon_is_refreshed_and_saved(
        self, monitor, provider, accounts, notifier, account
    ):
        accounts.save_account(
            account.model_copy(update={"expires_at": _ms(NOW + timedelta(minutes=2))})
        )

        monitor.check_new_emails()

        assert provider.refresh_calls == 1
        assert accounts.get_account("acct-1").access_token == "fresh-token"
        assert notifier.titles == ["Gmail access token refreshed automatically"]

    def test_valid_token_is_not_refreshed(self, monitor, provider, account):
        monitor.check_new_emails()

        assert provider.refresh_calls == 0

    def test_missing_refresh_token_requires_reconnect(
        self, monitor, provider, accounts, notifier, account
    ):
        accounts.save_account(
            account.model_copy(update={"expires_at": _ms(NOW), "refresh_token": ""})
        )

        assert monitor.check_new_emails() == 0

        assert provider.since_calls == []
        assert notifier.titles == ["Gmail session expired - please reconnect your account"]

    @pytest.mark.parametrize(
        ("reason", "title"),
        [
            ("invalid_grant", "Gmail refresh token expired"),
            ("invalid_client", "Gmail API configuration error"),
            ("unknown", "Gmail access expired"),
        ],
    )
    def test_refresh_failures_notify(
        self, monitor, provider, accounts, notifier, account, reason, title
    ):
        accounts.save_account(account.model_copy(update={"expires_at": _ms(NOW)}))
        provider.refresh_error = TokenRefreshError(reason)

        monitor.check_new_emails()

        assert notifier.titles == [title]
        assert provider.since_calls == []


class TestAlerts:
    def test_alerts_newest_first_and_trimmed(self, monitor, monkeypatch, make_email):
        monkeypatch.setattr(monitor_module, "MONITOR_MAX_STORED_ALERTS", 3)

        for i in range(5):
            monitor._process_new_email(make_email(subject=f"Note {i}", now=NOW))

        subjects = [alert.email.subject for alert in monitor.get_stored_alerts()]
        assert subjects == ["Note 4", "Note 3", "Note 2"]

    def test_alert_defaults_classification_from_category(self, monitor, make_email):
        monitor._process_new_email(
            make_email(subject="Hi", category=EmailCategory.PERSONAL, now=NOW)
        )

        alert = monitor.get_stored_alerts()[0]
        assert alert.classification.category == "personal"
        assert alert.classification.priority == Priority.MEDIUM

    def test_clear_alerts(self, monitor, make_email):
        monitor._process_new_email(make_email(now=NOW))
        monitor.clear_alerts()

        assert monitor.get_stored_alerts() == []


class TestInitialSync:
    def test_sync_classifies_and_stores_seven_days(
        self, monitor, provider, classifier, database, notifier, account, make_email
    ):
        provider.emails = [
            make_email(subject=f"Note {i}", now=NOW, age=timedelta(days=i % 7)) for i in range(12)
        ]

        assert monitor.perform_initial_sync() == 12

        assert provider.since_calls == [NOW - timedelta(days=7)]
        assert classifier.classify_email.call_count == 12
        assert database.get_count() == 12
        assert notifier.titles == ["Synced 12 emails from me@gmail.com"]

    def test_sync_failure_is_reported(self, monitor, provider, notifier, account):
        provider.fetch_error = ProviderError("gmail", "boom", 500)

        assert monitor.perform_initial_sync() == 0

        assert notifier.titles == ["Failed to sync me@gmail.com"]


class TestLifecycle:
    def test_start_and_stop(self, monitor):
        monitor.start()
        assert monitor.is_running

        monitor.start()
        monitor.stop()

        assert not monitor.is_running

    def test_stop_without_start(self, monitor):
        monitor.stop()

        assert not monitor.is_running


def test_reclassify_all_emails_delegates_to_database(monitor, database, make_email):
    database.store_emails([make_email(subject="Hello"), make_email(subject="Again")])

    assert monitor.reclassify_all_emails() == 2
