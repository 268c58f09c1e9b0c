"""Tests for connected account persistence and JSON settings."""

from __future__ import annotations

import pytest

from flowsphere.errors import AccountNotFoundError
from flowsphere.infrastructure.database import db_transaction
from flowsphere.monitor.accounts import EmailAccountStore
from flowsphere.storage import settings_store
from flowsphere.storage.models import EmailAccount, EmailProvider


@pytest.fixture
def store() -> EmailAccountStore:
    return EmailAccountStore()


def _account(account_id: str = "acct-1", **updates) -> EmailAccount:
    account = EmailAccount(
        id=account_id,
        provider=EmailProvider.GMAIL,
        email=f"{account_id}@gmail.com",
        access_token="token",
        refresh_token="refresh",
        expires_at=0,
    )
    return account.model_copy(update=updates)


class TestEmailAccountStore:
    def test_save_and_get(self, store):
        store.save_account(_account())

        account = store.get_account("acct-1")

        assert account.email == "acct-1@gmail.com"
        assert account.refresh_token == "refresh"

    def test_save_replaces_by_id(self, store):
        store.save_account(_account())
        store.save_account(_account(access_token="new-token"))

        assert len(store.get_accounts()) == 1
        assert store.get_account("acct-1").access_token == "new-token"

    def test_active_accounts(self, store):
        store.save_account(_account("a"))
        store.save_account(_account("b", is_active=False))

        assert [a.id for a in store.get_active_accounts()] == ["a"]

    def test_missing_account_raises(self, store):
        with pytest.raises(AccountNotFoundError):
            store.get_account("nope")

    def test_remove(self, store):
        store.save_account(_account())

        assert store.remove_account("acct-1") is True
        assert store.remove_account("acct-1") is False
        assert store.get_accounts() == []


class TestSettingsStore:
    def test_round_trip_and_default(self):
        assert settings_store.get_setting("plan", {"tier": "free"}) == {"tier": "free"}

        settings_store.set_setting("plan", {"tier": "pro", "used": 3})
        settings_store.set_setting("plan", {"tier": "basic"})

        assert settings_store.get_setting("plan") == {"tier": "basic"}

    def test_delete(self):
        settings_store.set_setting("flag", True)
        settings_store.delete_setting("flag")

        assert settings_store.get_setting("flag") is None

    def test_corrupt_value_returns_default(self):
        with db_transaction() as conn:
            conn.execute(
                "INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)",
                ("broken", "{not json", "2026-01-01T00:00:00+00:00"),
            )

        assert settings_store.get_setting("broken", "fallback") == "fallback"
