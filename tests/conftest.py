"""
Pytest configuration shared across FlowSphere tests

Every test gets its own SQLite file, clean telemetry and no provider keys.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from flowsphere.infrastructure import env
from flowsphere.infrastructure.database import init_database, reset_pool
from flowsphere.observability.telemetry import reset_counters, reset_latencies
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.models import Email, EmailAddress, EmailCategory, EmailProvider

PROVIDER_ENV_KEYS = (
    "GROQ_API_KEY",
    "GEMINI_API_KEY",
    "OPENROUTER_API_KEY",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
)


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the app at a fresh database file for each test."""
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("FLOWSPHERE_DB_PATH", str(db_path))
    reset_pool()
    init_database()
    yield db_path
    reset_pool()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """No real API keys, no .env loading, default gates, zeroed counters."""
    monkeypatch.setattr(env, "_ENV_LOADED", True)
    for key in PROVIDER_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    for name in feature_gates.get_all_states():
        monkeypatch.delenv(f"FLOWSPHERE_GATE_{name.upper()}", raising=False)

    reset_counters()
    reset_latencies()
    yield
    for name in list(feature_gates.get_all_states()):
        feature_gates.reset(name)


@pytest.fixture
def make_email():
    """Factory for Email models with sensible defaults."""
    ids = count(1)

    def _make(
        subject: str = "Hello",
        body: str = "",
        sender: str = "friend@example.com",
        sender_name: str = "Friend",
        category: EmailCategory | None = None,
        age: timedelta = timedelta(hours=1),
        read: bool = False,
        email_id: str | None = None,
        snippet: str = "",
        now: datetime | None = None,
    ) -> Email:
        return Email(
            id=email_id or f"msg-{next(ids)}",
            thread_id="thread-1",
            provider=EmailProvider.GMAIL,
            sender=EmailAddress(email=sender, name=sender_name),
            subject=subject,
            body=body,
            snippet=snippet,
            timestamp=(now or datetime.now(UTC)) - age,
            read=read,
            category=category,
        )

    return _make
