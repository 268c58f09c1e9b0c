"""
JSON key/value settings backed by the app_settings table.

Rules, wizard preferences, the AI plan and BYOK keys are persisted here.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from flowsphere.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowsphere.observability.logging import get_logger

logger = get_logger(__name__)


def get_setting(key: str, default: Any = None) -> Any:
    """
    Load a JSON setting, returning ``default`` when absent or unreadable.
    """
    with get_db_connection() as conn:
        row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()

    if row is None:
        return default

    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        logger.warning("Ignoring corrupt setting %s", key)
        return default


@retry_on_db_lock()
def set_setting(key: str, value: Any) -> None:
    """
    Side Effects:
        - Upserts a row in app_settings
    """
    now = datetime.now(UTC).isoformat()
    with db_transaction() as conn:
        conn.execute(
            """
            INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), now),
        )


@retry_on_db_lock()
def delete_setting(key: str) -> None:
    """
    Side Effects:
        - Deletes a row from app_settings
    """
    with db_transaction() as conn:
        conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))
