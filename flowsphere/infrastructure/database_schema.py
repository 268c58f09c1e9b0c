"""
Database schema initialization for FlowSphere.

Email rows keep the full pydantic payload as JSON next to the columns that
are filtered or sorted on (category, timestamp, read, sender).
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from flowsphere.observability.logging import get_logger

logger = get_logger(__name__)

_EMAIL_COLUMNS = """
            id TEXT PRIMARY KEY,
            thread_id TEXT,
            provider TEXT NOT NULL,
            from_email TEXT NOT NULL DEFAULT '',
            from_name TEXT NOT NULL DEFAULT '',
            subject TEXT NOT NULL DEFAULT '',
            category TEXT,
            timestamp TEXT NOT NULL,
            read INTEGER NOT NULL DEFAULT 0,
            payload TEXT NOT NULL,
            stored_at TEXT NOT NULL"""


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Args:
        db_path: Path to the database file

    Side Effects:
    - Creates the parent directory and flowsphere.db if needed
    - Creates tables and indexes if they don't exist
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)

    conn.executescript(f"""
        CREATE TABLE IF NOT EXISTS emails ({_EMAIL_COLUMNS}
        );

        CREATE INDEX IF NOT EXISTS idx_emails_category ON emails(category);
        CREATE INDEX IF NOT EXISTS idx_emails_timestamp ON emails(timestamp);
        CREATE INDEX IF NOT EXISTS idx_emails_provider ON emails(provider);
        CREATE INDEX IF NOT EXISTS idx_emails_from ON emails(from_email);
        CREATE INDEX IF NOT EXISTS idx_emails_read ON emails(read);

        CREATE TABLE IF NOT EXISTS emails_archive ({_EMAIL_COLUMNS},
            archived_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_archive_timestamp ON emails_archive(timestamp);
        CREATE INDEX IF NOT EXISTS idx_archive_category ON emails_archive(category);
        CREATE INDEX IF NOT EXISTS idx_archive_subject ON emails_archive(subject);

        CREATE TABLE IF NOT EXISTS email_alerts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email_id TEXT NOT NULL,
            payload TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_email_alerts_created ON email_alerts(created_at);

        CREATE TABLE IF NOT EXISTS email_accounts (
            id TEXT PRIMARY KEY,
            provider TEXT NOT NULL,
            email TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            payload TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS ai_usage_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            tokens_used INTEGER NOT NULL DEFAULT 0,
            classification TEXT,
            created_at TEXT NOT NULL
        );
    """)

    conn.commit()
    conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables or columns are missing
    """
    required_tables = {
        "emails": ["id", "provider", "category", "timestamp", "read", "payload"],
        "emails_archive": ["id", "category", "timestamp", "payload", "archived_at"],
        "email_alerts": ["id", "email_id", "payload", "created_at"],
        "email_accounts": ["id", "provider", "email", "is_active", "payload"],
        "app_settings": ["key", "value"],
        "ai_usage_log": ["id", "email_id", "provider", "tokens_used"],
    }

    cursor = conn.cursor()
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(required_tables) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        # Identifiers cannot be parameterized; names come from the dict above
        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
