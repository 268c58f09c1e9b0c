"""
Local email index backed by SQLite.

Two stores:
- emails: active mailbox view (retention applies, see retention.py)
- emails_archive: work emails older than 90 days, searchable for 5 years

Opening a non-work email deletes it from FlowSphere; work emails are kept
and marked read.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from flowsphere.classification.rules_store import (
    RULE_TO_EMAIL_CATEGORY,
    ClassificationRulesStore,
    rules_store,
)
from flowsphere.config import (
    ARCHIVE_SEARCH_MAX_RESULTS,
    ARCHIVE_SEARCH_YEARS_BACK,
    DELETE_OLD_EMAILS_DEFAULT_DAYS,
)
from flowsphere.infrastructure.database import (
    db_transaction,
    get_db_connection,
    init_database,
    retry_on_db_lock,
)
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.storage.models import Email, EmailCategory
from flowsphere.storage.retention import run_retention_cleanup, to_db_timestamp
from flowsphere.utils.redaction import redact_subject

logger = get_logger(__name__)


def _row_to_email(row: sqlite3.Row) -> Email:
    email = Email.model_validate_json(row["payload"])
    if "archived_at" in row.keys() and row["archived_at"]:
        email = email.model_copy(
            update={"archived_at": datetime.fromisoformat(row["archived_at"])}
        )
    return email


def _email_params(email: Email, stored_at: str) -> dict[str, Any]:
    return {
        "id": email.id,
        "thread_id": email.thread_id,
        "provider": email.provider.value,
        "from_email": email.sender.email.lower(),
        "from_name": email.sender.name,
        "subject": email.subject,
        "category": email.category.value if email.category else None,
        "timestamp": to_db_timestamp(email.timestamp),
        "read": int(email.read),
        "payload": email.to_json(),
        "stored_at": stored_at,
    }


def _years_ago(now: datetime, years: int) -> datetime:
    try:
        return now.replace(year=now.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return now.replace(year=now.year - years, day=28)


class EmailDatabase:
    """
    Repository for the emails and emails_archive tables.

    Args:
        rules: Rules store used to classify emails on store/reclassify
    """

    def __init__(self, rules: ClassificationRulesStore = rules_store) -> None:
        self.rules = rules
        self._subscribers: list[Callable[[dict[str, int]], None]] = []
        self._lock = threading.Lock()

    def init(self) -> dict[str, int | bool]:
        """
        Ensure the schema exists and apply retention.

        Side Effects:
            - Creates flowsphere.db tables if needed
            - Runs run_retention_cleanup()
        """
        init_database()
        return run_retention_cleanup()

    # --- Reclassification events ---

    def subscribe(self, callback: Callable[[dict[str, int]], None]) -> Callable[[], None]:
        """Listen for reclassification events ``{count, changed}``."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, detail: dict[str, int]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(detail)
            except Exception as e:
                logger.warning("Reclassification subscriber failed: %s", e)

    def _rules_category(self, email: Email) -> EmailCategory:
        match = self.rules.classify_by_rules(
            email.subject, email.content_text(), email.sender.email, email.sender.name
        )
        return RULE_TO_EMAIL_CATEGORY.get(match.category, EmailCategory.REGULAR)

    # --- Writes ---

    @retry_on_db_lock()
    def store_emails(self, emails: list[Email]) -> int:
        """
        Upsert emails, classifying by rules unless already non-regular.

        Returns:
            Number of emails stored

        Side Effects:
            - Inserts or replaces rows in emails
        """
        if not emails:
            return 0

        stored_at = to_db_timestamp(datetime.now(UTC))
        rows = []
        for email in emails:
            if email.category is None or email.category == EmailCategory.REGULAR:
                email = email.model_copy(update={"category": self._rules_category(email)})
            rows.append(_email_params(email, stored_at))

        with db_transaction() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO emails (
                    id, thread_id, provider, from_email, from_name, subject,
                    category, timestamp, read, payload, stored_at
                ) VALUES (
                    :id, :thread_id, :provider, :from_email, :from_name, :subject,
                    :category, :timestamp, :read, :payload, :stored_at
                )
                """,
                rows,
            )

        counter("email_db.stored", len(rows))
        logger.info("Stored %d emails in database (with classification)", len(rows))
        return len(rows)

    @retry_on_db_lock()
    def mark_email_as_read(self, email_id: str) -> tuple[bool, Email | None]:
        """
        Mark an email read; non-work emails are deleted once opened.

        Returns:
            (deleted, email) - (False, None) when the id is unknown

        Side Effects:
            - Updates or deletes the row in emails
        """
        with db_transaction() as conn:
            row = conn.execute("SELECT * FROM emails WHERE id = ?", (email_id,)).fetchone()
            if row is None:
                return False, None

            email = _row_to_email(row).model_copy(update={"read": True})

            if email.category == EmailCategory.WORK:
                conn.execute(
                    "UPDATE emails SET read = 1, payload = ? WHERE id = ?",
                    (email.to_json(), email_id),
                )
                logger.info("Marked work email as read: %s", redact_subject(email.subject))
                return False, email

            conn.execute("DELETE FROM emails WHERE id = ?", (email_id,))

        counter("email_db.deleted_on_read")
        logger.info("Auto-deleted non-work email after viewing: %s", redact_subject(email.subject))
        return True, email

    @retry_on_db_lock()
    def reclassify_all_emails(self) -> int:
        """
        Re-run the rules over every active email.

        Returns:
            Number of emails rewritten

        Side Effects:
            - Updates category/payload for every row in emails
            - Notifies subscribers with {"count", "changed"}
        """
        emails = self.get_all_emails()
        if not emails:
            return 0

        updates = []
        changed = 0
        for email in emails:
            category = self._rules_category(email)
            if email.category != category:
                changed += 1
                logger.debug(
                    "Reclassified %s -> %s", redact_subject(email.subject), category.value
                )
            updated = email.model_copy(update={"category": category})
            updates.append((category.value, updated.to_json(), email.id))

        with db_transaction() as conn:
            conn.executemany(
                "UPDATE emails SET category = ?, payload = ? WHERE id = ?", updates
            )

        count = len(updates)
        logger.info("Reclassified %d emails (%d changed)", count, changed)
        log_event("email_db.reclassified", count=count, changed=changed)
        self._notify({"count": count, "changed": changed})
        return count

    @retry_on_db_lock()
    def clear(self) -> None:
        """Delete every active email (the archive is untouched)."""
        with db_transaction() as conn:
            conn.execute("DELETE FROM emails")
        logger.info("Email database cleared")

    @retry_on_db_lock()
    def delete_old_emails(self, days_to_keep: int = DELETE_OLD_EMAILS_DEFAULT_DAYS) -> int:
        cutoff = to_db_timestamp(datetime.now(UTC) - timedelta(days=days_to_keep))
        with db_transaction() as conn:
            cursor = conn.execute("DELETE FROM emails WHERE timestamp < ?", (cutoff,))
            deleted = cursor.rowcount
        if deleted:
            logger.info("Deleted %d old emails", deleted)
        return deleted

    # --- Reads ---

    def get_all_emails(self) -> list[Email]:
        with get_db_connection() as conn:
            rows = conn.execute("SELECT payload FROM emails ORDER BY timestamp DESC").fetchall()
        return [_row_to_email(row) for row in rows]

    def get_email(self, email_id: str) -> Email | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT payload FROM emails WHERE id = ?", (email_id,)).fetchone()
        return _row_to_email(row) if row else None

    def get_emails_by_category(self, category: EmailCategory | str) -> list[Email]:
        value = category.value if isinstance(category, EmailCategory) else category
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT payload FROM emails WHERE category = ? ORDER BY timestamp DESC",
                (value,),
            ).fetchall()
        return [_row_to_email(row) for row in rows]

    def get_emails_in_range(self, start: datetime, end: datetime) -> list[Email]:
        """Emails with start <= timestamp <= end."""
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT payload FROM emails
                WHERE timestamp >= ? AND timestamp <= ?
                ORDER BY timestamp DESC
                """,
                (to_db_timestamp(start), to_db_timestamp(end)),
            ).fetchall()
        return [_row_to_email(row) for row in rows]

    def search_emails(self, query: str) -> list[Email]:
        """Case-insensitive substring match over subject, body, snippet and sender."""
        needle = query.lower()
        return [email for email in self.get_all_emails() if needle in email.search_text()]

    def get_count(self) -> int:
        with get_db_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM emails").fetchone()[0]

    def get_emails_needing_reclassification(self) -> list[Email]:
        """Regular emails that the current rules would place elsewhere."""
        needing = []
        for email in self.get_emails_by_category(EmailCategory.REGULAR):
            match = self.rules.classify_by_rules(
                email.subject, email.content_text(), email.sender.email, email.sender.name
            )
            if match.category not in ("bills", "all"):
                needing.append(email)
        return needing

    def get_stats(self) -> dict[str, Any]:
        emails = self.get_all_emails()
        by_category: dict[str, int] = {}
        by_provider: dict[str, int] = {}
        for email in emails:
            category = email.category.value if email.category else EmailCategory.REGULAR.value
            by_category[category] = by_category.get(category, 0) + 1
            by_provider[email.provider.value] = by_provider.get(email.provider.value, 0) + 1

        return {
            "total": len(emails),
            "by_category": by_category,
            "by_provider": by_provider,
            "unread": sum(1 for e in emails if not e.read),
        }

    # --- Archive ---

    def search_archive(
        self,
        query: str,
        max_results: int = ARCHIVE_SEARCH_MAX_RESULTS,
        years_back: int = ARCHIVE_SEARCH_YEARS_BACK,
    ) -> list[Email]:
        """Substring search over archived work emails, newest first."""
        cutoff = to_db_timestamp(_years_ago(datetime.now(UTC), years_back))
        needle = query.lower()

        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT payload, archived_at FROM emails_archive
                WHERE timestamp >= ?
                ORDER BY timestamp DESC
                """,
                (cutoff,),
            ).fetchall()

        results = []
        for row in rows:
            email = _row_to_email(row)
            if needle in email.search_text():
                results.append(email)
                if len(results) >= max_results:
                    break

        logger.info("Archive search found %d emails", len(results))
        return results

    def get_archive_count(self) -> int:
        with get_db_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM emails_archive").fetchone()[0]


email_database = EmailDatabase()
