"""
Email retention policy.

Policy:
1. Non-work emails are deleted 7 days after they were received
2. Work emails move to the archive after 90 days
3. Archived work emails are purged after 5 years (1825 days)

Usage:
    # Run the cleanup (schedule daily via cron)
    flowsphere-retention
    flowsphere-retention --dry-run
"""

from __future__ import annotations

import argparse
from datetime import UTC, datetime, timedelta

from flowsphere.config import (
    RETENTION_ARCHIVE_DAYS,
    RETENTION_NON_WORK_DAYS,
    RETENTION_WORK_DAYS,
)
from flowsphere.infrastructure.database import db_transaction, init_database, retry_on_db_lock
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event

logger = get_logger(__name__)

EMAIL_COLUMNS = (
    "id, thread_id, provider, from_email, from_name, subject, category, "
    "timestamp, read, payload, stored_at"
)


def to_db_timestamp(value: datetime) -> str:
    """UTC ISO string with fixed precision so text comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds")


@retry_on_db_lock()
def run_retention_cleanup(dry_run: bool = False, now: datetime | None = None) -> dict[str, int | bool]:
    """
    Apply the retention policy to the active store and the archive.

    Args:
        dry_run: If True, only count what would change
        now: Reference time (defaults to the current UTC time)

    Returns:
        {"deleted": int, "archived": int, "archive_purged": int, "dry_run": bool}

    Side Effects:
        - Copies old work emails into emails_archive with archived_at
        - Deletes expired rows from emails and emails_archive
        - Emits retention.cleanup event
    """
    now = now or datetime.now(UTC)
    non_work_cutoff = to_db_timestamp(now - timedelta(days=RETENTION_NON_WORK_DAYS))
    work_cutoff = to_db_timestamp(now - timedelta(days=RETENTION_WORK_DAYS))
    archive_cutoff = to_db_timestamp(now - timedelta(days=RETENTION_ARCHIVE_DAYS))
    archived_at = to_db_timestamp(now)

    work_where = "category = 'work' AND timestamp < ?"
    non_work_where = "(category IS NULL OR category != 'work') AND timestamp < ?"

    with db_transaction() as conn:
        archived = conn.execute(
            f"SELECT COUNT(*) FROM emails WHERE {work_where}", (work_cutoff,)
        ).fetchone()[0]
        deleted = conn.execute(
            f"SELECT COUNT(*) FROM emails WHERE {non_work_where}", (non_work_cutoff,)
        ).fetchone()[0]
        purged = conn.execute(
            "SELECT COUNT(*) FROM emails_archive WHERE timestamp < ?", (archive_cutoff,)
        ).fetchone()[0]

        if not dry_run:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO emails_archive ({EMAIL_COLUMNS}, archived_at)
                SELECT {EMAIL_COLUMNS}, ? FROM emails WHERE {work_where}
                """,
                (archived_at, work_cutoff),
            )
            conn.execute(f"DELETE FROM emails WHERE {work_where}", (work_cutoff,))
            conn.execute(f"DELETE FROM emails WHERE {non_work_where}", (non_work_cutoff,))
            conn.execute("DELETE FROM emails_archive WHERE timestamp < ?", (archive_cutoff,))

    stats: dict[str, int | bool] = {
        "deleted": deleted,
        "archived": archived,
        "archive_purged": purged,
        "dry_run": dry_run,
    }

    prefix = "[DRY RUN] " if dry_run else ""
    if deleted or archived or purged:
        logger.info(
            "%sRetention cleanup: deleted %d old emails, archived %d work emails, purged %d archived",
            prefix,
            deleted,
            archived,
            purged,
        )
    if not dry_run:
        counter("retention.emails_deleted", deleted)
        counter("retention.emails_archived", archived)
    log_event("retention.cleanup", **stats)
    return stats


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Apply the FlowSphere email retention policy")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be deleted/archived without changing anything",
    )
    args = parser.parse_args(argv)

    init_database()
    stats = run_retention_cleanup(dry_run=args.dry_run)

    prefix = "[DRY RUN] " if args.dry_run else ""
    print(f"{prefix}Deleted:  {stats['deleted']} non-work emails")
    print(f"{prefix}Archived: {stats['archived']} work emails")
    print(f"{prefix}Purged:   {stats['archive_purged']} archived emails")


if __name__ == "__main__":
    main()
