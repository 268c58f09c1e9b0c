"""Connected mailbox accounts stored in the email_accounts table."""

from __future__ import annotations

from datetime import UTC, datetime

from flowsphere.errors import AccountNotFoundError
from flowsphere.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowsphere.observability.logging import get_logger
from flowsphere.storage.models import EmailAccount
from flowsphere.utils.redaction import redact

logger = get_logger(__name__)


class EmailAccountStore:
    """CRUD for connected accounts. Tokens live only in the JSON payload."""

    def get_accounts(self) -> list[EmailAccount]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT payload FROM email_accounts ORDER BY updated_at"
            ).fetchall()
        return [EmailAccount.model_validate_json(row["payload"]) for row in rows]

    def get_account(self, account_id: str) -> EmailAccount:
        """
        Raises:
            AccountNotFoundError: If no account has this id
        """
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT payload FROM email_accounts WHERE id = ?", (account_id,)
            ).fetchone()
        if row is None:
            raise AccountNotFoundError(f"Email account not found: {account_id}")
        return EmailAccount.model_validate_json(row["payload"])

    def get_active_accounts(self) -> list[EmailAccount]:
        return [account for account in self.get_accounts() if account.is_active]

    @retry_on_db_lock()
    def save_account(self, account: EmailAccount) -> None:
        """
        Insert or replace an account by id.

        Side Effects:
            - Writes to email_accounts
        """
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO email_accounts (id, provider, email, is_active, payload, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    provider = excluded.provider,
                    email = excluded.email,
                    is_active = excluded.is_active,
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (
                    account.id,
                    account.provider.value,
                    account.email,
                    int(account.is_active),
                    account.model_dump_json(),
                    datetime.now(UTC).isoformat(),
                ),
            )
        logger.info("Saved %s account %s", account.provider.value, redact(account.email))

    @retry_on_db_lock()
    def remove_account(self, account_id: str) -> bool:
        """Returns True when a row was deleted."""
        with db_transaction() as conn:
            cursor = conn.execute("DELETE FROM email_accounts WHERE id = ?", (account_id,))
            removed = cursor.rowcount > 0
        if removed:
            logger.info("Removed email account %s", account_id)
        return removed


account_store = EmailAccountStore()
