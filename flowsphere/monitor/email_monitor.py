"""
Email monitor - polls connected accounts, classifies new mail, raises alerts.

Flow per check (every MONITOR_CHECK_INTERVAL_SECONDS):
1. Refresh the account token if it expires within 5 minutes
2. Fetch emails since the last check (24h window on the first check)
3. Classify, store, then create alerts for each new email
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from flowsphere.classification.classifier import EmailAIClassifier, get_classifier
from flowsphere.config import (
    MONITOR_CHECK_INTERVAL_SECONDS,
    MONITOR_INITIAL_LOOKBACK_HOURS,
    MONITOR_INITIAL_SYNC_BATCH_SIZE,
    MONITOR_INITIAL_SYNC_DAYS,
    MONITOR_MAX_STORED_ALERTS,
    MONITOR_TOKEN_REFRESH_BUFFER_SECONDS,
)
from flowsphere.errors import ProviderError, TokenRefreshError
from flowsphere.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowsphere.monitor.accounts import EmailAccountStore, account_store
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.providers.base import MailProvider
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.email_database import EmailDatabase, email_database
from flowsphere.storage.models import (
    AIAnalysis,
    Email,
    EmailAccount,
    EmailAlert,
    EmailCategory,
    EmailProvider,
    Priority,
)
from flowsphere.utils.redaction import redact, redact_subject

logger = get_logger(__name__)

# (level, title, description); level is "success" | "warning" | "error"
Notifier = Callable[[str, str, str], None]

_LOG_LEVELS = {"success": 20, "info": 20, "warning": 30, "error": 40}


def log_notifier(level: str, title: str, description: str = "") -> None:
    logger.log(_LOG_LEVELS.get(level, 20), "[notify:%s] %s %s", level, title, description)


_REFRESH_MESSAGES = {
    "invalid_grant": (
        "Gmail refresh token expired",
        "Please reconnect your Gmail account in Settings -> Email",
    ),
    "invalid_client": (
        "Gmail API configuration error",
        "Please check your Google API credentials",
    ),
}


class EmailMonitor:
    """
    Background poller for all active accounts.

    Args:
        providers: Mail provider per EmailProvider; accounts on other providers are skipped
        classifier: Classifier applied to every new email
        database: Email store for classified emails
        accounts: Account store (token refreshes are written back here)
        notifier: Receives user-facing notifications
        interval: Seconds between checks
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        providers: dict[EmailProvider, MailProvider] | None = None,
        classifier: EmailAIClassifier | None = None,
        database: EmailDatabase = email_database,
        accounts: EmailAccountStore = account_store,
        notifier: Notifier = log_notifier,
        interval: float = MONITOR_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if providers is None:
            from flowsphere.providers.gmail import GmailProvider

            providers = {EmailProvider.GMAIL: GmailProvider()}
        self.providers = providers
        self.classifier = classifier or get_classifier()
        self.database = database
        self.accounts = accounts
        self.notifier = notifier
        self.interval = interval
        self.clock = clock

        self.last_check_times: dict[str, datetime] = {}
        self._on_new_email: Callable[[EmailAlert], None] | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    # --- Lifecycle ---

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, on_new_email: Callable[[EmailAlert], None] | None = None) -> None:
        """
        Start polling in a daemon thread. No-op if already running.

        Side Effects:
            - Spawns a background thread that runs check_new_emails()
        """
        if self.is_running:
            logger.info("Email monitor already running")
            return

        self._on_new_email = on_new_email
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="email-monitor", daemon=True)
        self._thread.start()
        logger.info("Email monitor started (check interval: %ss)", self.interval)

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=self.interval + 5)
        self._thread = None
        logger.info("Email monitor stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_new_emails()
            except Exception as e:
                logger.error("Email monitor check failed: %s", e)
            self._stop_event.wait(self.interval)

    def _notify(self, level: str, title: str, description: str = "") -> None:
        if not feature_gates.is_enabled("monitor_toasts"):
            return
        try:
            self.notifier(level, title, description)
        except Exception as e:
            logger.warning("Notifier failed: %s", e)

    # --- Checking ---

    def check_new_emails(self) -> int:
        """
        Check every active account once.

        Returns:
            Number of new emails processed across accounts
        """
        total = 0
        for account in self.accounts.get_active_accounts():
            provider = self.providers.get(account.provider)
            if provider is None:
                logger.info("Skipping %s account: provider not supported yet", account.provider.value)
                continue
            try:
                total += self._check_account(account, provider)
            except Exception as e:
                logger.error("Failed to check %s account: %s", account.provider.value, e)
                counter("monitor.account_errors")
        return total

    def _ensure_fresh_token(
        self, account: EmailAccount, provider: MailProvider
    ) -> EmailAccount | None:
        now_ms = int(self.clock().timestamp() * 1000)
        if now_ms < account.expires_at - MONITOR_TOKEN_REFRESH_BUFFER_SECONDS * 1000:
            return account

        expired = now_ms >= account.expires_at
        logger.info("Access token %s, refreshing", "expired" if expired else "expiring soon")

        if not account.refresh_token:
            logger.error("No refresh token available - need to reconnect")
            self._notify(
                "error",
                "Gmail session expired - please reconnect your account",
                "Go to Settings -> Email to reconnect",
            )
            return None

        try:
            refreshed = provider.refresh_access_token(account)
        except TokenRefreshError as e:
            logger.error("Failed to refresh token: %s", e.reason)
            title, description = _REFRESH_MESSAGES.get(
                e.reason,
                ("Gmail access expired", "Please reconnect your account in Settings -> Email"),
            )
            self._notify("error", title, description)
            return None

        self.accounts.save_account(refreshed)
        self._notify("success", "Gmail access token refreshed automatically")
        return refreshed

    def _classify(self, email: Email) -> Email:
        try:
            classification = self.classifier.classify_email(email)
        except Exception as e:
            logger.error("Failed to classify email %s: %s", redact_subject(email.subject), e)
            return email
        return email.model_copy(
            update={
                "category": classification.category,
                "ai_analysis": classification.to_analysis(),
            }
        )

    def _check_account(self, account: EmailAccount, provider: MailProvider) -> int:
        logger.info("Checking %s account: %s", account.provider.value, redact(account.email))

        fresh = self._ensure_fresh_token(account, provider)
        if fresh is None:
            return 0
        account = fresh

        last_check = self.last_check_times.get(account.id)
        since = last_check or self.clock() - timedelta(hours=MONITOR_INITIAL_LOOKBACK_HOURS)

        try:
            fetched = provider.get_new_emails(account, since)
        except ProviderError as e:
            if e.status_code == 401:
                self._notify("error", "Gmail authentication expired - please reconnect")
            elif e.status_code == 403:
                self._notify("error", "Gmail API access denied - check permissions")
            raise

        recent = [email for email in fetched if email.timestamp > since]
        logger.info("Fetched %d emails, %d newer than last check", len(fetched), len(recent))

        classified = [self._classify(email) for email in recent]
        if classified:
            try:
                self.database.store_emails(classified)
            except Exception as e:
                logger.error("Failed to store emails in database: %s", e)
            for email in classified:
                self._process_new_email(email)

        if fetched and last_check is None:
            # Keep the older part of the first window for search without clobbering classified rows
            recent_ids = {email.id for email in recent}
            older = [email for email in fetched if email.id not in recent_ids]
            if older:
                logger.info("Initial sync: storing %d emails for search", len(older))
                try:
                    self.database.store_emails(older)
                except Exception as e:
                    logger.error("Failed to store emails for search: %s", e)

        self.last_check_times[account.id] = self.clock()
        counter("monitor.new_emails", len(classified))
        return len(classified)

    # --- Alerts ---

    def _process_new_email(self, email: Email) -> None:
        classification = email.ai_analysis or AIAnalysis(
            category=(email.category or EmailCategory.REGULAR).value,
            priority=Priority.MEDIUM,
            summary=email.subject,
        )
        alert = EmailAlert(email=email, classification=classification, timestamp=self.clock())

        try:
            self._store_alert(alert)
        except Exception as e:
            logger.error("Failed to store alert: %s", e)

        if self._on_new_email is not None:
            try:
                self._on_new_email(alert)
            except Exception as e:
                logger.warning("on_new_email callback failed: %s", e)

        description = f"From: {email.sender.name}\n{classification.summary}"
        if email.category == EmailCategory.EMERGENCY or classification.priority == Priority.HIGH:
            counter("monitor.alerts.emergency")
            self._notify("error", "Emergency Email", description)
        elif email.category in (EmailCategory.IMPORTANT, EmailCategory.WORK):
            counter("monitor.alerts.important")
            self._notify("warning", "Important Email", description)

    @retry_on_db_lock()
    def _store_alert(self, alert: EmailAlert) -> None:
        with db_transaction() as conn:
            conn.execute(
                "INSERT INTO email_alerts (email_id, payload, created_at) VALUES (?, ?, ?)",
                (alert.email.id, alert.model_dump_json(by_alias=True), alert.timestamp.isoformat()),
            )
            conn.execute(
                """
                DELETE FROM email_alerts WHERE id NOT IN (
                    SELECT id FROM email_alerts ORDER BY id DESC LIMIT ?
                )
                """,
                (MONITOR_MAX_STORED_ALERTS,),
            )

    def get_stored_alerts(self) -> list[EmailAlert]:
        """Newest first."""
        with get_db_connection() as conn:
            rows = conn.execute("SELECT payload FROM email_alerts ORDER BY id DESC").fetchall()
        return [EmailAlert.model_validate_json(row["payload"]) for row in rows]

    @retry_on_db_lock()
    def clear_alerts(self) -> None:
        with db_transaction() as conn:
            conn.execute("DELETE FROM email_alerts")

    # --- Sync ---

    def perform_initial_sync(self) -> int:
        """
        Fetch, classify and store the last 7 days for every active account.

        Returns:
            Number of emails stored
        """
        logger.info("Starting initial email sync")
        since = self.clock() - timedelta(days=MONITOR_INITIAL_SYNC_DAYS)
        total = 0

        for account in self.accounts.get_active_accounts():
            provider = self.providers.get(account.provider)
            if provider is None:
                continue
            try:
                emails = provider.get_new_emails(account, since)
                classified: list[Email] = []
                for start in range(0, len(emails), MONITOR_INITIAL_SYNC_BATCH_SIZE):
                    batch = emails[start : start + MONITOR_INITIAL_SYNC_BATCH_SIZE]
                    classified.extend(self._classify(email) for email in batch)
                    logger.info("Classified %d/%d emails", len(classified), len(emails))

                total += self.database.store_emails(classified)
                self._notify("success", f"Synced {len(emails)} emails from {account.email}")
            except Exception as e:
                logger.error("Failed to sync %s: %s", redact(account.email), e)
                self._notify("error", f"Failed to sync {account.email}")

        log_event("monitor.initial_sync", stored=total)
        return total

    def reclassify_all_emails(self) -> int:
        count = self.database.reclassify_all_emails()
        logger.info("Reclassified %d emails", count)
        return count


_monitor: EmailMonitor | None = None


def get_email_monitor() -> EmailMonitor:
    """Process-wide monitor instance."""
    global _monitor
    if _monitor is None:
        _monitor = EmailMonitor()
    return _monitor
