"""
Mail provider interface shared by the monitor and the API.

Only Gmail has an implementation; other providers in EmailProvider are
recognized but skipped by the monitor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from flowsphere.storage.models import Email, EmailAccount


@dataclass
class SearchOptions:
    query: str = ""
    sender: str = ""
    to: str = ""
    subject: str = ""
    # Dates are rendered as YYYY/MM/DD in the provider query
    after: datetime | None = None
    before: datetime | None = None
    has_attachment: bool = False
    is_unread: bool = False
    max_results: int = 50
    page_token: str | None = None


@dataclass
class SearchResult:
    emails: list[Email] = field(default_factory=list)
    next_page_token: str | None = None
    total_results: int = 0


@dataclass
class OutgoingAttachment:
    filename: str
    mime_type: str
    data: bytes


class MailProvider(Protocol):
    """Operations the monitor needs from a mailbox provider."""

    def refresh_access_token(self, account: EmailAccount) -> EmailAccount:
        """Return the account with a fresh access token.

        Raises:
            TokenRefreshError: With a reason describing why the refresh failed
        """
        ...

    def search_emails(self, account: EmailAccount, options: SearchOptions) -> SearchResult:
        ...

    def get_new_emails(self, account: EmailAccount, since: datetime | None = None) -> list[Email]:
        ...
