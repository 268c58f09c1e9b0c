"""Gmail provider built on google-auth and the Gmail API client

Handles:
- OAuth2 authorization URL and code exchange (client secret stays server-side)
- Access token refresh with classified failure reasons
- Message search and parsing into Email models
- Sending and replying (MIME, base64url)
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from flowsphere.config import GMAIL_MAX_RESULTS, MONITOR_INITIAL_LOOKBACK_HOURS
from flowsphere.errors import ProviderError, TokenRefreshError
from flowsphere.infrastructure.env import get_optional_env
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.providers.base import OutgoingAttachment, SearchOptions, SearchResult
from flowsphere.storage.models import Email, EmailAccount, EmailAddress, EmailProvider
from flowsphere.utils.email import parse_address

logger = get_logger(__name__)

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        logger.warning("Undecodable Gmail body part")
        return ""


def _extract_body(payload: dict[str, Any]) -> str:
    """Top-level body data, else the first text/plain part."""
    data = (payload.get("body") or {}).get("data")
    if data:
        return _decode_base64url(data)

    for part in payload.get("parts") or []:
        part_data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and part_data:
            return _decode_base64url(part_data)
    return ""


def parse_gmail_message(message: dict[str, Any]) -> Email:
    """Map a Gmail API ``format=full`` message to an Email."""
    payload = message.get("payload") or {}
    headers = {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers", [])}

    from_name, from_email = parse_address(headers.get("from", ""))
    to_header = headers.get("to", "")
    label_ids = message.get("labelIds") or []
    internal_ms = int(message.get("internalDate") or 0)

    return Email(
        id=message["id"],
        thread_id=message.get("threadId"),
        provider=EmailProvider.GMAIL,
        sender=EmailAddress(email=from_email, name=from_name),
        to=[EmailAddress(email=to_header)] if to_header else [],
        subject=headers.get("subject", ""),
        body=_extract_body(payload),
        snippet=message.get("snippet", ""),
        timestamp=datetime.fromtimestamp(internal_ms / 1000, tz=UTC),
        read="UNREAD" not in label_ids,
        labels=label_ids,
    )


def build_search_query(options: SearchOptions) -> str:
    parts: list[str] = []
    if options.query:
        parts.append(options.query)
    if options.sender:
        parts.append(f"from:{options.sender}")
    if options.to:
        parts.append(f"to:{options.to}")
    if options.subject:
        parts.append(f"subject:{options.subject}")
    if options.after:
        parts.append(f"after:{options.after.strftime('%Y/%m/%d')}")
    if options.before:
        parts.append(f"before:{options.before.strftime('%Y/%m/%d')}")
    if options.has_attachment:
        parts.append("has:attachment")
    if options.is_unread:
        parts.append("is:unread")
    return " ".join(parts)


def _refresh_reason(error: Exception) -> str:
    text = str(error).lower()
    if "invalid_grant" in text:
        return "invalid_grant"
    if "invalid_client" in text:
        return "invalid_client"
    return "unknown"


class GmailProvider:
    """
    Gmail API access for connected accounts.

    Args:
        client_id: OAuth client id (defaults to GOOGLE_CLIENT_ID)
        client_secret: OAuth client secret (defaults to GOOGLE_CLIENT_SECRET)
        redirect_uri: OAuth redirect (defaults to GOOGLE_REDIRECT_URI)
        service_factory: Builds a Gmail API resource from credentials (tests inject fakes)
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        service_factory: Callable[[Credentials], Any] | None = None,
    ) -> None:
        self.client_id = client_id if client_id is not None else get_optional_env("GOOGLE_CLIENT_ID")
        self.client_secret = (
            client_secret if client_secret is not None else get_optional_env("GOOGLE_CLIENT_SECRET")
        )
        self.redirect_uri = redirect_uri or get_optional_env(
            "GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/gmail/callback"
        )
        self._service_factory = service_factory or (
            lambda creds: build("gmail", "v1", credentials=creds, cache_discovery=False)
        )

    # --- OAuth ---

    def _client_config(self) -> dict[str, Any]:
        if not self.client_id:
            raise ProviderError("gmail", "OAuth not configured - missing client ID")
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }

    def _flow(self, state: str | None = None) -> Flow:
        return Flow.from_client_config(
            self._client_config(),
            scopes=GMAIL_SCOPES,
            redirect_uri=self.redirect_uri,
            state=state,
        )

    def build_auth_url(self) -> tuple[str, str]:
        """
        Returns:
            (authorization_url, state) - the caller keeps state for CSRF checks
        """
        auth_url, state = self._flow().authorization_url(access_type="offline", prompt="consent")
        logger.info("Generated Gmail OAuth authorization URL")
        return auth_url, state

    def exchange_code_for_tokens(self, code: str, state: str | None = None) -> dict[str, Any]:
        """
        Exchange an authorization code.

        Returns:
            {"access_token", "refresh_token", "expires_at"} (expires_at in epoch ms)

        Raises:
            ProviderError: If the exchange fails
        """
        flow = self._flow(state)
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error("Failed to exchange authorization code: %s", e)
            raise ProviderError("gmail", f"Token exchange failed: {e}") from e

        credentials = flow.credentials
        counter("gmail.oauth.code_exchanged")
        return {
            "access_token": credentials.token,
            "refresh_token": credentials.refresh_token or "",
            "expires_at": self._expiry_ms(credentials),
        }

    @staticmethod
    def _expiry_ms(credentials: Credentials) -> int:
        expiry = credentials.expiry
        if expiry is None:
            expiry = datetime.now(UTC) + timedelta(hours=1)
        elif expiry.tzinfo is None:
            # google-auth reports naive UTC
            expiry = expiry.replace(tzinfo=UTC)
        return int(expiry.timestamp() * 1000)

    def _credentials(self, account: EmailAccount) -> Credentials:
        return Credentials(
            token=account.access_token,
            refresh_token=account.refresh_token or None,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=GMAIL_SCOPES,
        )

    def refresh_access_token(self, account: EmailAccount) -> EmailAccount:
        """
        Refresh the account's access token.

        Raises:
            TokenRefreshError: reason is missing_refresh_token, invalid_grant,
                invalid_client or unknown

        Side Effects:
            - Calls Google's token endpoint
            - Emits gmail.token_refresh.* counters
        """
        if not account.refresh_token:
            raise TokenRefreshError("missing_refresh_token", "No refresh token available")

        credentials = self._credentials(account)
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            reason = _refresh_reason(e)
            counter(f"gmail.token_refresh.{reason}")
            logger.error("Gmail token refresh failed: %s", reason)
            raise TokenRefreshError(reason, "Failed to refresh token") from e
        except Exception as e:
            counter("gmail.token_refresh.unknown")
            raise TokenRefreshError("unknown", str(e)) from e

        counter("gmail.token_refresh.success")
        return account.model_copy(
            update={
                "access_token": credentials.token,
                "expires_at": self._expiry_ms(credentials),
            }
        )

    # --- Reading ---

    def _service(self, account: EmailAccount) -> Any:
        return self._service_factory(self._credentials(account))

    def search_emails(
        self, account: EmailAccount, options: SearchOptions, _retried: bool = False
    ) -> SearchResult:
        """
        Search the mailbox and fetch full messages for each hit.

        A 401 triggers one token refresh and retry.

        Raises:
            ProviderError: On Gmail API errors other than a recoverable 401
            TokenRefreshError: If the 401 refresh fails
        """
        service = self._service(account)
        params: dict[str, Any] = {
            "userId": "me",
            "q": build_search_query(options),
            "maxResults": options.max_results,
        }
        if options.page_token:
            params["pageToken"] = options.page_token

        try:
            data = service.users().messages().list(**params).execute()
        except HttpError as e:
            if e.resp.status == 401 and not _retried:
                refreshed = self.refresh_access_token(account)
                return self.search_emails(refreshed, options, _retried=True)
            log_event("gmail.search.error", status=e.resp.status)
            raise ProviderError("gmail", "Failed to search emails", e.resp.status) from e

        emails: list[Email] = []
        for ref in (data.get("messages") or [])[: options.max_results]:
            try:
                message = (
                    service.users()
                    .messages()
                    .get(userId="me", id=ref["id"], format="full")
                    .execute()
                )
                emails.append(parse_gmail_message(message))
            except (HttpError, KeyError, ValueError) as e:
                logger.warning("Failed to fetch Gmail message: %s", e)

        counter("gmail.messages_fetched", len(emails))
        return SearchResult(
            emails=emails,
            next_page_token=data.get("nextPageToken"),
            total_results=data.get("resultSizeEstimate", 0),
        )

    def get_new_emails(self, account: EmailAccount, since: datetime | None = None) -> list[Email]:
        """Emails received on or after the day of ``since`` (default: last 24h)."""
        after = since or datetime.now(UTC) - timedelta(hours=MONITOR_INITIAL_LOOKBACK_HOURS)
        result = self.search_emails(
            account, SearchOptions(after=after, max_results=GMAIL_MAX_RESULTS)
        )
        return result.emails

    # --- Sending ---

    def send_email(
        self,
        account: EmailAccount,
        to: list[str],
        subject: str,
        body: str,
        html: str | None = None,
        attachments: list[OutgoingAttachment] | None = None,
        reply_to_message_id: str | None = None,
        thread_id: str | None = None,
    ) -> dict[str, str]:
        """
        Send a message from the account.

        Returns:
            {"id": ..., "threadId": ...}

        Raises:
            ProviderError: If Gmail rejects the message
        """
        message = MIMEMultipart("mixed") if attachments else MIMEText(html or body, "html", "utf-8")
        if attachments:
            message.attach(MIMEText(html or body, "html", "utf-8"))
            for attachment in attachments:
                maintype, _, subtype = attachment.mime_type.partition("/")
                part = MIMEBase(maintype or "application", subtype or "octet-stream")
                part.set_payload(attachment.data)
                encoders.encode_base64(part)
                part.add_header(
                    "Content-Disposition", "attachment", filename=attachment.filename
                )
                message.attach(part)

        message["To"] = ", ".join(to)
        message["From"] = "me"
        message["Subject"] = subject
        if reply_to_message_id:
            message["In-Reply-To"] = reply_to_message_id
            message["References"] = reply_to_message_id

        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")
        request_body: dict[str, str] = {"raw": raw}
        if thread_id:
            request_body["threadId"] = thread_id

        try:
            result = (
                self._service(account)
                .users()
                .messages()
                .send(userId="me", body=request_body)
                .execute()
            )
        except HttpError as e:
            logger.error("Gmail send failed: HTTP %s", e.resp.status)
            raise ProviderError("gmail", "Failed to send email", e.resp.status) from e

        counter("gmail.messages_sent")
        return {"id": result.get("id", ""), "threadId": result.get("threadId", "")}

    def reply_to_email(
        self,
        account: EmailAccount,
        original: Email,
        reply_body: str,
        attachments: list[OutgoingAttachment] | None = None,
    ) -> dict[str, str]:
        """Reply in-thread to the original sender, prefixing "Re:" once."""
        subject = original.subject if original.subject.startswith("Re:") else f"Re: {original.subject}"
        return self.send_email(
            account,
            to=[original.sender.email],
            subject=subject,
            body=reply_body,
            html=reply_body,
            attachments=attachments,
            reply_to_message_id=original.id,
            thread_id=original.thread_id,
        )
