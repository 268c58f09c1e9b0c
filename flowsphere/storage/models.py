"""
Domain models (Pydantic v2) for FlowSphere email triage.

Email content fields (subject, bodies, snippet) are redacted in repr so models
can be logged safely.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from hashlib import sha256
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _hash_value(value: str) -> str:
    digest = sha256(value.encode("utf-8")).hexdigest()
    return f"hash:{digest[:12]}"


class EmailProvider(str, Enum):
    GMAIL = "gmail"
    YAHOO = "yahoo"
    OUTLOOK = "outlook"
    ICLOUD = "icloud"


class EmailCategory(str, Enum):
    EMERGENCY = "emergency"
    SUBSCRIPTION = "subscription"
    IMPORTANT = "important"
    REGULAR = "regular"
    WORK = "work"
    PERSONAL = "personal"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RedactedModel(BaseModel):
    """Base model that hashes sensitive fields in repr."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)
    _redact_fields = {"subject", "body", "html_body", "snippet", "access_token", "refresh_token"}

    def redacted(self) -> dict[str, Any]:
        """Telemetry-safe dump."""
        data = self.model_dump(exclude_none=True, mode="json")
        for field in self._redact_fields:
            if field in data and isinstance(data[field], str) and data[field]:
                data[field] = _hash_value(data[field])
        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.redacted()})"


class EmailAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    name: str = ""


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    filename: str
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")
    size: int = 0


class AIAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    priority: Priority = Priority.MEDIUM
    summary: str = ""
    tags: list[str] = Field(default_factory=list)


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Email(RedactedModel):
    """A message fetched from a provider inbox."""

    id: str
    thread_id: str | None = None
    provider: EmailProvider
    sender: EmailAddress = Field(alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    html_body: str | None = None
    snippet: str = ""
    timestamp: datetime
    read: bool = False
    labels: list[str] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    category: EmailCategory | None = None
    ai_analysis: AIAnalysis | None = None
    archived_at: datetime | None = None

    @field_validator("timestamp", "archived_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value) if value is not None else None

    def content_text(self) -> str:
        """Body text, falling back to the snippet."""
        return self.body or self.snippet or ""

    def search_text(self) -> str:
        """Lowercased text used by substring search."""
        return " ".join(
            [self.subject, self.body, self.snippet, self.sender.name, self.sender.email]
        ).lower()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class EmailClassification(BaseModel):
    """Result of classifying a single email."""

    model_config = ConfigDict(frozen=True)

    category: EmailCategory = EmailCategory.REGULAR
    priority: Priority = Priority.MEDIUM
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    is_urgent: bool = False
    requires_action: bool = False
    suggested_actions: list[str] | None = None

    def to_analysis(self) -> AIAnalysis:
        return AIAnalysis(
            category=self.category.value,
            priority=self.priority,
            summary=self.summary,
            tags=list(self.tags),
        )


class EmailAccount(RedactedModel):
    """A connected mailbox with its OAuth tokens.

    ``expires_at`` is epoch milliseconds, matching what OAuth clients report.
    """

    id: str
    provider: EmailProvider
    email: str
    name: str = ""
    access_token: str
    refresh_token: str = ""
    expires_at: int = 0
    is_active: bool = True
    connected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class EmailAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: Email
    classification: AIAnalysis
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class WorkCategorizationSettings(BaseModel):
    """Work/personal preferences captured by the categorization setup wizard."""

    work_keywords: list[str] = Field(default_factory=list)
    work_domains: list[str] = Field(default_factory=list)
    personal_domains: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.work_keywords or self.work_domains or self.personal_domains)
