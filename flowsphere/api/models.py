"""Pydantic request/response models for the FlowSphere API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from flowsphere.assistant.email_assistant import ConversationMessage
from flowsphere.assistant.intent import TimeFilter
from flowsphere.config import API_BATCH_SIZE_MAX
from flowsphere.storage.models import Email, WorkCategorizationSettings


class EmailBatch(BaseModel):
    emails: list[Email]

    @field_validator("emails")
    @classmethod
    def validate_batch_size(cls, v: list[Email]) -> list[Email]:
        if len(v) > API_BATCH_SIZE_MAX:
            raise ValueError(f"Batch too large: {len(v)} > {API_BATCH_SIZE_MAX}")
        return v


class ClassifyRequest(BaseModel):
    email: Email


class RuleUpdate(BaseModel):
    keywords: list[str] | None = None
    sender_emails: list[str] | None = Field(default=None, alias="senderEmails")
    sender_domains: list[str] | None = Field(default=None, alias="senderDomains")
    enabled: bool | None = None

    model_config = {"populate_by_name": True}

    def updates(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


class KeywordRequest(BaseModel):
    keyword: str = Field(min_length=1, max_length=200)


class WizardSettingsRequest(BaseModel):
    settings: WorkCategorizationSettings
    complete: bool = True


class AskRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    category: str | None = None
    time_range: TimeFilter | None = None
    email_context: Email | None = None
    history: list[ConversationMessage] = Field(default_factory=list)


class RetentionRequest(BaseModel):
    dry_run: bool = False
