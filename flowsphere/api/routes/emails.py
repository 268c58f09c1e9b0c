"""Email index endpoints.

- GET  /api/emails - List emails (optionally by category)
- GET  /api/emails/search - Substring search over active emails
- GET  /api/emails/semantic-search - Synonym-expanded ranked search
- GET  /api/emails/stats - Counts by category/provider
- POST /api/emails - Store a batch (rules classification applied)
- POST /api/emails/{email_id}/read - Mark read (non-work emails are deleted)
- GET  /api/archive/search - Search archived work emails
- POST /api/classify - Classify one email
- POST /api/retention/cleanup - Apply the retention policy
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from flowsphere.api.models import ClassifyRequest, EmailBatch, RetentionRequest
from flowsphere.assistant.semantic_search import semantic_email_search
from flowsphere.classification.classifier import get_classifier
from flowsphere.config import (
    API_LIST_LIMIT_DEFAULT,
    API_LIST_LIMIT_MAX,
    ARCHIVE_SEARCH_MAX_RESULTS,
    ARCHIVE_SEARCH_YEARS_BACK,
)
from flowsphere.observability.telemetry import log_event
from flowsphere.runtime.gates import feature_gates
from flowsphere.storage.email_database import email_database
from flowsphere.storage.models import EmailCategory
from flowsphere.storage.retention import run_retention_cleanup

router = APIRouter(prefix="/api", tags=["emails"])


def _dump(emails: list[Any]) -> list[dict[str, Any]]:
    return [email.model_dump(mode="json", by_alias=True) for email in emails]


@router.get("/emails")
async def list_emails(
    category: EmailCategory | None = None,
    limit: int = Query(default=API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> dict[str, Any]:
    emails = (
        email_database.get_emails_by_category(category)
        if category
        else email_database.get_all_emails()
    )
    return {"emails": _dump(emails[:limit]), "count": len(emails)}


@router.get("/emails/search")
async def search_emails(
    q: str = Query(min_length=1, max_length=200),
    limit: int = Query(default=API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> dict[str, Any]:
    results = email_database.search_emails(q)
    log_event("api.emails.search", count=len(results))
    return {"emails": _dump(results[:limit]), "count": len(results)}


@router.get("/emails/semantic-search")
async def semantic_search(
    q: str = Query(default="", max_length=200),
    category: EmailCategory | None = None,
    unread_only: bool = False,
    limit: int = Query(default=API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> dict[str, Any]:
    result = semantic_email_search(q, category=category, unread_only=unread_only, limit=limit)
    return result.model_dump(mode="json", by_alias=True)


@router.get("/emails/stats")
async def email_stats() -> dict[str, Any]:
    stats = email_database.get_stats()
    stats["archived"] = email_database.get_archive_count()
    return stats


@router.post("/emails")
async def store_emails(batch: EmailBatch) -> dict[str, int]:
    """
    Side Effects:
        - Upserts rows in the emails table
    """
    stored = email_database.store_emails(batch.emails)
    return {"stored": stored}


@router.post("/emails/{email_id}/read")
async def mark_read(email_id: str) -> dict[str, Any]:
    """
    Side Effects:
        - Marks work emails read; deletes any other email
    """
    deleted, email = email_database.mark_email_as_read(email_id)
    if email is None:
        raise HTTPException(status_code=404, detail="Email not found")
    return {"deleted": deleted, "email": email.model_dump(mode="json", by_alias=True)}


@router.get("/archive/search")
async def search_archive(
    q: str = Query(min_length=1, max_length=200),
    max_results: int = Query(default=ARCHIVE_SEARCH_MAX_RESULTS, ge=1, le=API_LIST_LIMIT_MAX),
    years_back: int = Query(default=ARCHIVE_SEARCH_YEARS_BACK, ge=1, le=ARCHIVE_SEARCH_YEARS_BACK),
) -> dict[str, Any]:
    if not feature_gates.is_enabled("archive_search"):
        raise HTTPException(status_code=403, detail="Archive search is disabled")
    results = email_database.search_archive(q, max_results=max_results, years_back=years_back)
    return {"emails": _dump(results), "count": len(results)}


@router.post("/classify")
async def classify_email(request: ClassifyRequest) -> dict[str, Any]:
    classification = get_classifier().classify_email(request.email)
    return classification.model_dump(mode="json")


@router.post("/retention/cleanup")
async def retention_cleanup(request: RetentionRequest | None = None) -> dict[str, Any]:
    """
    Side Effects:
        - Archives/deletes rows per the retention policy unless dry_run
    """
    dry_run = request.dry_run if request else False
    return run_retention_cleanup(dry_run=dry_run)
