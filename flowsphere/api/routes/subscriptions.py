"""Subscription analysis endpoint.

- GET /api/subscriptions - Extracted subscriptions, spend totals and upcoming bills
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from flowsphere.classification.subscription_extractor import (
    analyze_subscriptions,
    extract_subscriptions_from_emails,
)
from flowsphere.storage.email_database import email_database
from flowsphere.storage.models import EmailCategory

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("")
async def get_subscriptions() -> dict[str, Any]:
    """
    Side Effects:
        - May call the Groq API once per subscription sender
    """
    emails = email_database.get_emails_by_category(EmailCategory.SUBSCRIPTION)
    analysis = analyze_subscriptions(extract_subscriptions_from_emails(emails))
    return analysis.model_dump(mode="json")
