"""Email assistant endpoints.

- POST /api/assistant/ask - One conversational turn
- GET  /api/assistant/overview - Greeting with unread/urgent counts
- GET  /api/assistant/quick-actions - Canned queries
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from flowsphere.api.models import AskRequest
from flowsphere.assistant.email_assistant import QUICK_ACTIONS, email_assistant

router = APIRouter(prefix="/api/assistant", tags=["assistant"])


@router.post("/ask")
async def ask(request: AskRequest) -> dict[str, Any]:
    """
    Side Effects:
        - May call the Groq API
    """
    response = email_assistant.ask(
        request.query,
        category=request.category,
        time_range=request.time_range,
        email_context=request.email_context,
        history=request.history,
    )
    return response.model_dump(mode="json", by_alias=True)


@router.get("/overview")
async def overview() -> dict[str, str]:
    return {"overview": email_assistant.get_email_overview()}


@router.get("/quick-actions")
async def quick_actions() -> list[dict[str, str]]:
    return QUICK_ACTIONS
