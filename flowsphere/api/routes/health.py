"""Health check endpoints for the FlowSphere API.

- /health - Service health including LLM provider key presence
- /health/db - Database connection pool health
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from flowsphere.config import APP_VERSION
from flowsphere.infrastructure.env import get_optional_env
from flowsphere.runtime.gates import feature_gates

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status and provider readiness (checks key presence only)."""
    providers = {
        "groq": bool(get_optional_env("GROQ_API_KEY")),
        "gemini": bool(get_optional_env("GEMINI_API_KEY")),
        "openrouter": bool(get_optional_env("OPENROUTER_API_KEY")),
    }
    return {
        "status": "healthy",
        "service": "FlowSphere API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {"ready": any(providers.values()), "providers": providers},
        "gmail_oauth": bool(get_optional_env("GOOGLE_CLIENT_ID")),
        "feature_gates": feature_gates.get_all_states(),
    }


@router.get("/health/db")
async def database_health() -> dict[str, Any]:
    """
    Connection pool health metrics. Degraded above 80% usage.
    """
    from flowsphere.infrastructure.database import get_pool_stats

    stats = get_pool_stats()
    usage_percent = stats["usage_percent"]

    return {
        "status": "degraded" if usage_percent > 80 else "healthy",
        "pool": stats,
        "warning": "Pool usage high" if usage_percent > 80 else None,
    }
