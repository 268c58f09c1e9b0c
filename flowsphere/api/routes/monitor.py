"""Email monitor alert endpoints.

- GET    /api/monitor/alerts - Stored alerts, newest first
- DELETE /api/monitor/alerts - Clear stored alerts
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from flowsphere.monitor.email_monitor import get_email_monitor

router = APIRouter(prefix="/api/monitor", tags=["monitor"])


@router.get("/alerts")
async def get_alerts() -> dict[str, Any]:
    alerts = get_email_monitor().get_stored_alerts()
    return {
        "alerts": [alert.model_dump(mode="json", by_alias=True) for alert in alerts],
        "count": len(alerts),
    }


@router.delete("/alerts")
async def clear_alerts() -> dict[str, bool]:
    get_email_monitor().clear_alerts()
    return {"cleared": True}
