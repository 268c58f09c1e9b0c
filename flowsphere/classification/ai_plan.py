"""
AI plan tiers and monthly usage limits for remote classification.

Tiers:
- free: rules-only (no AI)
- basic: 500 AI classifications/month
- pro: 5,000 AI classifications/month
- enterprise: unlimited
- byok: unlimited on the user's own provider keys

The plan lives in app_settings; every AI call is appended to ai_usage_log.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field

from flowsphere.config import AI_USAGE_LOG_MAX
from flowsphere.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event
from flowsphere.storage import settings_store

logger = get_logger(__name__)

PlanTier = Literal["free", "basic", "pro", "enterprise", "byok"]
ByokProvider = Literal["groq", "gemini", "openrouter", "openai", "deepseek"]

BYOK_PROVIDERS: tuple[ByokProvider, ...] = ("groq", "gemini", "openrouter", "openai", "deepseek")

PLAN_KEY = "ai_subscription"

# -1 means unlimited
MONTHLY_LIMITS: dict[str, int] = {
    "free": 0,
    "basic": 500,
    "pro": 5000,
    "enterprise": -1,
    "byok": -1,
}

PLAN_NAMES: dict[str, str] = {
    "free": "Free",
    "basic": "Basic",
    "pro": "Pro",
    "enterprise": "Enterprise",
    "byok": "Bring Your Own Key",
}

# Rough cost model used for the usage report
AVG_TOKENS_PER_CLASSIFICATION = 800
AVG_COST_PER_1K_TOKENS = 0.0002

# Serializes plan read-modify-write across managers and classifier threads
_PLAN_LOCK = threading.RLock()


def _next_reset(now: datetime) -> datetime:
    """First day of the next month (UTC midnight)."""
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=UTC)
    return datetime(now.year, now.month + 1, 1, tzinfo=UTC)


class UserPlan(BaseModel):
    tier: PlanTier = "free"
    ai_usage_this_month: int = 0
    ai_usage_reset_date: datetime = Field(default_factory=lambda: _next_reset(datetime.now(UTC)))
    byok_keys: dict[str, str] = Field(default_factory=dict)
    custom_rules_enabled: bool = False
    priority_support: bool = False


class AIAccess(NamedTuple):
    allowed: bool
    reason: str | None = None
    remaining: int | None = None


class AIPlanManager:
    """Reads and updates the persisted AI plan."""

    def _load(self) -> UserPlan:
        stored = settings_store.get_setting(PLAN_KEY)
        if isinstance(stored, dict):
            try:
                return UserPlan.model_validate(stored)
            except ValueError:
                logger.warning("Stored AI plan unreadable, falling back to free tier")
        return UserPlan()

    def _save(self, plan: UserPlan) -> None:
        settings_store.set_setting(PLAN_KEY, plan.model_dump(mode="json"))

    def get_plan(self) -> UserPlan:
        """
        Current plan, with the monthly counter reset when the reset date passed.

        Side Effects:
            - Persists the plan when the monthly counter is reset
        """
        with _PLAN_LOCK:
            plan = self._load()
            now = datetime.now(UTC)
            if now >= plan.ai_usage_reset_date:
                logger.info("Resetting monthly AI usage counter")
                plan = plan.model_copy(
                    update={"ai_usage_this_month": 0, "ai_usage_reset_date": _next_reset(now)}
                )
                self._save(plan)
        return plan

    def monthly_limit(self, plan: UserPlan | None = None) -> int:
        plan = plan or self.get_plan()
        return MONTHLY_LIMITS[plan.tier]

    def can_use_ai(self) -> AIAccess:
        plan = self.get_plan()
        limit = self.monthly_limit(plan)

        if plan.tier == "free":
            return AIAccess(
                False, "Free tier uses rules-only classification. Upgrade to Basic for AI."
            )

        if plan.tier == "byok":
            if not self.has_byok_keys(plan):
                return AIAccess(False, "Please configure your API keys in Settings → AI Keys")
            return AIAccess(True, remaining=-1)

        if limit == -1:
            return AIAccess(True, remaining=-1)

        remaining = limit - plan.ai_usage_this_month
        if remaining <= 0:
            reset_on = plan.ai_usage_reset_date.date().isoformat()
            return AIAccess(
                False, f"Monthly AI limit reached ({limit}). Resets on {reset_on}", 0
            )

        return AIAccess(True, remaining=remaining)

    def has_byok_keys(self, plan: UserPlan | None = None) -> bool:
        plan = plan or self.get_plan()
        return any(plan.byok_keys.get(name) for name in BYOK_PROVIDERS)

    def get_byok_key(self, provider: str) -> str | None:
        """BYOK key for ``provider``; None unless the tier is byok."""
        plan = self.get_plan()
        if plan.tier != "byok":
            return None
        return plan.byok_keys.get(provider) or None

    def set_byok_keys(self, keys: dict[str, str]) -> None:
        """
        Side Effects:
            - Persists the plan with the new keys
        """
        unknown = set(keys) - set(BYOK_PROVIDERS)
        if unknown:
            raise ValueError(f"Unknown BYOK providers: {sorted(unknown)}")
        with _PLAN_LOCK:
            plan = self.get_plan().model_copy(update={"byok_keys": dict(keys)})
            self._save(plan)
        logger.info("BYOK API keys updated for %s", sorted(k for k, v in keys.items() if v))

    def upgrade_tier(self, tier: PlanTier) -> UserPlan:
        """
        Side Effects:
            - Persists the plan
            - Emits ai_plan.tier_changed event
        """
        if tier not in MONTHLY_LIMITS:
            raise ValueError(f"Unknown plan tier: {tier}")
        with _PLAN_LOCK:
            plan = self.get_plan().model_copy(
                update={
                    "tier": tier,
                    "custom_rules_enabled": tier != "free",
                    "priority_support": tier == "enterprise",
                }
            )
            self._save(plan)
        log_event("ai_plan.tier_changed", tier=tier)
        return plan

    def record_usage(
        self, email_id: str, provider: str, tokens_used: int, classification: str
    ) -> None:
        """
        Record one AI classification.

        byok and enterprise calls are logged but not counted against a limit.

        Side Effects:
            - Increments the monthly counter in app_settings (limited tiers)
            - Inserts into ai_usage_log and trims it to the newest rows
        """
        with _PLAN_LOCK:
            plan = self.get_plan()
            if plan.tier not in ("byok", "enterprise"):
                self._save(
                    plan.model_copy(update={"ai_usage_this_month": plan.ai_usage_this_month + 1})
                )
        self._append_usage_log(email_id, provider, tokens_used, classification)
        counter("ai_plan.usage_recorded")

    @retry_on_db_lock()
    def _append_usage_log(
        self, email_id: str, provider: str, tokens_used: int, classification: str
    ) -> None:
        now = datetime.now(UTC).isoformat(timespec="milliseconds")
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO ai_usage_log (email_id, provider, tokens_used, classification, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (email_id, provider, tokens_used, classification, now),
            )
            conn.execute(
                """
                DELETE FROM ai_usage_log WHERE id NOT IN (
                    SELECT id FROM ai_usage_log ORDER BY id DESC LIMIT ?
                )
                """,
                (AI_USAGE_LOG_MAX,),
            )

    def get_recent_usage(self, limit: int = 50) -> list[dict[str, Any]]:
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT email_id, provider, tokens_used, classification, created_at
                FROM ai_usage_log ORDER BY id DESC LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [dict(row) for row in reversed(rows)]

    def get_usage_stats(self) -> dict[str, Any]:
        plan = self.get_plan()
        limit = self.monthly_limit(plan)
        used = plan.ai_usage_this_month
        cost = used * AVG_TOKENS_PER_CLASSIFICATION * AVG_COST_PER_1K_TOKENS / 1000

        if limit > 0:
            percent_used = round(used / limit * 100)
        else:
            percent_used = 0

        return {
            "tier": plan.tier,
            "plan_name": PLAN_NAMES[plan.tier],
            "used_this_month": used,
            "limit_this_month": None if limit == -1 else limit,
            "percent_used": percent_used,
            "recent_usage": self.get_recent_usage(),
            "cost_estimate": round(cost, 2),
        }

    def get_usage_warning(self) -> str | None:
        plan = self.get_plan()
        limit = self.monthly_limit(plan)
        # Unlimited and rules-only tiers never warn
        if limit <= 0:
            return None

        used = plan.ai_usage_this_month
        percent_used = used / limit * 100
        if percent_used >= 100:
            return "You've reached your monthly AI limit. Upgrade for more."
        if percent_used >= 90:
            return f"You've used 90% of your monthly AI limit ({used}/{limit})"
        if percent_used >= 75:
            return "You've used 75% of your monthly AI limit"
        return None


ai_plan_manager = AIPlanManager()
