"""Classification rules endpoints.

- GET    /api/rules - Current rules and wizard state
- PUT    /api/rules/wizard - Save categorization wizard settings
- PUT    /api/rules/{category} - Update one category's rule
- POST   /api/rules/{category}/keywords - Add a keyword
- DELETE /api/rules/{category}/keywords/{keyword} - Remove a keyword
- POST   /api/rules/reset - Reset to the shipped defaults
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from flowsphere.api.models import KeywordRequest, RuleUpdate, WizardSettingsRequest
from flowsphere.classification.rules_store import RuleCategory, rules_store
from flowsphere.observability.telemetry import log_event

router = APIRouter(prefix="/api/rules", tags=["rules"])


def _rules_payload() -> dict[str, Any]:
    return {
        "rules": {name: rule.model_dump() for name, rule in rules_store.get_rules().items()},
        "setup_complete": rules_store.is_setup_complete(),
        "wizard": rules_store.get_wizard_settings().model_dump(),
    }


@router.get("")
async def get_rules() -> dict[str, Any]:
    return _rules_payload()


@router.put("/wizard")
async def save_wizard(request: WizardSettingsRequest) -> dict[str, Any]:
    """
    Side Effects:
        - Writes wizard settings to app_settings
    """
    rules_store.save_wizard_settings(request.settings, complete=request.complete)
    log_event("api.rules.wizard_saved", complete=request.complete)
    return _rules_payload()


@router.post("/reset")
async def reset_rules() -> dict[str, Any]:
    rules_store.reset_to_defaults()
    log_event("api.rules.reset")
    return _rules_payload()


@router.put("/{category}")
async def update_rule(category: RuleCategory, update: RuleUpdate) -> dict[str, Any]:
    rule = rules_store.update_category_rules(category, **update.updates())
    return {"category": category, "rule": rule.model_dump()}


@router.post("/{category}/keywords")
async def add_keyword(category: RuleCategory, request: KeywordRequest) -> dict[str, Any]:
    rules_store.add_keyword(category, request.keyword)
    return {"category": category, "rule": rules_store.get_rules()[category].model_dump()}


@router.delete("/{category}/keywords/{keyword}")
async def remove_keyword(category: RuleCategory, keyword: str) -> dict[str, Any]:
    rules_store.remove_keyword(category, keyword)
    return {"category": category, "rule": rules_store.get_rules()[category].model_dump()}
