"""JSON extraction from free-form LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any

from flowsphere.errors import ClassificationError
from flowsphere.observability.logging import get_logger

logger = get_logger(__name__)

_FENCE_JSON = re.compile(r"```json\s*")
_FENCE = re.compile(r"```\s*")
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the first ``{...}`` block out of an LLM response.

    Handles common LLM JSON formatting issues:
    - Markdown code blocks
    - Prose before/after the object
    - Trailing commas

    Raises:
        ClassificationError: If no JSON object can be parsed
    """
    if not text:
        raise ClassificationError("Empty LLM response")

    text = _FENCE.sub("", _FENCE_JSON.sub("", text)).strip()

    match = _OBJECT.search(text)
    if not match:
        raise ClassificationError("LLM response contained no JSON object")

    candidate = match.group(0)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error (attempting repair): %s", e)
        repaired = re.sub(r",\s*([\}\]])", r"\1", candidate)
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError as repair_error:
            raise ClassificationError(f"Unparseable LLM JSON: {repair_error}") from repair_error
        logger.info("JSON repair succeeded (trailing commas removed)")

    if not isinstance(parsed, dict):
        raise ClassificationError("LLM JSON was not an object")
    return parsed
