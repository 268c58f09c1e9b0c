"""Groq chat-completions client (OpenAI-compatible API).

Used by the assistant and by subscription verification; classification goes
through the multi-provider chain in flowsphere.classification.providers.
"""

from __future__ import annotations

from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from flowsphere.config import GROQ_ENDPOINT, GROQ_MODEL, LLM_MAX_RETRIES, LLM_TIMEOUT_SECONDS
from flowsphere.errors import ProviderError
from flowsphere.infrastructure.env import get_optional_env
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, time_block

logger = get_logger(__name__)


def get_groq_api_key() -> str:
    return get_optional_env("GROQ_API_KEY")


def is_groq_configured() -> bool:
    return bool(get_groq_api_key())


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def groq_chat(
    messages: list[dict[str, str]],
    model: str = GROQ_MODEL,
    temperature: float = 0.6,
    max_tokens: int = 2048,
    api_key: str | None = None,
) -> str:
    """Send a chat completion request and return the first choice's content.

    Args:
        messages: OpenAI-style ``[{"role": ..., "content": ...}]`` list
        model: Groq model id
        temperature: Sampling temperature
        max_tokens: Completion token cap
        api_key: Override for GROQ_API_KEY

    Returns:
        The assistant message text (may be empty)

    Raises:
        ProviderError: If no key is configured or Groq returns a non-2xx status
        requests.ConnectionError / requests.Timeout: After retries are exhausted
    """
    key = api_key or get_groq_api_key()
    if not key:
        raise ProviderError("groq", "GROQ_API_KEY is not configured")

    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    with time_block("llm.groq.latency"):
        response = requests.post(
            GROQ_ENDPOINT,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {key}"},
            json=payload,
            timeout=LLM_TIMEOUT_SECONDS,
        )

    if not response.ok:
        counter("llm.groq.error")
        logger.warning("Groq returned HTTP %d", response.status_code)
        raise ProviderError("groq", f"HTTP {response.status_code}", response.status_code)

    counter("llm.groq.success")
    data = response.json()
    choices = data.get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or ""
