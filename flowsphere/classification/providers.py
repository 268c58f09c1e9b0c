"""
Remote LLM providers for classification, tried in order with failover.

Order: Groq -> Gemini -> OpenRouter. A provider that answers 401/403/429 or
raises a transport error is benched until the failed set is cleared
(every LLM_PROVIDER_RESET_SECONDS). BYOK-tier users' own keys are tried
before the system keys.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from flowsphere.classification.ai_plan import BYOK_PROVIDERS, AIPlanManager, ai_plan_manager
from flowsphere.config import (
    CLASSIFIER_MAX_TOKENS,
    CLASSIFIER_TEMPERATURE,
    GEMINI_ENDPOINT,
    GEMINI_MODEL,
    GROQ_ENDPOINT,
    GROQ_MODEL,
    LLM_MAX_RETRIES,
    LLM_PROVIDER_RESET_SECONDS,
    LLM_TIMEOUT_SECONDS,
    OPENROUTER_ENDPOINT,
    OPENROUTER_MODEL,
)
from flowsphere.infrastructure.env import get_optional_env
from flowsphere.observability.logging import get_logger
from flowsphere.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

# Statuses that bench a provider until the next reset
BENCH_STATUSES = {401, 403, 429}


def _chat_request(model: str) -> Callable[[str, str, float, int], dict[str, Any]]:
    def build(prompt: str, system_prompt: str, temperature: float, max_tokens: int) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    return build


def _parse_chat(data: dict[str, Any]) -> str:
    choices = data.get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or ""


def _gemini_request(
    prompt: str, system_prompt: str, temperature: float, max_tokens: int
) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": f"{system_prompt}\n\n{prompt}"}]}],
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
    }


def _parse_gemini(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or [{}]
    parts = (candidates[0].get("content") or {}).get("parts") or [{}]
    return parts[0].get("text") or ""


@dataclass(frozen=True)
class LLMProvider:
    """Static description of one completion endpoint."""

    name: str
    endpoint: str
    model: str
    env_key: str
    build_request: Callable[[str, str, float, int], dict[str, Any]]
    parse_response: Callable[[dict[str, Any]], str]
    # Gemini takes the key as ?key=, the others as a bearer token
    key_in_query: bool = False

    def system_key(self) -> str:
        return get_optional_env(self.env_key)


DEFAULT_PROVIDERS: tuple[LLMProvider, ...] = (
    LLMProvider(
        name="groq",
        endpoint=GROQ_ENDPOINT,
        model=GROQ_MODEL,
        env_key="GROQ_API_KEY",
        build_request=_chat_request(GROQ_MODEL),
        parse_response=_parse_chat,
    ),
    LLMProvider(
        name="gemini",
        endpoint=GEMINI_ENDPOINT,
        model=GEMINI_MODEL,
        env_key="GEMINI_API_KEY",
        build_request=_gemini_request,
        parse_response=_parse_gemini,
        key_in_query=True,
    ),
    LLMProvider(
        name="openrouter",
        endpoint=OPENROUTER_ENDPOINT,
        model=OPENROUTER_MODEL,
        env_key="OPENROUTER_API_KEY",
        build_request=_chat_request(OPENROUTER_MODEL),
        parse_response=_parse_chat,
    ),
)


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def _post(url: str, headers: dict[str, str], body: dict[str, Any]) -> requests.Response:
    return requests.post(url, headers=headers, json=body, timeout=LLM_TIMEOUT_SECONDS)


class ProviderChain:
    """
    Ordered provider failover with a time-boxed failed set.

    Args:
        providers: Providers in priority order
        plan_manager: Source of the plan tier and BYOK keys
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        providers: tuple[LLMProvider, ...] = DEFAULT_PROVIDERS,
        plan_manager: AIPlanManager = ai_plan_manager,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = providers
        self.plan_manager = plan_manager
        self._clock = clock
        self._failed: set[str] = set()
        self._last_reset = clock()
        self._lock = threading.Lock()

    @property
    def failed_providers(self) -> set[str]:
        with self._lock:
            return set(self._failed)

    def mark_failed(self, name: str) -> None:
        with self._lock:
            self._failed.add(name)
        counter(f"llm.provider.{name}.benched")
        logger.warning("Marking %s as unavailable (retry in %ds)", name, LLM_PROVIDER_RESET_SECONDS)

    def _reset_failed_if_needed(self) -> None:
        now = self._clock()
        with self._lock:
            if now - self._last_reset > LLM_PROVIDER_RESET_SECONDS:
                self._failed.clear()
                self._last_reset = now

    def _candidates(self) -> Iterator[tuple[LLMProvider, str]]:
        """(provider, key) pairs in try order, skipping benched providers."""
        by_name = {p.name: p for p in self.providers}

        if self.plan_manager.get_plan().tier == "byok":
            for name in BYOK_PROVIDERS:
                key = self.plan_manager.get_byok_key(name)
                provider = by_name.get(name)
                # openai/deepseek keys can be stored but have no endpoint here
                if key and provider and name not in self.failed_providers:
                    yield provider, key

        for provider in self.providers:
            key = provider.system_key()
            if key and provider.name not in self.failed_providers:
                yield provider, key

    def get_available_provider(self) -> LLMProvider | None:
        """First provider that has a key and is not benched."""
        self._reset_failed_if_needed()
        for provider, _key in self._candidates():
            return provider
        return None

    def complete(
        self,
        prompt: str,
        system_prompt: str,
        temperature: float = CLASSIFIER_TEMPERATURE,
        max_tokens: int = CLASSIFIER_MAX_TOKENS,
    ) -> str | None:
        """
        Return the first non-empty completion, or None when every provider fails.

        Side Effects:
            - Benches providers on auth/rate-limit statuses or transport errors
            - Emits llm.provider.* counters
        """
        self._reset_failed_if_needed()

        for provider, key in self._candidates():
            headers = {"Content-Type": "application/json"}
            url = provider.endpoint
            if provider.key_in_query:
                url = f"{provider.endpoint}?key={key}"
            else:
                headers["Authorization"] = f"Bearer {key}"

            body = provider.build_request(prompt, system_prompt, temperature, max_tokens)
            try:
                with time_block(f"llm.{provider.name}.latency"):
                    response = _post(url, headers, body)
            except requests.RequestException as e:
                logger.warning("%s request failed: %s", provider.name, type(e).__name__)
                self.mark_failed(provider.name)
                continue

            if not response.ok:
                logger.warning("%s returned %d", provider.name, response.status_code)
                if response.status_code in BENCH_STATUSES:
                    self.mark_failed(provider.name)
                continue

            try:
                content = provider.parse_response(response.json())
            except ValueError:
                logger.warning("%s returned a non-JSON body", provider.name)
                continue

            if content:
                counter(f"llm.provider.{provider.name}.success")
                return content

        log_event("llm.providers_exhausted")
        return None
