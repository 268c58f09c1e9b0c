"""
Process-local instrumentation for FlowSphere.

Classifier fallbacks, provider failovers, monitor polls and API errors all
report through here. Events are written to the ``flowsphere.telemetry``
logger; counters and timing samples stay in this process and are zeroed by
the test suite between cases, so a test can assert that a fallback branch
actually ran (``get_counter("classifier.fallback.plan") == 1``).

The classifier and monitor call in from worker threads, so every write to
the shared tables goes through ``_LOCK``.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger("flowsphere.telemetry")

_LOCK = threading.Lock()
_COUNTERS: dict[str, int] = {}
_LATENCIES: dict[str, list[float]] = {}

_EMPTY_STATS = {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p95": 0.0}


def _latency_key(metric_name: str) -> str:
    """``llm.groq.latency`` and ``llm.groq.latency_ms`` share one sample list."""
    if metric_name.endswith(".latency"):
        return metric_name + "_ms"
    return metric_name


def _percentile(ordered: list[float], fraction: float) -> float:
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


def log_event(event_name: str, **fields: Any) -> None:
    """
    Emit ``event=<name> {fields}`` at info level.

    Fields go to the log verbatim: pass counts, ids and redacted values, never
    raw subjects or addresses.
    """
    logger.info("event=%s %s", event_name, fields)


def counter(name: str, increment: int = 1) -> int:
    """Bump ``name`` and return its new total."""
    with _LOCK:
        total = _COUNTERS[name] = _COUNTERS.get(name, 0) + increment
    logger.debug("counter=%s value=%s", name, total)
    return total


def get_counter(name: str) -> int:
    return _COUNTERS.get(name, 0)


def reset_counters() -> None:
    with _LOCK:
        _COUNTERS.clear()


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """
    Record the wall time of the ``with`` body under ``metric_name``.

    The sample is kept when the body raises, so failed provider calls still
    show up in the latency figures.
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        seconds = time.perf_counter() - started
        key = _latency_key(metric_name)
        logger.debug("timing=%s seconds=%.6f", key, seconds)
        with _LOCK:
            _LATENCIES.setdefault(key, []).append(seconds)


def get_latency_stats(metric_name: str) -> dict[str, float]:
    """Sample count plus min/max/avg/p50/p95 in seconds; all zero before any sample."""
    with _LOCK:
        ordered = sorted(_LATENCIES.get(_latency_key(metric_name), []))
    if not ordered:
        return dict(_EMPTY_STATS)

    return {
        "count": len(ordered),
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / len(ordered),
        "p50": _percentile(ordered, 0.50),
        "p95": _percentile(ordered, 0.95),
    }


def reset_latencies() -> None:
    with _LOCK:
        _LATENCIES.clear()
