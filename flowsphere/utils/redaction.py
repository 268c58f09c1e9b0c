"""
Helpers for keeping email content out of logs and prompts.

Provides:
- redact(): Hash sensitive strings for correlation without exposure
- redact_subject(): Partially redact email subjects for debugging
- sanitize_for_prompt(): Strip prompt injection patterns from email text
"""

from __future__ import annotations

import re
from hashlib import sha256

INJECTION_PATTERNS = [
    r"ignore\s+(previous|above|all)\s+instructions?",
    r"disregard\s+(previous|above|all)\s+instructions?",
    r"forget\s+(previous|above|all)\s+instructions?",
    r"new\s+instructions?:",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
]
INJECTION_REGEX = re.compile("|".join(INJECTION_PATTERNS), re.IGNORECASE)


def redact(value: str | None) -> str:
    """
    Return a stable hash representation of a sensitive string.
    """
    if not value:
        return "hash:missing"
    digest = sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"hash:{digest}"


def redact_subject(subject: str | None, max_length: int = 30) -> str:
    """
    Partially redact an email subject: first N characters plus a hash suffix.

    Example:
        "Your Netflix subscription renewal failed" ->
        "Your Netflix subscription rene... (h:2414ca)"
    """
    if not subject:
        return "(no subject)"

    visible = subject[:max_length] + "..." if len(subject) > max_length else subject
    digest = sha256(subject.encode("utf-8")).hexdigest()[:6]
    return f"{visible} (h:{digest})"


def sanitize_for_prompt(text: str | None, max_length: int = 1000) -> str:
    """
    Sanitize email text before including it in an LLM prompt.

    Truncates to ``max_length`` and replaces known injection phrases.
    """
    if not text:
        return ""

    text = text[:max_length]
    return INJECTION_REGEX.sub("[REDACTED]", text).strip()
