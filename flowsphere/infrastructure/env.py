"""
Centralized environment variable loader for FlowSphere.

Provider API keys and OAuth client settings come from the process
environment, optionally seeded from a project-root .env file.

Usage:
    from flowsphere.infrastructure.env import ensure_env_loaded, get_optional_env

    ensure_env_loaded()
    api_key = get_optional_env("GROQ_API_KEY")
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_ENV_LOADED = False


def ensure_env_loaded(env_path: Path | None = None) -> None:
    """
    Load the .env file exactly once.

    Variables already present in the environment win over .env values.

    Side Effects:
        - Loads environment variables from .env file
        - Sets module-level flag to prevent double-loading
    """
    global _ENV_LOADED
    if _ENV_LOADED:
        return

    if env_path is None:
        current = Path(__file__).parent
        while current != current.parent:
            candidate = current / ".env"
            if candidate.exists():
                env_path = candidate
                break
            current = current.parent

    if env_path and env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()
    _ENV_LOADED = True


def get_optional_env(key: str, default: str = "") -> str:
    """Return an environment variable, or ``default`` when unset or empty."""
    ensure_env_loaded()
    return os.getenv(key) or default
