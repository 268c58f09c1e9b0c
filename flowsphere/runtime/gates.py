"""
Feature Gates System

Toggle features at runtime without code changes.

Usage:
    from flowsphere.runtime.gates import feature_gates

    if feature_gates.is_enabled("ai_classification"):
        ...
"""

from __future__ import annotations

import os


class FeatureGates:
    """
    Feature gate manager.

    Gates can be controlled via:
    1. Runtime calls (in memory for the process lifetime)
    2. Environment variables (e.g., FLOWSPHERE_GATE_ARCHIVE_SEARCH=false)
    3. Built-in defaults
    """

    def __init__(self) -> None:
        self._defaults: dict[str, bool] = {
            # Call remote LLMs for emails the rules cannot place
            "ai_classification": True,
            # Let the assistant fall back to the 5-year work archive
            "archive_search": True,
            # Emit notifications for emergency/work alerts from the monitor
            "monitor_toasts": True,
        }
        self._overrides: dict[str, bool] = {}

    def is_enabled(self, feature_name: str) -> bool:
        """
        Check if a feature is enabled.

        Priority: runtime override, then environment variable, then default.
        """
        if feature_name in self._overrides:
            return self._overrides[feature_name]

        env_value = os.getenv(f"FLOWSPHERE_GATE_{feature_name.upper()}")
        if env_value is not None:
            return env_value.lower() in ("true", "1", "yes", "on")

        return self._defaults.get(feature_name, False)

    def enable(self, feature_name: str) -> None:
        """
        Side Effects:
            - Modifies _overrides dict (in-memory state)
        """
        self._overrides[feature_name] = True

    def disable(self, feature_name: str) -> None:
        """
        Side Effects:
            - Modifies _overrides dict (in-memory state)
        """
        self._overrides[feature_name] = False

    def reset(self, feature_name: str) -> None:
        """Drop the runtime override so env/default apply again."""
        self._overrides.pop(feature_name, None)

    def get_all_states(self) -> dict[str, bool]:
        return {name: self.is_enabled(name) for name in self._defaults}


feature_gates = FeatureGates()


def is_enabled(feature_name: str) -> bool:
    """Check if feature is enabled (convenience wrapper)"""
    return feature_gates.is_enabled(feature_name)
