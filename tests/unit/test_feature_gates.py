"""Tests for runtime feature gates."""

from __future__ import annotations

import pytest

from flowsphere.runtime.gates import FeatureGates, is_enabled


@pytest.fixture
def gates() -> FeatureGates:
    return FeatureGates()


def test_defaults(gates):
    assert gates.get_all_states() == {
        "ai_classification": True,
        "archive_search": True,
        "monitor_toasts": True,
    }
    assert gates.is_enabled("unknown_gate") is False


@pytest.mark.parametrize(("value", "expected"), [("false", False), ("0", False), ("on", True)])
def test_environment_variable(gates, monkeypatch, value, expected):
    monkeypatch.setenv("FLOWSPHERE_GATE_ARCHIVE_SEARCH", value)

    assert gates.is_enabled("archive_search") is expected


def test_runtime_override_beats_environment(gates, monkeypatch):
    monkeypatch.setenv("FLOWSPHERE_GATE_MONITOR_TOASTS", "false")
    gates.enable("monitor_toasts")

    assert gates.is_enabled("monitor_toasts") is True

    gates.reset("monitor_toasts")
    assert gates.is_enabled("monitor_toasts") is False


def test_disable(gates):
    gates.disable("ai_classification")

    assert gates.get_all_states()["ai_classification"] is False


def test_module_helper_uses_shared_gates():
    assert is_enabled("archive_search") is True
