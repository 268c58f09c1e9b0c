"""Exception hierarchy for FlowSphere."""

from __future__ import annotations


class FlowSphereError(Exception):
    """Base class for all FlowSphere errors."""


class ProviderError(FlowSphereError):
    """A remote provider (LLM or mail API) failed."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ClassificationError(FlowSphereError):
    """LLM output could not be turned into a classification."""


class TokenRefreshError(FlowSphereError):
    """OAuth access token refresh failed.

    ``reason`` is one of ``missing_refresh_token``, ``invalid_grant``,
    ``invalid_client`` or ``unknown``.
    """

    def __init__(self, reason: str, message: str = ""):
        super().__init__(f"{reason}: {message}" if message else reason)
        self.reason = reason


class AccountNotFoundError(FlowSphereError):
    """No stored email account matches the requested id."""
