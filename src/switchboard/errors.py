"""Exception hierarchy for switchboard."""

from __future__ import annotations

from typing import Optional


class LLMException(Exception):
    """Base exception for LLM errors."""


class LLMTransportError(LLMException):
    """Raised when the backend answers with a non-success status or the connection fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMConfigurationError(LLMException):
    """Raised when the active backend is missing configuration it needs."""


class LLMUnavailableException(LLMConfigurationError):
    """Raised when a capability is not configured for the active backend."""
