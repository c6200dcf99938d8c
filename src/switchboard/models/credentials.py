"""Credential checks for the active backend."""

from __future__ import annotations

from typing import Optional

from ..config import API_KEY_ENV_VARS, ModelConfig, Provider
from .base import LLMConfigurationError


class CredentialsManager:
    """Validates that the resolved backend has what it needs to authenticate."""

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    def validate(self) -> Optional[str]:
        """Return a user-facing error message, or None when credentials look usable."""
        if self.config.api_key:
            return None
        names = " or ".join(API_KEY_ENV_VARS[:2] if self.config.provider is Provider.GEMINI else API_KEY_ENV_VARS[:1])
        return (
            f"API Key not found for provider '{self.config.provider.value}'. "
            f"Set {names} (or add it to credentials.toml) and try again."
        )

    def require_api_key(self) -> str:
        message = self.validate()
        if message is not None:
            raise LLMConfigurationError(message)
        return self.config.api_key

    def base_url(self) -> str:
        if not self.config.base_url:
            raise LLMConfigurationError(
                f"No base URL configured for provider '{self.config.provider.value}'. Set AI_BASE_URL."
            )
        return self.config.base_url
