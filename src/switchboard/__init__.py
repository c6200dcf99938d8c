"""Switchboard - canonical content-generation interface over multiple LLM backends."""

__version__ = "0.1.0"
__author__ = "Switchboard Contributors"

from .config import ConfigLoader, ModelConfig, Provider, load_model_config
from .errors import LLMConfigurationError, LLMException, LLMTransportError

__all__ = [
    "ConfigLoader",
    "ModelConfig",
    "Provider",
    "load_model_config",
    "LLMConfigurationError",
    "LLMException",
    "LLMTransportError",
]
