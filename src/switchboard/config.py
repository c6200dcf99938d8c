"""Configuration loader for switchboard (global + project TOML, env overrides, backend identity)."""

from __future__ import annotations

import os
import platform
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python <3.11
    import tomli as tomllib  # type: ignore

from .errors import LLMConfigurationError


class Provider(str, Enum):
    GEMINI = "gemini"
    DOUBAO = "doubao"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class ProviderDefaults:
    default_model: str
    default_base_url: Optional[str]
    think_supported_models: Tuple[str, ...]
    embedding_model: str


PROVIDER_CONFIGS: Dict[Provider, ProviderDefaults] = {
    Provider.GEMINI: ProviderDefaults(
        default_model="gemini-2.5-pro",
        default_base_url="https://generativelanguage.googleapis.com/v1beta",
        think_supported_models=("gemini-2.5-pro", "gemini-2.5-flash"),
        embedding_model="gemini-embedding-001",
    ),
    Provider.DOUBAO: ProviderDefaults(
        default_model="doubao-pro-4k",
        default_base_url="https://ark.cn-beijing.volces.com/api/v3",
        think_supported_models=("Doubao-Seed-1.6-thinking", "Doubao-Seed-1.6"),
        embedding_model="doubao-embedding-001",
    ),
    Provider.OPENAI: ProviderDefaults(
        default_model="gpt-4o",
        default_base_url="https://api.openai.com/v1",
        think_supported_models=("o1-preview", "o1-mini"),
        embedding_model="text-embedding-3-small",
    ),
    Provider.ANTHROPIC: ProviderDefaults(
        default_model="claude-3-5-sonnet-20241022",
        default_base_url="https://api.anthropic.com",
        think_supported_models=(),
        embedding_model="",
    ),
}

# Checked in order; the first non-empty one wins.
API_KEY_ENV_VARS = ("AI_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")


@dataclass(frozen=True)
class ModelConfig:
    """Resolved backend settings; read-only for the lifetime of an adapter."""

    provider: Provider
    model: str
    api_key: str = field(default="", repr=False)
    base_url: Optional[str] = None
    think_support: bool = False
    embedding_model: Optional[str] = None
    timeout: float = 30.0
    use_backend_usage: bool = False


class ConfigLoader:
    """Layered settings for switchboard.

    Later layers win: built-in defaults, then the global ``config.toml``, then
    the nearest project ``.switchboard/config.toml``, then
    ``SWITCHBOARD_<SECTION>__<KEY>`` environment variables. Command-line flags
    are applied by the CLI on top of whatever this returns.
    """

    ENV_PREFIX = "SWITCHBOARD_"
    PROJECT_DIR_NAME = ".switchboard"

    def __init__(
        self,
        global_dir: Optional[Path] = None,
        project_dir: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.env = os.environ if env is None else env
        self.global_dir = global_dir or self.get_global_config_dir(self.env)
        self.project_dir = project_dir if project_dir is not None else self.find_project_dir()

        self.config: Dict[str, Any] = self._get_default_config()
        self.credentials: Dict[str, Any] = {}

        self._merge_file(self.global_dir / "config.toml")
        self.credentials = self._read_credentials(self.global_dir / "credentials.toml")
        if self.project_dir:
            self._merge_file(self.project_dir / "config.toml")
        self._apply_env_overrides()

    def get(self, key: str, default: Any = None) -> Any:
        """Look up ``section.key``; missing or null values give ``default``."""
        node: Any = self.config
        for part in key.split("."):
            if not isinstance(node, dict):
                return default
            node = node.get(part)
        return default if node is None else node

    def get_credential(self, provider: str, key: str) -> Optional[str]:
        section = self.credentials.get(provider) or {}
        return section.get(key)

    # ------------------------------------------------------------------ #
    # Layers
    # ------------------------------------------------------------------ #
    def _merge_file(self, path: Path) -> None:
        if not path.is_file():
            return
        with path.open("rb") as fh:
            self._deep_merge(self.config, tomllib.load(fh))

    @staticmethod
    def _read_credentials(path: Path) -> Dict[str, Any]:
        if not path.is_file():
            return {}
        if platform.system() != "Windows":
            mode = path.stat().st_mode
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                raise PermissionError(f"{path} must not be readable by group or others. Run: chmod 600 {path}")
        with path.open("rb") as fh:
            return tomllib.load(fh)

    def _apply_env_overrides(self) -> None:
        prefix = self.ENV_PREFIX
        for name, value in self.env.items():
            if name.startswith(prefix) and len(name) > len(prefix):
                dotted = name[len(prefix) :].lower().replace("__", ".")
                self._set_nested(self.config, dotted, value)

    # ------------------------------------------------------------------ #
    # Locations
    # ------------------------------------------------------------------ #
    @staticmethod
    def get_global_config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
        """``$XDG_CONFIG_HOME/switchboard`` (``%APPDATA%`` on Windows)."""
        env = os.environ if env is None else env
        if platform.system() == "Windows":
            root = Path(env.get("APPDATA") or "~\\AppData\\Roaming")
        else:
            root = Path(env.get("XDG_CONFIG_HOME") or "~/.config")
        return root.expanduser() / "switchboard"

    @classmethod
    def find_project_dir(cls, start: Optional[Path] = None) -> Optional[Path]:
        here = start or Path.cwd()
        for directory in (here, *here.parents):
            candidate = directory / cls.PROJECT_DIR_NAME
            if candidate.is_dir():
                return candidate
        return None

    # ------------------------------------------------------------------ #
    # Persistence helpers
    # ------------------------------------------------------------------ #
    def write_default_config(self) -> Path:
        """Write the default config.toml (and an empty credentials file) if missing."""
        self.global_dir.mkdir(parents=True, exist_ok=True)
        config_file = self.global_dir / "config.toml"
        if not config_file.exists():
            config_file.write_text(self._get_default_config_toml(), encoding="utf-8")

        creds_file = self.global_dir / "credentials.toml"
        if not creds_file.exists():
            creds_file.write_text("# Add your API credentials here, e.g.\n# [openai]\n# api_key = \"...\"\n", encoding="utf-8")
            if platform.system() != "Windows":
                os.chmod(creds_file, 0o600)
        return config_file

    # ------------------------------------------------------------------ #
    # Default content
    # ------------------------------------------------------------------ #
    def _get_default_config(self) -> Dict[str, Any]:
        return {
            "general": {
                "log_level": "warning",
                "log_file": "",
                "log_format": "text",
            },
            "provider": {
                "timeout_seconds": 30.0,
            },
            "tokens": {
                "use_backend_usage": False,
            },
        }

    def _get_default_config_toml(self) -> str:
        return "\n".join(
            [
                "[general]",
                'log_level = "warning"',
                'log_file = ""',
                'log_format = "text"  # or "json"',
                "",
                "[provider]",
                '# name = "openai"',
                '# model = "gpt-4o"',
                '# base_url = "https://api.openai.com/v1"',
                '# embedding_model = "text-embedding-3-small"',
                "# think_support = false",
                "timeout_seconds = 30.0",
                "",
                "[tokens]",
                "use_backend_usage = false",
                "",
            ]
        )

    # ------------------------------------------------------------------ #
    # Utility helpers
    # ------------------------------------------------------------------ #
    def _deep_merge(self, base: dict, override: dict) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _set_nested(self, d: dict, path: str, value: Any) -> None:
        keys = path.split(".")
        for key in keys[:-1]:
            d = d.setdefault(key, {})
        d[keys[-1]] = value


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def resolve_provider(name: Optional[str]) -> Provider:
    try:
        return Provider((name or Provider.GEMINI.value).strip().lower())
    except ValueError as exc:
        raise LLMConfigurationError(f"Unsupported model provider: {name}") from exc


def is_thinking_supported(
    model: str,
    provider: Provider,
    env: Optional[Mapping[str, str]] = None,
    configured: Any = None,
) -> bool:
    """An explicit AI_THINK_SUPPORT (or config flag) wins; otherwise use known model lists."""
    env = os.environ if env is None else env
    forced = _as_bool(env.get("AI_THINK_SUPPORT"))
    if forced is None:
        forced = _as_bool(configured)
    if forced is not None:
        return forced
    defaults = PROVIDER_CONFIGS[provider]
    return model in defaults.think_supported_models or (
        provider is Provider.GEMINI and model.startswith("gemini-2.5")
    )


def load_model_config(
    loader: Optional[ConfigLoader] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ModelConfig:
    """Resolve the active backend once, from environment first and config files second."""
    env = os.environ if env is None else env
    loader = loader or ConfigLoader(env=env)

    provider = resolve_provider(_first(env.get("AI_PROVIDER"), loader.get("provider.name")))
    defaults = PROVIDER_CONFIGS[provider]

    api_key = _first(
        *(env.get(name) for name in API_KEY_ENV_VARS),
        loader.get_credential(provider.value, "api_key"),
    ) or ""
    model = _first(env.get("AI_MODEL"), env.get("GEMINI_MODEL"), loader.get("provider.model")) or defaults.default_model
    base_url = _first(
        env.get("AI_BASE_URL"),
        loader.get("provider.base_url"),
        loader.get_credential(provider.value, "base_url"),
        defaults.default_base_url,
    )
    embedding_model = _first(
        env.get("AI_EMBEDDING_MODEL"),
        loader.get("provider.embedding_model"),
        defaults.embedding_model,
    )

    return ModelConfig(
        provider=provider,
        model=model,
        api_key=api_key,
        base_url=base_url,
        think_support=is_thinking_supported(model, provider, env, loader.get("provider.think_support")),
        embedding_model=embedding_model,
        timeout=float(loader.get("provider.timeout_seconds", 30.0)),
        use_backend_usage=bool(_as_bool(loader.get("tokens.use_backend_usage", False))),
    )


__all__ = [
    "ConfigLoader",
    "ModelConfig",
    "PROVIDER_CONFIGS",
    "Provider",
    "ProviderDefaults",
    "is_thinking_supported",
    "load_model_config",
    "resolve_provider",
]
