"""Configuration handling for ccprovider."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .logging import get_logger, parse_level
from .util import deep_merge, env_first, parse_bool

CONFIG_FILENAME = ".ccprovider.yml"

DEFAULT_TIMEOUT_MS = 120_000
MAX_TIMEOUT_MS = 600_000

DEFAULT_CONFIG: dict[str, Any] = {
    "provider": "claude-code",
    "model": "sonnet",
    "log_level": "INFO",
    "log_levels": {},
    "claudeCode": {
        "timeoutMs": DEFAULT_TIMEOUT_MS,
        "skipPermissions": False,
        "maxConcurrentProcesses": 4,
        "cliPath": "claude",
        "maxRetries": 3,
        "baseDelayMs": 1000,
    },
}

logger = get_logger("config")


class ConfigError(Exception):
    """Raised when configuration could not be loaded or parsed."""


@dataclass(frozen=True)
class ClaudeCodeSettings:
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    skip_permissions: bool = False
    max_concurrent_processes: int = 4
    cli_path: str = "claude"
    max_retries: int = 3
    base_delay_ms: int = 1000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def base_delay_seconds(self) -> float:
        return self.base_delay_ms / 1000.0


@dataclass(frozen=True)
class ProviderConfig:
    provider: str = DEFAULT_CONFIG["provider"]
    model: str = DEFAULT_CONFIG["model"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_levels: dict[str, str] = field(default_factory=dict)
    claude_code: ClaudeCodeSettings = field(default_factory=ClaudeCodeSettings)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderConfig":
        """Construct from a dictionary, applying defaults for missing keys."""
        merged = deep_merge(DEFAULT_CONFIG, data)
        section = merged.get("claudeCode") or {}
        if not isinstance(section, dict):
            raise ConfigError("'claudeCode' must be a mapping.")
        try:
            settings = ClaudeCodeSettings(
                timeout_ms=_clamp_timeout(int(section.get("timeoutMs", DEFAULT_TIMEOUT_MS))),
                skip_permissions=parse_bool(section.get("skipPermissions", False)),
                max_concurrent_processes=_positive(
                    "maxConcurrentProcesses", int(section.get("maxConcurrentProcesses", 4))
                ),
                cli_path=str(section.get("cliPath") or "claude"),
                max_retries=_non_negative("maxRetries", int(section.get("maxRetries", 3))),
                base_delay_ms=_non_negative("baseDelayMs", int(section.get("baseDelayMs", 1000))),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid claudeCode setting: {exc}") from exc
        return cls(
            provider=str(merged.get("provider")),
            model=str(merged.get("model")),
            log_level=str(merged.get("log_level", "INFO")),
            log_levels=_log_levels(merged.get("log_levels")),
            claude_code=settings,
            raw=merged,
        )


def _clamp_timeout(value: int) -> int:
    if value <= 0:
        raise ConfigError(f"timeoutMs must be positive, got {value}")
    if value > MAX_TIMEOUT_MS:
        logger.warning(
            "timeoutMs %d exceeds the practical ceiling, using %d instead", value, MAX_TIMEOUT_MS
        )
        return MAX_TIMEOUT_MS
    return value


def _log_levels(value: Any) -> dict[str, str]:
    if not value:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("'log_levels' must be a mapping of logger name to level.")
    levels = {}
    for name, level in value.items():
        try:
            parse_level(level)
        except ValueError as exc:
            raise ConfigError(f"Invalid log level for '{name}': {exc}") from exc
        levels[str(name)] = str(level).upper()
    return levels


def _positive(name: str, value: int) -> int:
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value


def _non_negative(name: str, value: int) -> int:
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _env_overrides() -> dict[str, Any]:
    section: dict[str, Any] = {}
    cli_path = env_first("CCPROVIDER_CLI_PATH", "CLAUDE_CLI_PATH")
    if cli_path:
        section["cliPath"] = cli_path
    timeout = env_first("CCPROVIDER_TIMEOUT_MS")
    if timeout:
        section["timeoutMs"] = timeout
    skip = env_first("CCPROVIDER_SKIP_PERMISSIONS")
    if skip:
        section["skipPermissions"] = skip
    return {"claudeCode": section} if section else {}


def load_config(path: Path | None = None, *, use_env: bool = True) -> ProviderConfig:
    """Load configuration from a file, applying defaults when missing."""
    config_path = path or Path(CONFIG_FILENAME)
    payload: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}") from exc

        if not isinstance(payload, dict):
            raise ConfigError("Configuration root must be a mapping.")

    if use_env:
        payload = deep_merge(payload, _env_overrides())
    return ProviderConfig.from_dict(payload)


def save_config(config: ProviderConfig, path: Path | None = None) -> None:
    """Write configuration back to disk."""
    config_path = path or Path(CONFIG_FILENAME)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.raw or DEFAULT_CONFIG, handle, sort_keys=False)
