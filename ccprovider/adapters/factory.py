"""Factory helpers for loading provider adapters."""

from __future__ import annotations

from ..config import ProviderConfig
from . import AdapterError, Provider
from .claude_code import ClaudeCodeProvider

CLAUDE_CODE_NAMES = {"claude-code", "claude_code", "claudecode"}


def build_provider(config: ProviderConfig) -> Provider:
    """Instantiate a provider based on configuration."""
    provider = config.provider.lower()
    if provider in CLAUDE_CODE_NAMES:
        return ClaudeCodeProvider(config)
    raise AdapterError(f"Unsupported provider: {config.provider}")
