from __future__ import annotations

import pytest

from ccprovider.config import (
    MAX_TIMEOUT_MS,
    ConfigError,
    ProviderConfig,
    load_config,
    save_config,
)
from ccprovider.util import deep_merge, parse_bool


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for key in ("CCPROVIDER_CLI_PATH", "CLAUDE_CLI_PATH", "CCPROVIDER_TIMEOUT_MS", "CCPROVIDER_SKIP_PERMISSIONS"):
        monkeypatch.delenv(key, raising=False)


def test_missing_file_uses_defaults(tmp_path) -> None:
    cfg = load_config(tmp_path / "missing.yml")

    assert cfg.provider == "claude-code"
    assert cfg.model == "sonnet"
    settings = cfg.claude_code
    assert settings.timeout_ms == 120_000
    assert settings.skip_permissions is False
    assert settings.max_concurrent_processes == 4
    assert settings.cli_path == "claude"
    assert settings.max_retries == 3
    assert settings.base_delay_seconds == 1.0


def test_yaml_values_override_defaults(tmp_path) -> None:
    path = tmp_path / ".ccprovider.yml"
    path.write_text(
        "model: opus\n"
        "claudeCode:\n"
        "  timeoutMs: 300000\n"
        "  skipPermissions: yes\n"
        "  cliPath: /opt/bin/claude\n",
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.model == "opus"
    assert cfg.claude_code.timeout_ms == 300_000
    assert cfg.claude_code.timeout_seconds == 300.0
    assert cfg.claude_code.skip_permissions is True
    assert cfg.claude_code.cli_path == "/opt/bin/claude"
    assert cfg.claude_code.max_concurrent_processes == 4


def test_timeout_above_ceiling_is_clamped(caplog) -> None:
    cfg = ProviderConfig.from_dict({"claudeCode": {"timeoutMs": 900_000}})

    assert cfg.claude_code.timeout_ms == MAX_TIMEOUT_MS
    assert "exceeds the practical ceiling" in caplog.text


@pytest.mark.parametrize(
    "section",
    [
        {"timeoutMs": 0},
        {"maxConcurrentProcesses": 0},
        {"maxRetries": -1},
        {"timeoutMs": "soon"},
        {"skipPermissions": "maybe"},
    ],
)
def test_invalid_settings_raise(section) -> None:
    with pytest.raises(ConfigError):
        ProviderConfig.from_dict({"claudeCode": section})


def test_invalid_yaml_raises(tmp_path) -> None:
    path = tmp_path / "bad.yml"
    path.write_text("claudeCode: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


def test_non_mapping_root_raises(tmp_path) -> None:
    path = tmp_path / "list.yml"
    path.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_environment_overrides_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / ".ccprovider.yml"
    path.write_text("claudeCode:\n  cliPath: /opt/bin/claude\n", encoding="utf-8")
    monkeypatch.setenv("CLAUDE_CLI_PATH", "/home/me/.local/bin/claude")
    monkeypatch.setenv("CCPROVIDER_TIMEOUT_MS", "240000")

    cfg = load_config(path)

    assert cfg.claude_code.cli_path == "/home/me/.local/bin/claude"
    assert cfg.claude_code.timeout_ms == 240_000
    assert load_config(path, use_env=False).claude_code.cli_path == "/opt/bin/claude"


def test_save_and_reload_round_trip(tmp_path) -> None:
    path = tmp_path / ".ccprovider.yml"
    save_config(ProviderConfig.from_dict({"model": "opus", "claudeCode": {"maxRetries": 1}}), path)

    cfg = load_config(path)

    assert cfg.model == "opus"
    assert cfg.claude_code.max_retries == 1


def test_deep_merge_keeps_nested_defaults() -> None:
    merged = deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
    assert merged == {"a": {"b": 1, "c": 3}}


@pytest.mark.parametrize(("value", "expected"), [(True, True), ("yes", True), ("0", False), (None, False)])
def test_parse_bool(value, expected) -> None:
    assert parse_bool(value) is expected


def test_log_levels_are_normalized() -> None:
    cfg = ProviderConfig.from_dict({"log_levels": {"adapters": "debug"}})
    assert cfg.log_levels == {"adapters": "DEBUG"}


@pytest.mark.parametrize("value", [["adapters"], {"adapters": "LOUD"}])
def test_invalid_log_levels_raise(value) -> None:
    with pytest.raises(ConfigError):
        ProviderConfig.from_dict({"log_levels": value})
