"""Command-line interface for ccprovider."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from .adapters import AdapterError, LLMRequest, Message
from .adapters.claude_code import SUPPORTED_MODELS
from .adapters.factory import build_provider
from .config import CONFIG_FILENAME, ConfigError, ProviderConfig, load_config, save_config
from .logging import setup_logging
from .probe import CliProbe


def _load_config(ctx: click.Context) -> ProviderConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as exc:
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-c", "--config", "config_path", type=click.Path(path_type=Path), default=None,
              help=f"Settings file (defaults to ./{CONFIG_FILENAME})")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v for INFO, -vv for DEBUG)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress all output except errors")
@click.option("--log-level", "log_levels", multiple=True, metavar="NAME=LEVEL",
              help="Set the level of one logger subtree, e.g. adapters=DEBUG")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    verbose: int,
    quiet: bool,
    log_levels: tuple[str, ...],
) -> None:
    """Run prompts through the Claude Code CLI provider."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    try:
        cfg = load_config(config_path)
        log_level, levels = cfg.log_level, dict(cfg.log_levels)
    except ConfigError:
        log_level, levels = "INFO", {}

    for item in log_levels:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=LEVEL, got {item!r}", param_hint="--log-level")
        levels[name] = value

    try:
        setup_logging(level=log_level, verbose=verbose, quiet=quiet, levels=levels)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--log-level") from exc


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Check that the Claude Code CLI is installed."""
    cfg = _load_config(ctx)
    probe = CliProbe(cfg.claude_code.cli_path)
    if asyncio.run(probe.is_available()):
        click.echo(f"✓ Claude Code CLI found ({cfg.claude_code.cli_path})")
        return
    click.echo(f"✗ Claude Code CLI not available ({cfg.claude_code.cli_path})", err=True)
    sys.exit(1)


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def config(ctx: click.Context, output_format: str) -> None:
    """Show the effective configuration."""
    cfg = _load_config(ctx)
    if output_format == "json":
        click.echo(json.dumps(cfg.raw, indent=2))
        return

    settings = cfg.claude_code
    click.echo("ccprovider Configuration:")
    click.echo(f"  Provider:             {cfg.provider}")
    click.echo(f"  Model:                {cfg.model}")
    click.echo(f"  Log Level:            {cfg.log_level}")
    click.echo("\nClaude Code:")
    click.echo(f"  CLI Path:             {settings.cli_path}")
    click.echo(f"  Timeout:              {settings.timeout_ms} ms")
    click.echo(f"  Skip Permissions:     {settings.skip_permissions}")
    click.echo(f"  Max Processes:        {settings.max_concurrent_processes}")
    click.echo(f"  Max Retries:          {settings.max_retries}")
    click.echo(f"  Base Delay:           {settings.base_delay_ms} ms")


@cli.command()
@click.option("--provider", default="claude-code", show_default=True)
@click.option("--model", type=click.Choice(list(SUPPORTED_MODELS)), default="sonnet", show_default=True)
@click.option("--timeout-ms", type=int, default=None)
@click.pass_context
def setup(ctx: click.Context, provider: str, model: str, timeout_ms: int | None) -> None:
    """Write a baseline settings file."""
    config_path = ctx.obj.get("config_path") or Path(CONFIG_FILENAME)
    if config_path.exists() and not click.confirm(f"{config_path} exists. Overwrite?", default=False):
        click.echo("Aborted.")
        return

    data: dict = {"provider": provider, "model": model}
    if timeout_ms is not None:
        data["claudeCode"] = {"timeoutMs": timeout_ms}
    try:
        cfg = ProviderConfig.from_dict(data)
    except ConfigError as exc:
        raise click.BadParameter(str(exc)) from exc
    save_config(cfg, config_path)
    click.echo(f"Saved configuration to {config_path}")


async def _run_generate(provider, request: LLMRequest, stream: bool) -> None:
    if stream:
        async for chunk in await provider.generate_stream(request):
            click.echo(chunk, nl=False)
        click.echo()
        return
    response = await provider.generate(request)
    click.echo(response.text)


@cli.command()
@click.argument("prompt")
@click.option("--model", default=None, help="Model alias (defaults to the configured model)")
@click.option("--system", default=None, help="Optional system prompt")
@click.option("--stream", is_flag=True, help="Print text as it arrives")
@click.option("--max-retries", type=int, default=None, help="Override the configured retry count")
@click.pass_context
def generate(
    ctx: click.Context,
    prompt: str,
    model: str | None,
    system: str | None,
    stream: bool,
    max_retries: int | None,
) -> None:
    """Send a single prompt and print the response."""
    cfg = _load_config(ctx)
    if max_retries is not None:
        data = dict(cfg.raw)
        data["claudeCode"] = {**data.get("claudeCode", {}), "maxRetries": max_retries}
        try:
            cfg = ProviderConfig.from_dict(data)
        except ConfigError as exc:
            raise click.BadParameter(str(exc), param_hint="--max-retries") from exc

    try:
        provider = build_provider(cfg)
    except AdapterError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    messages = [Message(role="user", content=prompt)]
    if system:
        messages.insert(0, Message(role="system", content=system))
    request = LLMRequest(model_id=model or cfg.model, messages=messages)

    try:
        asyncio.run(_run_generate(provider, request, stream))
    except AdapterError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def main() -> None:
    """Console script entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        sys.exit(1)


if __name__ == "__main__":
    main()
