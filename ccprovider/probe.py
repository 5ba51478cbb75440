"""One-time check for the Claude Code CLI."""

from __future__ import annotations

import asyncio
import contextlib
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from .logging import get_logger

logger = get_logger("probe")

PROBE_TIMEOUT = 10.0

INSTALL_HINT = (
    "Claude Code CLI not found on system.\n"
    "To use the claude-code provider, install it with:\n"
    "  npm install -g @anthropic-ai/claude-code\n"
    "Then authenticate with:\n"
    "  claude login"
)


class ProbeState(enum.Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""


Runner = Callable[[Sequence[str]], Awaitable[ProcessResult]]


async def run_command(args: Sequence[str], timeout: float = PROBE_TIMEOUT) -> ProcessResult:
    """Run a short-lived command and capture its output."""
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise
    return ProcessResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class CliProbe:
    """
    Cached availability check for the CLI.

    The first call to ``is_available`` runs ``<cli> --version``; the outcome is
    kept for the lifetime of the probe and never re-checked. Two concurrent
    first calls may both run the check, they reach the same answer.
    """

    def __init__(self, cli_path: str = "claude", runner: Runner | None = None) -> None:
        self.cli_path = cli_path
        self._runner = runner or run_command
        self._state = ProbeState.UNKNOWN

    @property
    def state(self) -> ProbeState:
        return self._state

    async def is_available(self) -> bool:
        """Return True when the CLI answered the version query successfully."""
        if self._state is not ProbeState.UNKNOWN:
            available = self._state is ProbeState.AVAILABLE
            logger.debug("Claude Code CLI installation check (cached): %s", available)
            return available

        command = [self.cli_path, "--version"]
        logger.debug("Checking Claude Code CLI installation...")
        try:
            result = await self._runner(command)
        except Exception as exc:
            logger.debug(
                "Claude Code CLI check failed: command=%r error_type=%s error=%s",
                " ".join(command),
                type(exc).__name__,
                exc,
            )
            return self._record(False)

        if result.returncode != 0:
            logger.debug(
                "Claude Code CLI check failed: command=%r exit=%d stderr=%s",
                " ".join(command),
                result.returncode,
                result.stderr.strip(),
            )
            return self._record(False)

        logger.info("Claude Code CLI detected: %s", result.stdout.strip())
        return self._record(True)

    def _record(self, available: bool) -> bool:
        if self._state is ProbeState.UNKNOWN:
            self._state = ProbeState.AVAILABLE if available else ProbeState.UNAVAILABLE
        if not available:
            logger.warning(INSTALL_HINT)
        return self._state is ProbeState.AVAILABLE
