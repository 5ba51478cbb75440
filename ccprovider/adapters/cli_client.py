"""Model client that drives the ``claude`` CLI in print mode.

Each request spawns ``claude --print`` with the rendered conversation as the
prompt. Plain and structured generation read a single JSON result from
stdout; streaming reads the NDJSON event stream (``--output-format
stream-json``) and yields text as assistant messages arrive.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import json
import re
from typing import Any, AsyncIterator, Callable

from ..logging import get_logger
from . import (
    AdapterError,
    ClientConfig,
    LLMRequest,
    LLMResponse,
    Message,
    StructuredResponse,
    Usage,
)

logger = get_logger("adapters.cli_client")

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


class CliProcessError(AdapterError):
    """Raised when the CLI process cannot be started or fails."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.code = code
        self.returncode = returncode
        self.stderr = stderr


def render_prompt(messages: list[Message]) -> tuple[str, str | None]:
    """Split messages into the CLI prompt and an optional system prompt."""
    system = "\n\n".join(m.content for m in messages if m.role == "system") or None
    turns = [m for m in messages if m.role != "system"]
    if len(turns) == 1 and turns[0].role == "user":
        return turns[0].content, system
    lines = []
    for message in turns:
        speaker = "User" if message.role == "user" else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return "\n\n".join(lines), system


def schema_instruction(schema: dict[str, Any], name: str | None = None) -> str:
    label = f" named '{name}'" if name else ""
    return (
        f"Respond only with a single JSON object{label} that validates against this JSON Schema. "
        "Do not include any prose before or after the JSON.\n"
        f"{json.dumps(schema, indent=2)}"
    )


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the first JSON object out of model text, tolerating code fences."""
    candidates = [m.group(1) for m in _FENCED_JSON.finditer(text)]
    stripped = text.strip()
    candidates.append(stripped)
    start, end = stripped.find("{"), stripped.rfind("}")
    if 0 <= start < end:
        candidates.append(stripped[start : end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    raise AdapterError("Claude Code response did not contain a JSON object.")


def parse_usage(payload: dict[str, Any]) -> Usage:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return Usage()
    input_tokens = usage.get("input_tokens")
    output_tokens = usage.get("output_tokens")
    return Usage(
        input_tokens=input_tokens if isinstance(input_tokens, int) else None,
        output_tokens=output_tokens if isinstance(output_tokens, int) else None,
    )


def parse_result(stdout: str) -> dict[str, Any]:
    """Parse the JSON document printed by ``--output-format json``."""
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise AdapterError(f"Claude Code returned invalid JSON: {stdout[:200]!r}") from exc
    if not isinstance(payload, dict):
        raise AdapterError("Claude Code result must be a JSON object.")
    if payload.get("is_error"):
        raise CliProcessError(str(payload.get("result") or payload.get("subtype") or "Claude Code error"))
    return payload


class CliModelHandle:
    """Runs requests through the CLI, bounded by ``max_concurrent_processes``."""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self._slots = asyncio.Semaphore(config.max_concurrent_processes)

    @property
    def timeout(self) -> float:
        return self.config.timeout_ms / 1000.0

    def build_args(
        self,
        request: LLMRequest,
        *,
        stream: bool = False,
        extra_system: str | None = None,
    ) -> list[str]:
        prompt, system = render_prompt(request.messages)
        if extra_system:
            system = f"{system}\n\n{extra_system}" if system else extra_system

        args = [self.config.cli_path, "--print", "--output-format"]
        args.append("stream-json" if stream else "json")
        if stream:
            # stream-json requires verbose mode
            args.append("--verbose")
        args.extend(["--model", request.model_id])
        if system:
            args.extend(["--append-system-prompt", system])
        if self.config.skip_permissions:
            args.append("--dangerously-skip-permissions")
        args.extend(["--", prompt])
        return args

    async def _spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        logger.debug("Spawning CLI: %s", [a for a in args if a.startswith("--")])
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            code = errno.errorcode.get(exc.errno) if exc.errno is not None else None
            raise CliProcessError(
                f"spawn {self.config.cli_path} {code or type(exc).__name__}: {exc.strerror or exc}",
                code=code,
            ) from exc

    def _timeout_error(self) -> CliProcessError:
        return CliProcessError(
            f"Claude Code CLI timed out after {self.config.timeout_ms}ms",
            code="ETIMEDOUT",
        )

    async def _run(self, args: list[str]) -> str:
        async with self._slots:
            process = await self._spawn(args)
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
                raise self._timeout_error() from None

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            # json mode still reports failures on stdout
            try:
                parse_result(out)
            except CliProcessError:
                raise
            except AdapterError:
                pass
            raise CliProcessError(
                err or f"Claude Code CLI exited with code {process.returncode}",
                returncode=process.returncode,
                stderr=err,
            )
        return out

    async def generate(self, request: LLMRequest) -> LLMResponse:
        payload = parse_result(await self._run(self.build_args(request)))
        return LLMResponse(
            text=str(payload.get("result") or ""),
            usage=parse_usage(payload),
            raw=payload,
            session_id=payload.get("session_id"),
        )

    async def generate_object(self, request: LLMRequest, schema: dict[str, Any]) -> StructuredResponse:
        args = self.build_args(request, extra_system=schema_instruction(schema, request.schema_name))
        payload = parse_result(await self._run(args))
        return StructuredResponse(
            object=extract_json_object(str(payload.get("result") or "")),
            usage=parse_usage(payload),
            raw=payload,
        )

    async def stream(self, request: LLMRequest) -> CliStream:
        """Start the CLI and return an iterator over text chunks.

        Spawn failures are raised here. The returned stream holds a process
        slot until it is exhausted, fails or is closed.
        """
        await self._slots.acquire()
        try:
            process = await self._spawn(self.build_args(request, stream=True))
        except BaseException:
            self._slots.release()
            raise
        return CliStream(process, self._slots, self.timeout, self._timeout_error)


async def _drain(reader: asyncio.StreamReader | None) -> bytes:
    return await reader.read() if reader is not None else b""


class CliStream:
    """
    Text chunks read from a running ``stream-json`` CLI process.

    The stream owns its process and one of the handle's process slots. Both
    are given back once iteration ends or fails, or when ``aclose`` is
    called, even if iteration never started. stderr is drained in the
    background while stdout is read.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        slots: asyncio.Semaphore,
        timeout: float,
        timeout_error: Callable[[], CliProcessError],
    ) -> None:
        self.process = process
        self._slots = slots
        self._timeout = timeout
        self._timeout_error = timeout_error
        self._stderr = asyncio.ensure_future(_drain(process.stderr))
        self._chunks = self._read()
        self.closed = False

    def __aiter__(self) -> CliStream:
        return self

    async def __anext__(self) -> str:
        if self.closed:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        """Stop the process if it is still running and release its slot."""
        if self.closed:
            return
        self.closed = True
        try:
            await self._chunks.aclose()
            if self.process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    self.process.kill()
                await self.process.wait()
        finally:
            if not self._stderr.done():
                self._stderr.cancel()
            await asyncio.gather(self._stderr, return_exceptions=True)
            self._slots.release()

    async def _read(self) -> AsyncIterator[str]:
        process = self.process
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        assert process.stdout is not None
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise self._timeout_error()
            try:
                line = await asyncio.wait_for(process.stdout.readline(), timeout=remaining)
            except asyncio.TimeoutError:
                raise self._timeout_error() from None
            if not line:
                break
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                event = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Failed to parse NDJSON line: %s...", text[:100])
                continue
            if not isinstance(event, dict):
                continue
            if event.get("type") == "assistant":
                for chunk in _assistant_text(event):
                    yield chunk
            elif event.get("type") == "result":
                if event.get("is_error"):
                    raise CliProcessError(str(event.get("result") or "Claude Code error"))
                break

        returncode = await process.wait()
        if returncode != 0:
            message = (await self._stderr).decode("utf-8", errors="replace").strip()
            raise CliProcessError(
                message or f"Claude Code CLI exited with code {returncode}",
                returncode=returncode,
                stderr=message,
            )


def _assistant_text(event: dict[str, Any]) -> list[str]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [content]
    if not isinstance(content, list):
        return []
    return [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]


def create_client(config: ClientConfig | None = None) -> CliModelHandle:
    """Client factory used by the Claude Code provider."""
    return CliModelHandle(config or ClientConfig())
