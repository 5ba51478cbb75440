from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Sequence

import pytest

from ccprovider.adapters import ClientConfig, LLMRequest, LLMResponse, Message, StructuredResponse
from ccprovider.probe import CliProbe, ProcessResult

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")


class RecordingSleep:
    """Stand-in for asyncio.sleep that only remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeRunner:
    """Probe runner returning a canned result (or raising) and counting calls."""

    def __init__(self, result: ProcessResult | BaseException) -> None:
        self.result = result
        self.calls: list[list[str]] = []

    async def __call__(self, args: Sequence[str]) -> ProcessResult:
        self.calls.append(list(args))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


async def _chunks(items: list[Any]) -> AsyncIterator[str]:
    for item in items:
        if isinstance(item, BaseException):
            raise item
        yield item


class FakeHandle:
    """
    Model handle that plays back scripted outcomes.

    Each call pops the next outcome: an exception is raised, anything else is
    returned. For ``stream`` the outcome is a list of chunks, where an
    exception in the list is raised mid-iteration.
    """

    def __init__(self, outcomes: list[Any] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[str, LLMRequest]] = []

    def _next(self, kind: str, request: LLMRequest) -> Any:
        self.calls.append((kind, request))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate(self, request: LLMRequest) -> LLMResponse:
        return self._next("generate", request)

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        return _chunks(self._next("stream", request))

    async def generate_object(self, request: LLMRequest, schema: dict[str, Any]) -> StructuredResponse:
        return self._next("generate_object", request)


class RecordingFactory:
    def __init__(self, handle: FakeHandle) -> None:
        self.handle = handle
        self.configs: list[ClientConfig] = []

    def __call__(self, config: ClientConfig) -> FakeHandle:
        self.configs.append(config)
        return self.handle


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def available_runner() -> FakeRunner:
    return FakeRunner(ProcessResult(returncode=0, stdout="2.0.14 (Claude Code)\n"))


@pytest.fixture
def missing_runner() -> FakeRunner:
    return FakeRunner(FileNotFoundError(2, "No such file or directory"))


@pytest.fixture
def make_probe() -> Callable[[FakeRunner], CliProbe]:
    return lambda runner: CliProbe("claude", runner=runner)


@pytest.fixture
def request_factory() -> Callable[..., LLMRequest]:
    def build(model_id: str = "sonnet", text: str = "Hello", **kwargs: Any) -> LLMRequest:
        return LLMRequest(model_id=model_id, messages=[Message(role="user", content=text)], **kwargs)

    return build


@pytest.fixture
def make_cli(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable shell script standing in for the claude binary."""

    def write(body: str, name: str = "claude") -> str:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        script.chmod(0o755)
        return str(script)

    return write


@pytest.fixture(autouse=True)
def reset_logging() -> Any:
    yield
    logging.getLogger("ccprovider").handlers.clear()
    logging.getLogger("ccprovider").setLevel(logging.NOTSET)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("ccprovider."):
            logging.getLogger(name).setLevel(logging.NOTSET)
