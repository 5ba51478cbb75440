"""Model provider adapters for ccprovider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Mapping, Protocol

VALID_ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class LLMRequest:
    """
    A request forwarded to the underlying model client.

    Attributes:
        model_id: Model alias understood by the CLI (``opus``, ``sonnet``).
        messages: Conversation turns, system messages included.
        max_tokens: Optional generation limit.
        temperature: Optional sampling temperature in [0, 1].
        schema: Optional JSON Schema for structured generation.
        schema_name: Optional name for the structured output.
        extra: Per-request client overrides (``timeout_ms``, ``cli_path`` ...).
    """

    model_id: str
    messages: list[Message]
    max_tokens: int | None = None
    temperature: float | None = None
    schema: dict[str, Any] | None = None
    schema_name: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Usage:
    input_tokens: int | None = None
    output_tokens: int | None = None

    @property
    def total_tokens(self) -> int | None:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return (self.input_tokens or 0) + (self.output_tokens or 0)


@dataclass(frozen=True)
class LLMResponse:
    text: str
    usage: Usage = field(default_factory=Usage)
    raw: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None


@dataclass(frozen=True)
class StructuredResponse:
    object: dict[str, Any]
    usage: Usage = field(default_factory=Usage)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ClientConfig:
    """Options handed to a client factory."""

    timeout_ms: int = 120_000
    skip_permissions: bool = False
    max_concurrent_processes: int = 4
    cli_path: str = "claude"


class AdapterError(RuntimeError):
    """Raised when a provider interaction fails."""


class ModelHandle(Protocol):
    """Callable model handle returned by a client factory."""

    async def generate(self, request: LLMRequest) -> LLMResponse:
        ...

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        ...

    async def generate_object(self, request: LLMRequest, schema: dict[str, Any]) -> StructuredResponse:
        ...


ClientFactory = Callable[[ClientConfig], ModelHandle]


class Provider(Protocol):
    """Common protocol for provider adapters."""

    def validate_params(self, request: LLMRequest) -> None:
        ...

    def get_client(self, request: LLMRequest) -> ModelHandle:
        ...

    async def generate(self, request: LLMRequest) -> LLMResponse:
        ...

    async def generate_stream(self, request: LLMRequest) -> AsyncIterator[str]:
        ...

    async def generate_structured(
        self, request: LLMRequest, schema: dict[str, Any] | None = None
    ) -> StructuredResponse:
        ...
