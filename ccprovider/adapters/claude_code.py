"""Claude Code CLI provider adapter."""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, TypeVar

from ..config import ProviderConfig
from ..errors import (
    ClassificationRule,
    CliMissingError,
    ErrorCategory,
    ProviderError,
    build_classification_rules,
    remediation_message,
    translate_error,
)
from ..logging import get_logger
from ..probe import CliProbe
from ..retry import RetryPolicy, with_retry
from . import (
    AdapterError,
    ClientFactory,
    LLMRequest,
    LLMResponse,
    ModelHandle,
    StructuredResponse,
)
from .base import BaseProvider
from .cli_client import create_client

T = TypeVar("T")

logger = get_logger("adapters.claude_code")

SUPPORTED_MODELS = ("opus", "sonnet")


class ClaudeCodeProvider:
    """
    Talk to Claude through the locally installed Claude Code CLI.

    Wraps a ``BaseProvider`` and adds three things around every call:

    1. the CLI must be installed (checked once, then cached),
    2. transient failures are retried with exponential backoff,
    3. whatever still fails is re-raised as a ``ProviderError`` subclass that
       tells the user how to fix it.

    Authentication is handled by the CLI itself, so no API key is needed.
    """

    name = "ClaudeCode"

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        client_factory: ClientFactory = create_client,
        probe: CliProbe | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.config = config or ProviderConfig()
        settings = self.config.claude_code
        self.supported_models = SUPPORTED_MODELS
        self.base = BaseProvider(client_factory, self.config, name=self.name)
        self.probe = probe or CliProbe(settings.cli_path)
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay_seconds,
        )
        self.rules = build_classification_rules(settings.cli_path.rsplit("/", 1)[-1])
        self._sleep = sleep

    # Provider protocol ----------------------------------------------------------------

    def validate_params(self, request: LLMRequest) -> None:
        self.base.validate_params(request)
        if request.model_id not in self.supported_models:
            raise AdapterError(
                f"Model '{request.model_id}' is not supported by Claude Code CLI. "
                f"Supported models are: {', '.join(self.supported_models)}"
            )

    def get_client(self, request: LLMRequest) -> ModelHandle:
        return self.base.get_client(request)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        logger.debug(
            "Claude Code generate called: model=%s messages=%d max_tokens=%s temperature=%s",
            request.model_id,
            len(request.messages),
            request.max_tokens,
            request.temperature,
        )
        return await self._call("generate", request, lambda: self.base.generate(request))

    async def generate_stream(self, request: LLMRequest) -> AsyncIterator[str]:
        logger.debug(
            "Claude Code generate_stream called: model=%s messages=%d max_tokens=%s temperature=%s",
            request.model_id,
            len(request.messages),
            request.max_tokens,
            request.temperature,
        )
        stream = await self._call("generate_stream", request, lambda: self.base.generate_stream(request))
        return TranslatedStream(stream, self.rules)

    async def generate_structured(
        self, request: LLMRequest, schema: dict[str, Any] | None = None
    ) -> StructuredResponse:
        schema = schema if schema is not None else request.schema
        if schema is None:
            raise AdapterError("Structured generation requires a JSON schema")
        logger.debug(
            "Claude Code generate_structured called: model=%s schema=%s has_schema=%s "
            "max_tokens=%s temperature=%s",
            request.model_id,
            request.schema_name,
            schema is not None,
            request.max_tokens,
            request.temperature,
        )
        return await self._call(
            "generate_structured", request, lambda: self.base.generate_structured(request, schema)
        )

    # Internals ------------------------------------------------------------------------

    async def _call(self, operation: str, request: LLMRequest, action: Callable[[], Awaitable[T]]) -> T:
        self.validate_params(request)

        if not await self.probe.is_available():
            logger.error("Claude Code %s failed: CLI not installed", operation)
            raise CliMissingError(
                remediation_message(ErrorCategory.CLI_MISSING, "Claude Code CLI is not installed"),
                operation=operation,
            )

        retry_kwargs: dict[str, Any] = {"policy": self.retry_policy}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        try:
            return await with_retry(operation, action, **retry_kwargs)
        except ProviderError:
            raise
        except Exception as exc:
            raise translate_error(operation, exc, self.rules) from exc


class TranslatedStream:
    """
    Wraps a client stream so mid-stream failures surface as ``ProviderError``.

    Chunks were already delivered by then, so nothing is retried. Closing the
    wrapper closes the client stream, releasing its process.
    """

    def __init__(self, stream: AsyncIterator[str], rules: Sequence[ClassificationRule]) -> None:
        self._stream = stream
        self._rules = rules

    def __aiter__(self) -> TranslatedStream:
        return self

    async def __anext__(self) -> str:
        try:
            return await self._stream.__anext__()
        except (StopAsyncIteration, ProviderError):
            raise
        except Exception as exc:
            raise translate_error("generate_stream", exc, self._rules) from exc

    async def aclose(self) -> None:
        close = getattr(self._stream, "aclose", None)
        if close is not None:
            await close()
