"""Generic provider implementation shared by concrete adapters."""

from __future__ import annotations

from typing import Any, AsyncIterator

from ..config import ProviderConfig
from ..logging import get_logger
from . import (
    VALID_ROLES,
    AdapterError,
    ClientConfig,
    ClientFactory,
    LLMRequest,
    LLMResponse,
    ModelHandle,
    StructuredResponse,
)

logger = get_logger("adapters.base")

CLIENT_OVERRIDE_KEYS = ("timeout_ms", "skip_permissions", "max_concurrent_processes", "cli_path")


class BaseProvider:
    """
    Validate requests and forward them to a model handle.

    The base provider knows nothing about retries or CLI detection; it turns a
    request into a client call and hands back the result.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        config: ProviderConfig | None = None,
        name: str = "base",
    ) -> None:
        self.client_factory = client_factory
        self.config = config or ProviderConfig()
        self.name = name
        # handles are shared per client config, the process limit spans requests
        self._clients: dict[ClientConfig, ModelHandle] = {}

    def validate_params(self, request: LLMRequest) -> None:
        """Raise ``AdapterError`` for requests no provider could serve."""
        if not request.model_id:
            raise AdapterError(f"{self.name} Model ID is required")
        if not request.messages:
            raise AdapterError(f"{self.name} Messages array must not be empty")
        for index, message in enumerate(request.messages):
            if message.role not in VALID_ROLES:
                raise AdapterError(
                    f"Invalid message role at index {index}: {message.role!r}. "
                    f"Expected one of: {', '.join(VALID_ROLES)}"
                )
            if not isinstance(message.content, str):
                raise AdapterError(f"Message content at index {index} must be a string")
        if request.temperature is not None and not 0 <= request.temperature <= 1:
            raise AdapterError("Temperature must be between 0 and 1")
        if request.max_tokens is not None and request.max_tokens <= 0:
            raise AdapterError("maxTokens must be greater than 0")

    def client_config(self, request: LLMRequest) -> ClientConfig:
        settings = self.config.claude_code
        values: dict[str, Any] = {
            "timeout_ms": settings.timeout_ms,
            "skip_permissions": settings.skip_permissions,
            "max_concurrent_processes": settings.max_concurrent_processes,
            "cli_path": settings.cli_path,
        }
        for key in CLIENT_OVERRIDE_KEYS:
            if request.extra.get(key) is not None:
                values[key] = request.extra[key]
        return ClientConfig(**values)

    def get_client(self, request: LLMRequest) -> ModelHandle:
        """Return the model handle for this request, creating it on first use."""
        config = self.client_config(request)
        if config in self._clients:
            return self._clients[config]
        logger.debug("Creating %s client with config: %s", self.name, config)
        try:
            client = self.client_factory(config)
        except Exception as exc:
            logger.debug(
                "Failed to create %s client: config=%s error_type=%s code=%s",
                self.name,
                config,
                type(exc).__name__,
                getattr(exc, "code", None),
            )
            raise
        logger.debug("%s client created successfully", self.name)
        self._clients[config] = client
        return client

    async def generate(self, request: LLMRequest) -> LLMResponse:
        return await self.get_client(request).generate(request)

    async def generate_stream(self, request: LLMRequest) -> AsyncIterator[str]:
        return await self.get_client(request).stream(request)

    async def generate_structured(
        self, request: LLMRequest, schema: dict[str, Any] | None = None
    ) -> StructuredResponse:
        schema = schema if schema is not None else request.schema
        if schema is None:
            raise AdapterError("Structured generation requires a JSON schema")
        result = await self.get_client(request).generate_object(request, schema)
        if not isinstance(result.object, dict):
            raise AdapterError(
                f"Structured generation returned {type(result.object).__name__}, expected an object"
            )
        return result
