"""Retry with exponential backoff for transient CLI failures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import is_retryable
from .logging import get_logger

T = TypeVar("T")

logger = get_logger("retry")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must not be negative, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the failed attempt with index ``attempt``."""
        return self.base_delay * 2**attempt


async def with_retry(
    operation: str,
    action: Callable[[], Awaitable[T]],
    max_retries: int | None = None,
    *,
    policy: RetryPolicy | None = None,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``action`` until it succeeds or a non-transient failure occurs.

    Up to ``max_retries + 1`` attempts are made. The last failure is re-raised
    unmodified; translating it for the user is the caller's job.

    Args:
        operation: Name used in log messages
        action: Zero-argument coroutine function to invoke
        max_retries: Overrides ``policy.max_retries`` when given
        policy: Retry policy (defaults to 3 retries, 1 second base delay)
        retryable: Predicate deciding whether a failure is transient
        sleep: Awaitable sleep, replaced in tests

    Returns:
        The result of the first successful attempt
    """
    policy = policy or RetryPolicy()
    if max_retries is not None:
        policy = RetryPolicy(max_retries=max_retries, base_delay=policy.base_delay)

    total = policy.max_retries + 1
    attempt = 0
    while True:
        try:
            return await action()
        except Exception as exc:
            transient = retryable(exc)
            if not transient or attempt >= policy.max_retries:
                logger.debug(
                    "%s not retryable or max retries reached (retryable=%s, attempt=%d/%d)",
                    operation,
                    transient,
                    attempt + 1,
                    total,
                )
                raise

            delay = policy.delay_for(attempt)
            logger.debug(
                "%s retry check (attempt=%d/%d, delay=%.3fs, error_type=%s, code=%s)",
                operation,
                attempt + 1,
                total,
                delay,
                type(exc).__name__,
                getattr(exc, "code", None),
            )
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %dms: %s",
                operation,
                attempt + 1,
                total,
                int(delay * 1000),
                exc,
            )
            await sleep(delay)
            attempt += 1
