from __future__ import annotations

import asyncio

import pytest

from ccprovider.retry import RetryPolicy, with_retry


class CodedError(Exception):
    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class FlakyAction:
    """Fails ``failures`` times with ``error`` and then returns ``result``."""

    def __init__(self, error: Exception, failures: int, result: str = "ok") -> None:
        self.error = error
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


@pytest.mark.asyncio
async def test_success_returns_without_retrying(sleep) -> None:
    action = FlakyAction(CodedError("rate limit exceeded"), failures=0)

    assert await with_retry("generate", action, sleep=sleep) == "ok"
    assert action.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retryable_failures_back_off_exponentially(sleep) -> None:
    action = FlakyAction(CodedError("rate limit exceeded"), failures=2)

    assert await with_retry("generate", action, sleep=sleep) == "ok"
    assert action.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_reraise_last_error_unchanged(sleep) -> None:
    error = CodedError("API is overloaded")
    action = FlakyAction(error, failures=10)

    with pytest.raises(CodedError) as excinfo:
        await with_retry("generate", action, sleep=sleep)

    assert excinfo.value is error
    assert action.calls == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_max_retries_zero_makes_a_single_attempt(sleep) -> None:
    action = FlakyAction(CodedError("socket hang up"), failures=10)

    with pytest.raises(CodedError):
        await with_retry("generate", action, max_retries=0, sleep=sleep)

    assert action.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_non_retryable_failure_is_not_retried(sleep) -> None:
    error = CodedError("not authenticated")
    action = FlakyAction(error, failures=10)

    with pytest.raises(CodedError) as excinfo:
        await with_retry("generate", action, sleep=sleep)

    assert excinfo.value is error
    assert action.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retryable_error_codes(sleep) -> None:
    action = FlakyAction(CodedError("resource busy", code="EAGAIN"), failures=1)

    assert await with_retry("generate", action, sleep=sleep) == "ok"
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_policy_controls_base_delay_and_attempts(sleep) -> None:
    action = FlakyAction(CodedError("network down"), failures=10)
    policy = RetryPolicy(max_retries=2, base_delay=0.25)

    with pytest.raises(CodedError):
        await with_retry("stream", action, policy=policy, sleep=sleep)

    assert action.calls == 3
    assert sleep.delays == [0.25, 0.5]


@pytest.mark.asyncio
async def test_explicit_max_retries_overrides_policy(sleep) -> None:
    action = FlakyAction(CodedError("network down"), failures=10)

    with pytest.raises(CodedError):
        await with_retry("stream", action, 1, policy=RetryPolicy(max_retries=5), sleep=sleep)

    assert action.calls == 2


@pytest.mark.asyncio
async def test_custom_retryable_predicate(sleep) -> None:
    action = FlakyAction(ValueError("flaky"), failures=1)

    result = await with_retry("generate", action, retryable=lambda exc: isinstance(exc, ValueError), sleep=sleep)

    assert result == "ok"
    assert action.calls == 2


@pytest.mark.asyncio
async def test_backoff_does_not_block_other_tasks() -> None:
    order: list[str] = []
    action = FlakyAction(CodedError("overloaded"), failures=1)

    async def other() -> None:
        order.append("other")

    async def retried() -> None:
        await with_retry("generate", action, policy=RetryPolicy(base_delay=0.01))
        order.append("retried")

    await asyncio.gather(retried(), other())

    assert order == ["other", "retried"]


def test_policy_delay_sequence() -> None:
    policy = RetryPolicy()
    assert [policy.delay_for(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]


def test_policy_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-0.5)
