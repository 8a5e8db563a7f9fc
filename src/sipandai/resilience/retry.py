"""Retrying executor: runs a fallible async operation with exponential
backoff.

Attempt i (0-based) that fails before the last attempt is followed by a
suspension of base_delay * 2**i seconds. The delay is uncapped unless
max_delay is given. Exhaustion is reported as a failed RetryResult and
a single on_error callback; it is never raised and never swallowed.

One execution per executor instance at a time. Callers that need
concurrent retries use one executor each.

Results are returned as-is. Pass normalize=normalize_channel_result to
treat a returned (value, error) pair with an error as a failed attempt.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from sipandai.logging_config import get_logger
from sipandai.policy.resolver import RetryPolicy
logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[Any], Any]]
SleepFn = Callable[[float], Awaitable[Any]]
NormalizeFn = Callable[[Any], Any]


@dataclass(frozen=True)
class RetryState:
    """Observable executor state."""
    is_loading: bool = False
    error: Optional[BaseException] = None
    attempts: int = 0
    is_retrying: bool = False


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Outcome of one execute() call."""
    success: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0


class RetryingExecutor:
    """Exponential-backoff retry runner.

    Usage:
        executor = RetryingExecutor(max_retries=3, base_delay=0.5)
        result = await executor.execute(lambda: channel.save_request(req))
        if not result.success:
            show_retry_button(result.error, result.attempts)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: Optional[float] = None,
        on_retry: Optional[Callable[[int], None]] = None,
        on_success: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException, int], None]] = None,
        retry_if: Optional[Callable[[BaseException], bool]] = None,
        sleep: SleepFn = asyncio.sleep,
        normalize: Optional[NormalizeFn] = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {base_delay}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._on_retry = on_retry
        self._on_success = on_success
        self._on_error = on_error
        self._retry_if = retry_if
        self._sleep = sleep
        self._normalize = normalize
        self._state = RetryState()

    @classmethod
    def from_policy(cls, policy: RetryPolicy, **kwargs: Any) -> RetryingExecutor:
        return cls(
            max_retries=policy.max_retries,
            base_delay=policy.base_delay_seconds,
            max_delay=policy.max_delay_seconds,
            **kwargs,
        )

    @property
    def state(self) -> RetryState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state.is_loading

    def backoff_delay(self, attempt_index: int) -> float:
        """Delay after the failed attempt with the given 0-based index."""
        delay = self.base_delay * (2 ** attempt_index)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def reset(self) -> None:
        if self._state.is_loading:
            raise RuntimeError("Cannot reset while an execution is in flight")
        self._state = RetryState()

    async def execute(self, operation: Operation) -> RetryResult[Any]:
        """Run operation up to max_retries + 1 times."""
        if self._state.is_loading:
            raise RuntimeError("An execution is already in flight on this executor")

        self._state = replace(self._state, is_loading=True, error=None)
        try:
            return await self._run(operation)
        finally:
            if self._state.is_loading or self._state.is_retrying:
                # Only reached on cancellation.
                self._state = replace(self._state, is_loading=False, is_retrying=False)

    async def _run(self, operation: Operation) -> RetryResult[Any]:
        for attempt in range(self.max_retries + 1):
            try:
                value = await _invoke(operation, self._normalize)
            except Exception as exc:
                attempts = attempt + 1
                is_last = attempt == self.max_retries
                retryable = self._retry_if is None or self._retry_if(exc)

                if is_last or not retryable:
                    return self._fail(exc, attempts, retryable)

                delay = self.backoff_delay(attempt)
                self._state = replace(self._state, is_retrying=True, attempts=attempts)
                logger.warning(
                    "retry_scheduled",
                    attempt=attempts,
                    delay_seconds=delay,
                    error=str(exc),
                )
                if self._on_retry is not None:
                    self._on_retry(attempts)
                await self._sleep(delay)
                self._state = replace(self._state, is_retrying=False)
                continue

            self._state = RetryState(
                is_loading=False, error=None, attempts=attempt + 1, is_retrying=False,
            )
            if attempt > 0:
                logger.info("retry_recovered", attempts=attempt + 1)
                if self._on_success is not None:
                    self._on_success()
            return RetryResult(success=True, value=value, attempts=attempt + 1)

        raise AssertionError("unreachable")  # pragma: no cover

    def _fail(self, exc: BaseException, attempts: int, retryable: bool) -> RetryResult[Any]:
        self._state = RetryState(
            is_loading=False, error=exc, attempts=attempts, is_retrying=False,
        )
        logger.error(
            "retry_exhausted" if retryable else "retry_aborted",
            attempts=attempts,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if self._on_error is not None:
            self._on_error(exc, attempts)
        return RetryResult(success=False, error=exc, attempts=attempts)


async def _invoke(operation: Operation, normalize: Optional[NormalizeFn]) -> Any:
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    if normalize is not None:
        result = normalize(result)
    return result
