"""Timeouts, deadlines and retries for upstream calls."""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from .errors import InvalidEmbedding

logger = logging.getLogger(__name__)


class Deadline:
    """Absolute point in time shared by all calls of one request."""

    def __init__(self, seconds: Optional[float] = None):
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, or None for an unbounded deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def clamp(self, timeout: Optional[float]) -> Optional[float]:
        """Shorten a per-call timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for idempotent reads."""

    attempts: int = 3
    backoff_min: float = 0.2
    backoff_max: float = 2.0


def _stop_at_deadline(deadline: Deadline) -> Callable[[Any], bool]:
    def stop(retry_state) -> bool:
        return deadline.expired

    return stop


def _should_retry(
    no_retry: tuple[type[BaseException], ...],
    timeout: Optional[float],
    deadline: Deadline,
) -> Callable[[BaseException], bool]:
    def should_retry(error: BaseException) -> bool:
        if isinstance(error, no_retry):
            return False
        if isinstance(error, asyncio.TimeoutError):
            # the timed-out attempt still holds its worker thread
            remaining = deadline.remaining()
            if remaining is not None and timeout is not None and remaining < timeout:
                return False
        return True

    return should_retry


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    target = retry_state.args[0] if retry_state.args else retry_state.fn
    name = getattr(target, "__qualname__", "call")
    logger.warning(f"Retrying {name} (attempt {retry_state.attempt_number}): {exc!r}")


async def call_with_timeout(
    fn: Callable[..., Any],
    *args: Any,
    timeout: Optional[float] = None,
    deadline: Optional[Deadline] = None,
) -> Any:
    """Run fn once under the tighter of timeout and deadline.

    Blocking callables run in a worker thread; coroutine functions are awaited.
    A worker thread cannot be cancelled: after a timeout it keeps running
    until the blocking call returns, only its result is discarded.

    Raises:
        asyncio.TimeoutError: If the deadline is already spent or the call
            does not finish in time.
    """
    deadline = deadline or Deadline()
    if deadline.expired:
        raise asyncio.TimeoutError("request deadline exceeded")

    budget = deadline.clamp(timeout)
    if inspect.iscoroutinefunction(fn):
        return await asyncio.wait_for(fn(*args), timeout=budget)
    return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=budget)


async def call_with_retry(
    fn: Callable[..., Any],
    *args: Any,
    timeout: Optional[float] = None,
    policy: Optional[RetryPolicy] = None,
    deadline: Optional[Deadline] = None,
    no_retry: tuple[type[BaseException], ...] = (InvalidEmbedding,),
) -> Any:
    """Call fn with a per-attempt timeout and bounded retries.

    Args:
        fn: Idempotent read operation.
        *args: Positional arguments for fn.
        timeout: Per-attempt timeout in seconds.
        policy: Retry policy.
        deadline: Request deadline; no attempt starts after it expires.
        no_retry: Exceptions that fail immediately. A timeout is not retried
            once less than a full per-attempt timeout is left on the deadline.

    Returns:
        Whatever fn returns.

    Raises:
        The last exception raised by fn (or asyncio.TimeoutError).
    """
    policy = policy or RetryPolicy()
    deadline = deadline or Deadline()

    retrying = AsyncRetrying(
        stop=stop_any(
            stop_after_attempt(max(1, policy.attempts)), _stop_at_deadline(deadline)
        ),
        wait=wait_exponential(
            multiplier=policy.backoff_min,
            min=policy.backoff_min,
            max=policy.backoff_max,
        ),
        retry=retry_if_exception(_should_retry(no_retry, timeout, deadline)),
        before_sleep=_log_retry,
        reraise=True,
    )

    return await retrying(call_with_timeout, fn, *args, timeout=timeout, deadline=deadline)
