"""Retry engine shared by every operation.

One ``RetryPolicy`` describes the attempt budget, the backoff schedule and
the retry predicate. ``execute_with_retry`` runs an async callable under a
policy; the blocking client reuses it with a blocking ``sleep_fn`` so the
coroutine never suspends and can be driven by ``iter_coroutine``.
"""

from __future__ import annotations

import dataclasses
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import anyio

from .cancellation import CancelToken, raise_if_cancelled
from .constants import (
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_RETRY_DELAY_MULTIPLIER,
    NOT_ALLOWED,
    RETRYABLE_ERROR_CODES,
    RETRYABLE_STATUS_CODES,
)
from .errors import B2CancelledError, B2Error, B2NetworkError, B2TimeoutError, B2ValidationError
from .types import RetryContext
from .utils import await_if_necessary, debug, drop_none, parse_retry_after

_T = TypeVar("_T")

ShouldRetry = Callable[[BaseException, int], bool]
OnRetry = Callable[[BaseException, int, float], object]
SleepFn = Callable[[float, CancelToken | None], Awaitable[None] | None]

JITTER = 0.25


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error independently of the attempt budget."""
    if isinstance(error, (B2CancelledError, B2ValidationError)):
        return False
    if not isinstance(error, B2Error):
        return False
    if error.code == NOT_ALLOWED:
        return False
    if isinstance(error, (B2NetworkError, B2TimeoutError)):
        return True
    if error.status in RETRYABLE_STATUS_CODES:
        return True
    if error.code in RETRYABLE_ERROR_CODES:
        return True
    if error.status is not None and 400 <= error.status < 500:
        return False
    return error.status is not None and error.status >= 500


def default_should_retry(error: BaseException, attempt: int, retries: int) -> bool:
    if attempt >= retries:
        return False
    return is_retryable_error(error)


def retry_after_floor(error: BaseException) -> float | None:
    response = getattr(error, "response", None)
    if response is None:
        return None
    return parse_retry_after(response.headers.get("retry-after"))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    retries: int = DEFAULT_RETRIES
    base_delay: float = DEFAULT_RETRY_DELAY
    multiplier: float = DEFAULT_RETRY_DELAY_MULTIPLIER
    max_delay: float = DEFAULT_MAX_RETRY_DELAY
    should_retry: ShouldRetry | None = None
    on_retry: OnRetry | None = None

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Return a copy with every non-None keyword applied."""
        changes = drop_none(changes)
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def allows(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.retries:
            return False
        if self.should_retry is not None:
            return bool(self.should_retry(error, attempt))
        return default_should_retry(error, attempt, self.retries)

    def compute_delay(
        self,
        attempt: int,
        error: BaseException | None = None,
        *,
        uniform: Callable[[float, float], float] = random.uniform,
    ) -> float:
        """Backoff before the retry that follows 0-based ``attempt``.

        ``min(max_delay, base_delay * multiplier ** attempt)`` scaled by a
        jitter factor in [0.75, 1.25]. A ``Retry-After`` header on the
        failed response raises the delay to at least its value.
        """
        capped = min(self.max_delay, self.base_delay * (self.multiplier**attempt))
        delay = max(0.0, capped * uniform(1 - JITTER, 1 + JITTER))
        if error is not None:
            floor = retry_after_floor(error)
            if floor is not None and floor > delay:
                delay = floor
        return delay


async def async_sleep(delay: float, cancel: CancelToken | None = None) -> None:
    if cancel is None:
        await anyio.sleep(delay)
        return
    with anyio.move_on_after(delay):
        await cancel.wait_async()


def blocking_sleep(delay: float, cancel: CancelToken | None = None) -> None:
    if cancel is None:
        time.sleep(delay)
        return
    cancel.wait(delay)


def _notify_retry(policy: RetryPolicy, context: RetryContext, debug_enabled: bool) -> None:
    if policy.on_retry is None:
        return
    try:
        policy.on_retry(context.error, context.attempt, context.delay)
    except Exception as exc:
        debug("on_retry callback failed", repr(exc), enabled=debug_enabled)


def _annotate(error: BaseException, attempts: int, exhausted: bool) -> None:
    if isinstance(error, B2Error):
        error.retry_attempts = attempts
        error.retry_exhausted = exhausted


async def execute_with_retry(
    fn: Callable[[], Awaitable[_T]],
    policy: RetryPolicy,
    *,
    cancel: CancelToken | None = None,
    sleep_fn: SleepFn = async_sleep,
    debug_enabled: bool = False,
) -> _T:
    """Run ``fn`` until it succeeds or the policy gives up.

    At most ``policy.retries + 1`` attempts are made. A fired cancel token
    prevents the next attempt and cuts any pending delay short, surfacing
    ``B2CancelledError``.
    """
    raise_if_cancelled(cancel)
    max_attempts = max(0, policy.retries) + 1
    attempt = 0
    while True:
        try:
            return await fn()
        except B2CancelledError:
            raise
        except Exception as exc:
            if cancel is not None and cancel.cancelled:
                raise B2CancelledError(cancel.reason or "Operation was cancelled") from exc
            last_attempt = attempt == max_attempts - 1
            if last_attempt or not policy.allows(exc, attempt):
                _annotate(exc, attempt + 1, last_attempt)
                raise
            delay = policy.compute_delay(attempt, exc)
            kind = getattr(exc, "kind", type(exc).__name__)
            debug(f"retrying after {kind} (attempt {attempt + 1}) in {delay:.3f}s", enabled=debug_enabled)
            _notify_retry(policy, RetryContext(attempt + 1, exc, delay), debug_enabled)
            if delay > 0:
                await await_if_necessary(sleep_fn(delay, cancel))
            raise_if_cancelled(cancel)
            attempt += 1


__all__ = [
    "RetryPolicy",
    "ShouldRetry",
    "OnRetry",
    "SleepFn",
    "is_retryable_error",
    "default_should_retry",
    "retry_after_floor",
    "execute_with_retry",
    "async_sleep",
    "blocking_sleep",
]
