"""Retry helpers for transaction boundaries.

Operations that run in their own transaction are retried when the database
aborts them with a serialization failure (SQLSTATE ``40001``). Any other
error is propagated unchanged after a single attempt.

The retry must wrap the transaction, never the other way around: every
attempt begins and ends its own transaction, so the retrier refuses to run
while a transaction is already open on the calling context.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, Retrying, stop_after_attempt
from tenacity import RetryError as _ExhaustedError

from txretry.infra.db import in_transaction
from txretry.shared.config import DEFAULT_MAX_BACKOFF_MILLIS, DEFAULT_RETRY_ATTEMPTS
from txretry.shared.errors import (
    ConcurrencyFailureError,
    InvalidRetryPolicyError,
    RetryCancelledError,
    TransactionActiveError,
    is_database_error,
    is_transient,
    iter_nested_causes,
    most_specific_cause,
    sqlstate_of,
    vendor_code_of,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_MAX_MILLIS = 1000


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget of a transaction boundary.

    ``max_attempts`` counts retries after the first attempt, so the work runs
    at most ``max_attempts + 1`` times.
    """

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    max_backoff_millis: int = DEFAULT_MAX_BACKOFF_MILLIS

    def __post_init__(self) -> None:
        for name in ("max_attempts", "max_backoff_millis"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidRetryPolicyError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(max_attempts=DEFAULT_RETRY_ATTEMPTS, max_backoff_millis=DEFAULT_MAX_BACKOFF_MILLIS)


class OutcomeKind(str, Enum):
    SUCCESS = "SUCCESS"
    TRANSIENT = "TRANSIENT"
    FATAL = "FATAL"


@dataclass(frozen=True)
class AttemptOutcome:
    """Classified result of one attempt."""

    kind: OutcomeKind
    result: Any = None
    cause: Optional[BaseException] = None

    @classmethod
    def success(cls, result: Any) -> "AttemptOutcome":
        return cls(OutcomeKind.SUCCESS, result=result)

    @classmethod
    def transient(cls, cause: BaseException) -> "AttemptOutcome":
        return cls(OutcomeKind.TRANSIENT, cause=cause)

    @classmethod
    def fatal(cls, cause: BaseException) -> "AttemptOutcome":
        return cls(OutcomeKind.FATAL, cause=cause)

    @classmethod
    def of(cls, retry_state: RetryCallState) -> "AttemptOutcome":
        outcome = retry_state.outcome
        if outcome is None:
            raise RuntimeError("attempt has not finished yet")
        if not outcome.failed:
            return cls.success(outcome.result())
        error = outcome.exception()
        if is_transient(error):
            return cls.transient(error)
        return cls.fatal(error)


def compute_backoff_millis(
    attempt: int,
    max_backoff_millis: int,
    jitter: Callable[[], float] = random.random,
) -> int:
    """Return the delay before retry ``attempt``: ``2**attempt`` ms plus up to
    one second of jitter, capped at ``max_backoff_millis``."""

    # clamp before mixing with the float jitter; 2**attempt outgrows a float
    exponential = min(2 ** attempt, max_backoff_millis)
    return min(int(exponential + jitter() * JITTER_MAX_MILLIS), max_backoff_millis)


class _BackoffWait:
    """tenacity wait strategy returning seconds for :func:`compute_backoff_millis`."""

    def __init__(self, policy: RetryPolicy, jitter: Callable[[], float]) -> None:
        self._policy = policy
        self._jitter = jitter

    def __call__(self, retry_state: RetryCallState) -> float:
        millis = compute_backoff_millis(
            retry_state.attempt_number, self._policy.max_backoff_millis, self._jitter
        )
        return millis / 1000.0


def _resolve_policy(policy: Optional[RetryPolicy]) -> RetryPolicy:
    if policy is None:
        return RetryPolicy.from_settings()
    if not isinstance(policy, RetryPolicy):
        raise InvalidRetryPolicyError(f"Expected RetryPolicy, got {type(policy).__name__}")
    return policy


def _describe(work: Callable[..., Any], name: Optional[str]) -> str:
    if name:
        return name
    return getattr(work, "__qualname__", None) or type(work).__qualname__


def handle_recovery(retries: int, name: str, elapsed: timedelta) -> None:
    logger.info(
        "Recovered from transient SQL error after %d retries of method '%s' (time spent: %s)",
        retries,
        name,
        elapsed,
    )


def handle_transient(retry_state: RetryCallState, name: str, policy: RetryPolicy) -> None:
    cause = most_specific_cause(retry_state.outcome.exception())
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Transient SQL error (%s) in method '%s' (backoff for %d ms before retry attempt %d/%d): %s",
        sqlstate_of(cause),
        name,
        round(delay * 1000),
        retry_state.attempt_number,
        policy.max_attempts,
        cause,
    )


def handle_non_transient(error: BaseException, name: str) -> None:
    for nested in iter_nested_causes(error):
        if not is_database_error(nested):
            continue
        logger.warning(
            "Non-transient SQL error (state: %s) (code: %s) in method '%s': %s",
            sqlstate_of(nested),
            vendor_code_of(nested),
            name,
            nested,
        )


class TransactionRetrier:
    """Run units of work, retrying those aborted by serialization conflicts.

    Parameters
    ----------
    probe:
        Returns ``True`` when a transaction is already open on the calling
        context. Defaults to :func:`txretry.infra.db.in_transaction`.
    sleep:
        Blocking wait used between attempts, in seconds.
    async_sleep:
        Awaitable wait used by :meth:`aexecute`.
    jitter:
        Source of random numbers in ``[0, 1)`` for backoff jitter.
    cancel_event:
        Optional cancellation token. When given, waits use
        ``cancel_event.wait`` and a set event stops the loop with
        :class:`RetryCancelledError`. The event is left set.
    """

    def __init__(
        self,
        *,
        probe: Callable[[], bool] = in_transaction,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._probe = probe
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._jitter = jitter
        self._cancel_event = cancel_event

    def _check_no_transaction(self, name: str) -> None:
        if self._probe():
            raise TransactionActiveError(
                f"Detected active transaction for [{name}] - the retry wrapper must be "
                "in front of the transaction boundary in the call chain."
            )

    def _wait(self, seconds: float) -> None:
        if self._cancel_event is None:
            self._sleep(seconds)
            return
        if self._cancel_event.wait(seconds):
            raise RetryCancelledError("Retry backoff cancelled")

    def _controller_options(self, policy: RetryPolicy, name: str) -> dict[str, Any]:
        def should_retry(retry_state: RetryCallState) -> bool:
            outcome = AttemptOutcome.of(retry_state)
            if outcome.kind is OutcomeKind.FATAL:
                handle_non_transient(outcome.cause, name)
            return outcome.kind is OutcomeKind.TRANSIENT

        return {
            "retry": should_retry,
            "stop": stop_after_attempt(policy.max_attempts + 1),
            "wait": _BackoffWait(policy, self._jitter),
            "before_sleep": lambda rs: handle_transient(rs, name, policy),
        }

    @staticmethod
    def _give_up(exc: _ExhaustedError, policy: RetryPolicy, name: str) -> ConcurrencyFailureError:
        return ConcurrencyFailureError(exc.last_attempt.attempt_number, policy.max_attempts, name)

    def execute(
        self,
        work: Callable[[], T],
        policy: Optional[RetryPolicy] = None,
        *,
        name: Optional[str] = None,
    ) -> T:
        """Invoke ``work`` until it succeeds, fails fatally or runs out of retries.

        ``work`` must open and close its own transaction on every call.
        Raises :class:`TransactionActiveError` without calling ``work`` when a
        transaction is already open, :class:`ConcurrencyFailureError` when the
        retry budget is exhausted and re-raises any non-transient error as is.
        """

        policy = _resolve_policy(policy)
        label = _describe(work, name)
        self._check_no_transaction(label)

        started = time.monotonic()
        retrying = Retrying(sleep=self._wait, **self._controller_options(policy, label))
        try:
            for attempt in retrying:
                with attempt:
                    result = work()
        except _ExhaustedError as exc:
            raise self._give_up(exc, policy, label) from exc.last_attempt.exception()

        retries = attempt.retry_state.attempt_number - 1
        if retries > 0:
            handle_recovery(retries, label, timedelta(seconds=time.monotonic() - started))
        return result

    async def aexecute(
        self,
        work: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        *,
        name: Optional[str] = None,
    ) -> T:
        """Coroutine counterpart of :meth:`execute`.

        Cancelling the calling task while it waits between attempts abandons
        the loop and propagates :class:`asyncio.CancelledError`.
        """

        policy = _resolve_policy(policy)
        label = _describe(work, name)
        self._check_no_transaction(label)

        started = time.monotonic()
        retrying = AsyncRetrying(sleep=self._async_sleep, **self._controller_options(policy, label))
        try:
            async for attempt in retrying:
                with attempt:
                    result = await work()
        except _ExhaustedError as exc:
            raise self._give_up(exc, policy, label) from exc.last_attempt.exception()

        retries = attempt.retry_state.attempt_number - 1
        if retries > 0:
            handle_recovery(retries, label, timedelta(seconds=time.monotonic() - started))
        return result


default_retrier = TransactionRetrier()


def execute(work: Callable[[], T], policy: Optional[RetryPolicy] = None, *, name: Optional[str] = None) -> T:
    return default_retrier.execute(work, policy, name=name)


async def aexecute(
    work: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    name: Optional[str] = None,
) -> T:
    return await default_retrier.aexecute(work, policy, name=name)
