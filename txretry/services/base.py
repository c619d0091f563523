from __future__ import annotations

import functools
from typing import Any, Callable, Optional, TypeVar, overload

from txretry.infra.db import unit_of_work
from txretry.shared import retry as retry_helpers
from txretry.shared.config import DEFAULT_MAX_BACKOFF_MILLIS, DEFAULT_RETRY_ATTEMPTS
from txretry.shared.retry import RetryPolicy

F = TypeVar("F", bound=Callable[..., Any])


@overload
def transaction_boundary(func: F) -> F: ...


@overload
def transaction_boundary(
    *,
    retry_attempts: int = ...,
    max_backoff_millis: int = ...,
    name: Optional[str] = ...,
) -> Callable[[F], F]: ...


def transaction_boundary(
    func: Optional[Callable[..., Any]] = None,
    *,
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    max_backoff_millis: int = DEFAULT_MAX_BACKOFF_MILLIS,
    name: Optional[str] = None,
) -> Any:
    """Mark a function as a transactional service boundary.

    Every call runs the function in a brand-new transaction (see
    :func:`~txretry.infra.db.unit_of_work`) and retries it with exponential
    backoff when the transaction is aborted by a serialization failure. The
    retry sits outside the transaction, so calling a boundary from inside an
    open transaction fails with :class:`~txretry.shared.errors.TransactionActiveError`.

    The decorated function must be idempotent: it may run more than once.

    Parameters
    ----------
    retry_attempts:
        Number of retries after the first attempt.
    max_backoff_millis:
        Ceiling for the delay between two attempts.
    name:
        Label used in log messages. Defaults to the function's qualified name.
    """

    policy = RetryPolicy(max_attempts=retry_attempts, max_backoff_millis=max_backoff_millis)

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        label = name or fn.__qualname__

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            def attempt() -> Any:
                with unit_of_work():
                    return fn(*args, **kwargs)

            return retry_helpers.default_retrier.execute(attempt, policy, name=label)

        wrapper.retry_policy = policy  # type: ignore[attr-defined]
        return wrapper

    if func is not None:
        return decorate(func)
    return decorate
