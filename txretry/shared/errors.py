"""Exceptions raised by the retry machinery and classification of SQL errors."""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Optional

from sqlalchemy.exc import DBAPIError

# ANSI SQL serialization failure. The only state that is safe to retry.
SERIALIZATION_FAILURE = "40001"


class RetryError(Exception):
    """Base class for errors raised by the retry machinery."""


class ConcurrencyFailureError(RetryError):
    """Too many serialization failures; the operation was given up."""

    def __init__(self, attempts: int, max_attempts: int, name: Optional[str] = None) -> None:
        self.attempts = attempts
        self.max_attempts = max_attempts
        self.name = name
        target = f" for method '{name}'" if name else ""
        super().__init__(
            f"Too many serialization errors ({attempts} of max {max_attempts}){target}. Giving up!"
        )


class RetryConfigurationError(RetryError):
    """The retry wrapper is composed or configured incorrectly."""


class TransactionActiveError(RetryConfigurationError):
    """A transaction was already open when a retryable boundary was entered."""


class InvalidRetryPolicyError(RetryConfigurationError, ValueError):
    """The retry policy is missing or holds invalid values."""


class RetryCancelledError(RetryError):
    """The backoff wait was cancelled; no further attempts are made."""


class Verdict(str, Enum):
    TRANSIENT = "TRANSIENT"
    FATAL = "FATAL"


def _next_cause(error: BaseException) -> Optional[BaseException]:
    if isinstance(error, DBAPIError) and isinstance(error.orig, BaseException):
        return error.orig
    return error.__cause__


def most_specific_cause(error: BaseException) -> BaseException:
    """Follow the chain of wrapped causes and return the innermost one.

    SQLAlchemy wraps driver errors in :class:`~sqlalchemy.exc.DBAPIError`
    (``orig``); application code wraps errors with ``raise ... from``
    (``__cause__``). Both links are followed until none remains.
    """

    seen = {id(error)}
    current = error
    while True:
        cause = _next_cause(current)
        if cause is None or id(cause) in seen:
            return current
        seen.add(id(cause))
        current = cause


def sqlstate_of(error: BaseException) -> Optional[str]:
    """Return the SQLSTATE carried by a driver error, if any.

    psycopg 3 and asyncpg expose ``sqlstate``; psycopg2 exposes ``pgcode``.
    """

    for attr in ("sqlstate", "pgcode"):
        value = getattr(error, attr, None)
        if value:
            return str(value)
    return None


def vendor_code_of(error: BaseException) -> Optional[int]:
    """Return the numeric vendor error code of a driver error, if any."""

    errno = getattr(error, "errno", None)
    if isinstance(errno, int):
        return errno
    args = getattr(error, "args", ())
    if args and isinstance(args[0], int) and not isinstance(args[0], bool):
        return args[0]
    return None


def is_database_error(error: BaseException) -> bool:
    return isinstance(error, DBAPIError) or sqlstate_of(error) is not None


def classify(error: BaseException) -> Verdict:
    """Tell whether ``error`` is a transient serialization conflict.

    Only the most specific cause is inspected. It is transient if and only
    if it carries SQLSTATE ``40001``; any other code, a missing code or a
    non-database error is fatal.
    """

    cause = most_specific_cause(error)
    if sqlstate_of(cause) == SERIALIZATION_FAILURE:
        return Verdict.TRANSIENT
    return Verdict.FATAL


def is_transient(error: BaseException) -> bool:
    return classify(error) is Verdict.TRANSIENT


def iter_nested_causes(error: BaseException) -> Iterator[BaseException]:
    """Yield each individual cause of a possibly batched error.

    Exception groups are flattened depth first; any other error yields its
    most specific cause.
    """

    if isinstance(error, BaseExceptionGroup):
        for nested in error.exceptions:
            yield from iter_nested_causes(nested)
        return
    yield most_specific_cause(error)
