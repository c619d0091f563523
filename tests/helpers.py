from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy.exc import OperationalError


class FakeDriverError(Exception):
    """Stand-in for a DB-API driver error exposing a SQLSTATE."""

    def __init__(self, message: str, sqlstate: Optional[str] = None, errno: Optional[int] = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate
        if errno is not None:
            self.errno = errno


class LockingFailure(Exception):
    """Application level wrapper around a database error."""


def db_error(message: str, sqlstate: Optional[str], errno: Optional[int] = None) -> OperationalError:
    return OperationalError("UPDATE orders SET status = ?", {}, FakeDriverError(message, sqlstate, errno))


def conflict(message: str = "Conflict!") -> LockingFailure:
    error = LockingFailure("Error!")
    error.__cause__ = db_error(message, "40001")
    return error


class Flaky:
    """Callable raising the queued errors in order, then returning ``value``."""

    def __init__(self, errors: Iterable[BaseException], value: object = "ok") -> None:
        self._errors = list(errors)
        self._value = value
        self.calls = 0

    def __call__(self) -> object:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._value
