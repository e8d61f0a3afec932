"""
Tagged outcomes for expected service failures.

Services return ``Result.ok(value)`` / ``Result.err(ServiceError(...))`` for
outcomes a caller is expected to branch on (unknown id, wrong tenant, bad row),
and raise ``ServiceException`` only when the whole operation must stop.
Store failures are left to propagate as SQLAlchemy errors.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ISOLATION_VIOLATION = "isolation_violation"
    VALIDATION_FAILURE = "validation_failure"
    CONFLICT = "conflict"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ISOLATION_VIOLATION: 403,
    ErrorKind.VALIDATION_FAILURE: 422,
    ErrorKind.CONFLICT: 409,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    reason: str

    @classmethod
    def not_found(cls, reason: str) -> "ServiceError":
        return cls(ErrorKind.NOT_FOUND, reason)

    @classmethod
    def isolation(cls, reason: str) -> "ServiceError":
        return cls(ErrorKind.ISOLATION_VIOLATION, reason)

    @classmethod
    def invalid(cls, reason: str) -> "ServiceError":
        return cls(ErrorKind.VALIDATION_FAILURE, reason)

    @classmethod
    def conflict(cls, reason: str) -> "ServiceError":
        return cls(ErrorKind.CONFLICT, reason)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class ServiceException(Exception):
    """Raised when an expected failure aborts the whole operation."""

    def __init__(self, error: ServiceError):
        super().__init__(error.reason)
        self.error = error


@dataclass(frozen=True)
class Result(Generic[T]):
    _value: T | None = None
    _error: ServiceError | None = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(_value=value)

    @classmethod
    def err(cls, error: ServiceError) -> "Result[T]":
        return cls(_error=error)

    @property
    def is_ok(self) -> bool:
        return self._error is None

    @property
    def is_err(self) -> bool:
        return self._error is not None

    @property
    def value(self) -> T:
        if self._error is not None:
            raise ValueError(f"Called value on Result.err: {self._error.reason}")
        return self._value  # type: ignore[return-value]

    @property
    def error(self) -> ServiceError:
        if self._error is None:
            raise ValueError("Called error on Result.ok")
        return self._error

    def unwrap(self) -> T:
        """Return the value or raise ``ServiceException`` for the error."""
        if self._error is not None:
            raise ServiceException(self._error)
        return self._value  # type: ignore[return-value]
