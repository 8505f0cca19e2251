from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar


T = TypeVar("T")
U = TypeVar("U")


class FailureKind(str, Enum):
    NETWORK_ERROR = "network_error"
    UNEXPECTED_RESPONSE = "unexpected_response"
    INVALID_CREDENTIALS = "invalid_credentials"
    NO_BALANCE = "no_balance"
    SESSION_EXPIRED = "session_expired"
    PARSER_ERROR = "parser_error"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    details: str = ""

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ResultError(RuntimeError):
    """
    Raised when the value of a failed `Result` is read.
    """


class Result(Generic[T]):
    """
    Two-armed outcome of a fallible operation: either a value or a `Failure`, never both.

    Library layers return these instead of raising so callers can branch on `Failure.kind`.
    """

    __slots__ = ("_value", "_failure")

    def __init__(self, value: Optional[T] = None, failure: Optional[Failure] = None) -> None:
        if failure is not None and value is not None:
            raise ValueError("a failed result cannot carry a value")
        self._value = value
        self._failure = failure

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":  # type: ignore[assignment]
        return cls(value=value)

    @classmethod
    def fail(cls, failure: Failure) -> "Result[T]":
        return cls(failure=failure)

    @property
    def ok(self) -> bool:
        return self._failure is None

    @property
    def failed(self) -> bool:
        return self._failure is not None

    @property
    def value(self) -> T:
        if self._failure is not None:
            raise ResultError(f"cannot read the value of a failed result: {self._failure}")
        return self._value  # type: ignore[return-value]

    @property
    def failure(self) -> Failure:
        if self._failure is None:
            raise ResultError("a successful result has no failure")
        return self._failure

    def bind(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        if self._failure is not None:
            return Result.fail(self._failure)
        return fn(self._value)  # type: ignore[arg-type]

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if self._failure is not None:
            return Result.fail(self._failure)
        return Result.success(fn(self._value))  # type: ignore[arg-type]

    def fold(self, on_success: Callable[[T], U], on_failure: Callable[[Failure], U]) -> U:
        if self._failure is not None:
            return on_failure(self._failure)
        return on_success(self._value)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        if self._failure is not None:
            return f"Result.fail({self._failure!r})"
        return f"Result.success({self._value!r})"


def network_error(message: str = "network error", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.NETWORK_ERROR, message, details))


def unexpected_response(message: str = "the portal returned an unexpected response", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.UNEXPECTED_RESPONSE, message, details))


def invalid_credentials(message: str = "invalid username or password", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.INVALID_CREDENTIALS, message, details))


def no_balance(message: str = "the account has no balance left", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.NO_BALANCE, message, details))


def session_expired(message: str = "the session expired due to inactivity", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.SESSION_EXPIRED, message, details))


def parser_error(message: str = "could not parse the portal response", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.PARSER_ERROR, message, details))


def io_error(message: str = "session data error", details: str = "") -> Result:
    return Result.fail(Failure(FailureKind.IO_ERROR, message, details))
