from __future__ import annotations

import pytest

from nauta_connect.result import (
    Failure,
    FailureKind,
    Result,
    ResultError,
    invalid_credentials,
    io_error,
    network_error,
    no_balance,
    parser_error,
    session_expired,
    unexpected_response,
)


def test_success_result_exposes_value_and_no_failure() -> None:
    r = Result.success({"a": "1"})
    assert r.ok and not r.failed
    assert r.value == {"a": "1"}
    with pytest.raises(ResultError):
        _ = r.failure


def test_failed_result_refuses_value_access() -> None:
    r = network_error("cancelled")
    assert r.failed
    assert r.failure.kind is FailureKind.NETWORK_ERROR
    assert r.failure.message == "cancelled"
    with pytest.raises(ResultError):
        _ = r.value


def test_bind_short_circuits_on_failure() -> None:
    calls: list[int] = []

    def step(v: int) -> Result[int]:
        calls.append(v)
        return Result.success(v + 1)

    assert Result.success(1).bind(step).bind(step).value == 3
    failed = parser_error("bad html").bind(step)
    assert failed.failure.kind is FailureKind.PARSER_ERROR
    assert calls == [1, 2]


def test_fold_and_map() -> None:
    assert Result.success(2).map(lambda v: v * 10).fold(str, lambda f: f.message) == "20"
    assert network_error("down").fold(str, lambda f: f.message) == "down"


@pytest.mark.parametrize(
    "factory,kind",
    [
        (invalid_credentials, FailureKind.INVALID_CREDENTIALS),
        (no_balance, FailureKind.NO_BALANCE),
        (session_expired, FailureKind.SESSION_EXPIRED),
        (io_error, FailureKind.IO_ERROR),
        (unexpected_response, FailureKind.UNEXPECTED_RESPONSE),
    ],
)
def test_factories_carry_their_kind_and_a_default_message(factory, kind: FailureKind) -> None:
    r = factory()
    assert r.failure.kind is kind
    assert r.failure.message
    assert factory("custom", "why").failure == Failure(kind, "custom", "why")


def test_failed_result_cannot_carry_a_value() -> None:
    with pytest.raises(ValueError):
        Result(value=1, failure=Failure(FailureKind.IO_ERROR, "x"))


def test_failure_str_includes_details() -> None:
    assert str(Failure(FailureKind.UNEXPECTED_RESPONSE, "server error", "status: 503")) == "server error (status: 503)"
    assert str(Failure(FailureKind.IO_ERROR, "disk")) == "disk"
