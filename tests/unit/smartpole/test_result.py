"""Tests for the Result container and the misuse errors it carries."""

import pytest

from smartpole.domain.errors import (
    NoActiveSessionError,
    NotConnectedError,
    PoleStateError,
    SessionAlreadyActiveError,
)
from smartpole.result import Result


class TestResult:
    """Test Result type behavior."""

    def test_ok_result(self) -> None:
        result: Result[int, PoleStateError] = Result.ok(42)

        assert result.is_ok()
        assert not result.is_err()
        assert result.unwrap() == 42
        assert result.unwrap_or(0) == 42

    def test_err_result(self) -> None:
        result: Result[int, PoleStateError] = Result.err(NoActiveSessionError())

        assert result.is_err()
        assert result.unwrap_or(0) == 0
        assert isinstance(result.unwrap_err(), NoActiveSessionError)

    def test_unwrap_raises_carried_error(self) -> None:
        result: Result[int, PoleStateError] = Result.err(SessionAlreadyActiveError())

        with pytest.raises(SessionAlreadyActiveError, match="session already active"):
            result.unwrap()

    def test_unwrap_err_on_ok_raises(self) -> None:
        with pytest.raises(ValueError):
            Result.ok(1).unwrap_err()

    def test_falsy_values_are_ok(self) -> None:
        assert Result.ok(0.0).is_ok()

    def test_requires_exactly_one_of_value_or_error(self) -> None:
        with pytest.raises(ValueError):
            Result()
        with pytest.raises(ValueError):
            Result(value=1, error=NoActiveSessionError())

    def test_repr(self) -> None:
        assert repr(Result.ok(3)) == "Result.ok(3)"
        assert repr(Result.err(NoActiveSessionError())).startswith("Result.err(NoActiveSessionError")


def test_errors_carry_reason_as_message() -> None:
    assert str(NoActiveSessionError()) == "no active session"
    assert str(NoActiveSessionError("pole POLE-1 is stopped")) == "pole POLE-1 is stopped"
    assert issubclass(SessionAlreadyActiveError, PoleStateError)


@pytest.mark.parametrize("error_cls", [NotConnectedError, SessionAlreadyActiveError])
def test_start_misuse_reads_as_no_active_session(error_cls: type[PoleStateError]) -> None:
    result: Result[int, PoleStateError] = Result.err(error_cls())

    assert isinstance(result.unwrap_err(), NoActiveSessionError)
    with pytest.raises(NoActiveSessionError):
        result.unwrap()
