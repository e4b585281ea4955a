import pytest

from auth.errors import (
    ExchangeFailedError,
    InvalidStateError,
    ListFetchFailedError,
    RefreshFailedError,
    ServiceError,
    SessionNotFoundError,
)
from maltier.http import friendly_error_message


def test_401_message() -> None:
    assert friendly_error_message(401) == (
        "Authentication failed. Your MyAnimeList token may have expired."
    )


def test_404_message() -> None:
    assert friendly_error_message(404) == "The requested list was not found on MyAnimeList."


def test_500_message() -> None:
    assert friendly_error_message(503) == (
        "MyAnimeList is experiencing issues. Please try again later."
    )


def test_other_status_message() -> None:
    assert friendly_error_message(418) == "MyAnimeList request failed with status 418."


@pytest.mark.parametrize(
    ("error_cls", "code", "status_code"),
    [
        (InvalidStateError, "invalid_state", 401),
        (SessionNotFoundError, "session_not_found", 401),
        (ExchangeFailedError, "exchange_failed", 502),
        (RefreshFailedError, "refresh_failed", 401),
        (ListFetchFailedError, "list_fetch_failed", 502),
    ],
)
def test_error_codes(error_cls, code, status_code) -> None:
    error = error_cls()

    assert isinstance(error, ServiceError)
    assert error.code == code
    assert error.status_code == status_code
    assert str(error) == error_cls.default_message


def test_error_custom_message() -> None:
    assert str(ExchangeFailedError("status 400")) == "status 400"
