"""Exceptions for transaction results and their mapping from HTTP responses."""

from __future__ import annotations

from http import HTTPStatus

from .consts import RESULT_FAILURE, RESULT_ONGOING


class DtmError(Exception):
    """Base class of all errors reported by the transaction client."""


class FailureError(DtmError):
    """The transaction or branch failed and should be rolled back."""

    def __init__(self, message: str = RESULT_FAILURE) -> None:
        super().__init__(message)


class OngoingError(DtmError):
    """The branch is still in progress and should be retried later."""

    def __init__(self, message: str = RESULT_ONGOING) -> None:
        super().__init__(message)


class DuplicatedError(DtmError):
    """A msg branch was already executed or queried before."""

    def __init__(self, message: str = "DUPLICATED") -> None:
        super().__init__(message)


def resp_as_error(status_code: int, text: str) -> DtmError | None:
    """Translate an HTTP status and body into an error, or None on success."""
    if status_code == HTTPStatus.TOO_EARLY or RESULT_ONGOING in text:
        return OngoingError(f"{text}. {RESULT_ONGOING}")
    if status_code == HTTPStatus.CONFLICT or RESULT_FAILURE in text:
        return FailureError(f"{text}. {RESULT_FAILURE}")
    if status_code != HTTPStatus.OK:
        return DtmError(text)
    return None