"""Error types raised by the upload stores and lockers."""

from __future__ import annotations

from collections.abc import Iterable


class TusError(Exception):
    """Base class for all errors raised by this package."""


class HTTPError(TusError):
    """An error that carries the HTTP status code a server should answer with."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(HTTPError):
    """The requested upload does not exist."""

    def __init__(self, message: str = "upload not found") -> None:
        super().__init__(message, 404)


class FileLockedError(HTTPError):
    """The upload is currently locked by another party."""

    def __init__(self, message: str = "file currently locked") -> None:
        super().__init__(message, 423)


class MultiError(TusError):
    """Several errors that occurred during one operation."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = list(errors)
        message = "Multiple errors occurred:\n" + "".join(
            f"\t{error}\n" for error in self.errors
        )
        super().__init__(message)