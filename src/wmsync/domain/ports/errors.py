"""Failure contract every backend adapter must honour."""

from __future__ import annotations


class BackendError(RuntimeError):
    """Base class for failures reported by (or while reaching) the backend."""


class BackendUnavailableError(BackendError):
    """Network failure, timeout or server-side outage."""


class BackendAuthError(BackendError):
    """The backend rejected the caller's credentials or permissions."""


class BackendRejectedError(BackendError):
    """The backend refused the call, typically because a guard failed server-side."""

    def __init__(
        self, message: str, *, code: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class RecordNotFoundError(BackendRejectedError):
    """A mutation targeted a row that does not exist (or no longer matches its filter)."""
