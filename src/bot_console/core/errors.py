"""Exception hierarchy shared across the console core."""

from __future__ import annotations

from typing import Optional


class ConsoleError(Exception):
    """Base class for every error raised by the console core."""


class ApiError(ConsoleError):
    """A console backend request failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status = status
        self.url = url

    @property
    def is_transient(self) -> bool:
        """Connection failures, timeouts and 5xx responses may succeed on retry."""
        return self.status is None or self.status >= 500


class AuthError(ApiError):
    """The backend rejected the stored credentials (401/403)."""


class NotFoundError(ApiError):
    """The requested record does not exist (404)."""


class StorageError(ConsoleError):
    """A local storage backend failed to read or write."""
