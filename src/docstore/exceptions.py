from __future__ import annotations

from typing import Optional


class RepositoryError(RuntimeError):
    """Raised when repository operations fail.

    Wraps lower-level exceptions to provide a stable, domain-friendly API.
    """

    pass


class DocumentCodecError(RepositoryError):
    """Raised when a payload cannot be encoded to or decoded from JSON."""

    pass


class BackendUnavailableError(RepositoryError):
    """Raised when the backend cannot answer a query such as an existence check."""

    def __init__(self, key: str, status_code: str, message: str) -> None:
        self.key = key
        self.status_code = status_code
        super().__init__(message)


class UpdateCancelledError(RepositoryError):
    """Raised when an optimistic update loop is cancelled or runs out of time."""

    def __init__(self, key: str, attempts: int, reason: Optional[str] = None) -> None:
        self.key = key
        self.attempts = attempts
        message = f"Update of {key} cancelled after {attempts} attempt(s)"
        if reason:
            message += f": {reason}"
        super().__init__(message)
