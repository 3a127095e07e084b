from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol

STATUS_NOT_FOUND = "not_found"
STATUS_KEY_EXISTS = "key_exists"
STATUS_CAS_MISMATCH = "cas_mismatch"
STATUS_NON_NUMERIC = "non_numeric"


class StoreMode(str, Enum):
    """Write modes supported by every backend."""

    ADD = "add"  # fail if the key exists
    REPLACE = "replace"  # fail if the key is missing
    SET = "set"  # upsert


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a single backend call.

    Backends report per-key failures here instead of raising, so the
    repository can decide whether to retry.
    """

    success: bool
    cas: int = 0
    value: Any = None
    status_code: Optional[str] = None
    message: str = ""
    exception: Optional[BaseException] = None

    @property
    def has_value(self) -> bool:
        return self.value is not None and self.value != ""

    @classmethod
    def ok(cls, cas: int = 0, value: Any = None) -> "OperationResult":
        return cls(success=True, cas=cas, value=value)

    @classmethod
    def failed(
        cls,
        status_code: str,
        message: str = "",
        exception: Optional[BaseException] = None,
        value: Any = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            status_code=status_code,
            message=message,
            exception=exception,
            value=value,
        )


class KeyValueBackend(Protocol):
    """Minimum key-value operations the document repository relies on."""

    def get(self, key: str) -> OperationResult:
        ...

    def exists(self, key: str) -> bool:
        """Report whether the key is stored.

        Raises :class:`BackendUnavailableError` when the backend cannot tell.
        """
        ...

    def store(self, mode: StoreMode, key: str, payload: str) -> OperationResult:
        ...

    def store_cas(self, key: str, payload: str, cas: int) -> OperationResult:
        ...

    def remove(self, key: str, cas: int = 0) -> OperationResult:
        ...

    def increment(self, key: str, default: int, delta: int) -> OperationResult:
        ...

    def decrement(self, key: str, default: int, delta: int) -> OperationResult:
        ...

    def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        ...


def new_cas_token() -> int:
    """Return a fresh non-zero token; zero means "no token" throughout."""
    return secrets.randbits(63) or 1
