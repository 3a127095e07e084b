from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable

from .backend import (
    STATUS_CAS_MISMATCH,
    STATUS_KEY_EXISTS,
    STATUS_NON_NUMERIC,
    STATUS_NOT_FOUND,
    OperationResult,
    StoreMode,
    new_cas_token,
)


@dataclass
class _Entry:
    payload: str
    cas: int


class InMemoryBackend:
    """Process-local key-value backend with the same semantics as DynamoBackend.

    Every operation runs under one lock, so conditional writes and counters
    are atomic across threads. Counters are stored as decimal strings, the
    same way a memcached-style server exposes them to plain reads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, _Entry] = {}

    def get(self, key: str) -> OperationResult:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return OperationResult.failed(STATUS_NOT_FOUND, f"Key {key} not found")
            return OperationResult.ok(cas=entry.cas, value=entry.payload)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def store(self, mode: StoreMode, key: str, payload: str) -> OperationResult:
        with self._lock:
            present = key in self._data
            if mode is StoreMode.ADD and present:
                return OperationResult.failed(STATUS_KEY_EXISTS, f"Key {key} already exists")
            if mode is StoreMode.REPLACE and not present:
                return OperationResult.failed(STATUS_NOT_FOUND, f"Key {key} not found")
            return self._write(key, payload)

    def store_cas(self, key: str, payload: str, cas: int) -> OperationResult:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return OperationResult.failed(STATUS_NOT_FOUND, f"Key {key} not found")
            if cas and entry.cas != cas:
                return OperationResult.failed(STATUS_CAS_MISMATCH, f"Stale token for {key}")
            return self._write(key, payload)

    def remove(self, key: str, cas: int = 0) -> OperationResult:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return OperationResult.failed(STATUS_NOT_FOUND, f"Key {key} not found")
            if cas and entry.cas != cas:
                return OperationResult.failed(STATUS_CAS_MISMATCH, f"Stale token for {key}")
            del self._data[key]
            return OperationResult.ok()

    def increment(self, key: str, default: int, delta: int) -> OperationResult:
        return self._adjust(key, default, delta)

    def decrement(self, key: str, default: int, delta: int) -> OperationResult:
        return self._adjust(key, default, -delta)

    def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        with self._lock:
            return {k: self._data[k].payload for k in keys if k in self._data}

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    # ---------- internals (lock held) ----------
    def _write(self, key: str, payload: str) -> OperationResult:
        cas = new_cas_token()
        self._data[key] = _Entry(payload=payload, cas=cas)
        return OperationResult.ok(cas=cas)

    def _adjust(self, key: str, default: int, delta: int) -> OperationResult:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                result = self._write(key, str(default))
                return OperationResult.ok(cas=result.cas, value=default)
            try:
                current = int(entry.payload)
            except ValueError as exc:
                return OperationResult.failed(
                    STATUS_NON_NUMERIC, f"Value at {key} is not a counter", exception=exc
                )
            value = max(current + delta, 0)
            result = self._write(key, str(value))
            return OperationResult.ok(cas=result.cas, value=value)
