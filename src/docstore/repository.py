from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Generic, Iterable, List, Optional

from .backend import KeyValueBackend, OperationResult, StoreMode
from .client import RepositoryConfig
from .clock import next_updated_at, utc_now
from .codec import JsonDocumentCodec
from .diagnostics import DiagnosticsSink, LoggingDiagnostics
from .exceptions import BackendUnavailableError, UpdateCancelledError
from .types import DocumentT

logger = logging.getLogger(__name__)

DEFAULT_COUNTER_VALUE = 0


class DocumentRepository(Generic[DocumentT]):
    """Generic document store with optimistic concurrency over a key-value backend.

    The repository owns retry policy, conflict handling and metadata
    (``version``, ``created_at``, ``updated_at``, ``cas``). Document payloads
    are opaque to it beyond those attributes.

    Failure policy
    --------------
    Store operations retry a bounded number of times and then report to the
    diagnostics sink and return the document unchanged; callers detect an
    uncommitted write by the ``cas`` token not having changed. Reads return
    ``None`` for absent keys. Only codec failures and cancelled update loops
    raise (both are :class:`RepositoryError` subclasses).
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        codec: JsonDocumentCodec[DocumentT],
        diagnostics: Optional[DiagnosticsSink] = None,
        config: Optional[RepositoryConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._backend = backend
        self._codec = codec
        self._config = config or RepositoryConfig()
        self._clock = clock
        self._source = f"{type(self).__module__}::{type(self).__name__}"
        self._diagnostics = diagnostics or LoggingDiagnostics(self._source)

    @property
    def codec(self) -> JsonDocumentCodec[DocumentT]:
        return self._codec

    # ---------- store ----------
    def create(self, doc: DocumentT) -> DocumentT:
        """Add a new document; the write fails if the key is already taken."""
        doc.created_at = self._clock()
        return self._store_with_retry(StoreMode.ADD, doc, "create")

    def save(self, doc: DocumentT) -> DocumentT:
        """Create or overwrite the document regardless of its token."""
        return self._store_with_retry(StoreMode.SET, doc, "save")

    def update(self, doc: DocumentT) -> DocumentT:
        """Replace an existing document.

        When the document carries a token the replace only applies if the
        stored copy still matches it, so a stale copy never overwrites a newer
        one.
        """
        return self._store_with_retry(StoreMode.REPLACE, doc, "update")

    def update_with_retry(
        self,
        doc: DocumentT,
        mutate: Optional[Callable[[DocumentT], None]],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> DocumentT:
        """Apply ``mutate`` to the latest stored copy until the write wins.

        A clean copy is loaded and handed to ``mutate`` on every attempt, so
        the callback must be safe to run several times. The returned document
        is the committed state; callers should use it instead of ``doc``.
        When nothing is stored under the key yet, ``doc`` is created as is.

        ``timeout`` (seconds) and ``cancel`` bound the loop under heavy
        contention; either one stops it with :class:`UpdateCancelledError`.
        """
        key = doc.key
        deadline = time.monotonic() + timeout if timeout is not None else None
        attempts = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise UpdateCancelledError(key, attempts, "cancelled by caller")
            if deadline is not None and time.monotonic() >= deadline:
                raise UpdateCancelledError(key, attempts, f"no commit within {timeout}s")

            latest = self.get_document(key)
            if latest is None:
                return self.create(doc)

            attempts += 1
            if mutate is not None:
                mutate(latest)

            latest.version += 1
            latest.updated_at = next_updated_at(latest.updated_at, self._clock())
            payload = self._codec.encode(latest)
            result = self._backend.store_cas(key, payload, latest.cas)
            if result.success:
                latest.cas = result.cas
                return latest

            logger.debug(
                "Conditional write of %s lost on attempt %d (%s); reloading",
                key,
                attempts,
                result.status_code,
            )

    # ---------- read ----------
    def get_document(self, key: str) -> Optional[DocumentT]:
        """Load a document with its current token, or ``None`` when absent."""
        if not key:
            return None

        doc = self._hydrate(key, self._backend.get(key))
        if doc is not None:
            return doc

        # The key can be visible before its value is; keep reading while it exists
        # or while the backend cannot say.
        retries = 0
        while retries < self._config.read_retries and self._exists(key) is not False:
            doc = self._hydrate(key, self._backend.get(key))
            if doc is not None:
                logger.debug("Read %s after %d visibility retries", key, retries + 1)
                return doc
            retries += 1
        return None

    def get_multiple_documents(self, keys: Iterable[str]) -> Dict[str, str]:
        """Fetch raw payloads for many keys in one batched call.

        Missing keys are left out; the result is never ``None``.
        """
        docs = self._backend.get_many(list(keys))
        return dict(docs) if docs else {}

    def get_list_document(self, key: str, is_retry: bool = False) -> Optional[List[DocumentT]]:
        """Load a key whose payload is a JSON array of documents."""
        if not key:
            return None

        result = self._backend.get(key)
        if result.success and result.has_value:
            return self._codec.decode_list(result.value)

        if not is_retry:
            self._report(key, "get_list_document", "Failed to get a list of documents", result)
            return self.get_list_document(key, is_retry=True)
        return None

    # ---------- remove ----------
    def remove_document(self, key: str, cas: int = 0) -> bool:
        """Delete ``key``, guarded by ``cas`` when one is given.

        Returns ``True`` once the key no longer exists, including when it was
        never there. Without a token the delete races with concurrent writers.
        """
        attempts = 0
        result: Optional[OperationResult] = None
        while True:
            try:
                present = self._backend.exists(key)
            except BackendUnavailableError as exc:
                failure = OperationResult.failed(exc.status_code, str(exc), exc)
                self._report(key, "remove_document", "Could not confirm removal", failure)
                return False
            if not present:
                return True
            if attempts >= self._config.remove_attempts:
                self._report(
                    key,
                    "remove_document",
                    f"Remove failed after {attempts} attempts",
                    result,
                )
                return False
            attempts += 1
            result = self._backend.remove(key, cas)

    # ---------- counters ----------
    def increment(self, key: str, delta: int, default: Optional[int] = None) -> Optional[int]:
        """Atomically add ``delta``; a missing counter starts at ``default``.

        The first call on a new key returns ``default`` itself.
        """
        if delta < 0:
            raise ValueError("delta must be non-negative")
        initial = self._config.default_counter_value if default is None else default
        result = self._backend.increment(key, initial, delta)
        if not result.success:
            self._report(key, "increment", "Increment failed", result)
        return None if result.value is None else int(result.value)

    def decrement(self, key: str, delta: int) -> Optional[int]:
        """Atomically subtract ``delta``; counters never drop below zero."""
        if delta < 0:
            raise ValueError("delta must be non-negative")
        # decrements always seed at zero; the configurable default only applies to increments
        result = self._backend.decrement(key, DEFAULT_COUNTER_VALUE, delta)
        if not result.success:
            self._report(key, "decrement", "Decrement failed", result)
        return None if result.value is None else int(result.value)

    # ---------- internals ----------
    def _store_with_retry(self, mode: StoreMode, doc: DocumentT, operation: str) -> DocumentT:
        # Metadata is fixed once per logical write; only the raw write repeats.
        doc.version += 1
        doc.updated_at = next_updated_at(doc.updated_at, self._clock())
        payload = self._codec.encode(doc)
        key = doc.key
        conditioned = mode is StoreMode.REPLACE and bool(doc.cas)

        result: Optional[OperationResult] = None
        attempts = self._config.store_attempts
        for attempt in range(1, attempts + 1):
            if conditioned:
                result = self._backend.store_cas(key, payload, doc.cas)
            else:
                result = self._backend.store(mode, key, payload)
            if result.success:
                doc.cas = result.cas
                return doc
            logger.debug("%s of %s failed on attempt %d: %s", operation, key, attempt, result.status_code)

        message = f"Store failed for the key {key}, after trying {attempts} times to store the document."
        self._report(key, operation, message, result)
        return doc

    def _exists(self, key: str) -> Optional[bool]:
        """Existence check that answers ``None`` when the backend cannot tell."""
        try:
            return self._backend.exists(key)
        except BackendUnavailableError as exc:
            logger.warning("%s", exc)
            return None

    def _hydrate(self, key: str, result: OperationResult) -> Optional[DocumentT]:
        if not (result.success and result.has_value):
            return None
        doc = self._codec.decode(result.value)
        # payload ids are not trusted; the addressing key wins
        doc.key = key
        doc.cas = result.cas
        return doc

    def _report(
        self, key: str, operation: str, message: str, result: Optional[OperationResult]
    ) -> None:
        try:
            self._diagnostics.report(key, operation, message, result)
        except Exception:  # noqa: BLE001
            logger.exception("Diagnostics sink failed while reporting %s", key)
