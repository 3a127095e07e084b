# pyright: reportMissingTypeStubs=false
"""Document access layer package.

Exposes the CAS-guarded document repository, its key-value backends and helpers.
"""
from .backend import KeyValueBackend, OperationResult, StoreMode
from .client import DynamoConfig, RepositoryConfig, get_dynamo_table
from .clock import (
    format_sortable_date,
    format_utc_timestamp,
    next_updated_at,
    parse_utc_timestamp,
    utc_now,
)
from .codec import JsonDocumentCodec
from .diagnostics import DiagnosticsSink, LoggingDiagnostics, RecordingDiagnostics
from .dynamo_backend import DynamoBackend
from .exceptions import (
    BackendUnavailableError,
    DocumentCodecError,
    RepositoryError,
    UpdateCancelledError,
)
from .keys import KEY_SEPARATOR, make_counter_key, make_document_key, split_document_key
from .memory_backend import InMemoryBackend
from .repository import DocumentRepository
from .types import Document, DocumentT

__all__ = [
    "KeyValueBackend",
    "OperationResult",
    "StoreMode",
    "DynamoConfig",
    "RepositoryConfig",
    "get_dynamo_table",
    "format_sortable_date",
    "format_utc_timestamp",
    "next_updated_at",
    "parse_utc_timestamp",
    "utc_now",
    "JsonDocumentCodec",
    "DiagnosticsSink",
    "LoggingDiagnostics",
    "RecordingDiagnostics",
    "DynamoBackend",
    "BackendUnavailableError",
    "DocumentCodecError",
    "RepositoryError",
    "UpdateCancelledError",
    "KEY_SEPARATOR",
    "make_counter_key",
    "make_document_key",
    "split_document_key",
    "InMemoryBackend",
    "DocumentRepository",
    "Document",
    "DocumentT",
]
