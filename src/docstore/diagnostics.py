from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple

from .backend import OperationResult

logger = logging.getLogger(__name__)


class DiagnosticsSink(Protocol):
    """Receives context about backend operations that could not be completed."""

    def report(
        self, key: str, operation: str, message: str, result: Optional[OperationResult]
    ) -> None:
        ...


def describe_result(result: Optional[OperationResult]) -> str:
    """Render an operation result as the multi-line block used in failure logs."""
    if result is None:
        return "StatusCode = \nMessage = \nExceptionMessage = "
    exception_message = str(result.exception) if result.exception is not None else ""
    return (
        f"StatusCode = {result.status_code or ''}\n"
        f"Message = {result.message or ''}\n"
        f"ExceptionMessage = {exception_message}"
    )


class LoggingDiagnostics:
    """Diagnostics sink that writes one error record per failed operation."""

    def __init__(self, source: str, log: Optional[logging.Logger] = None) -> None:
        self._source = source
        self._log = log or logger

    def report(
        self, key: str, operation: str, message: str, result: Optional[OperationResult]
    ) -> None:
        self._log.error(
            "%s::%s | %s with a key of %s. Here are the operation results\n%s",
            self._source,
            operation,
            message,
            key,
            describe_result(result),
        )


class RecordingDiagnostics:
    """Keeps reports in memory; handy for tests and health endpoints."""

    def __init__(self) -> None:
        self.reports: List[Tuple[str, str, str, Optional[OperationResult]]] = []

    def report(
        self, key: str, operation: str, message: str, result: Optional[OperationResult]
    ) -> None:
        self.reports.append((key, operation, message, result))
