from __future__ import annotations

from typing import List, Optional

KEY_SEPARATOR = "::"


def _concat(*parts: Optional[object]) -> str:
    return KEY_SEPARATOR.join(str(p) for p in parts if p is not None and p != "")


def make_document_key(document_type: str, *parts: Optional[object]) -> str:
    """Key for a single document of the given type.

    Example: sample::1234
    """
    return _concat(document_type, *parts)


def make_counter_key(document_type: str, name: str = "counter") -> str:
    """Key for an atomic counter scoped to a document type.

    Example: sample::counter
    """
    return _concat(document_type, name)


def split_document_key(key: str) -> List[str]:
    """Split a composite key back into its parts."""
    return key.split(KEY_SEPARATOR) if key else []
