from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional, Protocol, TypeVar


class Document(Protocol):
    """Capabilities every persisted document must expose.

    Any dataclass with these attributes satisfies the protocol; no base class
    is required.
    """

    document_type: ClassVar[str]

    key: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    version: int
    cas: int


DocumentT = TypeVar("DocumentT", bound=Document)
