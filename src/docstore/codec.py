from __future__ import annotations

import dataclasses
import json
import types
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Generic, List, Type, Union, get_args, get_origin, get_type_hints

from .clock import format_utc_timestamp, parse_utc_timestamp
from .exceptions import DocumentCodecError
from .types import DocumentT

KEY_FIELD = "id"
TYPE_FIELD = "type"
_UNSTORED = {"key", "cas"}

# PEP 604 unions (``datetime | None``) have their own origin from 3.10 on.
_UNION_ORIGINS = (Union, getattr(types, "UnionType", Union))


def _unwrap_optional(hint: Any) -> Any:
    if get_origin(hint) in _UNION_ORIGINS:
        args = [a for a in get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _from_json(hint: Any, value: Any) -> Any:
    if value is None:
        return None
    target = _unwrap_optional(hint)
    if target is datetime:
        return parse_utc_timestamp(value)
    if target is Decimal:
        return Decimal(str(value))
    if isinstance(target, type) and dataclasses.is_dataclass(target) and isinstance(value, dict):
        return _build_dataclass(target, value)
    return value


def _build_dataclass(cls: type, data: Dict[str, Any]) -> Any:
    hints = get_type_hints(cls)
    kwargs = {
        f.name: _from_json(hints.get(f.name), data[f.name])
        for f in dataclasses.fields(cls)
        if f.init and f.name in data
    }
    return cls(**kwargs)


def _to_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_utc_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_json(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json(v) for v in value]
    return value


class JsonDocumentCodec(Generic[DocumentT]):
    """JSON codec for dataclass documents.

    Payload layout:
    - ``id`` carries the document key and ``type`` its ``document_type``
    - the concurrency token is never written
    - ``None`` fields and fields still at their default are omitted and are
      repopulated from the dataclass defaults on decode
    - datetime fields use the fixed UTC format of :func:`format_utc_timestamp`
    - ``Decimal`` fields are written as strings to keep their precision
    - fields annotated with a dataclass type are rebuilt from nested objects;
      lists and dicts come back as plain JSON values
    - unknown payload fields are ignored on decode
    """

    def __init__(self, document_cls: Type[DocumentT]) -> None:
        if not dataclasses.is_dataclass(document_cls):
            raise TypeError(f"{document_cls.__name__} must be a dataclass")
        self._cls = document_cls
        self._fields = {f.name: f for f in dataclasses.fields(document_cls) if f.init}
        self._hints = get_type_hints(document_cls)

    @property
    def document_cls(self) -> Type[DocumentT]:
        return self._cls

    def to_dict(self, doc: DocumentT) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if getattr(doc, "key", None):
            data[KEY_FIELD] = doc.key
        data[TYPE_FIELD] = doc.document_type
        for name, field in self._fields.items():
            if name in _UNSTORED:
                continue
            value = getattr(doc, name)
            if value is None:
                continue
            if field.default is not dataclasses.MISSING and value == field.default:
                continue
            data[name] = _to_json(value)
        return data

    def from_dict(self, data: Dict[str, Any]) -> DocumentT:
        kwargs: Dict[str, Any] = {"key": ""}
        try:
            for name, value in data.items():
                if name == KEY_FIELD:
                    kwargs["key"] = value
                elif name in self._fields and name not in _UNSTORED:
                    kwargs[name] = _from_json(self._hints.get(name), value)
            return self._cls(**kwargs)
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise DocumentCodecError(f"Cannot build {self._cls.__name__}: {exc}") from exc

    def encode(self, doc: DocumentT) -> str:
        try:
            return json.dumps(self.to_dict(doc), separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise DocumentCodecError(f"Failed to encode {doc.key}: {exc}") from exc

    def decode(self, payload: str) -> DocumentT:
        data = self._loads(payload)
        if not isinstance(data, dict):
            raise DocumentCodecError(f"Expected a JSON object, got {type(data).__name__}")
        return self.from_dict(data)

    def decode_list(self, payload: str) -> List[DocumentT]:
        data = self._loads(payload)
        if not isinstance(data, list):
            raise DocumentCodecError(f"Expected a JSON array, got {type(data).__name__}")
        docs: List[DocumentT] = []
        for entry in data:
            if not isinstance(entry, dict):
                raise DocumentCodecError("List entries must be JSON objects")
            docs.append(self.from_dict(entry))
        return docs

    def encode_list(self, docs: List[DocumentT]) -> str:
        try:
            return json.dumps([self.to_dict(d) for d in docs], separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise DocumentCodecError(f"Failed to encode document list: {exc}") from exc

    @staticmethod
    def _loads(payload: str) -> Any:
        try:
            return json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise DocumentCodecError(f"Malformed JSON payload: {exc}") from exc
