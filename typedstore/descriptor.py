"""
Record type descriptors.

A record type is a mutable dataclass. Its document id lives either in a `str`
field named `id`, or behind the `DocumentIdentified` capability
(`get_document_id()` / `set_document_id()`), which wins when both exist.

A record may declare a `parent` field annotated with another record type
(optionally `Optional[...]`). The parent is resolved recursively and becomes
the document the record's collection is nested under:

    @dataclass
    class ParentDocument:
        id: str = ""
        name: str = ""

    @dataclass
    class ChildDocument:
        parent: Optional[ParentDocument] = None
        id: str = ""
        name: str = ""

    # ChildDocument(parent=ParentDocument(id="p1"), id="c1")
    #   => ParentDocument/p1/ChildDocument/c1
"""

from __future__ import annotations

import dataclasses
import types
import typing
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Union, runtime_checkable

from typedstore.errors import ShapeError

ID_FIELD_NAME = "id"
PARENT_FIELD_NAME = "parent"


@runtime_checkable
class DocumentIdentified(Protocol):
    """Capability for records that map their own document id."""

    def get_document_id(self) -> str: ...

    def set_document_id(self, value: str) -> None: ...


@dataclass(frozen=True, slots=True)
class TableMapEntry:
    collection_name: str
    read_only: bool = False


@dataclass(frozen=True)
class RecordDescriptor:
    """
    Immutable description of how a record type maps to Firestore.

    `id_field` is None when the type implements `DocumentIdentified`.
    `parent` is the descriptor of the type held by `parent_field`.
    """

    record_type: type
    collection_name: str
    read_only: bool = False
    id_field: Optional[str] = ID_FIELD_NAME
    parent_field: Optional[str] = None
    parent: Optional["RecordDescriptor"] = None

    @property
    def type_name(self) -> str:
        return self.record_type.__name__

    @property
    def uses_id_accessor(self) -> bool:
        return self.id_field is None

    def get_id(self, record: Any) -> str:
        if self.id_field is None:
            value = record.get_document_id()
        else:
            value = getattr(record, self.id_field)
        return str(value or "")

    def set_id(self, record: Any, value: str) -> None:
        if self.id_field is None:
            record.set_document_id(value)
        else:
            setattr(record, self.id_field, value)

    def get_parent(self, record: Any) -> Any:
        if self.parent_field is None:
            return None
        return getattr(record, self.parent_field)

    def excluded_fields(self) -> frozenset[str]:
        """Fields encoded by the document path rather than the document body."""
        names = {n for n in (self.id_field, self.parent_field) if n}
        return frozenset(names)


def record_type_of(record_or_type: Any) -> type:
    if isinstance(record_or_type, type):
        return record_or_type
    return type(record_or_type)


def _is_record_shaped(t: Any) -> bool:
    return isinstance(t, type) and dataclasses.is_dataclass(t)


def unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _has_id_accessor(t: type) -> bool:
    return callable(getattr(t, "get_document_id", None)) and callable(getattr(t, "set_document_id", None))


def _type_hints(t: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(t)
    except (NameError, TypeError) as e:
        raise ShapeError(f"cannot resolve annotations of {t.__module__}.{t.__qualname__}: {e}") from e


def resolve_descriptor(
    record_type: type,
    table_map: Optional[Mapping[str, TableMapEntry]] = None,
) -> RecordDescriptor:
    """
    Build the descriptor of `record_type`.

    Raises ShapeError when the type is not a mutable dataclass, has no usable
    identifier, or declares a parent that does not resolve.
    """
    return _resolve(record_type, table_map or {}, ())


def _resolve(
    record_type: Any,
    table_map: Mapping[str, TableMapEntry],
    visiting: tuple[type, ...],
) -> RecordDescriptor:
    if not _is_record_shaped(record_type):
        name = getattr(record_type, "__name__", repr(record_type))
        raise ShapeError(f"record type must be a dataclass: {name}")
    qualname = f"{record_type.__module__}.{record_type.__qualname__}"
    if record_type.__dataclass_params__.frozen:
        raise ShapeError(f"record type must not be frozen: {qualname}")
    if record_type in visiting:
        chain = " -> ".join(t.__name__ for t in (*visiting, record_type))
        raise ShapeError(f"cyclic parent chain: {chain}")

    hints = _type_hints(record_type)
    fields = {f.name for f in dataclasses.fields(record_type)}

    id_field: Optional[str]
    if _has_id_accessor(record_type):
        id_field = None
    elif ID_FIELD_NAME in fields:
        if unwrap_optional(hints.get(ID_FIELD_NAME)) is not str:
            raise ShapeError(f"{ID_FIELD_NAME} field must be a string: {qualname}")
        id_field = ID_FIELD_NAME
    else:
        raise ShapeError(f"{ID_FIELD_NAME} field doesn't exist: {qualname}")

    parent: Optional[RecordDescriptor] = None
    parent_field: Optional[str] = None
    if PARENT_FIELD_NAME in fields:
        parent_type = unwrap_optional(hints.get(PARENT_FIELD_NAME))
        if not _is_record_shaped(parent_type):
            raise ShapeError(f"{PARENT_FIELD_NAME} must be a record type: {qualname}")
        try:
            parent = _resolve(parent_type, table_map, (*visiting, record_type))
        except ShapeError as e:
            raise ShapeError(f"invalid parent in {qualname}: {e}") from e
        parent_field = PARENT_FIELD_NAME

    entry = table_map.get(record_type.__name__)
    return RecordDescriptor(
        record_type=record_type,
        collection_name=entry.collection_name if entry is not None else record_type.__name__,
        read_only=entry.read_only if entry is not None else False,
        id_field=id_field,
        parent_field=parent_field,
        parent=parent,
    )
