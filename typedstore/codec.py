"""
Record <-> Firestore document mapping.

The id and parent fields are encoded by the document path and never stored
in the document body. Field metadata controls the stored key:

    name: str = field(default="", metadata={"firestore": "displayName"})
    cache: str = field(default="", metadata={"firestore": "-"})  # not stored
"""

from __future__ import annotations

import dataclasses
import functools
import typing
from enum import Enum
from typing import Any, Mapping, Optional

from typedstore.descriptor import RecordDescriptor, unwrap_optional
from typedstore.errors import ProgrammingError

METADATA_KEY = "firestore"
SKIP = "-"

UNSET = object()


def storage_name(f: dataclasses.Field) -> Optional[str]:
    """Stored key of a dataclass field, or None when the field is not stored."""
    name = f.metadata.get(METADATA_KEY, f.name) if f.metadata else f.name
    if name == SKIP:
        return None
    return str(name)


@functools.lru_cache(maxsize=None)
def _hints(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _encode_fields(value, excluded=frozenset())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _encode(v) for k, v in value.items()}
    return value


def _encode_fields(obj: Any, *, excluded: frozenset[str]) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        if f.name in excluded:
            continue
        key = storage_name(f)
        if key is None:
            continue
        doc[key] = _encode(getattr(obj, f.name))
    return doc


def to_document(descriptor: RecordDescriptor, record: Any) -> dict[str, Any]:
    return _encode_fields(record, excluded=descriptor.excluded_fields())


def _decode(hint: Any, value: Any) -> Any:
    if value is None:
        return None
    hint = unwrap_optional(hint)
    origin = typing.get_origin(hint)
    # list[str] and friends pass isinstance(hint, type) on 3.10.
    if origin is None and isinstance(hint, type):
        if dataclasses.is_dataclass(hint) and isinstance(value, Mapping):
            return build_record(hint, value)
        if issubclass(hint, Enum) and not isinstance(value, hint):
            return hint(value)
        if hint is tuple and isinstance(value, list):
            return tuple(value)
        return value
    args = typing.get_args(hint)
    if origin in (list, tuple) and isinstance(value, list):
        item_hint = args[0] if args else Any
        items = [_decode(item_hint, v) for v in value]
        return tuple(items) if origin is tuple else items
    if origin is dict and isinstance(value, Mapping) and len(args) == 2:
        return {k: _decode(args[1], v) for k, v in value.items()}
    return value


def build_record(cls: type, data: Mapping[str, Any], *, excluded: frozenset[str] = frozenset()) -> Any:
    """
    Construct `cls` from stored data.

    Fields missing from `data` fall back to their defaults, or None when the
    field has no default.
    """
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = None if f.name in excluded else storage_name(f)
        if key is not None and key in data:
            value = _decode(hints.get(f.name, Any), data[key])
        elif f.default is not dataclasses.MISSING:
            value = f.default
        elif f.default_factory is not dataclasses.MISSING:  # type: ignore[misc]
            value = f.default_factory()  # type: ignore[misc]
        else:
            value = None
        if f.init:
            kwargs[f.name] = value
        else:
            late[f.name] = value
    obj = cls(**kwargs)
    for name, value in late.items():
        setattr(obj, name, value)
    return obj


def populate(descriptor: RecordDescriptor, record: Any, data: Mapping[str, Any]) -> None:
    """
    Fill `record` in place from stored data. The id and parent are left untouched.
    """
    hints = _hints(descriptor.record_type)
    excluded = descriptor.excluded_fields()
    for f in dataclasses.fields(record):
        if f.name in excluded:
            continue
        key = storage_name(f)
        if key is None or key not in data:
            continue
        setattr(record, f.name, _decode(hints.get(f.name, Any), data[key]))


def _parent_shell(descriptor: RecordDescriptor, doc_ref: Any) -> Any:
    shell = build_record(descriptor.record_type, {})
    descriptor.set_id(shell, doc_ref.id)
    if descriptor.parent is not None:
        setattr(shell, descriptor.parent_field, _parent_from_path(descriptor.parent, doc_ref))
    return shell


def _parent_from_path(parent_descriptor: RecordDescriptor, child_ref: Any) -> Any:
    collection = getattr(child_ref, "parent", None)
    parent_doc = getattr(collection, "parent", None) if collection is not None else None
    if parent_doc is None:
        return None
    parent_collection = parent_doc.parent
    if parent_collection.id != parent_descriptor.collection_name:
        raise ProgrammingError(
            f"cannot rebuild {parent_descriptor.type_name} parent of {child_ref.path}:"
            f" expected collection {parent_descriptor.collection_name}, got {parent_collection.id}"
        )
    return _parent_shell(parent_descriptor, parent_doc)


def materialize(descriptor: RecordDescriptor, snapshot: Any, *, parent: Any = UNSET) -> Any:
    """
    Build a typed record from a document snapshot.

    Without an explicit `parent`, parents are rebuilt as id-only records from
    the document path. Raises ProgrammingError when the path does not match
    the declared parent collections.
    """
    record = build_record(descriptor.record_type, snapshot.to_dict() or {}, excluded=descriptor.excluded_fields())
    descriptor.set_id(record, snapshot.id)
    if descriptor.parent is not None:
        if parent is UNSET:
            parent = _parent_from_path(descriptor.parent, snapshot.reference)
        setattr(record, descriptor.parent_field, parent)
    return record
