from __future__ import annotations

from typing import Any, Optional

from google.cloud.firestore import Client, CollectionReference, DocumentReference

from typedstore.descriptor import RecordDescriptor
from typedstore.errors import MissingIdentifierError, ProgrammingError


def collection_ref(db: Client, descriptor: RecordDescriptor, parent_ref: Optional[DocumentReference] = None):
    """
    Collection holding records of `descriptor`.

    Example:
      collection_ref(db, <ChildDocument>, parent_ref=db.document("ParentDocument/p1"))
      => /ParentDocument/p1/ChildDocument
    """
    if parent_ref is not None:
        return parent_ref.collection(descriptor.collection_name)
    return db.collection(descriptor.collection_name)


def collection_group_ref(db: Client, descriptor: RecordDescriptor):
    return db.collection_group(descriptor.collection_name)


def resolve_location(
    db: Client,
    descriptor: RecordDescriptor,
    record: Any,
    *,
    allow_generate: bool,
) -> tuple[Optional[DocumentReference], bool]:
    """
    Returns (document_ref, is_new).

    - record=None: (None, False), so batch callers can skip absent entries
    - the parent chain is resolved first and never generates ids
    - empty id: a fresh auto-id reference when allow_generate, else MissingIdentifierError
    """
    if record is None:
        return None, False

    parent_ref: Optional[DocumentReference] = None
    if descriptor.parent is not None:
        parent = descriptor.get_parent(record)
        try:
            parent_ref, _ = resolve_location(db, descriptor.parent, parent, allow_generate=False)
        except MissingIdentifierError as e:
            raise MissingIdentifierError(f"invalid parent in {descriptor.type_name}: {e}") from e

    collection = collection_ref(db, descriptor, parent_ref)
    doc_id = descriptor.get_id(record)
    if doc_id:
        return collection.document(doc_id), False
    if allow_generate:
        return collection.document(), True
    raise MissingIdentifierError(f"{descriptor.type_name} id is not set")


def nested_collection_ref(db: Client, descriptor: RecordDescriptor, parent: Any) -> CollectionReference:
    """
    Collection of `descriptor` records under the document of `parent`.

    `parent` must be a record of the type declared by the descriptor's parent field.
    """
    if descriptor.parent is None:
        raise ProgrammingError(f"{descriptor.type_name} does not declare a parent")
    if parent is not None and not isinstance(parent, descriptor.parent.record_type):
        raise ProgrammingError(
            f"parent of {descriptor.type_name} must be {descriptor.parent.type_name}, got {type(parent).__name__}"
        )
    parent_ref, _ = resolve_location(db, descriptor.parent, parent, allow_generate=False)
    if parent_ref is None:
        raise MissingIdentifierError(f"parent of {descriptor.type_name} is not set")
    return collection_ref(db, descriptor, parent_ref)
