"""
typedstore maps dataclass records onto Google Cloud Firestore documents.

Collection names come from record class names; the `id` field is the document
id and an optional `parent` field nests the record under its parent document.
"""

from typedstore.allocation import CompensationStack, IdentifierAllocation
from typedstore.client import Client
from typedstore.connection import new_client, open_client, resolve_project_id
from typedstore.descriptor import (
    ID_FIELD_NAME,
    PARENT_FIELD_NAME,
    DocumentIdentified,
    RecordDescriptor,
    TableMapEntry,
    resolve_descriptor,
)
from typedstore.errors import (
    MissingIdentifierError,
    ProgrammingError,
    ReadOnlyCollectionError,
    ShapeError,
    TypedStoreError,
)
from typedstore.query import ASCENDING, DESCENDING, Query

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "ID_FIELD_NAME",
    "PARENT_FIELD_NAME",
    "Client",
    "CompensationStack",
    "DocumentIdentified",
    "IdentifierAllocation",
    "MissingIdentifierError",
    "ProgrammingError",
    "Query",
    "ReadOnlyCollectionError",
    "RecordDescriptor",
    "ShapeError",
    "TableMapEntry",
    "TypedStoreError",
    "new_client",
    "open_client",
    "resolve_descriptor",
    "resolve_project_id",
]
