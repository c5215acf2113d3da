from __future__ import annotations


class TypedStoreError(RuntimeError):
    """Base error for typedstore violations."""


class ProgrammingError(TypedStoreError):
    """Raised when an inappropriate value is passed (wrong type, None record, ...)."""


class ShapeError(ProgrammingError):
    """Raised when a record type does not satisfy the identifier/parent requirements."""


class MissingIdentifierError(ProgrammingError):
    """Raised when an operation needs an existing document but the record has no id."""


class ReadOnlyCollectionError(TypedStoreError):
    """Raised before any I/O when a write targets a collection registered read-only."""

    def __init__(self, *, operation: str, collection_name: str) -> None:
        super().__init__(f"cannot {operation} document in readonly collection {collection_name}")
        self.operation = operation
        self.collection_name = collection_name
