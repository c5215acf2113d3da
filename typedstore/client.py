from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Type, TypeVar

from google.api_core import exceptions as gexc
from google.cloud import firestore

from typedstore.allocation import CompensationStack, IdentifierAllocation, allocate_identifier
from typedstore.codec import populate, to_document
from typedstore.descriptor import RecordDescriptor, TableMapEntry, record_type_of, resolve_descriptor
from typedstore.errors import ProgrammingError, ReadOnlyCollectionError
from typedstore.paths import collection_group_ref, collection_ref, nested_collection_ref, resolve_location
from typedstore.query import Query
from typedstore.transaction import run_transaction as _run_transaction

T = TypeVar("T")
R = TypeVar("R")
logger = logging.getLogger(__name__)


def _call_options(timeout: Optional[float]) -> dict[str, Any]:
    if timeout is None:
        return {}
    return {"timeout": float(timeout)}


class Client:
    """
    Typed access to Firestore documents.

    Collection names come from record class names, overridable per client with
    `add_table_maps()` / `add_readonly_table_maps()`. The raw Firestore client is
    available as `firestore_client`.

    A client handed to a `run_transaction()` body carries the live transaction:
    reads observe the transaction snapshot and writes are staged until commit.
    """

    def __init__(
        self,
        firestore_client: firestore.Client,
        *,
        table_maps: Optional[Mapping[str, TableMapEntry]] = None,
    ) -> None:
        self.firestore_client = firestore_client
        self.transaction: Optional[firestore.Transaction] = None
        self._table_maps: dict[str, TableMapEntry] = dict(table_maps or {})
        self._descriptors: dict[type, RecordDescriptor] = {}
        self._compensations: Optional[CompensationStack] = None

    # --- lifecycle ---

    def close(self) -> None:
        self.firestore_client.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None

    # --- table maps ---

    @property
    def table_maps(self) -> dict[str, TableMapEntry]:
        return dict(self._table_maps)

    def add_table_maps(self, mapping: Mapping[str, str]) -> None:
        """Map record type names to collection names (read-write)."""
        self._register(mapping, read_only=False)

    def add_readonly_table_maps(self, mapping: Mapping[str, str]) -> None:
        """Map record type names to collection names that reject create/set/delete."""
        self._register(mapping, read_only=True)

    def _register(self, mapping: Mapping[str, str], *, read_only: bool) -> None:
        for type_name, collection_name in mapping.items():
            name = str(collection_name or "").strip()
            if not name or "/" in name:
                raise ProgrammingError(f"invalid collection name for {type_name}: {collection_name!r}")
            self._table_maps[str(type_name)] = TableMapEntry(collection_name=name, read_only=read_only)
        # Descriptors embed table map entries, parents included.
        self._descriptors.clear()

    # --- resolution ---

    def descriptor_for(self, record_or_type: Any) -> RecordDescriptor:
        t = record_type_of(record_or_type)
        descriptor = self._descriptors.get(t)
        if descriptor is None:
            descriptor = resolve_descriptor(t, self._table_maps)
            self._descriptors[t] = descriptor
        return descriptor

    def document_ref(self, record: Any) -> Optional[firestore.DocumentReference]:
        """
        Document reference of `record`, or None when record is None.

        Raises MissingIdentifierError when the record (or a parent) has no id.
        """
        if record is None:
            return None
        ref, _ = resolve_location(self.firestore_client, self.descriptor_for(record), record, allow_generate=False)
        return ref

    def document_refs(self, records: Iterable[Any]) -> list[Optional[firestore.DocumentReference]]:
        """Batch form of `document_ref()`; the result may contain None."""
        return [self.document_ref(r) for r in records]

    def _require_record(self, record: Any) -> RecordDescriptor:
        if record is None:
            raise ProgrammingError("record is None")
        return self.descriptor_for(record)

    @staticmethod
    def _check_writable(descriptor: RecordDescriptor, operation: str) -> None:
        if descriptor.read_only:
            raise ReadOnlyCollectionError(operation=operation, collection_name=descriptor.collection_name)

    # --- reads ---

    def get(self, record: T, *, timeout: Optional[float] = None) -> T:
        """
        Fill `record` from its document. The id is left untouched.

        Raises google.api_core.exceptions.NotFound when the document does not exist.
        """
        descriptor = self._require_record(record)
        ref, _ = resolve_location(self.firestore_client, descriptor, record, allow_generate=False)
        snap = ref.get(transaction=self.transaction, **_call_options(timeout))
        if not snap.exists:
            raise gexc.NotFound(f"document not found: {ref.path}")
        populate(descriptor, record, snap.to_dict() or {})
        return record

    def get_all(self, records: Iterable[Any], *, timeout: Optional[float] = None) -> list[Any]:
        """
        Fill multiple records with a single batched read.

        None entries are skipped and records whose document does not exist are
        left out of the result. The result keeps the input order.
        """
        records = list(records)
        refs = self.document_refs(records)

        positions: dict[str, list[int]] = {}
        unique_refs: list[firestore.DocumentReference] = []
        for idx, ref in enumerate(refs):
            if ref is None:
                continue
            if ref.path not in positions:
                positions[ref.path] = []
                unique_refs.append(ref)
            positions[ref.path].append(idx)
        if not unique_refs:
            return []

        found: set[int] = set()
        snaps = self.firestore_client.get_all(unique_refs, transaction=self.transaction, **_call_options(timeout))
        for snap in snaps:
            if not snap.exists:
                continue
            data = snap.to_dict() or {}
            for idx in positions.get(snap.reference.path, ()):
                populate(self.descriptor_for(records[idx]), records[idx], data)
                found.add(idx)
        return [records[idx] for idx in sorted(found)]

    # --- writes ---

    def _prepare_write(self, record: Any, operation: str) -> tuple[RecordDescriptor, firestore.DocumentReference, IdentifierAllocation]:
        descriptor = self._require_record(record)
        self._check_writable(descriptor, operation)
        ref, is_new = resolve_location(self.firestore_client, descriptor, record, allow_generate=True)
        allocation = allocate_identifier(descriptor, record, ref.id, is_new=is_new)
        logger.debug(
            "typedstore_write op=%s path=%s new_id=%s in_transaction=%s",
            operation,
            ref.path,
            allocation.is_new,
            self.transaction is not None,
        )
        return descriptor, ref, allocation

    def _write(
        self,
        allocation: IdentifierAllocation,
        encode: Callable[[], dict[str, Any]],
        *,
        staged: Callable[[dict[str, Any]], None],
        direct: Callable[[dict[str, Any]], R],
    ) -> Optional[R]:
        # Encoding runs after the id is allocated: accessor ids may live in the body.
        try:
            data = encode()
            if self.transaction is None:
                return direct(data)
            staged(data)
        except Exception:
            allocation.rollback()
            raise
        if allocation.is_new and self._compensations is not None:
            # The transaction may still abort after this write is staged.
            self._compensations.push(allocation.rollback)
        return None

    def create(self, record: Any, *, timeout: Optional[float] = None):
        """
        Create the document of `record`; fails with AlreadyExists if it exists.

        An empty id is generated and written into the record. It is reset to ""
        when the write fails.
        """
        descriptor, ref, allocation = self._prepare_write(record, "create")
        return self._write(
            allocation,
            lambda: to_document(descriptor, record),
            staged=lambda data: self.transaction.create(ref, data),
            direct=lambda data: ref.create(data, **_call_options(timeout)),
        )

    def set(self, record: Any, *, merge: Any = False, timeout: Optional[float] = None):
        """
        Create or overwrite the document of `record`.

        `merge` is passed through to Firestore (True or a list of field paths).
        """
        descriptor, ref, allocation = self._prepare_write(record, "set")
        return self._write(
            allocation,
            lambda: to_document(descriptor, record),
            staged=lambda data: self.transaction.set(ref, data, merge=merge),
            direct=lambda data: ref.set(data, merge=merge, **_call_options(timeout)),
        )

    def delete(self, record: Any, *, option: Any = None, timeout: Optional[float] = None):
        """
        Delete the document of `record`.

        `option` is a precondition from `firestore_client.write_option(...)`.
        """
        descriptor = self._require_record(record)
        self._check_writable(descriptor, "delete")
        ref, _ = resolve_location(self.firestore_client, descriptor, record, allow_generate=False)
        if self.transaction is not None:
            self.transaction.delete(ref, option=option)
            return None
        return ref.delete(option=option, **_call_options(timeout))

    # --- queries ---

    def query(self, record_type: Type[T], target: Optional[list[T]] = None) -> Query[T]:
        """Query the root collection of `record_type`."""
        descriptor = self.descriptor_for(record_type)
        root = collection_ref(self.firestore_client, descriptor)
        return Query(root, descriptor, transaction=self.transaction, target=target)

    def query_group(self, record_type: Type[T], target: Optional[list[T]] = None) -> Query[T]:
        """Query every collection named after `record_type`, at any depth."""
        descriptor = self.descriptor_for(record_type)
        root = collection_group_ref(self.firestore_client, descriptor)
        return Query(root, descriptor, transaction=self.transaction, target=target)

    def query_nested(self, parent: Any, record_type: Type[T], target: Optional[list[T]] = None) -> Query[T]:
        """Query the `record_type` collection under the document of `parent`."""
        descriptor = self.descriptor_for(record_type)
        root = nested_collection_ref(self.firestore_client, descriptor, parent)
        return Query(root, descriptor, transaction=self.transaction, target=target, parent=parent)

    # --- transactions ---

    def scoped(self, transaction: firestore.Transaction) -> "Client":
        """
        Clone bound to `transaction` with a fresh compensation stack.

        The clone gets a snapshot of the table maps; this client is not modified.
        """
        clone = copy.copy(self)
        clone.transaction = transaction
        clone._table_maps = dict(self._table_maps)
        clone._descriptors = dict(self._descriptors)
        clone._compensations = CompensationStack()
        return clone

    @property
    def compensations(self) -> Optional[CompensationStack]:
        return self._compensations

    def run_transaction(
        self,
        body: Callable[["Client"], R],
        *,
        max_attempts: int = 5,
        read_only: bool = False,
    ) -> R:
        """Run `body(tx_client)` atomically; see `typedstore.transaction.run_transaction`."""
        return _run_transaction(self, body, max_attempts=max_attempts, read_only=read_only)
