from __future__ import annotations

import copy
from typing import Any, Generic, Iterator, Optional, TypeVar

from google.cloud.firestore import Query as FirestoreQuery
from google.cloud.firestore_v1.base_query import FieldFilter

from typedstore.codec import UNSET, materialize
from typedstore.descriptor import RecordDescriptor

T = TypeVar("T")

ASCENDING = FirestoreQuery.ASCENDING
DESCENDING = FirestoreQuery.DESCENDING


def _cursor(values: tuple[Any, ...]) -> Any:
    """
    Cursor argument for the Firestore start/end methods.

    A single dict, list, tuple or snapshot is the whole cursor; otherwise the
    values are order-by field values. An array-valued order-by field must
    therefore be wrapped: `start_at([["a", "b"]])`.
    """
    if len(values) == 1:
        v = values[0]
        if isinstance(v, (dict, list, tuple)) or hasattr(v, "reference"):
            return v
    return list(values)


class Query(Generic[T]):
    """
    Immutable, chainable query over one record type.

    Every modifier returns a new Query, so a base query can be reused:

        base = client.query(MyDocument).where("Name", "==", "Alice")
        newest = base.order_by("created_at", DESCENDING).limit(10)
        total = base.count()
    """

    def __init__(
        self,
        query: Any,
        descriptor: RecordDescriptor,
        *,
        transaction: Any = None,
        target: Optional[list[T]] = None,
        parent: Any = UNSET,
    ) -> None:
        self._query = query
        self._descriptor = descriptor
        self._transaction = transaction
        self._target = target
        self._parent = parent
        self._limit_to_last = False

    @property
    def descriptor(self) -> RecordDescriptor:
        return self._descriptor

    @property
    def firestore_query(self) -> Any:
        return self._query

    def _derive(self, query: Any, *, limit_to_last: Optional[bool] = None) -> "Query[T]":
        q = copy.copy(self)
        q._query = query
        if limit_to_last is not None:
            q._limit_to_last = limit_to_last
        return q

    # --- modifiers ---

    def where(self, field_path: str, op_string: str, value: Any) -> "Query[T]":
        return self._derive(self._query.where(filter=FieldFilter(field_path, op_string, value)))

    def order_by(self, field_path: str, direction: str = ASCENDING) -> "Query[T]":
        return self._derive(self._query.order_by(field_path, direction=direction))

    def offset(self, n: int) -> "Query[T]":
        return self._derive(self._query.offset(n))

    def limit(self, n: int) -> "Query[T]":
        return self._derive(self._query.limit(n), limit_to_last=False)

    def limit_to_last(self, n: int) -> "Query[T]":
        return self._derive(self._query.limit_to_last(n), limit_to_last=True)

    def start_at(self, *values: Any) -> "Query[T]":
        return self._derive(self._query.start_at(_cursor(values)))

    def start_after(self, *values: Any) -> "Query[T]":
        return self._derive(self._query.start_after(_cursor(values)))

    def end_at(self, *values: Any) -> "Query[T]":
        return self._derive(self._query.end_at(_cursor(values)))

    def end_before(self, *values: Any) -> "Query[T]":
        return self._derive(self._query.end_before(_cursor(values)))

    # --- execution ---

    def _options(self, timeout: Optional[float]) -> dict[str, Any]:
        opts: dict[str, Any] = {"transaction": self._transaction}
        if timeout is not None:
            opts["timeout"] = float(timeout)
        return opts

    def iter(self, *, timeout: Optional[float] = None) -> Iterator[T]:
        """Lazily yield typed records in store order."""
        if self._limit_to_last:
            # limit_to_last results cannot be streamed.
            snapshots = self._query.get(**self._options(timeout))
        else:
            snapshots = self._query.stream(**self._options(timeout))
        for snap in snapshots:
            yield materialize(self._descriptor, snap, parent=self._parent)

    def __iter__(self) -> Iterator[T]:
        return self.iter()

    def get_all(self, target: Optional[list[T]] = None, *, timeout: Optional[float] = None) -> list[T]:
        """
        Append every result to `target` (or the list given when the query was
        started, or a new list) and return it.
        """
        dst = target if target is not None else self._target
        if dst is None:
            dst = []
        for record in self.iter(timeout=timeout):
            dst.append(record)
        return dst

    def count(self, *, timeout: Optional[float] = None) -> int:
        """Server-side count of matching documents."""
        results = self._query.count(alias="count").get(**self._options(timeout))
        return int(results[0][0].value)
