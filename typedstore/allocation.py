from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from typedstore.descriptor import RecordDescriptor

logger = logging.getLogger(__name__)


def _nop() -> None:
    return None


@dataclass(frozen=True, slots=True)
class IdentifierAllocation:
    """
    Outcome of resolving the id of a record about to be written.

    `rollback` blanks the id again when it was generated for this write,
    and is a no-op otherwise.
    """

    is_new: bool
    document_id: str
    rollback: Callable[[], None] = _nop


def allocate_identifier(descriptor: RecordDescriptor, record: Any, document_id: str, *, is_new: bool) -> IdentifierAllocation:
    """
    Write a freshly generated id into `record` so the caller observes it right away.
    """
    if not is_new:
        return IdentifierAllocation(is_new=False, document_id=document_id)

    descriptor.set_id(record, document_id)

    def _rollback() -> None:
        descriptor.set_id(record, "")

    return IdentifierAllocation(is_new=True, document_id=document_id, rollback=_rollback)


@dataclass
class CompensationStack:
    """
    Ordered list of undo actions scoped to one transaction attempt.

    Actions run in the order they were recorded.
    """

    _actions: list[Callable[[], None]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, action: Callable[[], None]) -> None:
        self._actions.append(action)

    def unwind(self) -> int:
        actions, self._actions = self._actions, []
        for action in actions:
            action()
        if actions:
            logger.debug("typedstore_compensations unwound=%d", len(actions))
        return len(actions)

    def discard(self) -> None:
        self._actions = []
