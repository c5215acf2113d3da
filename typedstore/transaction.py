"""
Atomic multi-operation units.

`run_transaction()` drives `google.cloud.firestore.transactional`, which
retries the body on contention. Every attempt gets its own transaction-scoped
clone of the client, so the caller's client is never bound to a transaction.

Ids generated by writes inside an attempt are reset when that attempt does not
commit: before a retried attempt starts, and after a final failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from google.cloud.firestore import transactional

from typedstore.errors import ProgrammingError

if TYPE_CHECKING:
    from typedstore.client import Client

R = TypeVar("R")
logger = logging.getLogger(__name__)


def run_transaction(
    client: "Client",
    body: Callable[["Client"], R],
    *,
    max_attempts: int = 5,
    read_only: bool = False,
) -> R:
    """
    Run `body(tx_client)` inside a Firestore transaction and return its result.

    The error raised by the body (or by the final commit) propagates unchanged.
    """
    if client.in_transaction:
        raise ProgrammingError("nested transactions are not supported")

    firestore_transaction = client.firestore_client.transaction(max_attempts=max_attempts, read_only=read_only)
    attempts: list["Client"] = []

    def _attempt(transaction: Any) -> R:
        if attempts:
            previous = attempts[-1].compensations
            if previous is not None:
                previous.unwind()
        scoped = client.scoped(transaction)
        attempts.append(scoped)
        logger.debug("typedstore_transaction attempt=%d", len(attempts))
        return body(scoped)

    try:
        result = transactional(_attempt)(firestore_transaction)
    except Exception:
        if attempts and attempts[-1].compensations is not None:
            attempts[-1].compensations.unwind()
        raise

    if attempts and attempts[-1].compensations is not None:
        attempts[-1].compensations.discard()
    return result
