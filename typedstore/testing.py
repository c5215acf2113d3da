"""
Helpers for tests running against the Firestore emulator.

These refuse to run unless FIRESTORE_EMULATOR_HOST is set, so they can never
wipe a production database.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import requests
from google.cloud import firestore

from typedstore.client import Client

logger = logging.getLogger(__name__)

DEFAULT_EMULATOR_PROJECT_ID = "dummy-emulator-firestore-project"
DEFAULT_DATABASE_ID = "(default)"


def _emulator_host() -> str:
    host = (os.getenv("FIRESTORE_EMULATOR_HOST") or "").strip()
    if not host:
        raise RuntimeError("FIRESTORE_EMULATOR_HOST is not set: emulator helpers work only against the Firestore emulator")
    return host


def _raw(client: Any) -> firestore.Client:
    return client.firestore_client if isinstance(client, Client) else client


def clear_emulator_database(client: Any, *, timeout_s: float = 10.0) -> None:
    """
    Delete every document of the database `client` is connected to.

    Only the connected database is cleared, not the whole emulator.
    """
    host = _emulator_host()
    db = _raw(client)
    project_id = getattr(db, "project", None) or DEFAULT_EMULATOR_PROJECT_ID
    database = getattr(db, "_database", None) or DEFAULT_DATABASE_ID
    url = f"http://{host}/emulator/v1/projects/{project_id}/databases/{database}/documents"
    resp = requests.delete(url, timeout=timeout_s)
    resp.raise_for_status()
    logger.debug("typedstore_emulator_clear project=%s database=%s", project_id, database)


def delete_collection(client: Any, collection: Any, *, batch_size: int = 100, parent: Optional[Any] = None) -> int:
    """
    Recursively delete a collection and its sub-collections.

    `collection` is a collection name/path, or a record type (then resolved
    through the client's table maps, nested under `parent` when given).
    Returns the number of deleted documents.
    """
    _emulator_host()
    db = _raw(client)
    if isinstance(collection, str):
        ref = db.collection(collection)
    elif isinstance(client, Client) and parent is not None:
        ref = client.query_nested(parent, collection).firestore_query
    elif isinstance(client, Client):
        ref = db.collection(client.descriptor_for(collection).collection_name)
    else:
        raise TypeError("record types need a typedstore Client to resolve their collection")
    return int(db.recursive_delete(ref, chunk_size=batch_size))
