from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

import google.auth
from google.auth import exceptions as gauth_exceptions
from google.cloud import firestore

from typedstore.client import Client
from typedstore.descriptor import TableMapEntry

logger = logging.getLogger(__name__)

_CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Checked in order; the first one that is set wins.
KNOWN_PROJECT_ID_ENVS: tuple[str, ...] = (
    "CLOUDSDK_CORE_PROJECT",
    "GOOGLE_CLOUD_PROJECT",
)
DATABASE_ID_ENV = "FIRESTORE_DATABASE_ID"


def resolve_project_id(explicit_project_id: Optional[str] = None) -> Optional[str]:
    """
    Resolve the Google Cloud project id:
    - explicit argument
    - CLOUDSDK_CORE_PROJECT, then GOOGLE_CLOUD_PROJECT
    - the project of Application Default Credentials, when available
    """
    if explicit_project_id:
        return explicit_project_id

    for env in KNOWN_PROJECT_ID_ENVS:
        value = (os.getenv(env) or "").strip()
        if value:
            return value

    try:
        _, project_id = google.auth.default(scopes=[_CLOUD_PLATFORM_SCOPE])
    except gauth_exceptions.DefaultCredentialsError:
        # Let google-cloud-firestore decide (the emulator accepts any project).
        return None
    return project_id or None


def resolve_database_id(explicit_database: Optional[str] = None) -> Optional[str]:
    if explicit_database:
        return explicit_database
    return (os.getenv(DATABASE_ID_ENV) or "").strip() or None


def new_firestore_client(
    *,
    project_id: Optional[str] = None,
    database: Optional[str] = None,
    credentials: Any = None,
) -> firestore.Client:
    resolved_project_id = resolve_project_id(project_id)
    resolved_database = resolve_database_id(database)

    kwargs: dict[str, Any] = {}
    if resolved_project_id:
        kwargs["project"] = resolved_project_id
    if resolved_database:
        kwargs["database"] = resolved_database
    if credentials is not None:
        kwargs["credentials"] = credentials

    logger.debug(
        "typedstore_connect project=%s database=%s emulator=%s",
        resolved_project_id,
        resolved_database or "(default)",
        bool((os.getenv("FIRESTORE_EMULATOR_HOST") or "").strip()),
    )
    return firestore.Client(**kwargs)


def new_client(
    *,
    project_id: Optional[str] = None,
    database: Optional[str] = None,
    credentials: Any = None,
    table_maps: Optional[Mapping[str, TableMapEntry]] = None,
) -> Client:
    """
    Create a typedstore client.

    Supported env:
    - CLOUDSDK_CORE_PROJECT / GOOGLE_CLOUD_PROJECT (project id)
    - FIRESTORE_DATABASE_ID (named database; default database otherwise)
    - FIRESTORE_EMULATOR_HOST (handled by google-cloud-firestore)
    """
    db = new_firestore_client(project_id=project_id, database=database, credentials=credentials)
    return Client(db, table_maps=table_maps)


@contextmanager
def open_client(**kwargs: Any) -> Iterator[Client]:
    """Yield a new client and close it afterwards."""
    client = new_client(**kwargs)
    try:
        yield client
    finally:
        client.close()
