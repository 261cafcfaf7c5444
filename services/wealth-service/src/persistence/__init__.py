"""Persistence primitives for the dashboard snapshot."""

from persistence.database import (
    DB_URL_ENV_VAR,
    DEFAULT_DB_FILENAME,
    DEFAULT_DB_PATH,
    create_database_engine,
    get_database_url,
    get_engine,
    init_db,
    make_session_factory,
)
from persistence.models import Base, SnapshotSlot
from persistence.snapshot import Snapshot, decode_snapshot, encode_snapshot
from persistence.store import DEFAULT_SLOT_KEY, InMemorySnapshotStore, SnapshotStore, SqlSnapshotStore

__all__ = [
    "Base",
    "DB_URL_ENV_VAR",
    "DEFAULT_DB_FILENAME",
    "DEFAULT_DB_PATH",
    "DEFAULT_SLOT_KEY",
    "InMemorySnapshotStore",
    "Snapshot",
    "SnapshotSlot",
    "SnapshotStore",
    "SqlSnapshotStore",
    "create_database_engine",
    "decode_snapshot",
    "encode_snapshot",
    "get_database_url",
    "get_engine",
    "init_db",
    "make_session_factory",
]
