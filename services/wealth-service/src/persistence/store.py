"""Single-slot snapshot stores used by the dashboard session."""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.observability.privacy import hash_payload

from persistence.models import SnapshotSlot
from persistence.snapshot import Snapshot, decode_snapshot, encode_snapshot

logger = logging.getLogger(__name__)

DEFAULT_SLOT_KEY = "wealth-data"


@runtime_checkable
class SnapshotStore(Protocol):
    """
    Key-value persistence for exactly one snapshot.

    Implementations treat unreadable data as absence and never raise from
    `load`; writes are fire-and-forget.
    """

    def load(self) -> Optional[Snapshot]:
        ...

    def store(self, snapshot: Snapshot) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemorySnapshotStore:
    """Process-local store for tests and throwaway sessions."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self._payload = copy.deepcopy(payload) if payload is not None else None
        self.store_count = 0

    @property
    def payload(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._payload)

    def load(self) -> Optional[Snapshot]:
        if self._payload is None:
            return None
        return decode_snapshot(copy.deepcopy(self._payload))

    def store(self, snapshot: Snapshot) -> None:
        self._payload = encode_snapshot(snapshot)
        self.store_count += 1

    def clear(self) -> None:
        self._payload = None


class SqlSnapshotStore:
    """
    Thin repository that keeps the snapshot in one row of `snapshot_slots`.

    Writes replace the row with DELETE + INSERT so a payload that no longer
    decodes is overwritten rather than read back.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, key: str = DEFAULT_SLOT_KEY):
        self._session_factory = session_factory
        self._key = key

    def load(self) -> Optional[Snapshot]:
        try:
            with self._session_factory() as db:
                record = db.get(SnapshotSlot, self._key)
                payload = copy.deepcopy(record.payload) if record is not None else None
        except (SQLAlchemyError, ValueError) as exc:
            # ValueError covers JSON the column's result processor cannot decode.
            logger.warning(
                {
                    "event": "snapshot_load_failed",
                    "key": self._key,
                    "error_type": type(exc).__name__,
                }
            )
            return None

        if payload is None:
            return None
        return decode_snapshot(payload)

    def store(self, snapshot: Snapshot) -> None:
        payload = encode_snapshot(snapshot)
        try:
            with self._session_factory() as db:
                db.execute(delete(SnapshotSlot).where(SnapshotSlot.key == self._key))
                db.add(SnapshotSlot(key=self._key, payload=payload))
                db.commit()
        except SQLAlchemyError as exc:
            logger.error(
                {
                    "event": "snapshot_store_failed",
                    "key": self._key,
                    "error_type": type(exc).__name__,
                }
            )
            return

        logger.debug({"event": "snapshot_stored", "key": self._key, "payload_hash": hash_payload(payload)})

    def clear(self) -> None:
        try:
            with self._session_factory() as db:
                db.execute(delete(SnapshotSlot).where(SnapshotSlot.key == self._key))
                db.commit()
        except SQLAlchemyError as exc:
            logger.error(
                {
                    "event": "snapshot_clear_failed",
                    "key": self._key,
                    "error_type": type(exc).__name__,
                }
            )
            return

        logger.info({"event": "snapshot_cleared", "key": self._key})
