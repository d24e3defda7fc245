"""
SQLite implementation of the ReservationQueueRepository port.

This adapter persists one row per resource queue, serialising the ordered
entries as JSON, and enforces optimistic concurrency on the queue version.
Notifications passed to save() go to the notification outbox of the same
database file inside the same transaction.
"""

import json
import logging
import sqlite3
from datetime import datetime, UTC
from pathlib import Path
from typing import List, Optional, Sequence
from uuid import UUID

from app.domain.entities import ReservationQueue
from app.domain.exceptions import ConcurrencyConflict
from app.domain.notifications import QueueNotification
from app.domain.ports import ReservationQueueRepository
from app.domain.value_objects import PriorityLevel, QueueEntry, QueueSnapshot
from app.infrastructure.messaging.sqlite_notification_outbox import SqliteNotificationOutbox

logger = logging.getLogger(__name__)


class SqliteReservationQueueRepository(ReservationQueueRepository):
    """
    A save with expected_version=0 inserts the queue and fails if another
    writer created it first. Any other save is a conditional UPDATE on the
    stored version; zero updated rows means someone else got there first.
    """

    def __init__(self, db_path: Path, outbox: Optional[SqliteNotificationOutbox] = None) -> None:
        """
        Initialize the repository with a database path

        Args:
            db_path: SQLite file holding queues and the outbox
            outbox: Outbox to append notifications to; one is created on
                db_path if omitted

        Raises:
            ValueError: If the outbox lives in another database file
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        if outbox is None:
            outbox = SqliteNotificationOutbox(self._db_path)
        elif outbox.db_path.resolve() != self._db_path.resolve():
            raise ValueError(
                f"Outbox database {outbox.db_path} must be the queue database {self._db_path}"
            )
        self._outbox = outbox

        self._init_schema()

    @property
    def outbox(self) -> SqliteNotificationOutbox:
        return self._outbox

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        """Create the reservation_queues table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS reservation_queues (
                resource_id TEXT PRIMARY KEY,
                active_reservation_id TEXT,
                version INTEGER NOT NULL,
                sequence_counter INTEGER NOT NULL,
                entries TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()

    def _entry_to_dict(self, entry: QueueEntry) -> dict:
        return {
            "reservation_id": str(entry.reservation_id),
            "requester_id": str(entry.requester_id),
            "priority": int(entry.priority),
            "wait_deadline": entry.wait_deadline.isoformat(),
            "placed_at": entry.placed_at.isoformat(),
            "sequence": entry.sequence,
        }

    def _dict_to_entry(self, data: dict) -> QueueEntry:
        return QueueEntry(
            reservation_id=UUID(data["reservation_id"]),
            requester_id=UUID(data["requester_id"]),
            priority=PriorityLevel(data["priority"]),
            wait_deadline=datetime.fromisoformat(data["wait_deadline"]),
            placed_at=datetime.fromisoformat(data["placed_at"]),
            sequence=data["sequence"],
        )

    def _queue_to_row(self, queue: ReservationQueue) -> dict:
        """Convert a queue to a database row dict."""
        snapshot = queue.snapshot()
        active = snapshot.active_reservation_id
        return {
            "resource_id": str(snapshot.resource_id),
            "active_reservation_id": str(active) if active is not None else None,
            "version": snapshot.version,
            "sequence_counter": snapshot.sequence_counter,
            "entries": json.dumps([self._entry_to_dict(e) for e in snapshot.entries]),
            "updated_at": datetime.now(UTC).isoformat(),
        }

    def _row_to_queue(self, row: sqlite3.Row) -> ReservationQueue:
        """Convert a database row back to a ReservationQueue."""
        active = row["active_reservation_id"]
        snapshot = QueueSnapshot(
            resource_id=UUID(row["resource_id"]),
            entries=tuple(self._dict_to_entry(d) for d in json.loads(row["entries"])),
            active_reservation_id=UUID(active) if active else None,
            version=row["version"],
            sequence_counter=row["sequence_counter"],
        )
        return ReservationQueue.restore(snapshot)

    def _stored_version(self, conn: sqlite3.Connection, resource_id: UUID) -> Optional[int]:
        row = conn.execute(
            "SELECT version FROM reservation_queues WHERE resource_id = ?",
            (str(resource_id),)
        ).fetchone()
        return None if row is None else row["version"]

    def count(self) -> int:
        """Get the total number of stored queues."""
        with self._get_connection() as conn:
            result = conn.execute("SELECT COUNT(*) as cnt FROM reservation_queues").fetchone()
            return result["cnt"]

    def get(self, resource_id: UUID) -> Optional[ReservationQueue]:
        """Load the queue of a resource."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM reservation_queues WHERE resource_id = ?",
                (str(resource_id),)
            ).fetchone()

            if row is None:
                return None

            return self._row_to_queue(row)

    def save(
        self,
        queue: ReservationQueue,
        expected_version: int,
        notifications: Sequence[QueueNotification] = (),
    ) -> None:
        """Persist a queue and its notifications, rejecting the write if its stored version moved."""
        if queue.version == expected_version:
            return

        row = self._queue_to_row(queue)
        row["expected_version"] = expected_version

        try:
            with self._get_connection() as conn:
                if expected_version == 0:
                    try:
                        conn.execute("""
                            INSERT INTO reservation_queues
                            (resource_id, active_reservation_id, version,
                             sequence_counter, entries, updated_at)
                            VALUES
                            (:resource_id, :active_reservation_id, :version,
                             :sequence_counter, :entries, :updated_at)
                        """, row)
                    except sqlite3.IntegrityError:
                        raise ConcurrencyConflict(
                            queue.resource_id,
                            expected_version,
                            self._stored_version(conn, queue.resource_id),
                        ) from None
                else:
                    cursor = conn.execute("""
                        UPDATE reservation_queues SET
                            active_reservation_id = :active_reservation_id,
                            version = :version,
                            sequence_counter = :sequence_counter,
                            entries = :entries,
                            updated_at = :updated_at
                        WHERE resource_id = :resource_id AND version = :expected_version
                    """, row)

                    if cursor.rowcount == 0:
                        raise ConcurrencyConflict(
                            queue.resource_id,
                            expected_version,
                            self._stored_version(conn, queue.resource_id),
                        )

                # Rolled back together with the queue row if anything fails
                written = self._outbox.append(notifications, conn=conn)
                conn.commit()

        except sqlite3.Error as e:
            raise RuntimeError(f"Database error while saving queue: {e}") from e

        logger.debug(
            "Saved queue %s at version %d (was %d) with %d notifications",
            queue.resource_id,
            queue.version,
            expected_version,
            written,
        )

    def list_resource_ids(self) -> List[UUID]:
        """List every resource that has a stored queue."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT resource_id FROM reservation_queues ORDER BY resource_id"
            ).fetchall()
            return [UUID(row["resource_id"]) for row in rows]

    def delete(self, resource_id: UUID) -> bool:
        """Delete the stored queue of a resource. Returns True if deleted."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM reservation_queues WHERE resource_id = ?",
                (str(resource_id),)
            )
            conn.commit()
            return cursor.rowcount > 0
