"""
SQLite notification outbox.

Queue notifications are appended to an outbox table in the order they
were drained. The queue repository writes them on its own connection so
the queue row and its notifications commit together. A relay process
reads pending rows, forwards them and marks them delivered; the relay
itself lives outside this package.
"""

import logging
import sqlite3
from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from app.domain.notifications import QueueNotification
from app.infrastructure.messaging.converters import domain_notification_to_message
from app.infrastructure.messaging.schemas import OutboxRecord, notification_message_adapter

logger = logging.getLogger(__name__)


class SqliteNotificationOutbox:
    """
    Append-only notification log backed by SQLite.

    Rows are never rewritten except to stamp published_at.
    """

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the outbox with a database path
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        """Create the outbox table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS notification_outbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                resource_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                version INTEGER NOT NULL,
                occurred_at TEXT NOT NULL,
                payload TEXT NOT NULL,
                published_at TEXT
            )
        """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_outbox_resource ON notification_outbox(resource_id, id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_outbox_pending ON notification_outbox(published_at, id)"
            )
        conn.commit()

    def _row_to_record(self, row: sqlite3.Row) -> OutboxRecord:
        published_at = row["published_at"]
        return OutboxRecord(
            id=row["id"],
            message=notification_message_adapter.validate_json(row["payload"]),
            published_at=datetime.fromisoformat(published_at) if published_at else None,
        )

    def _to_rows(self, notifications: Sequence[QueueNotification]) -> List[dict]:
        rows = []
        for notification in notifications:
            message = domain_notification_to_message(notification)
            rows.append({
                "resource_id": str(message.resource_id),
                "kind": message.kind,
                "version": message.version,
                "occurred_at": message.occurred_at.isoformat(),
                "payload": message.model_dump_json(),
            })
        return rows

    def _insert(self, conn: sqlite3.Connection, rows: List[dict]) -> None:
        conn.executemany("""
            INSERT INTO notification_outbox
            (resource_id, kind, version, occurred_at, payload)
            VALUES
            (:resource_id, :kind, :version, :occurred_at, :payload)
        """, rows)

    def append(
        self,
        notifications: Sequence[QueueNotification],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Append notifications to the outbox in order.

        Args:
            notifications: Notifications drained from a queue
            conn: Open connection of a caller-owned transaction. The rows are
                written on it and committing is left to the caller. Without
                one the outbox commits its own transaction.

        Returns:
            Number of rows written

        Raises:
            RuntimeError: If the outbox's own transaction fails
        """
        if not notifications:
            return 0

        rows = self._to_rows(notifications)

        if conn is not None:
            self._insert(conn, rows)
        else:
            try:
                with self._get_connection() as own_conn:
                    self._insert(own_conn, rows)
                    own_conn.commit()
            except sqlite3.Error as e:
                raise RuntimeError(f"Database error while writing outbox: {e}") from e

        for row in rows:
            logger.debug(
                "Outbox <- %s resource=%s version=%d",
                row["kind"],
                row["resource_id"],
                row["version"],
            )
        return len(rows)

    def pending(self, limit: Optional[int] = None) -> List[OutboxRecord]:
        """Undelivered messages, oldest first."""
        with self._get_connection() as conn:
            if limit is not None:
                rows = conn.execute(
                    "SELECT * FROM notification_outbox WHERE published_at IS NULL ORDER BY id LIMIT ?",
                    (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM notification_outbox WHERE published_at IS NULL ORDER BY id"
                ).fetchall()

            return [self._row_to_record(row) for row in rows]

    def list_for_resource(self, resource_id: UUID) -> List[OutboxRecord]:
        """Every message ever written for one queue, in order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM notification_outbox WHERE resource_id = ? ORDER BY id",
                (str(resource_id),)
            ).fetchall()

            return [self._row_to_record(row) for row in rows]

    def mark_delivered(self, record_ids: Iterable[int]) -> int:
        """
        Stamp messages as delivered.

        Already delivered messages keep their original timestamp.

        Returns:
            Number of messages newly marked
        """
        ids = list(record_ids)
        if not ids:
            return 0

        published_at = datetime.now(UTC).isoformat()
        placeholders = ", ".join("?" * len(ids))

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE notification_outbox SET published_at = ? "
                f"WHERE published_at IS NULL AND id IN ({placeholders})",
                [published_at, *ids],
            )
            conn.commit()

        logger.info("Marked %d outbox messages as delivered", cursor.rowcount)
        return cursor.rowcount

    def count(self) -> int:
        """Total number of messages in the outbox."""
        with self._get_connection() as conn:
            result = conn.execute("SELECT COUNT(*) as cnt FROM notification_outbox").fetchone()
            return result["cnt"]
