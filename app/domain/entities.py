"""
Domain entities for the reservation queue system.

The ReservationQueue aggregate owns the waiting line of a single resource
(one physical copy). It keeps entries ordered by priority and arrival,
hands the resource to the head of the line, expires entries whose wait
deadline has passed, and records every change as a versioned notification.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Tuple
from uuid import UUID

from .exceptions import InvalidArgument, InvalidOperation
from .notifications import (
    ActiveLoanCleared,
    LoanActivationAuthorized,
    QueueHeadChanged,
    QueueNotification,
    ReservationQueued,
    ReservationRemovedFromQueue,
    WaitDeadlineExpiredFromQueue,
)
from .value_objects import (
    PriorityLevel,
    QueueEntry,
    QueueSnapshot,
    RemovalReason,
    RemovedBy,
    ensure_aware,
    ensure_identifier,
)

if TYPE_CHECKING:
    from .ports import LoanPolicy


class ReservationQueue:
    """
    Priority-ordered waiting line for one resource.

    Invariants kept by every operation:
    - entries are sorted by (priority, sequence) and hold no duplicate ids
    - the active reservation, if any, is never among the entries
    - version grows by exactly one per state-changing call; no-ops leave it
      untouched and emit nothing

    The queue never reads the system clock: every operation receives ``now``.
    Failed operations leave entries, version and the notification buffer
    exactly as they were.
    """

    def __init__(self, resource_id: UUID) -> None:
        """
        Create an empty queue.

        Args:
            resource_id: Identifier of the resource this queue serves

        Raises:
            InvalidArgument: If resource_id is empty
        """
        ensure_identifier(resource_id, "resource_id")
        self._resource_id = resource_id
        self._entries: List[QueueEntry] = []
        self._active_reservation_id: Optional[UUID] = None
        self._version = 0
        self._sequence_counter = 0
        self._pending: List[QueueNotification] = []

    def __repr__(self) -> str:
        return (
            f"ReservationQueue(resource_id={self._resource_id}, "
            f"entries={len(self._entries)}, "
            f"active_reservation_id={self._active_reservation_id}, "
            f"version={self._version})"
        )

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def resource_id(self) -> UUID:
        return self._resource_id

    @property
    def entries(self) -> Tuple[QueueEntry, ...]:
        """Waiting entries in queue order (head first)."""
        return tuple(self._entries)

    @property
    def head(self) -> Optional[QueueEntry]:
        """Entry next in line for activation, if any."""
        return self._entries[0] if self._entries else None

    @property
    def active_reservation_id(self) -> Optional[UUID]:
        return self._active_reservation_id

    @property
    def version(self) -> int:
        return self._version

    @property
    def has_pending_notifications(self) -> bool:
        return bool(self._pending)

    def contains(self, reservation_id: UUID) -> bool:
        """Check if a reservation is waiting in this queue."""
        return self._index_of(reservation_id) is not None

    def position_of(self, reservation_id: UUID) -> Optional[int]:
        """1-based position of a waiting reservation, or None if absent."""
        index = self._index_of(reservation_id)
        return None if index is None else index + 1

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def place(
        self,
        reservation_id: UUID,
        requester_id: UUID,
        priority: PriorityLevel,
        wait_deadline: datetime,
        now: datetime,
    ) -> bool:
        """
        Put a reservation in line.

        Placing a reservation that is already waiting, or that currently
        holds the resource, is a silent no-op.

        Args:
            reservation_id: Reservation to enqueue
            requester_id: Reader who placed it
            priority: Priority level of the reader
            wait_deadline: Moment after which the entry expires
            now: Current time

        Returns:
            True if the queue changed, False for a no-op

        Raises:
            InvalidArgument: If an identifier is empty or not a UUID, priority is
                unknown, or a datetime is naive
        """
        ensure_identifier(reservation_id, "reservation_id")
        ensure_identifier(requester_id, "requester_id")
        priority = PriorityLevel.parse(priority)
        ensure_aware(wait_deadline, "wait_deadline")
        ensure_aware(now, "now")

        if self.contains(reservation_id) or reservation_id == self._active_reservation_id:
            return False

        entry = QueueEntry(
            reservation_id=reservation_id,
            requester_id=requester_id,
            priority=priority,
            wait_deadline=wait_deadline,
            placed_at=now,
            sequence=self._sequence_counter,
        )
        index = self._find_insert_index(entry)

        self._sequence_counter += 1
        self._entries.insert(index, entry)
        self._version += 1

        self._record(
            ReservationQueued(
                resource_id=self._resource_id,
                reservation_id=reservation_id,
                requester_id=requester_id,
                priority=priority,
                wait_deadline=wait_deadline,
                occurred_at=now,
                version=self._version,
            )
        )
        if index == 0:
            self._record_head_changed(now)
        return True

    def authorize_activation(
        self,
        reservation_id: UUID,
        loan_policy: "LoanPolicy",
        now: datetime,
    ) -> QueueEntry:
        """
        Hand the resource to the head of the queue.

        Args:
            reservation_id: Reservation expected to be at the head
            loan_policy: Answers whether the resource is already on loan
            now: Current time

        Returns:
            The entry that was activated

        Raises:
            InvalidArgument: If now is naive
            InvalidOperation: If the reservation is not the head, another
                reservation is active, the loan policy reports an active loan,
                or the head's wait deadline has passed
        """
        ensure_aware(now, "now")

        head = self.head
        if head is None or head.reservation_id != reservation_id:
            raise InvalidOperation("Only head of queue can be activated")

        if self._active_reservation_id is not None:
            raise InvalidOperation("Resource already has an active loan")

        if loan_policy.has_active_loan(self._resource_id):
            raise InvalidOperation("Resource already on active loan per policy")

        if now > head.wait_deadline:
            raise InvalidOperation("Head reservation wait deadline expired")

        self._entries.pop(0)
        self._active_reservation_id = reservation_id
        self._version += 1

        self._record(
            LoanActivationAuthorized(
                resource_id=self._resource_id,
                reservation_id=reservation_id,
                requester_id=head.requester_id,
                occurred_at=now,
                version=self._version,
            )
        )
        if self._entries:
            self._record_head_changed(now)
        return head

    def expire_overdue(self, now: datetime) -> List[QueueEntry]:
        """
        Drop every entry at the front of the line whose deadline has passed.

        Each expired entry bumps the version and gets its own notification.
        A single QueueHeadChanged follows when the line is not empty
        afterwards; it shares the version of the last expiry.

        Only the front is inspected: an overdue entry behind a live head
        stays until it reaches the head.

        Returns:
            Expired entries in the order they left the queue

        Raises:
            InvalidArgument: If now is naive
        """
        ensure_aware(now, "now")
        expired: List[QueueEntry] = []

        while self._entries and self._entries[0].is_overdue(now):
            removed = self._entries.pop(0)
            self._version += 1
            expired.append(removed)
            self._record(
                WaitDeadlineExpiredFromQueue(
                    resource_id=self._resource_id,
                    reservation_id=removed.reservation_id,
                    requester_id=removed.requester_id,
                    wait_deadline=removed.wait_deadline,
                    occurred_at=now,
                    version=self._version,
                )
            )

        if expired and self._entries:
            self._record_head_changed(now)
        return expired

    def remove(
        self,
        reservation_id: UUID,
        reason: RemovalReason,
        removed_by: RemovedBy,
        now: datetime,
        note: Optional[str] = None,
    ) -> bool:
        """
        Take a waiting reservation out of the line.

        Removing an id that is not waiting is a silent no-op.

        Returns:
            True if the queue changed, False for a no-op

        Raises:
            InvalidArgument: If reason or removed_by is not a known value, or now
                is naive
            InvalidOperation: If the reservation currently holds the resource
        """
        reason = _coerce(RemovalReason, reason, "reason")
        removed_by = _coerce(RemovedBy, removed_by, "removed_by")
        ensure_aware(now, "now")

        if reservation_id is not None and reservation_id == self._active_reservation_id:
            raise InvalidOperation("Cannot remove active reservation from queue")

        index = self._index_of(reservation_id)
        if index is None:
            return False

        removed = self._entries.pop(index)
        self._version += 1

        self._record(
            ReservationRemovedFromQueue(
                resource_id=self._resource_id,
                reservation_id=reservation_id,
                requester_id=removed.requester_id,
                reason=reason,
                removed_by=removed_by,
                note=note,
                occurred_at=now,
                version=self._version,
            )
        )
        if index == 0 and self._entries:
            self._record_head_changed(now)
        return True

    def release_active(self, reservation_id: UUID, now: datetime) -> bool:
        """
        Clear the active holder once its loan is over.

        Releasing anything but the current active reservation is a no-op.

        Returns:
            True if the queue changed, False for a no-op
        """
        ensure_aware(now, "now")

        if self._active_reservation_id is None or self._active_reservation_id != reservation_id:
            return False

        self._active_reservation_id = None
        self._version += 1

        self._record(
            ActiveLoanCleared(
                resource_id=self._resource_id,
                reservation_id=reservation_id,
                occurred_at=now,
                version=self._version,
            )
        )
        if self._entries:
            self._record_head_changed(now)
        return True

    def drain_notifications(self) -> Tuple[QueueNotification, ...]:
        """Return buffered notifications in emission order and clear the buffer."""
        drained = tuple(self._pending)
        self._pending.clear()
        return drained

    # ------------------------------------------------------------------
    # Persistence support
    # ------------------------------------------------------------------

    def snapshot(self) -> QueueSnapshot:
        """Capture the persistable state (pending notifications excluded)."""
        return QueueSnapshot(
            resource_id=self._resource_id,
            entries=tuple(self._entries),
            active_reservation_id=self._active_reservation_id,
            version=self._version,
            sequence_counter=self._sequence_counter,
        )

    @classmethod
    def restore(cls, snapshot: QueueSnapshot) -> "ReservationQueue":
        """
        Rebuild a queue from persisted state.

        Raises:
            InvalidArgument: If the snapshot breaks any queue invariant
        """
        queue = cls(snapshot.resource_id)
        entries = list(snapshot.entries)

        seen = set()
        for position, entry in enumerate(entries):
            if entry.reservation_id in seen:
                raise InvalidArgument(
                    f"Duplicate reservation {entry.reservation_id} in snapshot"
                )
            seen.add(entry.reservation_id)

            if entry.sequence >= snapshot.sequence_counter:
                raise InvalidArgument(
                    f"Entry sequence {entry.sequence} is not below "
                    f"sequence_counter {snapshot.sequence_counter}"
                )

            if position > 0 and not entries[position - 1].precedes(entry):
                raise InvalidArgument("Snapshot entries are not in queue order")

        if snapshot.active_reservation_id is not None and snapshot.active_reservation_id in seen:
            raise InvalidArgument("Active reservation cannot also be waiting in the queue")

        queue._entries = entries
        queue._active_reservation_id = snapshot.active_reservation_id
        queue._version = snapshot.version
        queue._sequence_counter = snapshot.sequence_counter
        return queue

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index_of(self, reservation_id: UUID) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.reservation_id == reservation_id:
                return index
        return None

    def _find_insert_index(self, entry: QueueEntry) -> int:
        # Linear scan: queues are short and stable FIFO order matters more than speed.
        for index, existing in enumerate(self._entries):
            if entry.precedes(existing):
                return index
        return len(self._entries)

    def _record_head_changed(self, now: datetime) -> None:
        self._record(
            QueueHeadChanged(
                resource_id=self._resource_id,
                head_reservation_id=self._entries[0].reservation_id,
                occurred_at=now,
                version=self._version,
            )
        )

    def _record(self, notification: QueueNotification) -> None:
        self._pending.append(notification)


def _coerce(enum_type, value, name: str):
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidArgument(f"Unknown {name} {value!r}") from None
