"""
Domain service orchestrating reservation queue commands.

=============================================================================
NOTES: Load, mutate, save with notifications
=============================================================================

The ReservationQueue aggregate is a pure in-memory object. Every command
that reaches it from the outside follows the same cycle:

    repository.get() --> queue.<command>(..., now)
        --> queue.drain_notifications() --> repository.save(queue, version, notifications)

The version read at load time is handed back to save() so the repository
can reject the write when another worker changed the same queue in the
meantime (optimistic concurrency). A rejected command is reloaded and
replayed against the fresh state a bounded number of times.

The drained notifications travel with the save. The repository stores the
new queue state and appends the notifications to its log in one
transaction, so the stored version and the notification log never drift
apart: a failed save stores neither and the command can simply be retried.

=============================================================================
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, TypeVar
from uuid import UUID

from app.domain.entities import ReservationQueue
from app.domain.exceptions import ConcurrencyConflict, QueueNotFound, ReservationQueueError
from app.domain.ports import Clock, LoanPolicy, ReservationQueueRepository
from app.domain.utils.uuid7 import uuid7
from app.domain.value_objects import (
    PriorityLevel,
    QueueEntry,
    RemovalReason,
    RemovedBy,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CONFLICT_RETRIES = 2


class ReservationQueueService:
    """
    Runs queue commands against persisted queues and records their notifications.

    The service depends only on ports. It keeps no queue state between calls:
    each command loads the current queue, applies one operation and persists
    it together with the notifications it produced.

    Usage:
        service = ReservationQueueService(
            queue_repo=sqlite_repo,
            clock=SystemClock(),
            loan_policy=loans,
        )
        reservation_id = service.place_reservation(copy_id, reader_id, PriorityLevel.VIP, deadline)
    """

    def __init__(
        self,
        queue_repo: ReservationQueueRepository,
        clock: Clock,
        loan_policy: LoanPolicy,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
    ) -> None:
        """
        Initialize the service with its collaborators.

        Args:
            queue_repo: Repository holding one queue per resource
            clock: Source of the current time
            loan_policy: Answers whether a resource is already on loan
            max_conflict_retries: How many times a command is replayed after
                a concurrent update before the conflict is raised

        Raises:
            ValueError: If max_conflict_retries is negative
        """
        if max_conflict_retries < 0:
            raise ValueError(
                f"max_conflict_retries cannot be negative, got {max_conflict_retries}"
            )

        self._queue_repo = queue_repo
        self._clock = clock
        self._loan_policy = loan_policy
        self._max_conflict_retries = max_conflict_retries

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_queue(self, resource_id: UUID) -> Optional[ReservationQueue]:
        """Load the current queue of a resource, if any."""
        return self._queue_repo.get(resource_id)

    def position_of(self, resource_id: UUID, reservation_id: UUID) -> Optional[int]:
        """1-based position of a waiting reservation, or None."""
        queue = self._queue_repo.get(resource_id)
        if queue is None:
            return None
        return queue.position_of(reservation_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def place_reservation(
        self,
        resource_id: UUID,
        requester_id: UUID,
        priority: PriorityLevel,
        wait_deadline: datetime,
        reservation_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Put a reservation in the queue of a resource, creating the queue if needed.

        Args:
            resource_id: Resource (copy) being reserved
            requester_id: Reader placing the reservation
            priority: Priority level of the reader
            wait_deadline: Moment after which the reservation expires
            reservation_id: Reservation id; a time-ordered one is generated if omitted

        Returns:
            The reservation id (generated or given)
        """
        if reservation_id is None:
            reservation_id = uuid7()

        def command(queue: ReservationQueue, now: datetime) -> None:
            queue.place(reservation_id, requester_id, priority, wait_deadline, now)

        self._execute(resource_id, command, create_if_missing=True)
        return reservation_id

    def authorize_activation(self, resource_id: UUID, reservation_id: UUID) -> QueueEntry:
        """
        Activate the head of a queue.

        Raises:
            QueueNotFound: If the resource has no queue
            InvalidOperation: If the activation preconditions are not met
        """

        def command(queue: ReservationQueue, now: datetime) -> QueueEntry:
            return queue.authorize_activation(reservation_id, self._loan_policy, now)

        return self._execute(resource_id, command)

    def expire_overdue(self, resource_id: UUID) -> List[QueueEntry]:
        """
        Expire overdue entries at the front of one queue.

        A resource without a queue has nothing to expire.
        """

        def command(queue: ReservationQueue, now: datetime) -> List[QueueEntry]:
            return queue.expire_overdue(now)

        return self._execute(resource_id, command, missing_default=[])

    def expire_all_overdue(self) -> Dict[UUID, int]:
        """
        Sweep every stored queue and expire overdue entries.

        Queues are independent: a queue that keeps conflicting, cannot be
        loaded or cannot be saved is logged and left for the next sweep
        without stopping the others.

        Returns:
            Number of expired entries per resource, only for queues that changed
        """
        expired_counts: Dict[UUID, int] = {}

        for resource_id in self._queue_repo.list_resource_ids():
            try:
                expired = self.expire_overdue(resource_id)
            except ConcurrencyConflict as e:
                logger.warning("Skipping expiry sweep for resource %s: %s", resource_id, e)
                continue
            except (ReservationQueueError, RuntimeError) as e:
                logger.error("Expiry sweep failed for resource %s: %s", resource_id, e)
                continue

            if expired:
                expired_counts[resource_id] = len(expired)

        logger.info(
            "Expiry sweep finished: %d entries expired across %d queues",
            sum(expired_counts.values()),
            len(expired_counts),
        )
        return expired_counts

    def remove_reservation(
        self,
        resource_id: UUID,
        reservation_id: UUID,
        reason: RemovalReason,
        removed_by: RemovedBy,
        note: Optional[str] = None,
    ) -> bool:
        """
        Take a waiting reservation out of a queue.

        Returns:
            True if something was removed, False for a no-op

        Raises:
            InvalidOperation: If the reservation is the active one
        """

        def command(queue: ReservationQueue, now: datetime) -> bool:
            return queue.remove(reservation_id, reason, removed_by, now, note)

        return self._execute(resource_id, command, missing_default=False)

    def release_active(self, resource_id: UUID, reservation_id: UUID) -> bool:
        """
        Release the active holder of a resource.

        Returns:
            True if the active reservation was cleared, False for a no-op
        """

        def command(queue: ReservationQueue, now: datetime) -> bool:
            return queue.release_active(reservation_id, now)

        return self._execute(resource_id, command, missing_default=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        resource_id: UUID,
        command: Callable[[ReservationQueue, datetime], T],
        *,
        create_if_missing: bool = False,
        missing_default: Optional[T] = None,
    ) -> T:
        attempt = 0

        while True:
            queue = self._queue_repo.get(resource_id)
            if queue is None:
                if create_if_missing:
                    queue = ReservationQueue(resource_id)
                elif missing_default is not None:
                    return missing_default
                else:
                    raise QueueNotFound(resource_id)

            loaded_version = queue.version
            result = command(queue, self._clock.now())

            if queue.version == loaded_version:
                logger.debug("Command on queue %s changed nothing", resource_id)
                return result

            notifications = queue.drain_notifications()
            try:
                self._queue_repo.save(
                    queue,
                    expected_version=loaded_version,
                    notifications=notifications,
                )
            except ConcurrencyConflict:
                if attempt >= self._max_conflict_retries:
                    logger.warning(
                        "Giving up on queue %s after %d conflicting attempts",
                        resource_id,
                        attempt + 1,
                    )
                    raise
                attempt += 1
                logger.warning(
                    "Concurrent update on queue %s, retrying (%d/%d)",
                    resource_id,
                    attempt,
                    self._max_conflict_retries,
                )
                continue

            logger.info(
                "Queue %s moved to version %d (%d notifications)",
                resource_id,
                queue.version,
                len(notifications),
            )
            return result
