"""
Port interfaces (protocols) for the domain layer.

Ports define the contracts between the domain and infrastructure layers.
They are implemented by adapters in the infrastructure layer, allowing
the domain to remain independent of technical details.

Following Hexagonal Architecture principles, the domain layer depends only
on these abstract protocols, never on concrete implementations.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence
from uuid import UUID

from .entities import ReservationQueue
from .notifications import QueueNotification


class Clock(Protocol):
    """
    Port for reading the current time.

    The queue never reads wall-clock time itself; services ask a Clock and
    pass the result down, which keeps the domain deterministic in tests.
    """

    def now(self) -> datetime:
        """
        Return the current moment as a timezone-aware datetime.
        """
        ...


class LoanPolicy(Protocol):
    """
    Port answering whether a resource is already out on loan.

    Consulted only when the head of a queue asks to be activated.
    """

    def has_active_loan(self, resource_id: UUID) -> bool:
        """
        Check whether the resource currently has an active loan.

        Args:
            resource_id: The resource (copy) to check

        Returns:
            True if a loan is active for this resource
        """
        ...


class ReservationQueueRepository(Protocol):
    """
    Port for loading and saving reservation queues.

    One queue is stored per resource. Implementations must enforce
    optimistic concurrency on the queue version:
    - save() with expected_version=0 creates the queue and fails if it exists
    - save() with expected_version=N updates only if the stored version is N

    Notifications handed to save() are appended to the notification log in
    the same transaction as the queue state: either both are stored or
    neither is.
    """

    def get(self, resource_id: UUID) -> Optional[ReservationQueue]:
        """
        Load the queue of a resource.

        Args:
            resource_id: The resource whose queue to load

        Returns:
            The ReservationQueue if one is stored, None otherwise
        """
        ...

    def save(
        self,
        queue: ReservationQueue,
        expected_version: int,
        notifications: Sequence[QueueNotification] = (),
    ) -> None:
        """
        Persist a queue and its notifications if nobody else changed it since it was loaded.

        Args:
            queue: The queue to persist (its current version is written)
            expected_version: Version the queue had when it was loaded
            notifications: Notifications drained from the queue, in order

        Raises:
            ConcurrencyConflict: If the stored version is not expected_version
            RuntimeError: If a storage error occurs; nothing is stored
        """
        ...

    def list_resource_ids(self) -> List[UUID]:
        """
        List every resource that has a stored queue.

        Returns:
            Resource identifiers, in no particular order
        """
        ...

    def delete(self, resource_id: UUID) -> bool:
        """
        Delete the stored queue of a resource.

        Returns:
            True if a queue was deleted, False if none was stored
        """
        ...
