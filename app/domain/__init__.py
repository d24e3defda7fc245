"""
Domain layer - Core business logic and entities.

This layer contains the reservation queue aggregate, its value objects and
notifications, and defines the ports (interfaces) that the infrastructure
layer must implement.

It has NO dependencies on external frameworks, databases, or APIs.
"""

from .entities import ReservationQueue
from .exceptions import (
    ConcurrencyConflict,
    InvalidArgument,
    InvalidOperation,
    QueueNotFound,
    ReservationQueueError,
)
from .notifications import (
    ActiveLoanCleared,
    LoanActivationAuthorized,
    NotificationKind,
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
)

__all__ = [
    # Entities
    "ReservationQueue",
    # Value Objects
    "PriorityLevel",
    "QueueEntry",
    "QueueSnapshot",
    "RemovalReason",
    "RemovedBy",
    # Notifications
    "NotificationKind",
    "QueueNotification",
    "ReservationQueued",
    "QueueHeadChanged",
    "LoanActivationAuthorized",
    "WaitDeadlineExpiredFromQueue",
    "ReservationRemovedFromQueue",
    "ActiveLoanCleared",
    # Errors
    "ReservationQueueError",
    "InvalidArgument",
    "InvalidOperation",
    "ConcurrencyConflict",
    "QueueNotFound",
]
