"""
State-change notifications emitted by the reservation queue.

Every notification shares the same envelope (resource id, timestamp and the
queue version at which it was produced) and carries a ``kind`` tag, so
consumers can dispatch on ``notification.kind`` without inspecting types.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union
from uuid import UUID

from .value_objects import PriorityLevel, RemovalReason, RemovedBy


class NotificationKind(str, Enum):
    """Tag identifying each notification variant."""

    RESERVATION_QUEUED = "ReservationQueued"
    QUEUE_HEAD_CHANGED = "QueueHeadChanged"
    LOAN_ACTIVATION_AUTHORIZED = "LoanActivationAuthorized"
    WAIT_DEADLINE_EXPIRED_FROM_QUEUE = "WaitDeadlineExpiredFromQueue"
    RESERVATION_REMOVED_FROM_QUEUE = "ReservationRemovedFromQueue"
    ACTIVE_LOAN_CLEARED = "ActiveLoanCleared"


@dataclass(frozen=True, kw_only=True)
class NotificationEnvelope:
    """Fields common to every queue notification."""

    kind: ClassVar[NotificationKind]

    resource_id: UUID
    """Resource whose queue changed"""

    occurred_at: datetime
    """Timestamp supplied by the caller of the operation"""

    version: int
    """Queue version after the operation that produced this notification"""


@dataclass(frozen=True, kw_only=True)
class ReservationQueued(NotificationEnvelope):
    """A new reservation entered the waiting line."""

    kind: ClassVar[NotificationKind] = NotificationKind.RESERVATION_QUEUED

    reservation_id: UUID
    requester_id: UUID
    priority: PriorityLevel
    wait_deadline: datetime


@dataclass(frozen=True, kw_only=True)
class QueueHeadChanged(NotificationEnvelope):
    """A different reservation is now first in line."""

    kind: ClassVar[NotificationKind] = NotificationKind.QUEUE_HEAD_CHANGED

    head_reservation_id: UUID


@dataclass(frozen=True, kw_only=True)
class LoanActivationAuthorized(NotificationEnvelope):
    """The head of the queue was cleared to take the resource on loan."""

    kind: ClassVar[NotificationKind] = NotificationKind.LOAN_ACTIVATION_AUTHORIZED

    reservation_id: UUID
    requester_id: UUID


@dataclass(frozen=True, kw_only=True)
class WaitDeadlineExpiredFromQueue(NotificationEnvelope):
    """A waiting reservation passed its deadline and left the queue."""

    kind: ClassVar[NotificationKind] = NotificationKind.WAIT_DEADLINE_EXPIRED_FROM_QUEUE

    reservation_id: UUID
    requester_id: UUID
    wait_deadline: datetime


@dataclass(frozen=True, kw_only=True)
class ReservationRemovedFromQueue(NotificationEnvelope):
    """A waiting reservation was cancelled and left the queue."""

    kind: ClassVar[NotificationKind] = NotificationKind.RESERVATION_REMOVED_FROM_QUEUE

    reservation_id: UUID
    requester_id: UUID
    reason: RemovalReason
    removed_by: RemovedBy
    note: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class ActiveLoanCleared(NotificationEnvelope):
    """The active holder released the resource."""

    kind: ClassVar[NotificationKind] = NotificationKind.ACTIVE_LOAN_CLEARED

    reservation_id: UUID


QueueNotification = Union[
    ReservationQueued,
    QueueHeadChanged,
    LoanActivationAuthorized,
    WaitDeadlineExpiredFromQueue,
    ReservationRemovedFromQueue,
    ActiveLoanCleared,
]
