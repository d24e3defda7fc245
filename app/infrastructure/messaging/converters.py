"""
Converters between domain notifications and outbox wire schemas.

This module centralizes all conversion logic between the domain layer
and the messaging layer, maintaining clean separation of concerns.
"""

from app.domain import notifications as domain
from app.domain.notifications import NotificationKind
from app.domain.value_objects import PriorityLevel, RemovalReason, RemovedBy
from app.infrastructure.messaging import schemas as wire


def domain_notification_to_message(
    notification: domain.QueueNotification,
) -> wire.NotificationMessage:
    """
    Convert a domain notification into its wire message.

    Args:
        notification: Notification drained from a ReservationQueue

    Returns:
        The matching pydantic message

    Raises:
        ValueError: If the notification kind is unknown
    """
    envelope = {
        "resource_id": notification.resource_id,
        "occurred_at": notification.occurred_at,
        "version": notification.version,
    }
    kind = notification.kind

    if kind is NotificationKind.RESERVATION_QUEUED:
        return wire.ReservationQueuedMessage(
            **envelope,
            reservation_id=notification.reservation_id,
            requester_id=notification.requester_id,
            priority=int(notification.priority),
            wait_deadline=notification.wait_deadline,
        )
    if kind is NotificationKind.QUEUE_HEAD_CHANGED:
        return wire.QueueHeadChangedMessage(
            **envelope,
            head_reservation_id=notification.head_reservation_id,
        )
    if kind is NotificationKind.LOAN_ACTIVATION_AUTHORIZED:
        return wire.LoanActivationAuthorizedMessage(
            **envelope,
            reservation_id=notification.reservation_id,
            requester_id=notification.requester_id,
        )
    if kind is NotificationKind.WAIT_DEADLINE_EXPIRED_FROM_QUEUE:
        return wire.WaitDeadlineExpiredFromQueueMessage(
            **envelope,
            reservation_id=notification.reservation_id,
            requester_id=notification.requester_id,
            wait_deadline=notification.wait_deadline,
        )
    if kind is NotificationKind.RESERVATION_REMOVED_FROM_QUEUE:
        return wire.ReservationRemovedFromQueueMessage(
            **envelope,
            reservation_id=notification.reservation_id,
            requester_id=notification.requester_id,
            reason=notification.reason.value,
            removed_by=notification.removed_by.value,
            note=notification.note,
        )
    if kind is NotificationKind.ACTIVE_LOAN_CLEARED:
        return wire.ActiveLoanClearedMessage(
            **envelope,
            reservation_id=notification.reservation_id,
        )

    raise ValueError(f"Unknown notification kind '{kind}'")


def message_to_domain_notification(
    message: wire.NotificationMessage,
) -> domain.QueueNotification:
    """
    Convert a wire message back into a domain notification.

    Args:
        message: Parsed outbox message

    Returns:
        The matching domain notification
    """
    envelope = {
        "resource_id": message.resource_id,
        "occurred_at": message.occurred_at,
        "version": message.version,
    }
    kind = NotificationKind(message.kind)

    if kind is NotificationKind.RESERVATION_QUEUED:
        return domain.ReservationQueued(
            **envelope,
            reservation_id=message.reservation_id,
            requester_id=message.requester_id,
            priority=PriorityLevel(message.priority),
            wait_deadline=message.wait_deadline,
        )
    if kind is NotificationKind.QUEUE_HEAD_CHANGED:
        return domain.QueueHeadChanged(
            **envelope,
            head_reservation_id=message.head_reservation_id,
        )
    if kind is NotificationKind.LOAN_ACTIVATION_AUTHORIZED:
        return domain.LoanActivationAuthorized(
            **envelope,
            reservation_id=message.reservation_id,
            requester_id=message.requester_id,
        )
    if kind is NotificationKind.WAIT_DEADLINE_EXPIRED_FROM_QUEUE:
        return domain.WaitDeadlineExpiredFromQueue(
            **envelope,
            reservation_id=message.reservation_id,
            requester_id=message.requester_id,
            wait_deadline=message.wait_deadline,
        )
    if kind is NotificationKind.RESERVATION_REMOVED_FROM_QUEUE:
        return domain.ReservationRemovedFromQueue(
            **envelope,
            reservation_id=message.reservation_id,
            requester_id=message.requester_id,
            reason=RemovalReason(message.reason),
            removed_by=RemovedBy(message.removed_by),
            note=message.note,
        )
    return domain.ActiveLoanCleared(
        **envelope,
        reservation_id=message.reservation_id,
    )
