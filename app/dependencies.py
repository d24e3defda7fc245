"""
Dependency wiring for the reservation queue.

This module provides singleton instances of repositories and services
configured from the environment. Callers embedding the queue (workers,
command handlers) register their LoanPolicy once and then ask for the
service.
"""

import os
from pathlib import Path
from typing import Optional

from app.domain.ports import Clock, LoanPolicy, ReservationQueueRepository
from app.domain.services import ReservationQueueService
from app.infrastructure.db.sqlite_reservation_queue_repository import SqliteReservationQueueRepository
from app.infrastructure.messaging.sqlite_notification_outbox import SqliteNotificationOutbox
from app.infrastructure.system_clock import SystemClock

# Configuration from environment
DB_PATH = Path(os.getenv("RESERVATIONS_DB_PATH", "data/reservations.db"))
MAX_CONFLICT_RETRIES = int(os.getenv("QUEUE_MAX_CONFLICT_RETRIES", "2"))

# Module-level singletons (initialized lazily)
_queue_repository: Optional[ReservationQueueRepository] = None
_notification_outbox: Optional[SqliteNotificationOutbox] = None
_clock: Optional[Clock] = None
_loan_policy: Optional[LoanPolicy] = None
_queue_service: Optional[ReservationQueueService] = None


def get_queue_repository() -> ReservationQueueRepository:
    """
    Provide a singleton instance of the queue repository.

    The repository writes notifications to the shared outbox singleton.
    """
    global _queue_repository
    if _queue_repository is None:
        _queue_repository = SqliteReservationQueueRepository(
            DB_PATH, outbox=get_notification_outbox()
        )
    return _queue_repository


def get_notification_outbox() -> SqliteNotificationOutbox:
    """Provide a singleton instance of the notification outbox."""
    global _notification_outbox
    if _notification_outbox is None:
        _notification_outbox = SqliteNotificationOutbox(DB_PATH)
    return _notification_outbox


def get_clock() -> Clock:
    """Provide a singleton system clock."""
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def set_loan_policy(loan_policy: LoanPolicy) -> None:
    """
    Register the loan policy used for activations.

    Replacing the policy drops the cached service so the next call picks it up.
    """
    global _loan_policy, _queue_service
    _loan_policy = loan_policy
    _queue_service = None


def get_queue_service() -> ReservationQueueService:
    """
    Provide the queue service with all dependencies wired.

    Raises:
        RuntimeError: If no loan policy has been registered
    """
    global _queue_service
    if _loan_policy is None:
        raise RuntimeError("No loan policy configured; call set_loan_policy() first")

    if _queue_service is None:
        _queue_service = ReservationQueueService(
            queue_repo=get_queue_repository(),
            clock=get_clock(),
            loan_policy=_loan_policy,
            max_conflict_retries=MAX_CONFLICT_RETRIES,
        )
    return _queue_service


def reset_dependencies() -> None:
    """
    Reset all singletons. Useful for testing.

    This allows tests to inject different dependencies by resetting
    the module state between test cases.
    """
    global _queue_repository, _notification_outbox, _clock
    global _loan_policy, _queue_service

    _queue_repository = None
    _notification_outbox = None
    _clock = None
    _loan_policy = None
    _queue_service = None
