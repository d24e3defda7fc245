"""
Domain exceptions for the reservation queue.

Only two kinds come out of the aggregate itself (InvalidArgument and
InvalidOperation). ConcurrencyConflict and QueueNotFound are raised by
repositories and services around it.
"""


class ReservationQueueError(Exception):
    """Base class for every error raised by the reservation queue domain."""


class InvalidArgument(ReservationQueueError, ValueError):
    """Malformed input (empty identifiers, unknown priority, corrupt snapshot)."""


class InvalidOperation(ReservationQueueError):
    """A precondition of the requested queue transition is not met."""


class ConcurrencyConflict(ReservationQueueError):
    """The persisted queue version advanced since it was loaded."""

    def __init__(self, resource_id, expected_version: int, actual_version=None) -> None:
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        message = (
            f"Queue for resource {resource_id} was modified concurrently "
            f"(expected version {expected_version}"
        )
        if actual_version is not None:
            message += f", found {actual_version}"
        super().__init__(message + ")")


class QueueNotFound(ReservationQueueError, LookupError):
    """No queue exists for the requested resource."""

    def __init__(self, resource_id) -> None:
        self.resource_id = resource_id
        super().__init__(f"No reservation queue for resource {resource_id}")
