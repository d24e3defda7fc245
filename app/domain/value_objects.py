"""
Value objects for the domain layer.

Value objects are immutable objects that represent descriptive aspects
of the domain with no conceptual identity.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Tuple
from uuid import UUID

from .exceptions import InvalidArgument

NIL_UUID = UUID(int=0)


def ensure_identifier(value: object, name: str) -> None:
    """
    Reject missing or malformed identifiers.

    None, the nil UUID and blank strings all count as empty. Any other
    value must already be a UUID; strings are not parsed.

    Raises:
        InvalidArgument: If the identifier is empty or not a UUID
    """
    if value is None or value == NIL_UUID:
        raise InvalidArgument(f"{name} cannot be empty")
    if isinstance(value, str) and not value.strip():
        raise InvalidArgument(f"{name} cannot be empty")
    if not isinstance(value, UUID):
        raise InvalidArgument(f"{name} must be a UUID, got {type(value).__name__}")


def ensure_aware(value: object, name: str) -> None:
    """
    Reject anything but a timezone-aware datetime.

    Naive and aware datetimes cannot be compared, so a single naive value
    would break deadline checks on the whole queue.

    Raises:
        InvalidArgument: If the value is not an aware datetime
    """
    if not isinstance(value, datetime):
        raise InvalidArgument(f"{name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidArgument(f"{name} must be timezone-aware, got {value.isoformat()}")


class PriorityLevel(IntEnum):
    """
    Closed ranking of requesters. Lower value wins.

    Staff jump ahead of VIP readers, who jump ahead of regular readers.
    """

    STAFF = 0
    VIP = 1
    REGULAR = 2

    @classmethod
    def parse(cls, value: object) -> "PriorityLevel":
        """Coerce an int, name or member into a PriorityLevel."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise InvalidArgument(f"Unknown priority level '{value}'") from None
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgument(f"Unknown priority level {value!r}") from None


class RemovalReason(str, Enum):
    """Why a waiting reservation was taken out of the queue."""

    USER_CANCEL = "UserCancel"
    STAFF_CANCEL = "StaffCancel"
    READER_INELIGIBLE = "ReaderIneligible"
    OTHER = "Other"


class RemovedBy(str, Enum):
    """Who took a waiting reservation out of the queue."""

    READER = "Reader"
    STAFF = "Staff"
    SYSTEM = "System"


@dataclass(frozen=True)
class QueueEntry:
    """
    One waiting request in a reservation queue.

    Entries are ordered by (priority, sequence). The sequence number is
    assigned by the queue at insertion time and only breaks ties between
    equal priorities; it is never shown to readers.
    """

    reservation_id: UUID
    """Reservation this entry stands for"""

    requester_id: UUID
    """Reader who placed the reservation"""

    priority: PriorityLevel
    """Priority level of the requester"""

    wait_deadline: datetime
    """Absolute moment after which the entry expires"""

    placed_at: datetime
    """When the entry was placed in the queue"""

    sequence: int
    """Monotonic insertion counter for FIFO tie-breaking"""

    def __post_init__(self) -> None:
        """Validate entry data."""
        ensure_identifier(self.reservation_id, "reservation_id")
        ensure_identifier(self.requester_id, "requester_id")
        ensure_aware(self.wait_deadline, "wait_deadline")
        ensure_aware(self.placed_at, "placed_at")

        if not isinstance(self.priority, PriorityLevel):
            object.__setattr__(self, "priority", PriorityLevel.parse(self.priority))

        if self.sequence < 0:
            raise InvalidArgument(f"sequence cannot be negative, got {self.sequence}")

    @property
    def sort_key(self) -> Tuple[int, int]:
        """Ordering key inside the queue."""
        return (int(self.priority), self.sequence)

    def precedes(self, other: "QueueEntry") -> bool:
        """Check if this entry belongs strictly before another one."""
        if self.priority < other.priority:
            return True
        return self.priority == other.priority and self.sequence < other.sequence

    def is_overdue(self, now: datetime) -> bool:
        """An entry is overdue once now is strictly past its deadline."""
        return self.wait_deadline < now


@dataclass(frozen=True)
class QueueSnapshot:
    """
    Complete persistable state of one reservation queue.

    Pending notifications are never part of a snapshot.
    """

    resource_id: UUID
    entries: Tuple[QueueEntry, ...]
    active_reservation_id: Optional[UUID]
    version: int
    sequence_counter: int

    def __post_init__(self) -> None:
        """Validate snapshot counters."""
        ensure_identifier(self.resource_id, "resource_id")

        if self.version < 0:
            raise InvalidArgument(f"version cannot be negative, got {self.version}")

        if self.sequence_counter < 0:
            raise InvalidArgument(
                f"sequence_counter cannot be negative, got {self.sequence_counter}"
            )

        if not isinstance(self.entries, tuple):
            object.__setattr__(self, "entries", tuple(self.entries))
