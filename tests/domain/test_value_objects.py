"""
Tests for domain value objects.
"""

import pytest
from datetime import datetime, timedelta, timezone, UTC
from uuid import UUID, uuid4

from app.domain.exceptions import InvalidArgument
from app.domain.value_objects import (
    PriorityLevel,
    QueueEntry,
    QueueSnapshot,
    RemovalReason,
    RemovedBy,
)


T0 = datetime(2025, 2, 1, 10, 0, tzinfo=UTC)


def make_entry(**overrides) -> QueueEntry:
    data = {
        "reservation_id": uuid4(),
        "requester_id": uuid4(),
        "priority": PriorityLevel.REGULAR,
        "wait_deadline": T0 + timedelta(days=1),
        "placed_at": T0,
        "sequence": 0,
    }
    data.update(overrides)
    return QueueEntry(**data)


class TestPriorityLevel:
    """Tests for the PriorityLevel enumeration."""

    def test_lower_value_wins(self):
        """Staff outrank VIP readers, who outrank regular readers."""
        assert PriorityLevel.STAFF < PriorityLevel.VIP < PriorityLevel.REGULAR
        assert [int(p) for p in PriorityLevel] == [0, 1, 2]

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (PriorityLevel.VIP, PriorityLevel.VIP),
            (0, PriorityLevel.STAFF),
            ("regular", PriorityLevel.REGULAR),
            (" Staff ", PriorityLevel.STAFF),
        ],
    )
    def test_parse(self, raw, expected):
        """Members, values and names are all accepted."""
        assert PriorityLevel.parse(raw) is expected

    @pytest.mark.parametrize("raw", [3, -1, "admin", None])
    def test_parse_rejects_unknown(self, raw):
        """Anything outside the closed set raises InvalidArgument."""
        with pytest.raises(InvalidArgument, match="Unknown priority level"):
            PriorityLevel.parse(raw)


class TestRemovalEnums:
    """Tests for removal reason and remover."""

    def test_values_are_strings(self):
        """Both enums serialise to readable strings."""
        assert RemovalReason.USER_CANCEL.value == "UserCancel"
        assert RemovedBy.READER.value == "Reader"
        assert RemovalReason("StaffCancel") is RemovalReason.STAFF_CANCEL


class TestQueueEntry:
    """Tests for the QueueEntry value object."""

    def test_create_entry(self):
        """An entry keeps every field it was given."""
        reservation_id = uuid4()
        requester_id = uuid4()

        entry = make_entry(
            reservation_id=reservation_id,
            requester_id=requester_id,
            priority=PriorityLevel.VIP,
            sequence=4,
        )

        assert entry.reservation_id == reservation_id
        assert entry.requester_id == requester_id
        assert entry.priority is PriorityLevel.VIP
        assert entry.sequence == 4
        assert entry.sort_key == (1, 4)

    def test_entry_is_immutable(self):
        """Entries are frozen."""
        entry = make_entry()

        with pytest.raises(AttributeError):
            entry.sequence = 10

    def test_int_priority_is_coerced(self):
        """A raw priority value becomes a PriorityLevel member."""
        entry = make_entry(priority=0)

        assert entry.priority is PriorityLevel.STAFF

    @pytest.mark.parametrize("field", ["reservation_id", "requester_id"])
    def test_empty_ids_rejected(self, field):
        """Nil or missing identifiers are rejected."""
        with pytest.raises(InvalidArgument, match=f"{field} cannot be empty"):
            make_entry(**{field: UUID(int=0)})

    @pytest.mark.parametrize("field", ["reservation_id", "requester_id"])
    def test_string_ids_rejected(self, field):
        """Identifiers must be UUID instances, not their text form."""
        with pytest.raises(InvalidArgument, match=f"{field} must be a UUID"):
            make_entry(**{field: str(uuid4())})

    @pytest.mark.parametrize("field", ["wait_deadline", "placed_at"])
    def test_naive_datetimes_rejected(self, field):
        """Entry timestamps carry a timezone."""
        with pytest.raises(InvalidArgument, match=f"{field} must be timezone-aware"):
            make_entry(**{field: datetime(2025, 2, 1, 10, 0)})

    def test_non_utc_offsets_accepted(self):
        """Any fixed offset is fine as long as it is explicit."""
        local = T0.astimezone(timezone(timedelta(hours=-3)))

        entry = make_entry(placed_at=local)

        assert entry.placed_at == T0

    def test_negative_sequence_rejected(self):
        """Sequence numbers start at zero."""
        with pytest.raises(InvalidArgument, match="sequence cannot be negative"):
            make_entry(sequence=-1)

    def test_precedes_by_priority(self):
        """A higher priority precedes regardless of arrival."""
        staff = make_entry(priority=PriorityLevel.STAFF, sequence=9)
        regular = make_entry(priority=PriorityLevel.REGULAR, sequence=1)

        assert staff.precedes(regular)
        assert not regular.precedes(staff)

    def test_precedes_by_sequence_within_priority(self):
        """Within one priority the earlier arrival goes first."""
        early = make_entry(priority=PriorityLevel.VIP, sequence=1)
        late = make_entry(priority=PriorityLevel.VIP, sequence=2)

        assert early.precedes(late)
        assert not late.precedes(early)
        assert not early.precedes(early)

    def test_is_overdue_is_strict(self):
        """An entry is overdue only strictly after its deadline."""
        deadline = T0 + timedelta(hours=1)
        entry = make_entry(wait_deadline=deadline)

        assert not entry.is_overdue(deadline)
        assert entry.is_overdue(deadline + timedelta(seconds=1))


class TestQueueSnapshot:
    """Tests for the QueueSnapshot value object."""

    def test_entries_become_tuple(self):
        """Entries given as a list are stored as a tuple."""
        entry = make_entry()

        snapshot = QueueSnapshot(
            resource_id=uuid4(),
            entries=[entry],
            active_reservation_id=None,
            version=1,
            sequence_counter=1,
        )

        assert snapshot.entries == (entry,)

    def test_empty_resource_rejected(self):
        """A snapshot always belongs to a resource."""
        with pytest.raises(InvalidArgument, match="resource_id cannot be empty"):
            QueueSnapshot(
                resource_id=None,
                entries=(),
                active_reservation_id=None,
                version=0,
                sequence_counter=0,
            )

    @pytest.mark.parametrize("field", ["version", "sequence_counter"])
    def test_negative_counters_rejected(self, field):
        """Counters cannot be negative."""
        data = {
            "resource_id": uuid4(),
            "entries": (),
            "active_reservation_id": None,
            "version": 0,
            "sequence_counter": 0,
        }
        data[field] = -1

        with pytest.raises(InvalidArgument, match=f"{field} cannot be negative"):
            QueueSnapshot(**data)
