"""
Tests for SqliteReservationQueueRepository.

Validates the SQLite implementation of the ReservationQueueRepository
protocol: round-tripping queue state, enforcing optimistic concurrency
on the queue version and committing notifications together with the
queue they came from.

Test Pattern: AAA (Arrange-Act-Assert)
"""
import sqlite3
import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.domain.entities import ReservationQueue
from app.domain.exceptions import ConcurrencyConflict
from app.domain.notifications import NotificationKind
from app.domain.services import ReservationQueueService
from app.domain.value_objects import PriorityLevel
from app.infrastructure.db.sqlite_reservation_queue_repository import SqliteReservationQueueRepository
from app.infrastructure.messaging.sqlite_notification_outbox import SqliteNotificationOutbox


T0 = datetime(2025, 2, 1, 10, 0, tzinfo=timezone(timedelta(hours=5)))


class AlwaysFreeLoanPolicy:
    def has_active_loan(self, resource_id):
        return False


class FixedClock:
    def now(self):
        return T0


class FailingOutbox(SqliteNotificationOutbox):
    """Outbox whose next writes fail with a storage error."""

    def __init__(self, db_path, failures=1):
        super().__init__(db_path)
        self.failures = failures

    def _insert(self, conn, rows):
        if self.failures > 0:
            self.failures -= 1
            raise sqlite3.OperationalError("disk I/O error")
        super()._insert(conn, rows)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def repo(tmp_path):
    """
    Create a repository with a temporary database for each test.

    Uses pytest's tmp_path fixture to ensure isolation between tests.
    """
    db_path = tmp_path / "test_reservations.db"
    return SqliteReservationQueueRepository(db_path)


@pytest.fixture
def populated_queue():
    """
    A queue with an active holder and three waiting entries of mixed priority.
    """
    queue = ReservationQueue(uuid4())
    for priority in (PriorityLevel.STAFF, PriorityLevel.REGULAR, PriorityLevel.VIP, PriorityLevel.VIP):
        queue.place(uuid4(), uuid4(), priority, T0 + timedelta(days=1), T0)
    queue.authorize_activation(queue.head.reservation_id, AlwaysFreeLoanPolicy(), T0)
    queue.drain_notifications()
    return queue


# ============================================================================
# INITIALIZATION TESTS
# ============================================================================

class TestRepositoryInitialization:

    def test_creates_table_on_init(self, repo):
        """Repository should create its table automatically on initialization."""
        assert repo.count() == 0
        assert repo.list_resource_ids() == []

    def test_creates_parent_directory(self, tmp_path):
        """Missing parent directories are created."""
        db_path = tmp_path / "nested" / "dir" / "queues.db"

        SqliteReservationQueueRepository(db_path)

        assert db_path.parent.exists()


# ============================================================================
# SAVE / GET TESTS
# ============================================================================

class TestSaveAndGet:

    def test_get_missing_returns_none(self, repo):
        """Loading an unknown resource returns None."""
        assert repo.get(uuid4()) is None

    def test_round_trip_preserves_state(self, repo, populated_queue):
        """Every persisted field survives a save/load cycle."""
        # Act
        repo.save(populated_queue, expected_version=0)
        loaded = repo.get(populated_queue.resource_id)

        # Assert
        assert loaded is not None
        assert loaded.snapshot() == populated_queue.snapshot()
        assert loaded.entries[0].wait_deadline.utcoffset() == timedelta(hours=5)
        assert loaded.drain_notifications() == ()

    def test_update_with_matching_version(self, repo, populated_queue):
        """A queue loaded at version N can be saved over version N."""
        repo.save(populated_queue, expected_version=0)
        loaded = repo.get(populated_queue.resource_id)
        loaded_version = loaded.version

        loaded.place(uuid4(), uuid4(), PriorityLevel.STAFF, T0 + timedelta(days=2), T0)
        repo.save(loaded, expected_version=loaded_version)

        reloaded = repo.get(populated_queue.resource_id)
        assert reloaded.version == loaded_version + 1
        assert reloaded.head.priority == PriorityLevel.STAFF
        assert repo.count() == 1

    def test_save_without_changes_is_noop(self, repo):
        """Saving a queue that did not move writes nothing."""
        queue = ReservationQueue(uuid4())

        repo.save(queue, expected_version=0)

        assert repo.count() == 0


# ============================================================================
# OPTIMISTIC CONCURRENCY TESTS
# ============================================================================

class TestOptimisticConcurrency:

    def test_stale_update_rejected(self, repo, populated_queue):
        """Two writers loading the same version: the second save fails."""
        # Arrange
        repo.save(populated_queue, expected_version=0)
        writer_a = repo.get(populated_queue.resource_id)
        writer_b = repo.get(populated_queue.resource_id)
        version = writer_a.version

        writer_a.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)
        writer_b.place(uuid4(), uuid4(), PriorityLevel.REGULAR, T0 + timedelta(days=1), T0)

        # Act
        repo.save(writer_a, expected_version=version)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            repo.save(writer_b, expected_version=version)

        # Assert
        assert exc_info.value.expected_version == version
        assert exc_info.value.actual_version == version + 1
        assert repo.get(populated_queue.resource_id).snapshot() == writer_a.snapshot()

    def test_duplicate_create_rejected(self, repo):
        """Two writers creating the same queue: the second insert fails."""
        resource_id = uuid4()
        first = ReservationQueue(resource_id)
        second = ReservationQueue(resource_id)
        first.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)
        second.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)

        repo.save(first, expected_version=0)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            repo.save(second, expected_version=0)

        assert exc_info.value.actual_version == 1

    def test_update_of_deleted_queue_rejected(self, repo, populated_queue):
        """Updating a queue that was deleted meanwhile is a conflict."""
        repo.save(populated_queue, expected_version=0)
        loaded = repo.get(populated_queue.resource_id)
        version = loaded.version
        repo.delete(populated_queue.resource_id)

        loaded.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            repo.save(loaded, expected_version=version)

        assert exc_info.value.actual_version is None


# ============================================================================
# LIST / DELETE TESTS
# ============================================================================

class TestListAndDelete:

    def test_list_resource_ids(self, repo):
        """Every saved queue is listed once."""
        ids = set()
        for _ in range(3):
            queue = ReservationQueue(uuid4())
            queue.place(uuid4(), uuid4(), PriorityLevel.REGULAR, T0 + timedelta(days=1), T0)
            repo.save(queue, expected_version=0)
            ids.add(queue.resource_id)

        assert set(repo.list_resource_ids()) == ids

    def test_delete(self, repo, populated_queue):
        """Delete returns True once and False afterwards."""
        repo.save(populated_queue, expected_version=0)

        assert repo.delete(populated_queue.resource_id) is True
        assert repo.delete(populated_queue.resource_id) is False
        assert repo.get(populated_queue.resource_id) is None


# ============================================================================
# NOTIFICATIONS IN THE SAVE TRANSACTION
# ============================================================================

class TestNotificationsInSaveTransaction:

    def test_save_appends_notifications(self, repo):
        """Notifications passed to save land in the outbox of the same file."""
        queue = ReservationQueue(uuid4())
        queue.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)

        repo.save(queue, expected_version=0, notifications=queue.drain_notifications())

        records = repo.outbox.list_for_resource(queue.resource_id)
        assert [r.message.kind for r in records] == ["ReservationQueued", "QueueHeadChanged"]
        assert [r.message.version for r in records] == [1, 1]

    def test_conflicting_save_writes_no_notifications(self, repo, populated_queue):
        """The losing writer's notifications never reach the outbox."""
        repo.save(populated_queue, expected_version=0)
        writer_a = repo.get(populated_queue.resource_id)
        writer_b = repo.get(populated_queue.resource_id)
        version = writer_a.version
        writer_a.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)
        writer_b.place(uuid4(), uuid4(), PriorityLevel.REGULAR, T0 + timedelta(days=1), T0)

        repo.save(writer_a, expected_version=version, notifications=writer_a.drain_notifications())
        with pytest.raises(ConcurrencyConflict):
            repo.save(writer_b, expected_version=version, notifications=writer_b.drain_notifications())

        records = repo.outbox.list_for_resource(populated_queue.resource_id)
        assert [r.message.version for r in records] == [version + 1]

    def test_outbox_failure_rolls_back_queue(self, tmp_path):
        """If the outbox write fails, the queue row is not stored either."""
        # Arrange
        db_path = tmp_path / "reservations.db"
        outbox = FailingOutbox(db_path)
        repo = SqliteReservationQueueRepository(db_path, outbox=outbox)
        queue = ReservationQueue(uuid4())
        queue.place(uuid4(), uuid4(), PriorityLevel.VIP, T0 + timedelta(days=1), T0)

        # Act
        with pytest.raises(RuntimeError, match="disk I/O error"):
            repo.save(queue, expected_version=0, notifications=queue.drain_notifications())

        # Assert
        assert repo.get(queue.resource_id) is None
        assert outbox.count() == 0

    def test_outbox_failure_rolls_back_update(self, tmp_path, populated_queue):
        """A failed outbox write keeps the previously stored version."""
        db_path = tmp_path / "reservations.db"
        outbox = FailingOutbox(db_path, failures=0)
        repo = SqliteReservationQueueRepository(db_path, outbox=outbox)
        repo.save(populated_queue, expected_version=0)
        loaded = repo.get(populated_queue.resource_id)
        version = loaded.version
        loaded.place(uuid4(), uuid4(), PriorityLevel.STAFF, T0 + timedelta(days=1), T0)
        outbox.failures = 1

        with pytest.raises(RuntimeError):
            repo.save(loaded, expected_version=version, notifications=loaded.drain_notifications())

        assert repo.get(populated_queue.resource_id).version == version
        assert outbox.count() == 0

    def test_command_replayed_after_failure_is_fully_recorded(self, tmp_path):
        """Running a failed command again stores the queue and its whole notification log."""
        # Arrange
        db_path = tmp_path / "reservations.db"
        outbox = FailingOutbox(db_path)
        repo = SqliteReservationQueueRepository(db_path, outbox=outbox)
        service = ReservationQueueService(repo, FixedClock(), AlwaysFreeLoanPolicy())
        resource_id = uuid4()
        reservation_id = uuid4()
        requester_id = uuid4()
        deadline = T0 + timedelta(days=1)

        with pytest.raises(RuntimeError):
            service.place_reservation(resource_id, requester_id, PriorityLevel.VIP, deadline, reservation_id)

        # Act
        service.place_reservation(resource_id, requester_id, PriorityLevel.VIP, deadline, reservation_id)

        # Assert
        assert repo.get(resource_id).version == 1
        records = outbox.list_for_resource(resource_id)
        assert [r.message.kind for r in records] == [
            NotificationKind.RESERVATION_QUEUED.value,
            NotificationKind.QUEUE_HEAD_CHANGED.value,
        ]

    def test_outbox_in_other_database_rejected(self, tmp_path):
        """Queue and outbox must share one database file to share a transaction."""
        outbox = SqliteNotificationOutbox(tmp_path / "elsewhere.db")

        with pytest.raises(ValueError, match="must be the queue database"):
            SqliteReservationQueueRepository(tmp_path / "reservations.db", outbox=outbox)

    def test_default_outbox_uses_same_file(self, repo, tmp_path):
        """Without an explicit outbox one is created on the queue database."""
        assert repo.outbox.db_path == tmp_path / "test_reservations.db"
