import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from core_memory.errors import InvalidRating, SessionStateError
from core_memory.session import ReviewSession, SessionRegistry, SessionStatus
from core_memory.srs import new_review_state
from core_memory.store import ContactRecord

NOW = datetime(2024, 5, 10, 10, 0, tzinfo=timezone.utc)


class RecordingWriter:
    """In-memory stand-in for ContactStore.save_review_state."""

    def __init__(self) -> None:
        self.saved: list[tuple] = []
        self.fail_next: Exception | None = None

    def save_review_state(self, contact_id, state, rating, reviewed_at=None):
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        self.saved.append((contact_id, state, rating, reviewed_at))


def _contact(contact_id: str, created_days_ago: int) -> ContactRecord:
    created = NOW - timedelta(days=created_days_ago)
    return ContactRecord(
        id=contact_id,
        name=contact_id.upper(),
        photo_uri="",
        context_notes="",
        mnemonic_hook="",
        created_at=created,
        review=new_review_state(created),
    )


@pytest.fixture()
def contacts() -> list[ContactRecord]:
    # created today -> not due until tomorrow
    return [_contact("c:b", 3), _contact("c:a", 5), _contact("c:new", 0)]


def test_start_fixes_queue_in_due_order(contacts):
    session = ReviewSession(RecordingWriter())
    assert session.status is SessionStatus.NOT_STARTED
    assert session.start(contacts, NOW) is SessionStatus.IN_PROGRESS
    assert session.progress == (0, 2)
    assert session.current.id == "c:a"


def test_empty_due_set_goes_straight_to_empty(contacts):
    session = ReviewSession(RecordingWriter())
    assert session.start([contacts[2]], NOW) is SessionStatus.EMPTY
    assert session.progress == (0, 0)
    with pytest.raises(SessionStateError):
        session.rate(5, NOW)


def test_start_is_only_allowed_once(contacts):
    session = ReviewSession(RecordingWriter())
    session.start(contacts, NOW)
    with pytest.raises(SessionStateError):
        session.start(contacts, NOW)


def test_rating_before_start_is_rejected():
    with pytest.raises(SessionStateError):
        ReviewSession(RecordingWriter()).rate(3, NOW)


def test_full_run_persists_each_rating_and_completes(contacts):
    writer = RecordingWriter()
    session = ReviewSession(writer)
    session.start(contacts, NOW)

    first = session.rate(5, NOW)
    assert first.contact_id == "c:a"
    assert session.progress == (1, 2)
    assert session.current.id == "c:b"

    session.rate(1, NOW)
    assert session.status is SessionStatus.COMPLETED
    assert session.progress == (2, 2)
    assert [(cid, rating) for cid, _, rating, _ in writer.saved] == [("c:a", 5), ("c:b", 1)]
    assert writer.saved[1][1].repetition_count == 0

    with pytest.raises(SessionStateError):
        session.rate(4, NOW)
    with pytest.raises(SessionStateError):
        _ = session.current


def test_invalid_rating_leaves_session_unchanged(contacts):
    writer = RecordingWriter()
    session = ReviewSession(writer)
    session.start(contacts, NOW)
    with pytest.raises(InvalidRating):
        session.rate(6, NOW)
    assert session.progress == (0, 2)
    assert session.status is SessionStatus.IN_PROGRESS
    assert writer.saved == []


def test_persistence_failure_leaves_session_on_same_contact(contacts):
    writer = RecordingWriter()
    session = ReviewSession(writer)
    session.start(contacts, NOW)
    writer.fail_next = sqlite3.OperationalError("database is locked")

    with pytest.raises(sqlite3.OperationalError):
        session.rate(4, NOW)
    assert session.progress == (0, 2)
    assert session.current.id == "c:a"

    session.rate(4, NOW)
    assert session.progress == (1, 2)
    assert writer.saved[0][0] == "c:a"


def test_contacts_due_later_are_not_added(contacts):
    session = ReviewSession(RecordingWriter())
    session.start(contacts, NOW)
    session.rate(5, NOW)
    # the next day "c:new" would be due, but the queue is already fixed
    session.rate(5, NOW + timedelta(days=1))
    assert session.status is SessionStatus.COMPLETED
    assert [o.contact_id for o in session.outcomes] == ["c:a", "c:b"]


def test_review_time_is_expressed_in_reference_timezone(contacts):
    tokyo = ZoneInfo("Asia/Tokyo")
    writer = RecordingWriter()
    session = ReviewSession(writer, tz=tokyo)
    session.start(contacts, NOW)
    session.rate(5, NOW)
    _, state, _, reviewed_at = writer.saved[0]
    assert reviewed_at.tzinfo == tokyo
    assert reviewed_at == NOW
    assert state.next_review_date - reviewed_at == timedelta(days=1)


def test_registry_add_get_delete():
    registry = SessionRegistry()
    session = ReviewSession(RecordingWriter())
    session_id = registry.add(session)
    assert session_id.startswith("s:")
    assert registry.get(session_id) is session
    assert len(registry) == 1
    assert registry.delete(session_id) is True
    assert registry.get(session_id) is None
    assert registry.delete(session_id) is False


def test_snapshot_after_completion_has_no_current_contact(contacts):
    session = ReviewSession(RecordingWriter())
    session.start(contacts, NOW)
    session.rate(5, NOW)
    session.rate(5, NOW)
    snap = session.snapshot()
    assert snap.status is SessionStatus.COMPLETED
    assert (snap.index, snap.total) == (2, 2)
    assert snap.current is None


def test_snapshot_waits_for_rating_in_progress(contacts):
    seen = []
    reader_waiting = threading.Event()

    def read_snapshot():
        reader_waiting.set()
        seen.append(session.snapshot())

    class ReadingWriter(RecordingWriter):
        # 保存中に別スレッドからスナップショットを要求する
        def save_review_state(self, contact_id, state, rating, reviewed_at=None):
            super().save_review_state(contact_id, state, rating, reviewed_at)
            if len(self.saved) == 2:
                reader.start()
                assert reader_waiting.wait(timeout=2)

    reader = threading.Thread(target=read_snapshot)
    session = ReviewSession(ReadingWriter())
    session.start(contacts, NOW)
    session.rate(4, NOW)
    session.rate(4, NOW)
    reader.join(timeout=2)

    assert len(seen) == 1
    snap = seen[0]
    assert snap.status is SessionStatus.COMPLETED
    assert (snap.index, snap.total) == (2, 2)
    assert snap.current is None


def test_concurrent_readers_never_see_a_torn_session(contacts):
    session = ReviewSession(RecordingWriter())
    session.start(contacts, NOW)
    errors: list[BaseException] = []
    stop = threading.Event()

    def poll():
        while not stop.is_set():
            try:
                snap = session.snapshot()
                if snap.status is SessionStatus.IN_PROGRESS:
                    assert snap.current is not None and snap.index < snap.total
                else:
                    assert snap.current is None and snap.index == snap.total
            except (AssertionError, IndexError) as exc:
                errors.append(exc)
                return

    readers = [threading.Thread(target=poll) for _ in range(4)]
    for reader in readers:
        reader.start()
    session.rate(5, NOW)
    session.rate(3, NOW)
    stop.set()
    for reader in readers:
        reader.join(timeout=2)
    assert errors == []


def test_registry_evicts_finished_sessions_first(contacts):
    registry = SessionRegistry(max_sessions=2)
    active = ReviewSession(RecordingWriter())
    active.start(contacts, NOW)
    finished = ReviewSession(RecordingWriter())
    finished.start([contacts[2]], NOW)
    registry.add(active)
    registry.add(finished)

    newest = ReviewSession(RecordingWriter())
    registry.add(newest)
    assert len(registry) == 2
    assert registry.get(finished.id) is None
    assert registry.get(active.id) is active
    assert registry.get(newest.id) is newest


def test_registry_evicts_oldest_when_all_are_active(contacts):
    registry = SessionRegistry(max_sessions=3)
    sessions = []
    for _ in range(5):
        session = ReviewSession(RecordingWriter())
        session.start(contacts, NOW)
        registry.add(session)
        sessions.append(session)
    assert len(registry) == 3
    assert [registry.get(s.id) is not None for s in sessions] == [False, False, True, True, True]
