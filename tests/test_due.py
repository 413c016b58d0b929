from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from core_memory.due import count_due, select_due
from core_memory.store import ScheduleEntry

NOW = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)


def _entry(contact_id: str, *args: int, tz=timezone.utc) -> ScheduleEntry:
    return ScheduleEntry(id=contact_id, next_review_date=datetime(*args, tzinfo=tz))


def test_selects_due_entries_most_overdue_first():
    entries = [
        _entry("c:late-today", 2024, 2, 1, 20),
        _entry("c:future", 2024, 2, 2, 0),
        _entry("c:oldest", 2024, 1, 20, 8),
        _entry("c:yesterday", 2024, 1, 31, 23),
    ]
    due = select_due(entries, NOW)
    assert [e.id for e in due] == ["c:oldest", "c:yesterday", "c:late-today"]


def test_ties_are_broken_by_id():
    entries = [_entry("c:b", 2024, 1, 30), _entry("c:c", 2024, 1, 30), _entry("c:a", 2024, 1, 30)]
    assert [e.id for e in select_due(entries, NOW)] == ["c:a", "c:b", "c:c"]


def test_ordering_uses_absolute_instants_across_offsets():
    tokyo = ZoneInfo("Asia/Tokyo")
    entries = [
        _entry("c:utc", 2024, 1, 30, 1),
        # 2024-01-30 09:00 JST == 2024-01-30 00:00 UTC
        _entry("c:tokyo", 2024, 1, 30, 9, tz=tokyo),
    ]
    assert [e.id for e in select_due(entries, NOW)] == ["c:tokyo", "c:utc"]


def test_naive_dates_are_treated_as_utc():
    entries = [ScheduleEntry(id="c:naive", next_review_date=datetime(2024, 1, 31, 12)), _entry("c:aware", 2024, 1, 31, 6)]
    assert [e.id for e in select_due(entries, NOW)] == ["c:aware", "c:naive"]


def test_selection_is_pure_and_repeatable():
    entries = [_entry("c:2", 2024, 1, 29), _entry("c:1", 2024, 1, 30), _entry("c:3", 2024, 3, 1)]
    snapshot = list(entries)
    first = select_due(entries, NOW)
    second = select_due(entries, NOW)
    assert first == second
    assert entries == snapshot
    assert first is not entries


def test_count_matches_selection():
    base = datetime(2024, 1, 25, tzinfo=timezone.utc)
    entries = [ScheduleEntry(id=f"c:{i}", next_review_date=base + timedelta(days=i)) for i in range(10)]
    assert count_due(entries, NOW) == len(select_due(entries, NOW)) == 8


def test_empty_input():
    assert select_due([], NOW) == []
    assert count_due([], NOW) == 0


def test_reference_timezone_changes_the_due_set():
    tokyo = ZoneInfo("Asia/Tokyo")
    entries = [_entry("c:x", 2024, 2, 1, 16)]  # Feb 2 01:00 JST
    evening = datetime(2024, 2, 1, 14, 0, tzinfo=timezone.utc)  # Feb 1 23:00 JST
    assert count_due(entries, evening) == 1
    assert count_due(entries, evening, tokyo) == 0
