"""Due-set selection: which contacts are up for review now, and in what order."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Iterable, Protocol, TypeVar

from .srs import is_due, utcnow


class Schedulable(Protocol):
    """Anything with an identifier and a next review date (contacts, schedule entries)."""

    @property
    def id(self) -> str: ...

    @property
    def next_review_date(self) -> datetime: ...


T = TypeVar("T", bound=Schedulable)


def _instant(moment: datetime) -> datetime:
    # naive は UTC として扱い、aware と比較可能にする
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _order_key(item: Schedulable) -> tuple[datetime, str]:
    return (_instant(item.next_review_date), item.id)


def select_due(contacts: Iterable[T], now: datetime | None = None, tz: tzinfo = timezone.utc) -> list[T]:
    """Return the due contacts, most overdue first.

    Ordered by next_review_date ascending with the id as tie-breaker, so equal
    input always yields the same sequence. The result is a fresh list; the input
    is left untouched.
    """
    moment = now or utcnow()
    due = [c for c in contacts if is_due(c.next_review_date, moment, tz)]
    due.sort(key=_order_key)
    return due


def count_due(contacts: Iterable[Schedulable], now: datetime | None = None, tz: tzinfo = timezone.utc) -> int:
    """Number of due contacts; same as ``len(select_due(...))`` without building the list."""
    moment = now or utcnow()
    return sum(1 for c in contacts if is_due(c.next_review_date, moment, tz))
