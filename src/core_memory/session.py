"""Review session: one run through the contacts that are due.

The session owns the queue and the cursor. Scheduling is delegated to
``srs.update`` and persistence to an injected writer, so a failed write leaves
the session exactly where it was and the same contact can be rated again.

1 回のクイズ実行を表す状態機械。
  not_started -> in_progress(index, total) -> completed
  not_started -> empty（期日到来の連絡先がない場合）
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Generic, Iterable, Optional, Protocol, TypeVar

from .due import select_due
from .errors import SessionStateError
from .id_factory import generate_session_id
from .srs import ReviewState, in_reference_tz, update, utcnow, validate_rating


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EMPTY = "empty"


class ReviewCandidate(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def next_review_date(self) -> datetime: ...

    @property
    def review(self) -> ReviewState: ...


class ReviewStateWriter(Protocol):
    """Persistence port used by the session (ContactStore satisfies it)."""

    def save_review_state(
        self, contact_id: str, state: ReviewState, rating: int, reviewed_at: Optional[datetime] = None
    ) -> None: ...


C = TypeVar("C", bound=ReviewCandidate)


@dataclass(frozen=True)
class RatingOutcome:
    contact_id: str
    rating: int
    state: ReviewState


@dataclass(frozen=True)
class SessionSnapshot(Generic[C]):
    """Consistent view of a session taken under its lock."""

    status: SessionStatus
    index: int
    total: int
    current: Optional[C]


class ReviewSession(Generic[C]):
    """Caller-side state machine for one quiz run.

    - start() fixes the queue once; contacts that become due later are not added
    - rate() computes the new state, persists it, then advances the cursor
    - any exception from the scheduler or the writer propagates and the cursor stays put
    """

    def __init__(self, writer: ReviewStateWriter, tz: tzinfo = timezone.utc, session_id: str | None = None) -> None:
        self.id = session_id or generate_session_id()
        self._writer = writer
        self._tz = tz
        self._queue: list[C] = []
        self._index = 0
        self._status = SessionStatus.NOT_STARTED
        self._outcomes: list[RatingOutcome] = []
        self._lock = threading.RLock()


    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    @property
    def progress(self) -> tuple[int, int]:
        """(index, total): number of contacts rated so far and queue length."""
        with self._lock:
            return (self._index, len(self._queue))

    @property
    def outcomes(self) -> list[RatingOutcome]:
        with self._lock:
            return list(self._outcomes)

    @property
    def is_finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.EMPTY)

    def _require(self, expected: SessionStatus, operation: str) -> None:
        if self._status is not expected:
            raise SessionStateError(
                f"cannot {operation} a session that is {self._status.value} (expected {expected.value})"
            )

    def start(self, contacts: Iterable[C], now: datetime | None = None) -> SessionStatus:
        with self._lock:
            self._require(SessionStatus.NOT_STARTED, "start")
            self._queue = select_due(contacts, now or utcnow(), self._tz)
            self._index = 0
            self._status = SessionStatus.IN_PROGRESS if self._queue else SessionStatus.EMPTY
            return self._status

    @property
    def current(self) -> C:
        with self._lock:
            self._require(SessionStatus.IN_PROGRESS, "read the current contact of")
            return self._queue[self._index]

    def snapshot(self) -> SessionSnapshot[C]:
        """Status, progress and current contact read together under the lock."""
        with self._lock:
            in_progress = self._status is SessionStatus.IN_PROGRESS
            return SessionSnapshot(
                status=self._status,
                index=self._index,
                total=len(self._queue),
                current=self._queue[self._index] if in_progress else None,
            )

    def rate(self, rating: int, now: datetime | None = None) -> RatingOutcome:
        """Rate the current contact and advance.

        Raises:
            InvalidRating: rating outside 0..5 (checked before anything else runs)
            SessionStateError: the session is not in progress
            Exception: whatever the writer raises; the session is unchanged
        """
        with self._lock:
            self._require(SessionStatus.IN_PROGRESS, "rate")
            rating = validate_rating(rating)
            contact = self._queue[self._index]
            reviewed_at = in_reference_tz(now or utcnow(), self._tz)
            new_state = update(rating, contact.review, reviewed_at)
            self._writer.save_review_state(contact.id, new_state, rating, reviewed_at)

            outcome = RatingOutcome(contact_id=contact.id, rating=rating, state=new_state)
            self._outcomes.append(outcome)
            # 状態遷移とカーソル前進はロック内でまとめて行う
            if self._index + 1 >= len(self._queue):
                self._status = SessionStatus.COMPLETED
            self._index += 1
            return outcome


class SessionRegistry:
    """In-memory map of session id to ReviewSession, shared by HTTP handlers.

    Holds at most ``max_sessions`` entries. When full, finished sessions are
    evicted first, then the least recently added in-progress ones.
    上限付きで保持し、放置されたセッションでメモリが増え続けないようにする。
    """

    def __init__(self, max_sessions: int = 200) -> None:
        self._max_sessions = max(1, max_sessions)
        self._sessions: OrderedDict[str, ReviewSession] = OrderedDict()
        self._lock = threading.Lock()

    def _evict(self) -> None:
        while len(self._sessions) > self._max_sessions:
            finished = next((sid for sid, s in self._sessions.items() if s.is_finished), None)
            if finished is not None:
                del self._sessions[finished]
            else:
                self._sessions.popitem(last=False)

    def add(self, session: ReviewSession) -> str:
        with self._lock:
            self._sessions[session.id] = session
            self._evict()
        return session.id

    def get(self, session_id: str) -> Optional[ReviewSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
