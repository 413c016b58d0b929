"""SM-2 scheduling for contact name recall.

This module is pure: no I/O and no shared state. Every function that depends on
the current time takes an optional ``now`` so callers (and tests) can pin it.

連絡先の名前想起に使う SM-2 スケジューラ。評価 (0-5) と直前の状態から
新しい ReviewState を計算する。永続化は呼び出し側の責務。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from .errors import InvalidRating, InvalidState, ScheduleOverflow


MIN_EASINESS = 1.3
DEFAULT_EASINESS = 2.5
DEFAULT_INTERVAL_DAYS = 1
PASSING_RATING = 3
MIN_RATING = 0
MAX_RATING = 5
# 2 回目の成功後の間隔。正準 SM-2 の 6 日を採用（3 日の派生版は採用しない）。
SECOND_INTERVAL_DAYS = 6
# 間隔の上限（約 100 年）。EF に上限がないため間隔は指数的に伸びうる。
MAX_INTERVAL_DAYS = 36500

RATING_LABELS: tuple[str, ...] = (
    "Complete blackout",
    "Incorrect, seemed familiar",
    "Incorrect, seemed easy",
    "Correct with difficulty",
    "Correct with hesitation",
    "Perfect recall",
)


@dataclass(frozen=True)
class ReviewState:
    """Scheduling state owned by one contact.

    - easiness_factor: >= 1.3, larger means intervals grow faster
    - interval_days: days to wait after last_review_date
    - repetition_count: consecutive successful reviews since the last lapse
    - next_review_date: always last_review_date + interval_days
    """

    easiness_factor: float
    interval_days: int
    repetition_count: int
    last_review_date: datetime
    next_review_date: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_review_state(created_at: datetime | None = None) -> ReviewState:
    """Return the state of a contact that has never been quizzed.

    作成直後の連絡先は翌日に初回出題される。
    """
    created = created_at or utcnow()
    return ReviewState(
        easiness_factor=DEFAULT_EASINESS,
        interval_days=DEFAULT_INTERVAL_DAYS,
        repetition_count=0,
        last_review_date=created,
        next_review_date=created + timedelta(days=DEFAULT_INTERVAL_DAYS),
    )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _round_half_up(value: float, ndigits: int = 0) -> float:
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def validate_rating(rating: object) -> int:
    if not _is_int(rating):
        raise InvalidRating(f"rating must be an integer between {MIN_RATING} and {MAX_RATING}, got {rating!r}")
    if not MIN_RATING <= rating <= MAX_RATING:  # type: ignore[operator]
        raise InvalidRating(f"rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")
    return int(rating)  # type: ignore[call-overload]


def validate_state(state: ReviewState, *, contact_id: str | None = None) -> None:
    """Raise InvalidState when ``state`` breaks a ReviewState invariant.

    入力状態は補正しない。壊れた永続データを黙って直すと上流のバグが隠れるため、
    どのフィールドが不正かを示して拒否する。
    """
    ef = state.easiness_factor
    if isinstance(ef, bool) or not isinstance(ef, (int, float)) or not math.isfinite(ef):
        raise InvalidState(f"easiness_factor must be a finite number, got {ef!r}", field="easiness_factor", contact_id=contact_id)
    if ef < MIN_EASINESS:
        raise InvalidState(
            f"easiness_factor must be >= {MIN_EASINESS}, got {ef}", field="easiness_factor", contact_id=contact_id
        )
    if not _is_int(state.interval_days) or state.interval_days < 0:
        raise InvalidState(
            f"interval_days must be a non-negative integer, got {state.interval_days!r}",
            field="interval_days",
            contact_id=contact_id,
        )
    if not _is_int(state.repetition_count) or state.repetition_count < 0:
        raise InvalidState(
            f"repetition_count must be a non-negative integer, got {state.repetition_count!r}",
            field="repetition_count",
            contact_id=contact_id,
        )
    for name in ("last_review_date", "next_review_date"):
        if not isinstance(getattr(state, name), datetime):
            raise InvalidState(f"{name} must be a datetime", field=name, contact_id=contact_id)


def next_easiness(easiness_factor: float, rating: int) -> float:
    """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3 (unrounded)."""
    miss = MAX_RATING - rating
    return max(MIN_EASINESS, easiness_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def update(rating: int, state: ReviewState, now: datetime | None = None) -> ReviewState:
    """Compute the state after one review event.

    Args:
        rating: recall quality (0-5)
            0 - Complete blackout
            1 - Incorrect, but the name seemed familiar
            2 - Incorrect, but the name seemed easy once shown
            3 - Correct with serious difficulty
            4 - Correct after hesitation
            5 - Perfect recall
        state: the contact's current ReviewState
        now: moment of the review; defaults to the current UTC time

    Returns:
        A new ReviewState. ``state`` is not modified.

    Raises:
        InvalidRating: rating is not an integer in 0..5
        InvalidState: ``state`` violates an invariant
        ScheduleOverflow: the next review date does not fit in a datetime
    """
    rating = validate_rating(rating)
    validate_state(state)
    reviewed_at = now or utcnow()

    easiness = next_easiness(state.easiness_factor, rating)

    if rating < PASSING_RATING:
        repetitions = 0
        interval = 1
    else:
        repetitions = state.repetition_count + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = SECOND_INTERVAL_DAYS
        else:
            # 直前の間隔 × 新しい EF（丸め前の値）
            interval = max(1, int(_round_half_up(state.interval_days * easiness)))
        interval = min(interval, MAX_INTERVAL_DAYS)

    try:
        next_review = reviewed_at + timedelta(days=interval)
    except OverflowError as exc:
        raise ScheduleOverflow(f"next review date after {reviewed_at.isoformat()} is out of range") from exc

    return ReviewState(
        easiness_factor=_round_half_up(easiness, 2),
        interval_days=interval,
        repetition_count=repetitions,
        last_review_date=reviewed_at,
        next_review_date=next_review,
    )


def in_reference_tz(moment: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Express ``moment`` as wall-clock time in ``tz`` (naive input is taken to be UTC).

    aware な datetime への timedelta 加算は壁時計上で行われるため、レビュー時刻を
    基準タイムゾーンに変換してから update に渡すと、DST 切替日でも
    next_review_date は「interval 日後の同じ暦日」に着地する。
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz)


def calendar_day(moment: datetime, tz: tzinfo = timezone.utc) -> date:
    """Truncate ``moment`` to its calendar day in the reference timezone ``tz``.

    Naive datetimes are taken to be UTC. すべての期日判定はこの関数を経由する。
    """
    return in_reference_tz(moment, tz).date()


def is_due(next_review_date: datetime, now: datetime | None = None, tz: tzinfo = timezone.utc) -> bool:
    """True when next_review_date falls on or before today's calendar day."""
    return calendar_day(next_review_date, tz) <= calendar_day(now or utcnow(), tz)


def days_until_review(next_review_date: datetime, now: datetime | None = None, tz: tzinfo = timezone.utc) -> int:
    """Calendar days from today to the review day; negative when overdue, 0 when due today."""
    return (calendar_day(next_review_date, tz) - calendar_day(now or utcnow(), tz)).days
