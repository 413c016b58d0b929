from datetime import datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from ..config import Settings
from ..dependencies import get_metrics, get_sessions, get_settings, get_store
from ..due import count_due, select_due
from ..errors import ContactNotFound
from ..logging import logger
from ..metrics import MetricsRegistry
from ..models.review import (
    RecentReview,
    ReviewCard,
    ReviewCountResponse,
    ReviewGradeRequest,
    ReviewGradeResponse,
    ReviewStatsResponse,
    ReviewTodayResponse,
    SessionRateRequest,
    SessionResponse,
    SessionStartRequest,
)
from ..session import RatingOutcome, ReviewSession, SessionRegistry, SessionStatus
from ..srs import RATING_LABELS, ReviewState, calendar_day, days_until_review, in_reference_tz, update, utcnow, validate_rating
from ..store import ContactRecord, ContactStore

router = APIRouter(tags=["review"])


def _card(contact: ContactRecord, now: datetime, cfg: Settings) -> ReviewCard:
    return ReviewCard(
        id=contact.id,
        name=contact.name,
        photo_uri=contact.photo_uri,
        context_notes=contact.context_notes,
        mnemonic_hook=contact.mnemonic_hook,
        next_review_date=contact.next_review_date,
        days_until_review=days_until_review(contact.next_review_date, now, cfg.tzinfo),
    )


def _grade_response(contact_id: str, rating: int, state: ReviewState) -> ReviewGradeResponse:
    return ReviewGradeResponse(
        contact_id=contact_id,
        rating=rating,
        rating_label=RATING_LABELS[rating],
        easiness_factor=state.easiness_factor,
        interval_days=state.interval_days,
        repetition_count=state.repetition_count,
        last_review_date=state.last_review_date,
        next_review_date=state.next_review_date,
    )


def _session_response(
    session: ReviewSession, now: datetime, cfg: Settings, last: Optional[RatingOutcome] = None
) -> SessionResponse:
    snap = session.snapshot()
    return SessionResponse(
        id=session.id,
        status=snap.status.value,
        index=snap.index,
        total=snap.total,
        current=_card(snap.current, now, cfg) if snap.current is not None else None,
        last=_grade_response(last.contact_id, last.rating, last.state) if last else None,
    )


def _get_session(sessions: SessionRegistry, session_id: str) -> ReviewSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return session


@router.get("/today", response_model=ReviewTodayResponse, summary="本日の出題対象を取得")
def review_today(
    now: Optional[datetime] = None,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ReviewTodayResponse:
    """Return every due contact, most overdue first (ties broken by id)."""
    moment = now or utcnow()
    due = select_due(store.list_contacts(), moment, cfg.tzinfo)
    return ReviewTodayResponse(items=[_card(c, moment, cfg) for c in due], count=len(due))


@router.get("/count", response_model=ReviewCountResponse, summary="出題対象の件数")
def review_count(
    now: Optional[datetime] = None,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ReviewCountResponse:
    return ReviewCountResponse(count=count_due(store.list_schedule(), now or utcnow(), cfg.tzinfo))


@router.get("/stats", response_model=ReviewStatsResponse, summary="進捗統計（残数、今日のレビュー数、直近レビュー）")
def review_stats(
    now: Optional[datetime] = None,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ReviewStatsResponse:
    """Return progress stats.

    - due_now: 期日到来済みの件数
    - reviewed_today: 基準タイムゾーンの今日 0 時以降のレビュー数
    - recent: 直近レビュー
    """
    moment = now or utcnow()
    tz = cfg.tzinfo
    start_of_day = datetime.combine(calendar_day(moment, tz), time.min, tzinfo=tz)
    recent = [
        RecentReview(
            contact_id=ev.contact_id,
            name=ev.name,
            rating=ev.rating,
            reviewed_at=ev.reviewed_at,
            interval_days=ev.interval_days,
            next_review_date=ev.next_review_date,
        )
        for ev in store.recent_reviews(limit=cfg.recent_reviews_limit)
    ]
    return ReviewStatsResponse(
        due_now=count_due(store.list_schedule(), moment, tz),
        reviewed_today=store.count_reviews_since(start_of_day),
        recent=recent,
    )


@router.post("/grade", response_model=ReviewGradeResponse, summary="1 人分を採点して次回出題日を更新")
def review_grade(
    req: ReviewGradeRequest,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
    metrics: MetricsRegistry = Depends(get_metrics),
) -> ReviewGradeResponse:
    """Rate a single contact outside of a session."""
    rating = validate_rating(req.rating)
    contact = store.get_contact(req.contact_id)
    if contact is None:
        raise ContactNotFound(req.contact_id)
    reviewed_at = in_reference_tz(req.now or utcnow(), cfg.tzinfo)
    state = update(rating, contact.review, reviewed_at)
    store.save_review_state(contact.id, state, rating, reviewed_at)
    metrics.record_review(rating)
    logger.info(
        "review_graded",
        contact_id=contact.id,
        rating=rating,
        interval_days=state.interval_days,
        easiness_factor=state.easiness_factor,
    )
    return _grade_response(contact.id, rating, state)


@router.post("/sessions", response_model=SessionResponse, status_code=201, summary="クイズセッションを開始")
def start_session(
    req: Optional[SessionStartRequest] = None,
    store: ContactStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
    cfg: Settings = Depends(get_settings),
    metrics: MetricsRegistry = Depends(get_metrics),
) -> SessionResponse:
    """Fix the queue of due contacts. The queue does not change for the session's lifetime."""
    moment = (req.now if req else None) or utcnow()
    session: ReviewSession = ReviewSession(store, tz=cfg.tzinfo)
    # 空のセッションは終端状態なので登録しない
    if session.start(store.list_contacts(), moment) is not SessionStatus.EMPTY:
        sessions.add(session)
    metrics.record_session()
    logger.info("review_session_started", session_id=session.id, total=session.progress[1], status=session.status.value)
    return _session_response(session, moment, cfg)


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="セッションの進捗")
def get_session(
    session_id: str,
    now: Optional[datetime] = None,
    sessions: SessionRegistry = Depends(get_sessions),
    cfg: Settings = Depends(get_settings),
) -> SessionResponse:
    return _session_response(_get_session(sessions, session_id), now or utcnow(), cfg)


@router.post("/sessions/{session_id}/rate", response_model=SessionResponse, summary="現在の連絡先を採点")
def rate_session(
    session_id: str,
    req: SessionRateRequest,
    sessions: SessionRegistry = Depends(get_sessions),
    cfg: Settings = Depends(get_settings),
    metrics: MetricsRegistry = Depends(get_metrics),
) -> SessionResponse:
    """Rate the current contact. On failure the session stays on the same contact."""
    session = _get_session(sessions, session_id)
    moment = req.now or utcnow()
    outcome = session.rate(req.rating, moment)
    metrics.record_review(outcome.rating)
    logger.info(
        "review_graded",
        contact_id=outcome.contact_id,
        rating=outcome.rating,
        interval_days=outcome.state.interval_days,
        easiness_factor=outcome.state.easiness_factor,
        session_id=session.id,
    )
    # 完了したセッションは登録から外す（delete が True を返すのは一度だけ）
    if session.status is SessionStatus.COMPLETED and sessions.delete(session.id):
        metrics.record_session(completed=True)
        logger.info("review_session_completed", session_id=session.id, total=session.progress[1])
    return _session_response(session, moment, cfg, last=outcome)


@router.delete("/sessions/{session_id}", status_code=204, summary="セッションを破棄")
def abandon_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)) -> Response:
    """Drop the session. Ratings already saved are kept."""
    if not sessions.delete(session_id):
        raise HTTPException(status_code=404, detail="session not found")
    return Response(status_code=204)
