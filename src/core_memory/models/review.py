from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReviewCard(BaseModel):
    """A single contact to quiz on.

    クイズで出題する 1 人分。名前は回答表示時に使う想定で、フロント側で伏せる。
    """

    id: str
    name: str
    photo_uri: str
    context_notes: str
    mnemonic_hook: str
    next_review_date: datetime
    days_until_review: int


class ReviewTodayResponse(BaseModel):
    """Response model for today's review queue.

    今日の出題対象（期日到来済み）を、期日の古い順・同日なら ID 順で返す。
    """

    items: list[ReviewCard]
    count: int


class ReviewCountResponse(BaseModel):
    count: int


class ReviewGradeRequest(BaseModel):
    """Request model for rating one contact directly.

    rating の範囲 (0-5) はドメイン側で検証し、範囲外は `invalid_rating` として 422 を返す。
    """

    contact_id: str
    rating: int
    now: Optional[datetime] = None


class ReviewGradeResponse(BaseModel):
    contact_id: str
    rating: int
    rating_label: str
    easiness_factor: float
    interval_days: int
    repetition_count: int
    last_review_date: datetime
    next_review_date: datetime


class RecentReview(BaseModel):
    contact_id: str
    name: str
    rating: int
    reviewed_at: datetime
    interval_days: int
    next_review_date: datetime


class ReviewStatsResponse(BaseModel):
    """進捗の見える化 用の統計レスポンス。

    - due_now: 現在時点で出題すべき件数（残数）
    - reviewed_today: 基準タイムゾーンの今日にレビューした件数
    - recent: 直近レビュー（設定 recent_reviews_limit 件まで）
    """

    due_now: int
    reviewed_today: int
    recent: list[RecentReview] = []


class SessionStartRequest(BaseModel):
    now: Optional[datetime] = None


class SessionRateRequest(BaseModel):
    rating: int
    now: Optional[datetime] = None


class SessionResponse(BaseModel):
    """Session status with progress as (index, total)."""

    id: str
    status: str
    index: int
    total: int
    current: Optional[ReviewCard] = None
    last: Optional[ReviewGradeResponse] = Field(default=None, description="Result of the latest rating / 直前の採点結果")
