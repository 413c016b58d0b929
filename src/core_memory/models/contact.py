from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ContactCreateRequest(BaseModel):
    """Request model for registering a person.

    新しく会った人を登録するリクエスト。`generate_hook=true` かつ `mnemonic_hook`
    未指定の場合はサーバ側で記憶フックを生成する。
    """

    name: str = Field(min_length=1, max_length=200)
    photo_uri: str = Field(default="", description="Opaque photo reference / 写真の参照（中身は解釈しない）")
    context_notes: str = Field(default="", description="Where/how you met / 出会った状況のメモ")
    mnemonic_hook: Optional[str] = None
    generate_hook: bool = False
    now: Optional[datetime] = Field(default=None, description="Creation time override for tests / テスト用の現在時刻")


class ContactUpdateRequest(BaseModel):
    """Profile edit; omitted fields stay unchanged. Review fields cannot be edited here."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    photo_uri: Optional[str] = None
    context_notes: Optional[str] = None
    mnemonic_hook: Optional[str] = None


class ContactResponse(BaseModel):
    id: str
    name: str
    photo_uri: str
    context_notes: str
    mnemonic_hook: str
    created_at: datetime
    easiness_factor: float
    interval_days: int
    repetition_count: int
    last_review_date: datetime
    next_review_date: datetime
    days_until_review: int = Field(description="Negative when overdue, 0 when due today / 期日までの日数")


class ContactListResponse(BaseModel):
    items: list[ContactResponse]


class MnemonicRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    context: str = ""


class MnemonicResponse(BaseModel):
    hook: str
    provider: str
