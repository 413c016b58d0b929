from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..config import Settings
from ..dependencies import get_mnemonic_provider, get_settings, get_store
from ..errors import ContactNotFound
from ..logging import logger
from ..mnemonic import MnemonicProvider
from ..models.contact import (
    ContactCreateRequest,
    ContactListResponse,
    ContactResponse,
    ContactUpdateRequest,
    MnemonicRequest,
    MnemonicResponse,
)
from ..srs import days_until_review, utcnow
from ..store import ContactRecord, ContactStore

router = APIRouter(tags=["contacts"])


def to_contact_response(contact: ContactRecord, now: datetime, cfg: Settings) -> ContactResponse:
    review = contact.review
    return ContactResponse(
        id=contact.id,
        name=contact.name,
        photo_uri=contact.photo_uri,
        context_notes=contact.context_notes,
        mnemonic_hook=contact.mnemonic_hook,
        created_at=contact.created_at,
        easiness_factor=review.easiness_factor,
        interval_days=review.interval_days,
        repetition_count=review.repetition_count,
        last_review_date=review.last_review_date,
        next_review_date=review.next_review_date,
        days_until_review=days_until_review(review.next_review_date, now, cfg.tzinfo),
    )


@router.post("/contacts", response_model=ContactResponse, status_code=201, summary="連絡先を登録")
def create_contact(
    req: ContactCreateRequest,
    store: ContactStore = Depends(get_store),
    provider: MnemonicProvider = Depends(get_mnemonic_provider),
    cfg: Settings = Depends(get_settings),
) -> ContactResponse:
    """Register a person. The first quiz is scheduled for the next day."""
    hook = req.mnemonic_hook or ""
    try:
        if req.generate_hook and not hook:
            hook = provider.generate_hook(req.name, req.context_notes)
        contact = store.create_contact(
            name=req.name,
            photo_uri=req.photo_uri,
            context_notes=req.context_notes,
            mnemonic_hook=hook,
            now=req.now,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    logger.info("contact_created", contact_id=contact.id, generated_hook=bool(req.generate_hook and not req.mnemonic_hook))
    return to_contact_response(contact, req.now or utcnow(), cfg)


@router.get("/contacts", response_model=ContactListResponse, summary="連絡先一覧・名前検索")
def list_contacts(
    q: Optional[str] = Query(default=None, description="Case-insensitive name substring / 名前の部分一致"),
    now: Optional[datetime] = None,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ContactListResponse:
    contacts = store.search_contacts(q) if q else store.list_contacts()
    moment = now or utcnow()
    return ContactListResponse(items=[to_contact_response(c, moment, cfg) for c in contacts])


@router.get("/contacts/{contact_id}", response_model=ContactResponse, summary="連絡先を取得")
def get_contact(
    contact_id: str,
    now: Optional[datetime] = None,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ContactResponse:
    contact = store.get_contact(contact_id)
    if contact is None:
        raise ContactNotFound(contact_id)
    return to_contact_response(contact, now or utcnow(), cfg)


@router.put("/contacts/{contact_id}", response_model=ContactResponse, summary="プロフィールを編集")
def update_contact(
    contact_id: str,
    req: ContactUpdateRequest,
    store: ContactStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ContactResponse:
    """Edit profile fields. Scheduling fields only change through reviews."""
    try:
        contact = store.update_profile(
            contact_id,
            name=req.name,
            photo_uri=req.photo_uri,
            context_notes=req.context_notes,
            mnemonic_hook=req.mnemonic_hook,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if contact is None:
        raise ContactNotFound(contact_id)
    return to_contact_response(contact, utcnow(), cfg)


@router.delete("/contacts/{contact_id}", status_code=204, summary="連絡先とレビュー履歴を削除")
def delete_contact(contact_id: str, store: ContactStore = Depends(get_store)) -> Response:
    if not store.delete_contact(contact_id):
        raise ContactNotFound(contact_id)
    logger.info("contact_deleted", contact_id=contact_id)
    return Response(status_code=204)


@router.post("/mnemonic", response_model=MnemonicResponse, summary="記憶フックを生成")
def generate_mnemonic(
    req: MnemonicRequest,
    provider: MnemonicProvider = Depends(get_mnemonic_provider),
) -> MnemonicResponse:
    try:
        hook = provider.generate_hook(req.name, req.context)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return MnemonicResponse(hook=hook, provider=provider.name)
