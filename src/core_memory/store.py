from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .errors import ContactNotFound
from .id_factory import generate_contact_id
from .srs import ReviewState, new_review_state, utcnow, validate_rating, validate_state


@dataclass
class ContactRecord:
    id: str
    name: str
    photo_uri: str
    context_notes: str
    mnemonic_hook: str
    created_at: datetime
    review: ReviewState

    @property
    def next_review_date(self) -> datetime:
        return self.review.next_review_date


@dataclass(frozen=True)
class ScheduleEntry:
    """Lightweight (id, next_review_date) pair used for counting due contacts."""

    id: str
    next_review_date: datetime


@dataclass(frozen=True)
class ReviewEvent:
    contact_id: str
    name: str
    rating: int
    reviewed_at: datetime
    easiness_factor: float
    interval_days: int
    repetition_count: int
    next_review_date: datetime


def _to_iso(moment: datetime) -> str:
    # 常に UTC の ISO 文字列で保存する（文字列順 = 時刻順）
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def _from_iso(raw: str) -> datetime:
    moment = datetime.fromisoformat(raw)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("name must not be blank")
    return cleaned


_CONTACT_COLUMNS = (
    "id, name, photo_uri, context_notes, mnemonic_hook, created_at, "
    "easiness_factor, interval_days, repetition_count, last_review_date, next_review_date"
)


class ContactStore:
    """SQLite-backed store for contacts and their SM-2 review state.

    - review fields are only ever replaced as a whole (save_review_state)
    - every review appends one row to the history table in the same transaction
    - deleting a contact cascades to its review history

    The store is an explicit handle: construct it once with a database path and
    pass it to whatever needs persistence.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on PRAGMA
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS contacts (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        photo_uri TEXT NOT NULL DEFAULT '',
                        context_notes TEXT NOT NULL DEFAULT '',
                        mnemonic_hook TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL,
                        easiness_factor REAL NOT NULL DEFAULT 2.5,
                        interval_days INTEGER NOT NULL DEFAULT 1,
                        repetition_count INTEGER NOT NULL DEFAULT 0,
                        last_review_date TEXT NOT NULL,
                        next_review_date TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS reviews (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        contact_id TEXT NOT NULL,
                        reviewed_at TEXT NOT NULL,
                        rating INTEGER NOT NULL,
                        easiness_factor REAL NOT NULL,
                        interval_days INTEGER NOT NULL,
                        repetition_count INTEGER NOT NULL,
                        next_review_date TEXT NOT NULL,
                        FOREIGN KEY(contact_id) REFERENCES contacts(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_contacts_next_review ON contacts(next_review_date);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_contacts_name ON contacts(name);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_reviews_reviewed_at ON reviews(reviewed_at);")
        finally:
            conn.close()

    @staticmethod
    def _row_to_contact(row: sqlite3.Row) -> ContactRecord:
        state = ReviewState(
            easiness_factor=float(row["easiness_factor"]),
            interval_days=int(row["interval_days"]),
            repetition_count=int(row["repetition_count"]),
            last_review_date=_from_iso(row["last_review_date"]),
            next_review_date=_from_iso(row["next_review_date"]),
        )
        validate_state(state, contact_id=row["id"])
        return ContactRecord(
            id=row["id"],
            name=row["name"],
            photo_uri=row["photo_uri"] or "",
            context_notes=row["context_notes"] or "",
            mnemonic_hook=row["mnemonic_hook"] or "",
            created_at=_from_iso(row["created_at"]),
            review=state,
        )

    # --- contacts ---
    def create_contact(
        self,
        name: str,
        photo_uri: str = "",
        context_notes: str = "",
        mnemonic_hook: str = "",
        now: Optional[datetime] = None,
    ) -> ContactRecord:
        """Insert a new contact with a fresh review state (first quiz tomorrow)."""
        created_at = now or utcnow()
        record = ContactRecord(
            id=generate_contact_id(),
            name=_clean_name(name),
            photo_uri=photo_uri or "",
            context_notes=context_notes or "",
            mnemonic_hook=mnemonic_hook or "",
            created_at=created_at,
            review=new_review_state(created_at),
        )
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO contacts({_CONTACT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                    (
                        record.id,
                        record.name,
                        record.photo_uri,
                        record.context_notes,
                        record.mnemonic_hook,
                        _to_iso(record.created_at),
                        record.review.easiness_factor,
                        record.review.interval_days,
                        record.review.repetition_count,
                        _to_iso(record.review.last_review_date),
                        _to_iso(record.review.next_review_date),
                    ),
                )
        finally:
            conn.close()
        return record

    def get_contact(self, contact_id: str) -> Optional[ContactRecord]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE id = ?;",
                (contact_id,),
            ).fetchone()
            return self._row_to_contact(row) if row is not None else None
        finally:
            conn.close()

    def list_contacts(self) -> List[ContactRecord]:
        """All contacts ordered by name (case-insensitive), then id."""
        conn = self._connect()
        try:
            cur = conn.execute(
                f"SELECT {_CONTACT_COLUMNS} FROM contacts ORDER BY name COLLATE NOCASE ASC, id ASC;"
            )
            return [self._row_to_contact(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def search_contacts(self, query: str) -> List[ContactRecord]:
        """Case-insensitive substring match on name."""
        needle = (query or "").strip()
        if not needle:
            return self.list_contacts()
        conn = self._connect()
        try:
            cur = conn.execute(
                f"""
                SELECT {_CONTACT_COLUMNS} FROM contacts
                WHERE name LIKE ? ESCAPE '\\'
                ORDER BY name COLLATE NOCASE ASC, id ASC;
                """,
                (f"%{_escape_like(needle)}%",),
            )
            return [self._row_to_contact(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def update_profile(
        self,
        contact_id: str,
        *,
        name: Optional[str] = None,
        photo_uri: Optional[str] = None,
        context_notes: Optional[str] = None,
        mnemonic_hook: Optional[str] = None,
    ) -> Optional[ContactRecord]:
        """Edit profile fields; None leaves a field unchanged. Review fields are never touched."""
        changes: dict[str, str] = {}
        if name is not None:
            changes["name"] = _clean_name(name)
        if photo_uri is not None:
            changes["photo_uri"] = photo_uri
        if context_notes is not None:
            changes["context_notes"] = context_notes
        if mnemonic_hook is not None:
            changes["mnemonic_hook"] = mnemonic_hook

        conn = self._connect()
        try:
            with conn:
                if changes:
                    assignments = ", ".join(f"{col} = ?" for col in changes)
                    cur = conn.execute(
                        f"UPDATE contacts SET {assignments} WHERE id = ?;",
                        (*changes.values(), contact_id),
                    )
                    if cur.rowcount == 0:
                        return None
                row = conn.execute(
                    f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE id = ?;",
                    (contact_id,),
                ).fetchone()
            return self._row_to_contact(row) if row is not None else None
        finally:
            conn.close()

    def delete_contact(self, contact_id: str) -> bool:
        """連絡先を削除する（レビュー履歴も連鎖削除）。成功時True、存在しない場合False。"""
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute("DELETE FROM contacts WHERE id = ?;", (contact_id,))
                return cur.rowcount > 0
        finally:
            conn.close()

    # --- review state ---
    def load_review_states(self) -> dict[str, ReviewState]:
        """Map of contact id to its current ReviewState."""
        return {c.id: c.review for c in self.list_contacts()}

    def list_schedule(self) -> List[ScheduleEntry]:
        """Ids and next review dates only, without the profile columns."""
        conn = self._connect()
        try:
            cur = conn.execute("SELECT id, next_review_date FROM contacts;")
            return [ScheduleEntry(id=row["id"], next_review_date=_from_iso(row["next_review_date"])) for row in cur.fetchall()]
        finally:
            conn.close()

    def save_review_state(
        self,
        contact_id: str,
        state: ReviewState,
        rating: int,
        reviewed_at: Optional[datetime] = None,
    ) -> None:
        """Replace every review field of a contact and record the review event.

        Raises ContactNotFound when the contact is gone; sqlite3 errors propagate
        after rollback.
        """
        rating = validate_rating(rating)
        validate_state(state, contact_id=contact_id)
        reviewed = reviewed_at or state.last_review_date
        conn = self._connect()
        try:
            # BEGIN IMMEDIATE to avoid concurrent writers on the same row
            conn.execute("BEGIN IMMEDIATE;")
            cur = conn.execute(
                """
                UPDATE contacts
                SET easiness_factor = ?, interval_days = ?, repetition_count = ?,
                    last_review_date = ?, next_review_date = ?
                WHERE id = ?;
                """,
                (
                    state.easiness_factor,
                    state.interval_days,
                    state.repetition_count,
                    _to_iso(state.last_review_date),
                    _to_iso(state.next_review_date),
                    contact_id,
                ),
            )
            if cur.rowcount == 0:
                conn.execute("ROLLBACK;")
                raise ContactNotFound(contact_id)
            conn.execute(
                """
                INSERT INTO reviews(
                    contact_id, reviewed_at, rating, easiness_factor, interval_days, repetition_count, next_review_date
                ) VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    contact_id,
                    _to_iso(reviewed),
                    rating,
                    state.easiness_factor,
                    state.interval_days,
                    state.repetition_count,
                    _to_iso(state.next_review_date),
                ),
            )
            conn.execute("COMMIT;")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()

    # --- stats & history ---
    def count_reviews_since(self, moment: datetime) -> int:
        conn = self._connect()
        try:
            cur = conn.execute("SELECT COUNT(1) AS c FROM reviews WHERE reviewed_at >= ?;", (_to_iso(moment),))
            return int(cur.fetchone()["c"])
        finally:
            conn.close()

    def recent_reviews(self, limit: int = 5) -> List[ReviewEvent]:
        """直近のレビューを新しい順に最大 limit 件返す。"""
        conn = self._connect()
        try:
            cur = conn.execute(
                """
                SELECT r.contact_id, c.name, r.rating, r.reviewed_at, r.easiness_factor,
                       r.interval_days, r.repetition_count, r.next_review_date
                FROM reviews r
                JOIN contacts c ON c.id = r.contact_id
                ORDER BY r.reviewed_at DESC, r.id DESC
                LIMIT ?;
                """,
                (limit,),
            )
            return [
                ReviewEvent(
                    contact_id=row["contact_id"],
                    name=row["name"],
                    rating=int(row["rating"]),
                    reviewed_at=_from_iso(row["reviewed_at"]),
                    easiness_factor=float(row["easiness_factor"]),
                    interval_days=int(row["interval_days"]),
                    repetition_count=int(row["repetition_count"]),
                    next_review_date=_from_iso(row["next_review_date"]),
                )
                for row in cur.fetchall()
            ]
        finally:
            conn.close()
