"""Domain errors raised by the scheduler, store and review sessions.

HTTP 層ではこれらを捕捉してステータスコードへ変換する（`main._handle_domain_error`）。
"""

from __future__ import annotations


class CoreMemoryError(Exception):
    """Base class for all domain errors."""

    code = "core_memory_error"


class InvalidRating(CoreMemoryError, ValueError):
    """Rating outside the 0..5 recall-quality scale."""

    code = "invalid_rating"


class InvalidState(CoreMemoryError, ValueError):
    """A ReviewState that violates its invariants (e.g. corrupted persisted data)."""

    code = "invalid_state"

    def __init__(self, message: str, *, field: str | None = None, contact_id: str | None = None) -> None:
        super().__init__(message)
        self.field = field
        self.contact_id = contact_id


class ContactNotFound(CoreMemoryError, LookupError):
    code = "contact_not_found"

    def __init__(self, contact_id: str) -> None:
        super().__init__(f"contact not found: {contact_id}")
        self.contact_id = contact_id


class SessionStateError(CoreMemoryError, RuntimeError):
    """Operation not allowed in the review session's current state."""

    code = "session_state"


class ScheduleOverflow(CoreMemoryError, ValueError):
    """The next review date falls outside the representable datetime range."""

    code = "schedule_overflow"
