"""ID 生成ユーティリティ。"""

from __future__ import annotations

import uuid


def generate_contact_id() -> str:
    """Return a new contact ID of the form ``c:<uuid4 hex>``."""

    return f"c:{uuid.uuid4().hex}"


def generate_session_id() -> str:
    return f"s:{uuid.uuid4().hex}"
