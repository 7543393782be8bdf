# lifestyle_widget/session/session_identity.py
# Anonymous, storage-persisted visitor identity.
from __future__ import annotations

import logging
import re
import uuid
from typing import Optional

from lifestyle_widget.config import settings
from lifestyle_widget.session.storage import Storage, StorageUnavailable

logger = logging.getLogger("uvicorn.error")

SESSION_KEY = settings.WIDGET_SESSION_KEY

UUID4_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)


def new_session_id() -> str:
    return str(uuid.uuid4())


def is_session_id(value: str | None) -> bool:
    return bool(value) and bool(UUID4_RE.match(value))


def get_session_id(storage: Optional[Storage], key: str = SESSION_KEY) -> str:
    """
    Return the visitor's session id, creating and persisting one on first use.

    Without usable storage a fresh id is returned on every call (nothing is persisted),
    so callers in non-persistent contexts must not rely on it being stable.
    """
    if storage is None:
        return new_session_id()

    try:
        existing = storage.get_item(key)
    except StorageUnavailable as e:
        logger.info("[SESSION] storage unavailable (%s); using ephemeral id", e)
        return new_session_id()

    if existing and existing.strip():
        return existing.strip()

    session_id = new_session_id()
    try:
        storage.set_item(key, session_id)
    except StorageUnavailable as e:
        logger.info("[SESSION] could not persist session id (%s)", e)
    return session_id


def clear_session(storage: Optional[Storage], key: str = SESSION_KEY) -> None:
    if storage is None:
        return
    try:
        storage.remove_item(key)
    except StorageUnavailable as e:
        logger.warning("[SESSION] could not clear session id: %s", e)
