"""
Reader registry.

Readers are created on first authenticated request; later requests only bump
last_seen_at.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from bookstreak.core.database import get_db_session, readers
from bookstreak.models.user import Reader

logger = logging.getLogger("bookstreak")


def get_reader(user_id: str) -> Optional[Reader]:
    with get_db_session() as session:
        row = session.execute(select(readers).where(readers.c.user_id == user_id)).first()
    if not row:
        return None
    return Reader(user_id=row.user_id, created_at=row.created_at, last_seen_at=row.last_seen_at)


def touch_reader(user_id: str) -> Reader:
    """Record that user_id made a request, registering them on first sight."""
    now = datetime.now(timezone.utc)
    with get_db_session() as session:
        result = session.execute(
            update(readers).where(readers.c.user_id == user_id).values(last_seen_at=now)
        )
        seen_before = result.rowcount > 0

    if not seen_before:
        try:
            with get_db_session() as session:
                session.execute(insert(readers).values(user_id=user_id, created_at=now, last_seen_at=now))
        except IntegrityError:
            logger.debug(f"Reader {user_id} registered by a concurrent request")

    return get_reader(user_id)
