"""Durable per-session key-value storage.

Each session is one row in ``tutor_sessions``. Methods are synchronous;
the owning SessionActor calls them through ``asyncio.to_thread`` so the
event loop never blocks on the database.
"""

import logging
from typing import List, Optional

from ..db import DatabaseManager
from ..db.models import TutorSessionRow
from .models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """Reads and writes whole Session documents."""

    def __init__(self, db_manager: DatabaseManager):
        self._db = db_manager

    def get(self, session_id: str) -> Optional[Session]:
        with self._db.get_session() as db_session:
            row = db_session.get(TutorSessionRow, session_id)
            if row is None:
                return None
            return Session.from_dict(row.state)

    def put(self, session: Session) -> None:
        """Insert or overwrite the session document."""
        state = session.to_dict()
        with self._db.get_session() as db_session:
            row = db_session.get(TutorSessionRow, session.id)
            if row is None:
                row = TutorSessionRow(session_id=session.id)
                db_session.add(row)
            row.repo_url = session.repo_url
            row.goal = session.goal
            row.state = state
            row.created_at = session.created_at
            row.last_activity_at = session.last_activity_at

    def delete(self, session_id: str) -> bool:
        with self._db.get_session() as db_session:
            row = db_session.get(TutorSessionRow, session_id)
            if row is None:
                return False
            db_session.delete(row)
        logger.info(f"Deleted session {session_id}")
        return True

    def idle_session_ids(self, cutoff_ms: int) -> List[str]:
        """Ids of sessions whose last activity is older than ``cutoff_ms``."""
        with self._db.get_session() as db_session:
            rows = (
                db_session.query(TutorSessionRow.session_id)
                .filter(TutorSessionRow.last_activity_at < cutoff_ms)
                .all()
            )
            return [r.session_id for r in rows]
