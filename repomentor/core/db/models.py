"""
SQLAlchemy ORM models for RepoMentor.

- TutorSessionRow: durable key-value row per tutoring session. The full
  session document lives in ``state``; the indexed columns exist so the
  sweeper can find idle sessions without decoding every document.
"""

from sqlalchemy import Column, BigInteger, Index, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TutorSessionRow(Base):
    """One tutoring session, stored as a JSON document."""
    __tablename__ = "tutor_sessions"

    session_id = Column(String(64), primary_key=True)
    repo_url = Column(String(2048), nullable=False)
    goal = Column(Text, nullable=False)
    state = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    created_at = Column(BigInteger, nullable=False)
    last_activity_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_tutor_sessions_last_activity", "last_activity_at"),
    )
