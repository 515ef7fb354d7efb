"""
Database module for RepoMentor.

Exports:
- DatabaseManager: Database connection and session management
- get_database_manager: Factory function for DatabaseManager
- Models: TutorSessionRow
- Base: SQLAlchemy declarative base
"""

from .db import DatabaseManager, get_database_manager
from .models import Base, TutorSessionRow

__all__ = [
    "DatabaseManager",
    "get_database_manager",
    "Base",
    "TutorSessionRow",
]
