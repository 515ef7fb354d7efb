"""Tutoring sessions: data model, durable store and struggle detection.

The actor and registry live in ``session.actor`` / ``session.registry`` and
are imported from there; they depend on the agent package, which itself
imports the models defined here.
"""

from .models import (
    Analysis,
    Flashcard,
    Message,
    ReasoningStep,
    Role,
    Session,
    StepKind,
    StudyPlan,
    now_ms,
)
from .store import SessionStore
from .struggles import PhraseStruggleClassifier, StruggleClassifier, detect_new_struggle

__all__ = [
    "Analysis",
    "Flashcard",
    "Message",
    "PhraseStruggleClassifier",
    "ReasoningStep",
    "Role",
    "Session",
    "SessionStore",
    "StepKind",
    "StruggleClassifier",
    "StudyPlan",
    "detect_new_struggle",
    "now_ms",
]
