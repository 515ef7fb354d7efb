"""Struggle detection.

A StruggleClassifier decides whether an utterance signals difficulty and,
if so, which concept tokens from recent history are candidates to track.
The session actor applies the first candidate the session does not already
track.

The default PhraseStruggleClassifier is a phrase heuristic: substring match
on English expressions of confusion, then words longer than six characters
from the last five messages.
"""

import re
from typing import List, Optional, Protocol, Sequence

from ..constants import STRUGGLE_INDICATORS
from .models import Message

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9_\-]*")

_MIN_CONCEPT_LENGTH = 7
_RECENT_MESSAGES = 5

# Long words that never name a concept
_STOPWORDS = frozenset({
    "actually", "another", "because", "confused", "confusing", "explain",
    "understand", "something", "probably", "repository", "question",
    "questions", "thinking", "without", "whether",
})


class StruggleClassifier(Protocol):
    """Contract for struggle detection.

    ``is_struggling`` takes the raw user utterance. ``candidate_concepts``
    takes the recent conversation (oldest first, including the utterance)
    and returns concept tokens in priority order.
    """

    def is_struggling(self, utterance: str) -> bool:
        ...

    def candidate_concepts(self, recent: Sequence[Message]) -> List[str]:
        ...


class PhraseStruggleClassifier:
    """Substring-match classifier with a word-length concept extractor."""

    def __init__(self, indicators: Sequence[str] = STRUGGLE_INDICATORS):
        self._indicators = tuple(i.lower() for i in indicators)

    def is_struggling(self, utterance: str) -> bool:
        lowered = utterance.lower()
        return any(indicator in lowered for indicator in self._indicators)

    def candidate_concepts(self, recent: Sequence[Message]) -> List[str]:
        seen: List[str] = []
        for message in recent[-_RECENT_MESSAGES:]:
            for word in _WORD_RE.findall(message.content):
                token = word.strip("-_").lower()
                if (
                    len(token) >= _MIN_CONCEPT_LENGTH
                    and token not in _STOPWORDS
                    and token not in seen
                ):
                    seen.append(token)
        return seen


def detect_new_struggle(
    classifier: StruggleClassifier,
    utterance: str,
    recent: Sequence[Message],
    tracked: Sequence[str],
) -> Optional[str]:
    """Return the first untracked candidate concept, or None."""
    if not classifier.is_struggling(utterance):
        return None
    for concept in classifier.candidate_concepts(recent):
        if concept not in tracked:
            return concept
    return None
