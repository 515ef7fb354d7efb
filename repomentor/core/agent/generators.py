"""Study-material generators.

Each generator prompts the hosted model for one JSON object, validates its
shape, and returns a ``Generated`` result. On a ParseFailure it re-prompts
with the error (``max_parse_retries`` times) and then falls back to a
documented default with ``fallback=True``. Upstream failures propagate.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from ..constants import FLASHCARD_COUNT, STUDY_PLAN_MINUTES
from ..errors import ParseFailure
from ..gateway import InferenceGateway
from ..session.models import Flashcard, StudyPlan, StudySection, now_ms
from . import prompts

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Generated(Generic[T]):
    """Generator output. ``fallback`` is True when ``value`` is the default."""

    value: T
    fallback: bool = False
    error: Optional[str] = None


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Parse a JSON object from model output, stripping markdown fences.

    Raises:
        ParseFailure: If no JSON object can be recovered
    """
    cleaned = raw or ""
    if "```json" in cleaned:
        cleaned = cleaned.split("```json", 1)[1]
    elif cleaned.lstrip().startswith("```"):
        cleaned = cleaned.lstrip()[3:]
    if "```" in cleaned:
        cleaned = cleaned.split("```", 1)[0]
    cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        # Try the outermost { }
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            raise ParseFailure(f"Invalid JSON: {e}", raw=raw) from e
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e2:
            raise ParseFailure(f"Invalid JSON: {e2}", raw=raw) from e2

    if not isinstance(data, dict):
        raise ParseFailure("Expected a JSON object", raw=raw)
    return data


class StudyMaterialGenerator:
    """Concept primers, Socratic questions, study plans and flashcards.

    Args:
        gateway: Inference gateway used for completions
        flashcard_count: Exact number of flashcards per deck
        study_plan_minutes: Total study plan minutes
        max_parse_retries: Re-prompts after a parse failure before falling back
    """

    def __init__(
        self,
        gateway: InferenceGateway,
        flashcard_count: int = FLASHCARD_COUNT,
        study_plan_minutes: int = STUDY_PLAN_MINUTES,
        max_parse_retries: int = 1,
    ):
        self._gateway = gateway
        self._flashcard_count = flashcard_count
        self._study_plan_minutes = study_plan_minutes
        self._max_parse_retries = max(0, max_parse_retries)

    async def concept_primer(self, concept: str, repo_name: str, context: str = "") -> Generated[Dict[str, Any]]:
        def parse(data: Dict[str, Any]) -> Dict[str, Any]:
            primer = data.get("primer")
            if not isinstance(primer, str) or not primer.strip():
                raise ParseFailure("Missing 'primer' text")
            key_points = data.get("key_points") or []
            if not isinstance(key_points, list):
                raise ParseFailure("'key_points' must be a list")
            return {"primer": primer.strip(), "key_points": [str(p) for p in key_points]}

        return await self._generate(
            prompts.build_concept_primer_prompt(concept, repo_name, context),
            parse,
            fallback=lambda raw: {"primer": raw.strip(), "key_points": []},
            label="concept_primer",
        )

    async def socratic_question(
        self,
        context: str,
        difficulty: int = 2,
        previous_answers: Sequence[str] = (),
    ) -> Generated[Dict[str, Any]]:
        difficulty = max(1, min(5, int(difficulty)))

        def parse(data: Dict[str, Any]) -> Dict[str, Any]:
            question = data.get("question")
            if not isinstance(question, str) or not question.strip():
                raise ParseFailure("Missing 'question' text")
            hints = data.get("hints") or []
            if not isinstance(hints, list):
                raise ParseFailure("'hints' must be a list")
            return {
                "question": question.strip(),
                "hints": [str(h) for h in hints][:2],
                "difficulty": _as_int(data.get("difficulty"), difficulty),
            }

        return await self._generate(
            prompts.build_socratic_question_prompt(context, difficulty, previous_answers),
            parse,
            fallback=lambda raw: {"question": raw.strip(), "hints": [], "difficulty": difficulty},
            label="socratic_question",
        )

    async def study_plan(self, struggles: Sequence[str], repo_context: str) -> Generated[StudyPlan]:
        minutes = self._study_plan_minutes

        def parse(data: Dict[str, Any]) -> StudyPlan:
            raw_sections = data.get("sections")
            if not isinstance(raw_sections, list) or not raw_sections:
                raise ParseFailure("'sections' must be a non-empty list")
            sections = []
            for i, s in enumerate(raw_sections, 1):
                if not isinstance(s, dict) or not s.get("title"):
                    raise ParseFailure(f"Section {i} has no title")
                sections.append(StudySection(
                    order=_as_int(s.get("order"), i),
                    title=str(s["title"]),
                    duration_minutes=_as_int(s.get("duration_minutes"), 0),
                    objectives=[str(o) for o in s.get("objectives") or []],
                    resources=[r for r in s.get("resources") or [] if isinstance(r, dict)],
                ))
            return StudyPlan(
                title=str(data.get("title") or "Study plan"),
                duration_minutes=minutes,
                sections=sections,
                generated_at=now_ms(),
            )

        return await self._generate(
            prompts.build_study_plan_prompt(struggles, repo_context, minutes),
            parse,
            fallback=lambda raw: default_study_plan(struggles, minutes),
            label="study_plan",
        )

    async def flashcards(self, concepts: Sequence[str], repo_name: str) -> Generated[List[Flashcard]]:
        count = self._flashcard_count

        def parse(data: Dict[str, Any]) -> List[Flashcard]:
            raw_cards = data.get("flashcards")
            if not isinstance(raw_cards, list):
                raise ParseFailure("'flashcards' must be a list")
            if len(raw_cards) < count:
                raise ParseFailure(f"Expected {count} flashcards, got {len(raw_cards)}")
            cards = []
            for i, c in enumerate(raw_cards[:count], 1):
                if not isinstance(c, dict) or not c.get("front") or not c.get("back"):
                    raise ParseFailure(f"Flashcard {i} needs 'front' and 'back'")
                cards.append(Flashcard(
                    id=str(uuid.uuid4()),
                    front=str(c["front"]),
                    back=str(c["back"]),
                    concept=str(c.get("concept") or (concepts[0] if concepts else repo_name)),
                    difficulty=max(1, min(5, _as_int(c.get("difficulty"), 1))),
                    source_file=c.get("source_file") or None,
                ))
            return cards

        return await self._generate(
            prompts.build_flashcards_prompt(concepts, repo_name, count),
            parse,
            fallback=lambda raw: [],
            label="flashcards",
        )

    # ── Internals ────────────────────────────────────────────────────────

    async def _generate(
        self,
        prompt: str,
        parse: Callable[[Dict[str, Any]], T],
        fallback: Callable[[str], T],
        label: str,
    ) -> Generated[T]:
        attempt_prompt = prompt
        raw = ""
        error = ""
        for attempt in range(self._max_parse_retries + 1):
            raw = await self._gateway.complete(attempt_prompt, purpose=label)
            try:
                return Generated(value=parse(parse_json_object(raw)))
            except ParseFailure as e:
                error = str(e)
                logger.warning(f"{label}: unusable output on attempt {attempt + 1}: {error}")
                attempt_prompt = prompts.build_retry_prompt(prompt, error)

        logger.info(f"{label}: using fallback after {self._max_parse_retries + 1} attempts")
        return Generated(value=fallback(raw), fallback=True, error=error)


def default_study_plan(struggles: Sequence[str], minutes: int = STUDY_PLAN_MINUTES) -> StudyPlan:
    """One equal section per struggle; the first sections absorb any remainder."""
    topics = list(struggles) or ["Repository orientation"]
    base, remainder = divmod(minutes, len(topics))
    sections = [
        StudySection(
            order=i + 1,
            title=topic,
            duration_minutes=base + (1 if i < remainder else 0),
            objectives=[f"Understand {topic}"],
        )
        for i, topic in enumerate(topics)
    ]
    return StudyPlan(title="Study plan", duration_minutes=minutes, sections=sections)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
