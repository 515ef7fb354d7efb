"""Data contracts for tutoring sessions.

All structured types persisted with a session. Kept as dataclasses (not ORM
models) so the whole session round-trips through one JSON column; every type
has ``to_dict()`` / ``from_dict()`` for that purpose.

Timestamps are epoch milliseconds.
"""

import time
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


def now_ms() -> int:
    """Current time in milliseconds."""
    return int(time.time() * 1000)


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StepKind(Enum):
    """Observable unit of orchestrator work during a turn."""
    TOOL_INVOKED = "tool_invoked"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"


class Difficulty(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class HotspotCategory(Enum):
    ENTRYPOINT = "entrypoint"
    API = "api"
    ROUTER = "router"
    CONFIG = "config"
    DOCS = "docs"


@dataclass
class ReasoningStep:
    """One tool call, tool result or thinking note emitted during a turn.

    ``call_id`` pairs a TOOL_INVOKED step with its TOOL_RESULT.
    """
    kind: StepKind
    description: str
    timestamp: int = field(default_factory=now_ms)
    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    payload: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "description": self.description,
            "timestamp": self.timestamp,
            "tool_name": self.tool_name,
            "call_id": self.call_id,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReasoningStep":
        return cls(
            kind=StepKind(data["kind"]),
            description=data.get("description", ""),
            timestamp=data.get("timestamp") or now_ms(),
            tool_name=data.get("tool_name"),
            call_id=data.get("call_id"),
            payload=data.get("payload"),
        )


@dataclass
class Message:
    """A single conversation message."""
    role: Role
    content: str
    timestamp: int = field(default_factory=now_ms)
    reasoning_steps: Optional[List[ReasoningStep]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.reasoning_steps is not None:
            data["reasoning_steps"] = [s.to_dict() for s in self.reasoning_steps]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        steps = data.get("reasoning_steps")
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            timestamp=data.get("timestamp") or now_ms(),
            reasoning_steps=[ReasoningStep.from_dict(s) for s in steps] if steps is not None else None,
        )


# ── Repository analysis ─────────────────────────────────────────────────


@dataclass
class FileNode:
    path: str
    importance: float
    language: str = "unknown"
    size: int = 0


@dataclass
class Hotspot:
    file: str
    category: HotspotCategory
    importance: float
    description: str = ""


@dataclass
class Prerequisite:
    concept: str
    description: str
    difficulty: Difficulty
    external_links: List[str] = field(default_factory=list)


@dataclass
class Analysis:
    """Structure analysis of one repository."""
    repo_name: str
    structure: List[FileNode] = field(default_factory=list)
    hotspots: List[Hotspot] = field(default_factory=list)
    prerequisites: List[Prerequisite] = field(default_factory=list)
    primer: str = ""
    estimated_read_time: int = 0

    def hotspots_by_category(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for h in self.hotspots:
            grouped.setdefault(h.category.value, []).append(h.file)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_name": self.repo_name,
            "structure": [asdict(f) for f in self.structure],
            "hotspots": [
                {**asdict(h), "category": h.category.value} for h in self.hotspots
            ],
            "prerequisites": [
                {**asdict(p), "difficulty": p.difficulty.value} for p in self.prerequisites
            ],
            "primer": self.primer,
            "estimated_read_time": self.estimated_read_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        return cls(
            repo_name=data["repo_name"],
            structure=[FileNode(**f) for f in data.get("structure", [])],
            hotspots=[
                Hotspot(
                    file=h["file"],
                    category=HotspotCategory(h["category"]),
                    importance=h.get("importance", 0.0),
                    description=h.get("description", ""),
                )
                for h in data.get("hotspots", [])
            ],
            prerequisites=[
                Prerequisite(
                    concept=p["concept"],
                    description=p.get("description", ""),
                    difficulty=Difficulty(p.get("difficulty", "beginner")),
                    external_links=list(p.get("external_links", [])),
                )
                for p in data.get("prerequisites", [])
            ],
            primer=data.get("primer", ""),
            estimated_read_time=data.get("estimated_read_time", 0),
        )


# ── Study material ──────────────────────────────────────────────────────


@dataclass
class StudySection:
    order: int
    title: str
    duration_minutes: int
    objectives: List[str] = field(default_factory=list)
    resources: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class StudyPlan:
    title: str
    duration_minutes: int
    sections: List[StudySection] = field(default_factory=list)
    generated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StudyPlan":
        return cls(
            title=data.get("title", "Study plan"),
            duration_minutes=int(data.get("duration_minutes", 0)),
            sections=[StudySection(**s) for s in data.get("sections", [])],
            generated_at=data.get("generated_at") or now_ms(),
        )


@dataclass
class Flashcard:
    id: str
    front: str
    back: str
    concept: str
    difficulty: int = 1
    source_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flashcard":
        return cls(**{f.name: data[f.name] for f in fields(cls) if f.name in data})


# ── Session ─────────────────────────────────────────────────────────────


# Fields a caller may merge through apply_update
UPDATABLE_FIELDS = frozenset({
    "repo_url",
    "goal",
    "messages",
    "struggles",
    "analysis",
    "study_plan",
    "flashcards",
})


@dataclass
class Session:
    """One learner's tutoring conversation about one repository."""
    id: str
    repo_url: str
    goal: str
    messages: List[Message] = field(default_factory=list)
    struggles: List[str] = field(default_factory=list)
    analysis: Optional[Analysis] = None
    study_plan: Optional[StudyPlan] = None
    flashcards: Optional[List[Flashcard]] = None
    created_at: int = field(default_factory=now_ms)
    last_activity_at: int = field(default_factory=now_ms)

    @property
    def repo_name(self) -> str:
        """``owner/name`` from the analysis when present, else derived from the URL."""
        if self.analysis:
            return self.analysis.repo_name
        from ..github.client import parse_repo_url
        try:
            return parse_repo_url(self.repo_url).full_name
        except ValueError:
            return self.repo_url

    def add_struggle(self, concept: str) -> bool:
        """Track a struggle concept; returns False if it was already tracked."""
        if concept in self.struggles:
            return False
        self.struggles.append(concept)
        return True

    def touch(self) -> None:
        self.last_activity_at = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "repo_url": self.repo_url,
            "goal": self.goal,
            "messages": [m.to_dict() for m in self.messages],
            "struggles": list(self.struggles),
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "study_plan": self.study_plan.to_dict() if self.study_plan else None,
            "flashcards": [c.to_dict() for c in self.flashcards] if self.flashcards is not None else None,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        analysis = data.get("analysis")
        plan = data.get("study_plan")
        cards = data.get("flashcards")
        struggles: List[str] = []
        for s in data.get("struggles", []):
            if s not in struggles:
                struggles.append(s)
        return cls(
            id=data["id"],
            repo_url=data["repo_url"],
            goal=data["goal"],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            struggles=struggles,
            analysis=Analysis.from_dict(analysis) if analysis else None,
            study_plan=StudyPlan.from_dict(plan) if plan else None,
            flashcards=[Flashcard.from_dict(c) for c in cards] if cards is not None else None,
            created_at=data.get("created_at") or now_ms(),
            last_activity_at=data.get("last_activity_at") or now_ms(),
        )

    def merged(self, updates: Dict[str, Any]) -> "Session":
        """Return a copy with ``updates`` merged in and last-activity refreshed.

        Values may be domain objects or their dict forms.

        Raises:
            ValueError: If an update names an unknown or identity field
        """
        rejected = sorted(set(updates) - UPDATABLE_FIELDS)
        if rejected:
            raise ValueError(f"Fields cannot be updated: {', '.join(rejected)}")

        data = self.to_dict()
        for key, value in updates.items():
            data[key] = _to_plain(value)
        merged = Session.from_dict(data)
        merged.touch()
        return merged


def _to_plain(value: Any) -> Any:
    """Convert domain objects (or lists of them) into their dict forms."""
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value
