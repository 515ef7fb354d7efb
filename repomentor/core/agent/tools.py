"""Tool definitions for the tutor turn loop.

The tool set is closed: ``ToolName`` enumerates every tool and
``_TOOL_FACTORIES`` maps each member to a factory. Factories receive a
``ToolContext`` bound to the current session and return ``ToolDefinition``
instances whose async ``execute`` closures capture the services they need.

Tools that produce session state (analysis, study plan, flashcards) record
it in ``ToolContext.updates``; the session actor merges those after the turn.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from ..github import RepositoryAnalyzer
from ..session.models import Session
from ..vector import CodeSearchService, format_hits
from .generators import StudyMaterialGenerator

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    GET_REPO_MAP = "get_repo_map"
    SEARCH_CODE = "search_code"
    GENERATE_CONCEPT_PRIMER = "generate_concept_primer"
    GENERATE_SOCRATIC_QUESTION = "generate_socratic_question"
    GENERATE_STUDY_PLAN = "generate_study_plan"
    GENERATE_FLASHCARDS = "generate_flashcards"


# ---------------------------------------------------------------------------
# ToolDefinition / ToolContext
# ---------------------------------------------------------------------------


@dataclass
class ToolDefinition:
    """A single tool the tutor can invoke.

    Attributes:
        name: Member of the closed tool set.
        description: Purpose shown to the LLM.
        parameters: JSON Schema dict describing the tool's arguments.
        execute: Async callable(args_dict) -> str that runs the tool.
        category: Grouping label for UI display.
    """

    name: ToolName
    description: str
    parameters: Dict[str, Any]
    execute: Callable[[Dict[str, Any]], Awaitable[str]]
    category: str = "general"

    def to_openai_schema(self) -> Dict[str, Any]:
        """Serialize to the OpenAI function-calling tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ToolContext:
    """Services and session snapshot the tools of one turn are bound to."""

    session: Session
    analyzer: RepositoryAnalyzer
    search: CodeSearchService
    generator: StudyMaterialGenerator
    updates: Dict[str, Any] = field(default_factory=dict)


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


# ---------------------------------------------------------------------------
# get_repo_map
# ---------------------------------------------------------------------------

def _make_get_repo_map(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        repo_url = args.get("repo_url") or ctx.session.repo_url
        depth = _int_arg(args.get("depth"), 2)
        analysis = await ctx.analyzer.analyze(repo_url, depth=depth)
        if repo_url == ctx.session.repo_url:
            ctx.updates["analysis"] = analysis
        data = analysis.to_dict()
        data["hotspots_by_category"] = analysis.hotspots_by_category()
        return _dumps(data)

    return ToolDefinition(
        name=ToolName.GET_REPO_MAP,
        description=(
            "Analyze the repository structure: ranked files, hotspots by category "
            "(entrypoint, api, router, config, docs), prerequisites and a primer."
        ),
        parameters={
            "type": "object",
            "properties": {
                "repo_url": {
                    "type": "string",
                    "description": "GitHub repository URL. Defaults to the session's repository.",
                },
                "depth": {
                    "type": "number",
                    "description": "Directory depth to analyze (1-3, default 2).",
                },
            },
            "required": [],
        },
        execute=execute,
        category="repo",
    )


# ---------------------------------------------------------------------------
# search_code
# ---------------------------------------------------------------------------

def _make_search_code(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        query = args.get("query", "")
        if not query:
            return "Error: query is required."
        repo_name = args.get("repo_name") or args.get("repoName") or ctx.session.repo_name
        top_k = args.get("top_k", args.get("topK"))
        hits = await ctx.search.search(query, repo_name, top_k)
        return format_hits(hits)

    return ToolDefinition(
        name=ToolName.SEARCH_CODE,
        description=(
            "Search the repository code for relevant files and functions. Use it to find "
            "specific implementations, patterns, or examples. Returns actual code snippets."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": 'What to search for in natural language (e.g. "authentication middleware").',
                },
                "repo_name": {
                    "type": "string",
                    "description": "owner/name of the repository. Defaults to the session's repository.",
                },
                "top_k": {
                    "type": "number",
                    "description": "Maximum number of snippets to return (default 5, max 10).",
                },
            },
            "required": ["query"],
        },
        execute=execute,
        category="search",
    )


# ---------------------------------------------------------------------------
# generate_concept_primer / generate_socratic_question
# ---------------------------------------------------------------------------

def _make_generate_concept_primer(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        concept = args.get("concept", "")
        if not concept:
            return "Error: concept is required."
        result = await ctx.generator.concept_primer(
            concept, ctx.session.repo_name, context=args.get("context", "")
        )
        return _dumps({**result.value, "fallback": result.fallback})

    return ToolDefinition(
        name=ToolName.GENERATE_CONCEPT_PRIMER,
        description="Write a short primer on a concept the learner needs, with key points.",
        parameters={
            "type": "object",
            "properties": {
                "concept": {"type": "string", "description": "Concept to explain."},
                "context": {"type": "string", "description": "Optional code or notes to ground the primer."},
            },
            "required": ["concept"],
        },
        execute=execute,
        category="teaching",
    )


def _make_generate_socratic_question(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        context = args.get("context", "")
        if not context:
            return "Error: context is required."
        previous = _list_arg(args.get("previous_answers") or args.get("previousAnswers"))
        result = await ctx.generator.socratic_question(
            context,
            difficulty=_int_arg(args.get("difficulty"), 2),
            previous_answers=previous,
        )
        return _dumps({**result.value, "fallback": result.fallback})

    return ToolDefinition(
        name=ToolName.GENERATE_SOCRATIC_QUESTION,
        description="Generate a Socratic question, with hints, from code context and the learner's answers.",
        parameters={
            "type": "object",
            "properties": {
                "context": {"type": "string", "description": "The code or concept context."},
                "difficulty": {"type": "number", "description": "Question difficulty 1-5."},
                "previous_answers": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Previous learner answers, to adapt difficulty.",
                },
            },
            "required": ["context", "difficulty"],
        },
        execute=execute,
        category="teaching",
    )


# ---------------------------------------------------------------------------
# generate_study_plan / generate_flashcards
# ---------------------------------------------------------------------------

def _make_generate_study_plan(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        struggles = _list_arg(args.get("struggles")) or list(ctx.session.struggles)
        repo_context = args.get("repo_context") or f"{ctx.session.repo_name} - Goal: {ctx.session.goal}"
        result = await ctx.generator.study_plan(struggles, repo_context)
        ctx.updates["study_plan"] = result.value
        return _dumps({**result.value.to_dict(), "fallback": result.fallback})

    return ToolDefinition(
        name=ToolName.GENERATE_STUDY_PLAN,
        description="Create a personalized 15 minute study plan from the concepts the learner struggled with.",
        parameters={
            "type": "object",
            "properties": {
                "struggles": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Concepts the learner struggled with. Defaults to the tracked ones.",
                },
                "repo_context": {"type": "string", "description": "Repository name and goal."},
            },
            "required": [],
        },
        execute=execute,
        category="study",
    )


def _make_generate_flashcards(ctx: ToolContext) -> ToolDefinition:

    async def execute(args: Dict[str, Any]) -> str:
        concepts = _list_arg(args.get("concepts")) or list(ctx.session.struggles)
        repo_name = args.get("repo_name") or ctx.session.repo_name
        result = await ctx.generator.flashcards(concepts, repo_name)
        if not result.fallback:
            ctx.updates["flashcards"] = result.value
        return _dumps({
            "flashcards": [c.to_dict() for c in result.value],
            "fallback": result.fallback,
        })

    return ToolDefinition(
        name=ToolName.GENERATE_FLASHCARDS,
        description="Create 5 flashcards for spaced repetition on key concepts.",
        parameters={
            "type": "object",
            "properties": {
                "concepts": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Key concepts to cover. Defaults to the tracked struggles.",
                },
                "repo_name": {"type": "string", "description": "Repository name for context."},
            },
            "required": [],
        },
        execute=execute,
        category="study",
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_TOOL_FACTORIES: Dict[ToolName, Callable[[ToolContext], ToolDefinition]] = {
    ToolName.GET_REPO_MAP: _make_get_repo_map,
    ToolName.SEARCH_CODE: _make_search_code,
    ToolName.GENERATE_CONCEPT_PRIMER: _make_generate_concept_primer,
    ToolName.GENERATE_SOCRATIC_QUESTION: _make_generate_socratic_question,
    ToolName.GENERATE_STUDY_PLAN: _make_generate_study_plan,
    ToolName.GENERATE_FLASHCARDS: _make_generate_flashcards,
}

_missing = [t.value for t in ToolName if t not in _TOOL_FACTORIES]
if _missing:
    raise RuntimeError(f"Tools without a factory: {_missing}")


def build_tools(ctx: ToolContext) -> List[ToolDefinition]:
    """Every tool, bound to ``ctx``, in ToolName order."""
    return [_TOOL_FACTORIES[name](ctx) for name in ToolName]


def _int_arg(value: Any, default: int) -> int:
    """LLMs sometimes pass numbers as strings."""
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _list_arg(value: Any) -> List[str]:
    """A single string stands for a one-item list."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v).strip()]
    return [str(value)]
