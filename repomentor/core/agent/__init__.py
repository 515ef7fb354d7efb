"""Tutor agent -- tool-use turn loop, tool registry and study-material generators."""

from .events import CollectingSink, NullSink, ReasoningSink
from .generators import Generated, StudyMaterialGenerator, default_study_plan, parse_json_object
from .loop import TurnOrchestrator
from .tools import ToolContext, ToolDefinition, ToolName, build_tools

__all__ = [
    "CollectingSink",
    "Generated",
    "NullSink",
    "ReasoningSink",
    "StudyMaterialGenerator",
    "ToolContext",
    "ToolDefinition",
    "ToolName",
    "TurnOrchestrator",
    "build_tools",
    "default_study_plan",
    "parse_json_object",
]
