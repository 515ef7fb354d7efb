"""Tutor turn loop -- iterative tool use for one learner utterance.

The orchestrator sends the system prompt, recent history and the new
utterance to the hosted model along with the tool schemas, runs any tool
calls it asks for, feeds the results back, and repeats until the model
answers in plain text. The last allowed round is sent without tools so the
model has to answer.

Every tool call produces a TOOL_INVOKED then a TOOL_RESULT ReasoningStep,
awaited on the sink as it happens, so a forwarding sink delivers them to
the learner before the turn finishes.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from llama_index.core.base.llms.types import (
    ChatMessage,
    ChatResponse,
    MessageRole,
    TextBlock,
    ToolCallBlock,
)

from ..constants import APOLOGY_MESSAGE, EMPTY_REPLY_MESSAGE
from ..errors import UpstreamFailure
from ..gateway import InferenceGateway
from ..session.models import Message, ReasoningStep, Role, Session, StepKind
from .events import ReasoningSink
from .prompts import build_system_prompt
from .tools import ToolDefinition, ToolName

logger = logging.getLogger(__name__)

_RESULT_PREVIEW_CHARS = 500

_FINAL_ROUND_NOTICE = (
    "You have used all available tool turns. Answer the learner now using "
    "the information you have gathered."
)


class TurnOrchestrator:
    """Run one tutor turn with tool calls.

    Usage::

        orchestrator = TurnOrchestrator(gateway, max_turns=6)
        reply = await orchestrator.run_turn(session, "what does main.py do?", sink, tools)
    """

    def __init__(
        self,
        gateway: InferenceGateway,
        max_turns: int = 6,
        history_limit: int = 20,
        max_tool_result_chars: int = 8000,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self._gateway = gateway
        self._max_turns = max_turns
        self._history_limit = history_limit
        self._max_tool_result_chars = max_tool_result_chars

    async def run_turn(
        self,
        session: Session,
        user_text: str,
        sink: ReasoningSink,
        tools: Sequence[ToolDefinition] = (),
    ) -> Message:
        """Produce the assistant reply to ``user_text``.

        Never raises for hosted-model failures: those yield an apologetic
        reply carrying whatever steps were already emitted.

        Args:
            session: Snapshot of the session (not mutated)
            user_text: The learner's utterance
            sink: Receives reasoning steps in emission order
            tools: Tool definitions bound to this session

        Returns:
            The assistant Message
        """
        steps: List[ReasoningStep] = []
        by_name = {t.name: t for t in tools}
        schemas = [t.to_openai_schema() for t in tools]
        messages = self._build_messages(session, user_text)

        async def emit(step: ReasoningStep) -> None:
            steps.append(step)
            await sink.emit(step)

        for turn in range(self._max_turns):
            force_final = turn >= self._max_turns - 1
            if force_final and turn > 0:
                messages.append(ChatMessage(role=MessageRole.USER, content=_FINAL_ROUND_NOTICE))

            try:
                response = await self._gateway.chat(
                    messages,
                    tools=None if force_final else schemas,
                    purpose="tutor_turn",
                )
            except UpstreamFailure as e:
                logger.error(f"Tutor LLM call failed on round {turn} for session {session.id}: {e}")
                return _assistant(APOLOGY_MESSAGE, steps)

            tool_calls = _extract_tool_calls(response)
            text_content = _extract_text(response)

            if force_final or not tool_calls or not schemas:
                return _assistant(text_content or EMPTY_REPLY_MESSAGE, steps)

            if text_content:
                await emit(ReasoningStep(kind=StepKind.THINKING, description=text_content))

            messages.append(response.message)

            # Sequential, in the order the model asked for them
            for tc in tool_calls:
                call_id = tc.tool_call_id or str(uuid.uuid4())[:8]
                tool_name = tc.tool_name
                tool_args = _parse_kwargs(tc.tool_kwargs)

                await emit(ReasoningStep(
                    kind=StepKind.TOOL_INVOKED,
                    description=f"Calling {tool_name}",
                    tool_name=tool_name,
                    call_id=call_id,
                    payload=tool_args,
                ))

                result_text = await self._execute_tool(by_name, tool_name, tool_args)
                truncated = len(result_text) > self._max_tool_result_chars
                if truncated:
                    result_text = result_text[: self._max_tool_result_chars] + "\n...(truncated)"

                await emit(ReasoningStep(
                    kind=StepKind.TOOL_RESULT,
                    description=f"{tool_name} returned {len(result_text)} chars",
                    tool_name=tool_name,
                    call_id=call_id,
                    payload={
                        "preview": result_text[:_RESULT_PREVIEW_CHARS],
                        "truncated": truncated,
                    },
                ))

                messages.append(ChatMessage(
                    role=MessageRole.TOOL,
                    content=result_text,
                    additional_kwargs={"tool_call_id": call_id, "name": tool_name},
                ))

        # Unreachable: the final round always returns
        return _assistant(EMPTY_REPLY_MESSAGE, steps)

    def _build_messages(self, session: Session, user_text: str) -> List[ChatMessage]:
        primer = session.analysis.primer if session.analysis else None
        messages = [ChatMessage(
            role=MessageRole.SYSTEM,
            content=build_system_prompt(session.repo_name, session.goal, session.struggles, primer),
        )]
        history = session.messages[-self._history_limit:] if self._history_limit > 0 else []
        for m in history:
            role = MessageRole.USER if m.role == Role.USER else MessageRole.ASSISTANT
            messages.append(ChatMessage(role=role, content=m.content))
        messages.append(ChatMessage(role=MessageRole.USER, content=user_text))
        return messages

    async def _execute_tool(
        self,
        tools: Dict[ToolName, ToolDefinition],
        tool_name: str,
        args: Dict[str, Any],
    ) -> str:
        """Execute a single tool by name and return the string result."""
        try:
            tool = tools.get(ToolName(tool_name))
        except ValueError:
            tool = None
        if tool is None:
            return f"Error: Unknown tool '{tool_name}'. Available: {[t.value for t in tools]}"
        try:
            return await tool.execute(args)
        except Exception as e:
            logger.warning(f"Tool '{tool_name}' failed: {e}", exc_info=True)
            return f"Tool error: {e}"


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------

def _assistant(content: str, steps: List[ReasoningStep]) -> Message:
    return Message(role=Role.ASSISTANT, content=content, reasoning_steps=list(steps) or None)


def _parse_kwargs(raw_kwargs: Any) -> Dict[str, Any]:
    """ToolCallBlock kwargs arrive as a dict or a JSON string."""
    if isinstance(raw_kwargs, dict):
        return raw_kwargs
    if isinstance(raw_kwargs, str):
        try:
            parsed = json.loads(raw_kwargs)
        except (json.JSONDecodeError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _extract_tool_calls(response: ChatResponse) -> List[ToolCallBlock]:
    blocks = getattr(response.message, "blocks", []) or []
    return [b for b in blocks if isinstance(b, ToolCallBlock)]


def _extract_text(response: ChatResponse) -> str:
    blocks = getattr(response.message, "blocks", []) or []
    parts = [b.text for b in blocks if isinstance(b, TextBlock) and b.text]
    return "\n".join(parts).strip()
