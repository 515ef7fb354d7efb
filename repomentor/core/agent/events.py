"""Reasoning sinks for the tutor turn loop.

The orchestrator awaits ``sink.emit(step)`` for every ReasoningStep as it
happens. Where the step goes is the sink's business:

- ``ChannelSink`` (realtime package) forwards to a live connection
- ``CollectingSink`` buffers steps for the REST fallback and for tests
- ``NullSink`` drops them
"""

from typing import List, Protocol

from ..session.models import ReasoningStep


class ReasoningSink(Protocol):
    async def emit(self, step: ReasoningStep) -> None:
        ...


class CollectingSink:
    """Keeps every emitted step, in order."""

    def __init__(self):
        self.steps: List[ReasoningStep] = []

    async def emit(self, step: ReasoningStep) -> None:
        self.steps.append(step)


class NullSink:
    async def emit(self, step: ReasoningStep) -> None:
        return None
