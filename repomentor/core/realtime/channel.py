"""Live connection handles.

A ``RealtimeConnection`` wraps anything with an async ``send_text(str)``
(a Starlette WebSocket in production). Once a send fails the connection is
marked closed and every later send raises TransportFailure; ``deliver``
turns that into a False return so callers can drop the connection and
carry on with the turn.
"""

import logging
import uuid
from typing import Any, Optional

from ..errors import TransportFailure
from ..session.models import ReasoningStep
from .protocol import ReasoningStepEvent, ServerEvent

logger = logging.getLogger(__name__)


class RealtimeConnection:

    def __init__(self, socket: Any, connection_id: Optional[str] = None):
        self._socket = socket
        self.id = connection_id or uuid.uuid4().hex[:12]
        self.closed = False

    async def send(self, event: ServerEvent) -> None:
        """Send one event.

        Raises:
            TransportFailure: The connection is closed or the send failed
        """
        if self.closed:
            raise TransportFailure(f"Connection {self.id} is closed")
        try:
            await self._socket.send_text(event.to_json())
        except Exception as e:
            # Any send failure means the socket is gone
            self.closed = True
            raise TransportFailure(f"Send on connection {self.id} failed: {e}") from e

    async def deliver(self, event: ServerEvent) -> bool:
        """Send, returning False instead of raising on transport failure."""
        try:
            await self.send(event)
        except TransportFailure as e:
            logger.info(f"Dropping {event.type} event: {e}")
            return False
        return True

    def close(self) -> None:
        self.closed = True


class ChannelSink:
    """ReasoningSink that forwards each step to one connection as it happens."""

    def __init__(self, connection: RealtimeConnection):
        self._connection = connection

    async def emit(self, step: ReasoningStep) -> None:
        await self._connection.deliver(ReasoningStepEvent.from_step(step))
