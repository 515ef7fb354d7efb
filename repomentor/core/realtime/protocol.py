"""Realtime channel event types.

Server events serialize to one JSON text frame via ``to_json()``. Client
frames are parsed by ``parse_client_event``, which raises ValueError for
malformed JSON or an unknown ``type``.

Per client message the server sends zero or more status, reasoning_step
and transcription events, then exactly one text_response or error.
"""

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..session.models import ReasoningStep


@dataclass
class ServerEvent:
    """Base class for all server-to-client events."""

    type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass
class ConnectedEvent(ServerEvent):
    type: str = "connected"
    session_id: str = ""
    message: str = "WebSocket connected successfully"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "sessionId": self.session_id, "message": self.message}


@dataclass
class StatusEvent(ServerEvent):
    type: str = "status"
    message: str = ""


@dataclass
class ReasoningStepEvent(ServerEvent):
    type: str = "reasoning_step"
    step: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_step(cls, step: ReasoningStep) -> "ReasoningStepEvent":
        return cls(step=step.to_dict())


@dataclass
class TranscriptionEvent(ServerEvent):
    type: str = "transcription"
    text: str = ""


@dataclass
class TextResponseEvent(ServerEvent):
    """Terminal event for a successful turn."""

    type: str = "text_response"
    message: str = ""
    timestamp: int = 0


@dataclass
class ErrorEvent(ServerEvent):
    """Terminal event for a failed turn; also sent for bad client frames."""

    type: str = "error"
    message: str = ""


@dataclass
class PongEvent(ServerEvent):
    type: str = "pong"


# ── Client events ────────────────────────────────────────────────────────


class ClientEventType(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    PING = "ping"


@dataclass
class ClientEvent:
    type: ClientEventType
    message: Optional[str] = None
    audio: Optional[str] = None


def parse_client_event(raw: str) -> ClientEvent:
    """Parse one client frame.

    Raises:
        ValueError: Malformed JSON, unknown type, or missing payload field
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError("Failed to process message") from e
    if not isinstance(data, dict):
        raise ValueError("Failed to process message")

    kind = data.get("type")
    try:
        event_type = ClientEventType(kind)
    except ValueError:
        raise ValueError(f"Unknown message type: {kind}") from None

    if event_type is ClientEventType.TEXT:
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            raise ValueError("Text message must include a non-empty 'message'")
        return ClientEvent(type=event_type, message=message)
    if event_type is ClientEventType.VOICE:
        audio = data.get("audio")
        if not isinstance(audio, str) or not audio:
            raise ValueError("Voice message must include base64 'audio'")
        return ClientEvent(type=event_type, audio=audio)
    return ClientEvent(type=event_type)
