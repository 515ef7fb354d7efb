from .channel import ChannelSink, RealtimeConnection
from .protocol import (
    ClientEvent,
    ClientEventType,
    ConnectedEvent,
    ErrorEvent,
    PongEvent,
    ReasoningStepEvent,
    ServerEvent,
    StatusEvent,
    TextResponseEvent,
    TranscriptionEvent,
    parse_client_event,
)

__all__ = [
    "ChannelSink",
    "ClientEvent",
    "ClientEventType",
    "ConnectedEvent",
    "ErrorEvent",
    "PongEvent",
    "RealtimeConnection",
    "ReasoningStepEvent",
    "ServerEvent",
    "StatusEvent",
    "TextResponseEvent",
    "TranscriptionEvent",
    "parse_client_event",
]
