"""Realtime tutoring channel (WebSocket).

One connection per client on ``/api/realtime/{session_id}``. Pings are
answered here directly; text and voice turns are handed to the session
actor as background tasks so this loop keeps receiving while a turn runs.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...core.errors import TransportFailure
from ...core.realtime import (
    ClientEventType,
    ConnectedEvent,
    ErrorEvent,
    PongEvent,
    RealtimeConnection,
    parse_client_event,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/realtime/{session_id}")
async def realtime_channel(websocket: WebSocket, session_id: str):
    registry = websocket.app.state.registry
    await websocket.accept()

    connection = RealtimeConnection(websocket)
    actor = registry.get(session_id)
    actor.attach(connection)

    try:
        await connection.send(ConnectedEvent(session_id=session_id))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            try:
                # Binary frames carry no "text" and are rejected by the parser
                event = parse_client_event(message.get("text"))
            except ValueError as e:
                await connection.send(ErrorEvent(message=str(e)))
                continue

            if event.type is ClientEventType.PING:
                await connection.send(PongEvent())
            elif event.type is ClientEventType.TEXT:
                registry.tasks.spawn(actor.handle_text(connection, event.message))
            else:
                registry.tasks.spawn(actor.handle_voice(connection, event.audio))
    except WebSocketDisconnect:
        logger.debug(f"Client disconnected from session {session_id}")
    except TransportFailure as e:
        logger.info(f"Realtime channel for session {session_id} closed: {e}")
    finally:
        actor.detach(connection)
