"""WebSocket endpoints for the relay namespaces.

Endpoints:
    - WebSocket /ws: root namespace (server info and status)
    - WebSocket /ws/{namespace}: chat, refund, cancellation, order

Frames are JSON text in both directions::

    {"type": "<event name>", "data": <payload>}

Frames that are not valid JSON or lack a ``type`` are logged and ignored;
they never close the connection.
"""
import json
import logging
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, WebSocket
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


class InboundFrame(BaseModel):
    """One client -> server frame."""
    type: str = Field(..., min_length=1, description="Inbound event name")
    data: Any = Field(default=None, description="Event payload")


def parse_frame(raw: Optional[str]) -> Optional[InboundFrame]:
    """Parse a text frame, returning None (and logging) when malformed."""
    if raw is None:
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("[WS] Ignoring non-JSON frame: %r", raw[:200])
        return None
    try:
        return InboundFrame.model_validate(decoded)
    except ValidationError:
        logger.warning("[WS] Ignoring frame without event type: %r", decoded)
        return None


async def _frames(websocket: WebSocket) -> AsyncIterator[InboundFrame]:
    """Yield parsed frames until the client disconnects."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        raw = message.get("text")
        if raw is None and message.get("bytes") is not None:
            raw = message["bytes"].decode("utf-8", errors="replace")
        frame = parse_frame(raw)
        if frame is not None:
            yield frame


@router.websocket("/ws")
async def root_namespace_endpoint(websocket: WebSocket) -> None:
    """Root namespace: announces the namespaces and answers status queries.

    Protocol Flow:
        1. Client connects -> Server sends {type: "server_info", data: {...}}
        2. Client sends {type: "get_server_status"}
           -> Server sends {type: "server_status", data: {chat: {...}, ...}}
    """
    relay = websocket.app.state.relay
    await websocket.accept()
    logger.info("[WS] Root namespace connection accepted")

    await websocket.send_json({"type": "server_info", "data": relay.server_info()})
    async for frame in _frames(websocket):
        if frame.type == "get_server_status":
            await websocket.send_json({"type": "server_status", "data": relay.server_status()})
        else:
            logger.debug("[WS] Root namespace ignoring event %s", frame.type)


@router.websocket("/ws/{namespace}")
async def namespace_endpoint(websocket: WebSocket, namespace: str) -> None:
    """Namespace connection lifecycle.

    The connection is accepted and assigned an opaque connection id, then
    every inbound frame is handed to the namespace dispatcher. Whatever ends
    the loop (client disconnect or server error), the dispatcher teardown
    runs exactly once.
    """
    hub = websocket.app.state.relay.get(namespace)
    if hub is None:
        logger.warning("[WS] Rejecting connection to unknown namespace %r", namespace)
        await websocket.close(code=1008)  # 1008 = Policy Violation
        return

    connection_id = await hub.connect(websocket)
    logger.info(
        "[WS] %s connection %s accepted (%d connected)",
        namespace, connection_id, hub.connected_count(),
    )
    try:
        async for frame in _frames(websocket):
            logger.debug("[WS] %s received: type=%s", namespace, frame.type)
            await hub.handle(connection_id, frame.type, frame.data)
    finally:
        await hub.disconnect(connection_id)
        logger.info(
            "[WS] %s connection %s closed (%d connected)",
            namespace, connection_id, hub.connected_count(),
        )
