"""Namespace hubs: live WebSocket connections and effect delivery.

Each namespace (``chat``, ``refund``, ``cancellation``, ``order``) gets its own
hub and dispatcher, so presence never leaks between namespaces. The hub maps
opaque connection ids to sockets and delivers the dispatcher's ``Emit``
effects.

Delivery:
    - Every connection owns an outbound queue drained by a single writer
      task. ``deliver`` only enqueues, so it never waits on a socket and one
      slow client cannot stall delivery to the others.
    - One writer per socket means frames reach a recipient in the order the
      handlers produced them, and no two sends overlap on one socket.
    - Each send is bounded by ``send_timeout``. A writer whose send fails or
      times out closes its socket; the connection loop then ends and the
      normal teardown runs. Frames for a full outbox are dropped
      (at-most-once, no retry).
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from fastapi import WebSocket

from relay.chat.dispatcher import ChatDispatcher
from relay.config import AppConfig
from relay.notifications import CancellationDispatcher, OrderDispatcher, RefundDispatcher

from .dispatcher import EventDispatcher
from .effects import Emit

logger = logging.getLogger(__name__)

# Default per-send timeout in seconds
DEFAULT_SEND_TIMEOUT = 5.0

# Default number of frames buffered per connection
DEFAULT_OUTBOX_SIZE = 256

# WebSocket close code sent to a client that stopped reading
CLOSE_SLOW_CONSUMER = 1013  # Try Again Later


class NamespaceHub:
    """Live connections of one namespace plus its dispatcher."""

    def __init__(
        self,
        name: str,
        dispatcher: EventDispatcher,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> None:
        self.name = name
        self.dispatcher = dispatcher
        self.send_timeout = send_timeout
        self.outbox_size = outbox_size
        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}
        # connection_id -> pending frames, drained by that connection's writer
        self.outboxes: Dict[str, asyncio.Queue] = {}
        self.writers: Dict[str, asyncio.Task] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a WebSocket, assign it a connection id and start its writer."""
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        outbox: asyncio.Queue = asyncio.Queue(maxsize=self.outbox_size)
        self.connections[connection_id] = websocket
        self.outboxes[connection_id] = outbox
        self.writers[connection_id] = asyncio.create_task(
            self._writer(connection_id, websocket, outbox)
        )
        await self.deliver(self.dispatcher.connect(connection_id))
        return connection_id

    async def handle(self, connection_id: str, event: str, payload=None) -> List[Emit]:
        effects = self.dispatcher.dispatch(connection_id, event, payload)
        await self.deliver(effects)
        return effects

    async def disconnect(self, connection_id: str) -> None:
        """Stop the writer, forget the socket, then run the dispatcher teardown."""
        self.connections.pop(connection_id, None)
        self.outboxes.pop(connection_id, None)
        writer = self.writers.pop(connection_id, None)
        if writer is not None:
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        await self.deliver(self.dispatcher.disconnect(connection_id))

    async def deliver(self, effects: Iterable[Emit]) -> None:
        """Enqueue effects for their recipients without waiting on any socket."""
        for effect in effects:
            self._enqueue(effect)

    def _enqueue(self, effect: Emit) -> None:
        if effect.is_broadcast:
            targets = list(self.outboxes.items())
        else:
            targets = [
                (conn_id, self.outboxes[conn_id])
                for conn_id in effect.recipients
                if conn_id in self.outboxes
            ]

        frame = effect.frame()
        for conn_id, outbox in targets:
            try:
                outbox.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning(
                    "[%s] Outbox full for %s; dropping %s", self.name, conn_id, effect.event
                )

    async def _writer(
        self, connection_id: str, websocket: WebSocket, outbox: asyncio.Queue
    ) -> None:
        """Drain one connection's outbox until cancelled or a send fails."""
        while True:
            frame = await outbox.get()
            try:
                sent = await self._safe_send(connection_id, websocket, frame)
            finally:
                outbox.task_done()
            if not sent:
                break

        # The client stopped reading; nothing more is queued for it.
        if self.outboxes.get(connection_id) is outbox:
            del self.outboxes[connection_id]
        try:
            await asyncio.wait_for(
                websocket.close(code=CLOSE_SLOW_CONSUMER), timeout=self.send_timeout
            )
        except Exception as e:
            logger.debug(f"[{self.name}] Closing connection {connection_id} failed: {e}")

    async def _safe_send(self, connection_id: str, websocket: WebSocket, frame: dict) -> bool:
        """Send a frame with error handling.

        Returns:
            True if successful, False if the send failed or timed out.
        """
        try:
            await asyncio.wait_for(websocket.send_json(frame), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] Send of %s to %s timed out", self.name, frame.get("type"), connection_id
            )
            return False
        except Exception as e:
            logger.debug(f"[{self.name}] Failed to send to connection {connection_id}: {e}")
            return False

    async def drain(self) -> None:
        """Wait until every queued frame has been handed to its socket."""
        await asyncio.gather(*[outbox.join() for outbox in list(self.outboxes.values())])

    async def shutdown(self) -> None:
        """Cancel every writer; pending frames are discarded."""
        writers = list(self.writers.values())
        self.writers.clear()
        self.outboxes.clear()
        for writer in writers:
            writer.cancel()
        await asyncio.gather(*writers, return_exceptions=True)

    def connected_count(self) -> int:
        return len(self.connections)

    def online_users_count(self) -> int:
        return self.dispatcher.online_count()


class RelayHubs:
    """All namespace hubs of one relay process.

    Created once per application (see ``relay.main.create_app``) and stored
    on ``app.state.relay``; nothing here is module-global.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        config = config or AppConfig()
        realtime = config.realtime
        presence = config.presence

        factories = {
            "chat": lambda: ChatDispatcher(
                evict_superseded=presence.evict_superseded_connections,
                ledger_size=presence.read_ledger_size,
                ledger_messages=presence.read_ledger_messages,
            ),
            "refund": RefundDispatcher,
            "cancellation": CancellationDispatcher,
            "order": OrderDispatcher,
        }
        self.hubs: Dict[str, NamespaceHub] = {
            name: NamespaceHub(
                name,
                factories[name](),
                send_timeout=realtime.send_timeout_seconds,
                outbox_size=realtime.outbox_size,
            )
            for name in realtime.namespaces
        }

    def get(self, name: str) -> Optional[NamespaceHub]:
        return self.hubs.get(name)

    @property
    def namespaces(self) -> List[str]:
        return [f"/{name}" for name in self.hubs]

    def server_info(self) -> dict:
        return {
            "message": "Marketplace realtime relay",
            "namespaces": self.namespaces,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def server_status(self) -> Dict[str, dict]:
        """Per-namespace connected and online-user counts."""
        return {
            name: {
                "connected": hub.connected_count(),
                "online_users": hub.online_users_count(),
            }
            for name, hub in self.hubs.items()
        }

    async def shutdown(self) -> None:
        await asyncio.gather(*[hub.shutdown() for hub in self.hubs.values()])
