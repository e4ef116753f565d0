"""Tests for namespace hubs and effect delivery."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from relay.chat.dispatcher import ChatDispatcher
from relay.config import AppConfig
from relay.realtime.effects import Emit
from relay.realtime.hub import CLOSE_SLOW_CONSUMER, NamespaceHub, RelayHubs


def fake_socket():
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


def stalled_socket(seconds):
    """A socket whose every send blocks for ``seconds``."""
    websocket = fake_socket()

    async def stall(frame):
        await asyncio.sleep(seconds)

    websocket.send_json = AsyncMock(side_effect=stall)
    return websocket


def sent_types(websocket):
    return [call.args[0]["type"] for call in websocket.send_json.await_args_list]


@pytest.fixture
def hub():
    return NamespaceHub("chat", ChatDispatcher(), send_timeout=0.05)


class TestNamespaceHub:
    @pytest.mark.asyncio
    async def test_connect_accepts_and_starts_writer(self, hub):
        websocket = fake_socket()
        connection_id = await hub.connect(websocket)

        websocket.accept.assert_awaited_once()
        assert hub.connections[connection_id] is websocket
        assert connection_id in hub.writers
        assert hub.connected_count() == 1
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_connection(self, hub):
        first, second = fake_socket(), fake_socket()
        await hub.connect(first)
        await hub.connect(second)

        await hub.deliver([Emit.to_all("online_users_update", {"users": []})])
        await hub.drain()

        frame = {"type": "online_users_update", "data": {"users": []}}
        first.send_json.assert_awaited_once_with(frame)
        second.send_json.assert_awaited_once_with(frame)
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_unicast_skips_unknown_connections(self, hub):
        websocket = fake_socket()
        connection_id = await hub.connect(websocket)

        await hub.deliver([Emit.to_connections([connection_id, "gone"], "x", 1)])
        await hub.drain()

        websocket.send_json.assert_awaited_once_with({"type": "x", "data": 1})
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_frames_keep_handler_order(self, hub):
        websocket = fake_socket()
        connection_id = await hub.connect(websocket)

        await hub.deliver([
            Emit.to_connection(connection_id, "first", None),
            Emit.to_all("second", None),
            Emit.to_connection(connection_id, "third", None),
        ])
        await hub.drain()

        assert sent_types(websocket) == ["first", "second", "third"]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_stalled_client_does_not_delay_others(self):
        """A later effect reaches a fast client while a slow one is still sending."""
        hub = NamespaceHub("chat", ChatDispatcher(), send_timeout=5)
        slow, fast = stalled_socket(1), fake_socket()
        await hub.connect(slow)
        fast_id = await hub.connect(fast)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await hub.deliver([Emit.to_all("a", None), Emit.to_connection(fast_id, "b", None)])
        assert loop.time() - started < 0.1

        for _ in range(50):
            if "b" in sent_types(fast):
                break
            await asyncio.sleep(0.005)
        assert sent_types(fast) == ["a", "b"]
        assert loop.time() - started < 0.5
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_timed_out_writer_closes_its_socket(self, hub):
        slow, fast = stalled_socket(1), fake_socket()
        slow_id = await hub.connect(slow)
        await hub.connect(fast)

        await hub.deliver([Emit.to_all("ping", None)])
        await hub.writers[slow_id]

        slow.close.assert_awaited_once_with(code=CLOSE_SLOW_CONSUMER)
        assert slow_id not in hub.outboxes
        await hub.drain()
        fast.send_json.assert_awaited_once()

        # Nothing more is queued for the closed socket.
        await hub.deliver([Emit.to_all("pong", None)])
        await hub.drain()
        assert sent_types(slow) == ["ping"]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_failed_send_does_not_block_others(self, hub):
        broken, healthy = fake_socket(), fake_socket()
        broken.send_json = AsyncMock(side_effect=RuntimeError("closed"))
        await hub.connect(broken)
        await hub.connect(healthy)

        await hub.deliver([Emit.to_all("ping", None)])
        await hub.drain()

        healthy.send_json.assert_awaited_once()
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_full_outbox_drops_frames(self):
        hub = NamespaceHub("chat", ChatDispatcher(), send_timeout=5, outbox_size=2)
        slow = stalled_socket(0.2)
        slow_id = await hub.connect(slow)
        await hub.deliver([Emit.to_connection(slow_id, "first", None)])
        for _ in range(3):
            await asyncio.sleep(0)

        # "first" is in flight; two more fit in the outbox, the rest are dropped.
        await hub.deliver([Emit.to_connection(slow_id, str(n), None) for n in range(5)])

        assert hub.outboxes[slow_id].qsize() == 2
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_disconnect_stops_writer_and_runs_teardown(self, hub):
        seller, buyer = fake_socket(), fake_socket()
        seller_id = await hub.connect(seller)
        await hub.connect(buyer)
        await hub.handle(seller_id, "user_connect", {"userId": "toko_1"})
        await hub.drain()
        buyer.send_json.reset_mock()
        writer = hub.writers[seller_id]

        await hub.disconnect(seller_id)
        await hub.drain()

        assert writer.done()
        assert sent_types(buyer) == ["user_disconnected", "online_users_update"]
        assert hub.online_users_count() == 0
        assert seller_id not in hub.connections
        assert seller_id not in hub.outboxes
        await hub.shutdown()


class TestRelayHubs:
    def test_builds_configured_namespaces(self):
        relay = RelayHubs(AppConfig.model_validate({"realtime": {"namespaces": ["chat", "order"]}}))

        assert relay.namespaces == ["/chat", "/order"]
        assert relay.get("refund") is None
        assert relay.server_status() == {
            "chat": {"connected": 0, "online_users": 0},
            "order": {"connected": 0, "online_users": 0},
        }

    def test_settings_reach_hubs(self):
        relay = RelayHubs(AppConfig.model_validate({
            "realtime": {"outbox_size": 8},
            "presence": {
                "evict_superseded_connections": False,
                "read_ledger_size": 5,
                "read_ledger_messages": 7,
            },
        }))

        hub = relay.get("chat")
        assert hub.outbox_size == 8
        assert hub.dispatcher.state.evict_superseded is False
        assert hub.dispatcher.state.ledger.max_conversations == 5
        assert hub.dispatcher.state.ledger.max_messages == 7

    def test_server_info(self):
        info = RelayHubs().server_info()
        assert info["namespaces"] == ["/chat", "/refund", "/cancellation", "/order"]
        assert "timestamp" in info
