"""Tests for the per-user connection registry and the notifications WebSocket endpoint."""

from fastapi import WebSocketDisconnect, status

from farm_market.domain.notifications import NotificationType
from farm_market.presentation.notifications_api import notifications_socket

from conftest import FakeChannel


class FakeWebSocket(FakeChannel):
    """Клиент, который отправляет несколько сообщений и отключается"""

    def __init__(self, incoming=()):
        super().__init__()
        self.accepted = False
        self.close_code = None
        self._incoming = list(incoming)

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        self.close_code = code

    async def receive_text(self):
        if not self._incoming:
            raise WebSocketDisconnect()
        return self._incoming.pop(0)


class TestConnectionRegistry:
    async def test_push_reaches_only_target_user(self, registry):
        alice, bob = FakeChannel(), FakeChannel()
        await registry.register("alice", alice)
        await registry.register("bob", bob)

        delivered = await registry.push_to("alice", {"title": "hi"})

        assert delivered == 1
        assert alice.messages == [{"title": "hi"}]
        assert bob.messages == []

    async def test_push_without_connections(self, registry):
        assert await registry.push_to("nobody", {"title": "hi"}) == 0

    async def test_broken_channel_is_dropped(self, registry):
        healthy, broken = FakeChannel(), FakeChannel(broken=True)
        await registry.register("alice", healthy)
        await registry.register("alice", broken)

        assert await registry.push_to("alice", {"title": "hi"}) == 1
        assert registry.connection_count("alice") == 1

    async def test_unregister_last_channel(self, registry):
        channel = FakeChannel()
        await registry.register("alice", channel)
        await registry.unregister("alice", channel)
        await registry.unregister("alice", channel)

        assert registry.connection_count("alice") == 0


class TestNotificationsSocket:
    async def test_connection_lives_until_disconnect(self, uow, registry, buyer):
        websocket = FakeWebSocket(incoming=["ping", "ping"])

        await notifications_socket(websocket, user_id=buyer.id, registry=registry, uow=uow)

        assert websocket.accepted
        assert websocket.close_code is None
        assert registry.connection_count(buyer.id) == 0

    async def test_unknown_user_is_rejected(self, uow, registry):
        websocket = FakeWebSocket(incoming=["ping"])

        await notifications_socket(websocket, user_id="ghost", registry=registry, uow=uow)

        assert not websocket.accepted
        assert websocket.close_code == status.WS_1008_POLICY_VIOLATION
        assert registry.connection_count("ghost") == 0

    async def test_registered_while_open(self, uow, registry, buyer):
        seen = []

        class ObservingWebSocket(FakeWebSocket):
            async def receive_text(self):
                seen.append(registry.connection_count(buyer.id))
                return await super().receive_text()

        await notifications_socket(ObservingWebSocket(incoming=["ping"]), user_id=buyer.id, registry=registry, uow=uow)

        assert seen == [1, 1]

    async def test_notification_is_pushed_while_connected(self, registry, notify, buyer):
        websocket = FakeWebSocket()
        await registry.register(buyer.id, websocket)

        notification = await notify(buyer.id, NotificationType.NEW_PRODUCT, "New Product Available", "Kale")

        assert websocket.messages[0]["id"] == notification.id
        assert websocket.messages[0]["title"] == "New Product Available"
