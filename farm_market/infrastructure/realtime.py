import asyncio
import logging
from collections import defaultdict

from farm_market.application.interfaces import PushTransport

logger = logging.getLogger(__name__)


class ConnectionRegistry(PushTransport):
    """Живые WebSocket-соединения, сгруппированные по пользователю.

    Канал - любой объект с корутиной ``send_json(data)``. Канал, на котором
    отправка упала, снимается с регистрации.
    """

    def __init__(self):
        self._channels: dict[str, set] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def register(self, user_id: str, channel) -> None:
        async with self._lock:
            self._channels[user_id].add(channel)
        logger.info(f"Подключен канал пользователя {user_id}")

    async def unregister(self, user_id: str, channel) -> None:
        async with self._lock:
            channels = self._channels.get(user_id)
            if channels is None:
                return
            channels.discard(channel)
            if not channels:
                del self._channels[user_id]
        logger.info(f"Отключен канал пользователя {user_id}")

    async def push_to(self, user_id: str, event: dict) -> int:
        async with self._lock:
            channels = list(self._channels.get(user_id, ()))
        if not channels:
            return 0

        delivered = 0
        for channel in channels:
            try:
                await channel.send_json(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Канал пользователя {user_id} недоступен, снимаем: {e}")
                await self.unregister(user_id, channel)
        return delivered

    def connection_count(self, user_id: str) -> int:
        return len(self._channels.get(user_id, ()))
