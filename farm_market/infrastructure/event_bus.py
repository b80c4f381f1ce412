import logging
from typing import Awaitable, Callable

from farm_market.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class LocalEventPublisher(EventPublisher):
    """Передает событие обработчику в том же процессе"""

    def __init__(self, handler: Callable[[dict], Awaitable[None]]):
        self._handler = handler

    async def publish(self, event: dict) -> bool:
        await self._handler(event)
        return True
