import logging
import json

from farm_market.application.interfaces import UnitOfWork, EventPublisher

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    def __init__(self, unit_of_work: UnitOfWork, event_publisher: EventPublisher):
        self._uow = unit_of_work
        self._publisher = event_publisher

    async def __call__(self, limit: int = 20) -> int:
        """Обрабатывает pending события из outbox. Возвращает количество опубликованных."""

        async with self._uow() as uow:
            pending = await uow.outbox.get_pending(limit=limit)

        published_count = 0
        for event in pending:
            if isinstance(event["event_data"], str):
                event["event_data"] = json.loads(event["event_data"])

            try:
                published = await self._publisher.publish(event)
            except Exception as e:
                # Доставку уведомлений не повторяем: событие все равно считается опубликованным
                logger.error(f"Ошибка обработки outbox event {event['id']}: {e}", exc_info=True)
                published = True

            if not published:
                logger.warning(f"Событие {event['id']} не опубликовано, повтор на следующем цикле")
                continue

            async with self._uow() as uow:
                await uow.outbox.mark_as_published(event["id"])
                await uow.commit()
            published_count += 1
            logger.info(f"Опубликовано {event['event_type']} event {event['id']}")

        return published_count
