import asyncio
import logging

from farm_market.database import AsyncSessionLocal
from farm_market.infrastructure.unit_of_work import UnitOfWork
from farm_market.infrastructure.event_bus import LocalEventPublisher
from farm_market.infrastructure.kafka_producer import KafkaEventPublisher
from farm_market.application.interfaces import EventPublisher
from farm_market.application.process_outbox import ProcessOutboxEventsUseCase
from farm_market.presentation.dependencies import build_event_handler, connection_registry, get_email_sender
from farm_market.config import settings

logger = logging.getLogger(__name__)


def build_publisher() -> EventPublisher:
    """Kafka или обработчик уведомлений в этом же процессе"""
    if settings.EVENT_TRANSPORT == "kafka":
        return KafkaEventPublisher(settings.KAFKA_BOOTSTRAP_SERVERS, settings.KAFKA_EVENTS_TOPIC)
    uow = UnitOfWork(AsyncSessionLocal, settings.ORDER_TRANSACTION_TIMEOUT)
    handler = build_event_handler(uow, connection_registry, get_email_sender())
    return LocalEventPublisher(handler)


async def outbox_worker(publisher: EventPublisher, poll_interval: float = 2, batch_size: int = 20):
    """Worker для обработки outbox событий"""
    logger.info("Outbox worker запущен")

    while True:
        try:
            # UoW и use case создаются на каждую итерацию
            uow = UnitOfWork(AsyncSessionLocal, settings.ORDER_TRANSACTION_TIMEOUT)
            use_case = ProcessOutboxEventsUseCase(unit_of_work=uow, event_publisher=publisher)

            processed = await use_case(limit=batch_size)
            if processed:
                logger.info(f"Обработано {processed} outbox events")

            await asyncio.sleep(poll_interval)

        except asyncio.CancelledError:
            logger.info("Outbox worker остановлен")
            raise
        except Exception as e:
            logger.error(f"Ошибка в outbox worker: {e}", exc_info=True)
            await asyncio.sleep(poll_interval * 5)


async def main():
    publisher = build_publisher()
    if isinstance(publisher, KafkaEventPublisher):
        await publisher.start()
    try:
        await outbox_worker(publisher, settings.OUTBOX_POLL_INTERVAL, settings.OUTBOX_BATCH_SIZE)
    finally:
        if isinstance(publisher, KafkaEventPublisher):
            await publisher.stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
