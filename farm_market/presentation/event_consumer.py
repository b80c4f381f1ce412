import asyncio
import logging

from farm_market.database import AsyncSessionLocal
from farm_market.infrastructure.unit_of_work import UnitOfWork
from farm_market.infrastructure.kafka_consumer import KafkaConsumerClient
from farm_market.presentation.dependencies import build_event_handler, connection_registry, get_email_sender
from farm_market.config import settings

logger = logging.getLogger(__name__)


async def event_consumer(push_transport=connection_registry):
    """Consumer доменных событий из Kafka: превращает их в уведомления"""
    logger.info("Event consumer запущен")

    uow = UnitOfWork(AsyncSessionLocal, settings.ORDER_TRANSACTION_TIMEOUT)
    handler = build_event_handler(uow, push_transport, get_email_sender())

    consumer = KafkaConsumerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.KAFKA_EVENTS_TOPIC, settings.KAFKA_GROUP_ID)
    await consumer.start()

    try:
        await consumer.consume(handler)
    finally:
        await consumer.stop()


async def main():
    await event_consumer()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
