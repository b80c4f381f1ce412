import json
import logging
from aiokafka import AIOKafkaProducer

from farm_market.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class KafkaEventPublisher(EventPublisher):
    def __init__(self, bootstrap_servers: str, topic: str):
        self._bootstrap_servers = bootstrap_servers
        self._producer: AIOKafkaProducer | None = None
        self._topic = topic

    async def start(self):
        if not self._producer:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers
            )
            await self._producer.start()
            logger.info("Kafka producer started")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer stopped")

    async def publish(self, event: dict) -> bool:
        if not self._producer:
            logger.error("Kafka producer not started")
            return False

        try:
            await self._producer.send_and_wait(
                topic=self._topic,
                key=str(event.get("aggregate_id", "")).encode(),
                value=json.dumps(event, default=str).encode()
            )
            logger.info(f"Published {event.get('event_type')} for {event.get('aggregate_id')}")
            return True

        except Exception as e:
            logger.error(f"Failed to publish {event.get('event_type')}: {e}")
            return False
