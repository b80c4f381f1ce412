import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from farm_market.database import engine
from farm_market.infrastructure.db_schema import metadata
from farm_market.infrastructure.kafka_producer import KafkaEventPublisher
from farm_market.presentation.api import router
from farm_market.presentation.notifications_api import router as notifications_router, ws_router
from farm_market.presentation.catalog_api import router as catalog_router
from farm_market.presentation.dependencies import connection_registry
from farm_market.presentation.outbox_worker import build_publisher, outbox_worker
from farm_market.presentation.event_consumer import event_consumer
from farm_market.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    # 1. Создаем таблицы
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Таблицы созданы")

    # 2. Фоновые задачи: outbox worker и consumer событий
    tasks = []
    publisher = None
    if settings.RUN_OUTBOX_WORKER:
        publisher = build_publisher()
        if isinstance(publisher, KafkaEventPublisher):
            await publisher.start()
        tasks.append(asyncio.create_task(
            outbox_worker(publisher, settings.OUTBOX_POLL_INTERVAL, settings.OUTBOX_BATCH_SIZE)
        ))
        logger.info("Outbox worker запущен")

    if settings.EVENT_TRANSPORT == "kafka":
        tasks.append(asyncio.create_task(event_consumer(connection_registry)))
        logger.info("Kafka consumer запущен")

    yield

    logger.info("Приложение останавливается...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    if isinstance(publisher, KafkaEventPublisher):
        await publisher.stop()
    await engine.dispose()


app = FastAPI(
    title="Farm Market",
    description="Заказы фермерской площадки и уведомления",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(catalog_router, prefix="/api")
app.include_router(ws_router)


@app.get("/health")
async def health():
    return {"status": "healthy", "event_transport": settings.EVENT_TRANSPORT}
