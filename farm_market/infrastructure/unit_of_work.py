from contextlib import asynccontextmanager
from typing import Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from farm_market.infrastructure.repositories import (
    SQLAlchemyOrderRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyUserRepository,
    SQLAlchemyNotificationRepository,
    SQLAlchemyPreferenceRepository,
    SQLAlchemyFollowRepository,
    SQLAlchemyWishlistRepository,
    SQLAlchemyReviewRepository,
    SQLAlchemyMessageRepository,
    SQLAlchemyOutboxRepository,
    SQLAlchemyInboxRepository
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], statement_timeout: Optional[float] = None):
        self._session_factory = session_factory
        self._statement_timeout = statement_timeout

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                await self._apply_timeout(session)
                # Создаем реализацию с репозиториями
                uow_impl = _UnitOfWorkImpl(session)
                yield uow_impl  # Отдаем внутреннюю реализацию
                # Если commit не вызван, откатываем
                await session.rollback()
            except Exception:
                await session.rollback()
                raise

    async def _apply_timeout(self, session: AsyncSession) -> None:
        # Ограничение времени транзакции заказа; есть только в PostgreSQL
        if not self._statement_timeout or session.bind.dialect.name != "postgresql":
            return
        timeout_ms = int(self._statement_timeout * 1000)
        await session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.products = SQLAlchemyProductRepository(session)
        self.users = SQLAlchemyUserRepository(session)
        self.notifications = SQLAlchemyNotificationRepository(session)
        self.preferences = SQLAlchemyPreferenceRepository(session)
        self.follows = SQLAlchemyFollowRepository(session)
        self.wishlists = SQLAlchemyWishlistRepository(session)
        self.reviews = SQLAlchemyReviewRepository(session)
        self.messages = SQLAlchemyMessageRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)
        self.inbox = SQLAlchemyInboxRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
