from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from farm_market.config import settings

# Без настроенного PostgreSQL работаем с локальным файлом SQLite
DATABASE_URL = settings.DATABASE_URL or "sqlite+aiosqlite:///./farm_market.db"

engine = create_async_engine(DATABASE_URL, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
