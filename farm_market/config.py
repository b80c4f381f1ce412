import os
from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    DATABASE_URL_OVERRIDE: str = os.getenv("DATABASE_URL", "")
    ORDER_TRANSACTION_TIMEOUT: float = float(os.getenv("ORDER_TRANSACTION_TIMEOUT", "5"))

    # API
    SERVICE_URL: str = os.getenv("SERVICE_URL", "http://localhost:8000")
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")

    # Payments (Stripe-compatible API)
    PAYMENTS_BASE_URL: str = os.getenv("PAYMENTS_BASE_URL", "https://api.stripe.com")
    PAYMENTS_API_KEY: str = os.getenv("PAYMENTS_API_KEY", "")
    PAYMENTS_WEBHOOK_SECRET: str = os.getenv("PAYMENTS_WEBHOOK_SECRET", "")
    PAYMENTS_CURRENCY: str = os.getenv("PAYMENTS_CURRENCY", "usd")

    # Email
    EMAIL_HOST: str = os.getenv("EMAIL_HOST", "")
    EMAIL_PORT: int = int(os.getenv("EMAIL_PORT", "587"))
    EMAIL_USER: str = os.getenv("EMAIL_USER", "")
    EMAIL_PASSWORD: str = os.getenv("EMAIL_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "")
    EMAIL_USE_TLS: bool = _get_bool("EMAIL_USE_TLS", True)

    # Events: "local" (обработчик в процессе) или "kafka"
    EVENT_TRANSPORT: str = os.getenv("EVENT_TRANSPORT", "local")
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    KAFKA_EVENTS_TOPIC: str = os.getenv("KAFKA_EVENTS_TOPIC", "farm_market.events")
    KAFKA_GROUP_ID: str = os.getenv("KAFKA_GROUP_ID", "farm-market-notifications")

    # Outbox worker
    RUN_OUTBOX_WORKER: bool = _get_bool("RUN_OUTBOX_WORKER", True)
    OUTBOX_POLL_INTERVAL: float = float(os.getenv("OUTBOX_POLL_INTERVAL", "2"))
    OUTBOX_BATCH_SIZE: int = int(os.getenv("OUTBOX_BATCH_SIZE", "20"))

    # Orders
    ESTIMATED_DELIVERY_DAYS: int = int(os.getenv("ESTIMATED_DELIVERY_DAYS", "7"))

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Синхронный URL для Alembic"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE.replace("postgresql+asyncpg://", "postgresql://")
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")

    @property
    def email_enabled(self) -> bool:
        return bool(self.EMAIL_HOST and self.EMAIL_USER)


settings = Settings()
