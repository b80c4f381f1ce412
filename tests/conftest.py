import uuid
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from farm_market.application.interfaces import EmailSender, PaymentsService
from farm_market.application.handle_event import HandleDomainEventUseCase
from farm_market.application.notify import NotifyUseCase
from farm_market.application.process_outbox import ProcessOutboxEventsUseCase
from farm_market.domain.exceptions import PaymentServiceError
from farm_market.domain.models import Product, ProductStatus, User, UserRole, utcnow
from farm_market.infrastructure.db_schema import metadata
from farm_market.infrastructure.event_bus import LocalEventPublisher
from farm_market.infrastructure.http_clients import HTTPPaymentsClient
from farm_market.infrastructure.realtime import ConnectionRegistry
from farm_market.infrastructure.unit_of_work import UnitOfWork

WEBHOOK_SECRET = "whsec_test"


class FakePaymentsService(PaymentsService):
    """Провайдер платежей в памяти; подпись вебхуков проверяется настоящим клиентом"""

    def __init__(self):
        self.intents = {}
        self.idempotency_keys = []
        self.unavailable = False
        self._verifier = HTTPPaymentsClient("http://payments.test", "sk_test", WEBHOOK_SECRET)

    async def create_payment_intent(self, amount, currency, metadata, idempotency_key):
        if self.unavailable:
            raise PaymentServiceError("Payment service не доступен")
        intent_id = f"pi_{len(self.intents) + 1}"
        self.intents[intent_id] = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "status": "requires_payment_method",
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "payment_method_types": ["card"],
        }
        self.idempotency_keys.append(idempotency_key)
        return dict(self.intents[intent_id])

    async def retrieve_payment_intent(self, payment_intent_id):
        if self.unavailable or payment_intent_id not in self.intents:
            raise PaymentServiceError(f"Намерение {payment_intent_id} не найдено")
        return dict(self.intents[payment_intent_id])

    def verify_webhook(self, payload, signature):
        return self._verifier.verify_webhook(payload, signature)

    def set_status(self, payment_intent_id, status):
        self.intents[payment_intent_id]["status"] = status


class FakeEmailSender(EmailSender):
    def __init__(self):
        self.sent = []
        self.broken = False

    async def send(self, to, subject, html):
        if self.broken:
            raise ConnectionError("SMTP недоступен")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


class FakeChannel:
    """Замена WebSocket: копит отправленные события"""

    def __init__(self, broken=False):
        self.messages = []
        self.broken = broken

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("соединение закрыто")
        self.messages.append(data)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow(engine):
    return UnitOfWork(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))


@pytest.fixture
def payments():
    return FakePaymentsService()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def notify(uow, registry, email_sender):
    return NotifyUseCase(uow, registry, email_sender, "http://farm.test")


@pytest.fixture
def event_handler(uow, notify):
    return HandleDomainEventUseCase(uow, notify)


@pytest.fixture
def drain_outbox(uow, event_handler):
    """Прогоняет outbox через обработчик уведомлений в этом же процессе"""
    use_case = ProcessOutboxEventsUseCase(uow, LocalEventPublisher(event_handler))

    async def _drain(limit=100):
        return await use_case(limit=limit)

    return _drain


@pytest.fixture
def make_user(uow):
    async def _make_user(role=UserRole.BUYER, name=None, email=None):
        user_id = str(uuid.uuid4())
        user = User(
            id=user_id,
            name=name or f"{role.value}-{user_id[:6]}",
            email=email if email is not None else f"{user_id[:8]}@farm.test",
            role=role,
            created_at=utcnow()
        )
        async with uow() as session:
            await session.users.create(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_product(uow):
    async def _make_product(farmer, price="10.00", quantity=10, name="Tomatoes", approved=True,
                            status=ProductStatus.ACTIVE):
        now = utcnow()
        product = Product(
            id=str(uuid.uuid4()),
            farmer_id=farmer.id,
            name=name,
            price=Decimal(price),
            quantity=quantity,
            status=status,
            is_approved=approved,
            created_at=now,
            updated_at=now
        )
        async with uow() as session:
            await session.products.create(product)
            await session.commit()
        return product

    return _make_product


@pytest.fixture
async def farmer(make_user):
    return await make_user(UserRole.FARMER, name="Alice Farmer")


@pytest.fixture
async def buyer(make_user):
    return await make_user(UserRole.BUYER, name="Bob Buyer")


@pytest.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN, name="Admin")


@pytest.fixture
async def product(make_product, farmer):
    return await make_product(farmer)
