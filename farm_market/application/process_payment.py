import logging
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from farm_market.domain.models import Order, PaymentStatus, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import (
    NotAuthorizedError, InvalidOrderStatusError, BusinessRuleError, PaymentMismatchError,
    PaymentServiceError
)
from farm_market.application.interfaces import UnitOfWork, PaymentsService
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)

# Минимальная сумма платежа провайдера, в центах
MIN_CHARGE_CENTS = 50

WEBHOOK_PAYMENT_STATUSES = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
}


def to_cents(amount: Decimal) -> int:
    cents = (amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(MIN_CHARGE_CENTS, int(cents))


def provider_status(intent: dict) -> PaymentStatus:
    """Статус намерения провайдера → статус оплаты заказа"""
    status = intent.get("status")
    if status == "succeeded":
        return PaymentStatus.SUCCEEDED
    if status == "processing":
        return PaymentStatus.PROCESSING
    return PaymentStatus.FAILED


def payment_method_of(intent: dict) -> str:
    methods = intent.get("payment_method_types") or []
    return methods[0] if methods else "card"


async def record_payment_result(uow, order: Order, status: PaymentStatus, payment_method: Optional[str] = None) -> bool:
    """Фиксирует результат платежа в открытой транзакции.

    Статус заказа не меняется. Повторный успех и поздние сигналы после
    успеха игнорируются. Запись идет с условием payment_status <> succeeded,
    поэтому устаревшая копия заказа не создаст второе событие payment.succeeded.
    """
    if order.is_paid():
        if status != PaymentStatus.SUCCEEDED:
            logger.warning(f"Заказ {order.id} уже оплачен, сигнал {status.value} проигнорирован")
        else:
            logger.info(f"Оплата заказа {order.id} уже зафиксирована")
        return False

    first_success = order.record_payment_result(status, payment_method)
    if not await uow.orders.record_payment(order):
        logger.info(f"Оплата заказа {order.id} уже зафиксирована параллельно, сигнал {status.value} пропущен")
        return False

    if first_success:
        product = await uow.products.get_by_id(order.product_id)
        await uow.outbox.create(
            event_type=EventType.PAYMENT_SUCCEEDED.value,
            event_data=order_event_data(order, product.name if product else None),
            aggregate_id=order.id
        )
        logger.info(f"Заказ {order.id} оплачен ({order.payment_method})")
    else:
        logger.info(f"Статус оплаты заказа {order.id}: {status.value}")
    return first_success


class PaymentIntentResult(BaseModel):
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    status: str
    amount: Optional[int] = None
    currency: Optional[str] = None


class RecordPaymentResultUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, status: PaymentStatus, payment_method: Optional[str] = None) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            await record_payment_result(uow, order, status, payment_method)
            await uow.commit()
        return order


class CreatePaymentIntentUseCase:
    def __init__(self, unit_of_work: UnitOfWork, payments_service: PaymentsService, currency: str = "usd"):
        self._uow = unit_of_work
        self._payments = payments_service
        self._currency = currency

    async def __call__(self, actor: User, order_id: str) -> PaymentIntentResult:
        logger.info(f"Создание платежного намерения для заказа {order_id}, пользователь {actor.id}")

        # 1. Проверки
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id)
        if order.buyer_id != actor.id:
            raise NotAuthorizedError("Оплатить заказ может только покупатель")
        if order.is_paid():
            logger.info(f"Заказ {order.id} уже оплачен")
            return PaymentIntentResult(payment_intent_id=order.payment_intent_id, status="succeeded")
        if not order.can_be_paid():
            raise InvalidOrderStatusError(order.status, "pay")
        if order.total_price <= 0:
            raise BusinessRuleError("Некорректная сумма заказа", reason="invalid_amount")

        # 2. Уже созданное намерение переиспользуем
        if order.payment_intent_id:
            try:
                intent = await self._payments.retrieve_payment_intent(order.payment_intent_id)
            except PaymentServiceError as e:
                logger.warning(f"Намерение {order.payment_intent_id} не получено, создаем новое: {e}")
                intent = None

            if intent and intent.get("status") == "succeeded":
                await self._record(order.id, intent)
                return self._result(intent)
            if intent:
                return self._result(intent)

        # 3. Новое намерение
        amount = to_cents(order.total_price)
        intent = await self._payments.create_payment_intent(
            amount=amount,
            currency=self._currency,
            metadata={"order_id": order.id, "buyer_id": order.buyer_id, "farmer_id": order.farmer_id},
            idempotency_key=f"order_{order.id}_{order.payment_intent_id or 'new'}"
        )

        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            order.attach_payment_intent(intent["id"], order.total_price)
            await uow.orders.save(order, expected_status=order.status)
            await uow.commit()

        logger.info(f"Платежное намерение {intent['id']} создано для заказа {order.id}: {amount} центов")
        return self._result(intent)

    async def _record(self, order_id: str, intent: dict) -> None:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            await record_payment_result(uow, order, PaymentStatus.SUCCEEDED, payment_method_of(intent))
            await uow.commit()

    def _result(self, intent: dict) -> PaymentIntentResult:
        return PaymentIntentResult(
            payment_intent_id=intent.get("id"),
            client_secret=intent.get("client_secret"),
            status=intent.get("status", "requires_payment_method"),
            amount=intent.get("amount"),
            currency=intent.get("currency")
        )


class PaymentConfirmation(BaseModel):
    order: Order
    payment_status: PaymentStatus
    provider_status: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.payment_status != PaymentStatus.FAILED


class ConfirmPaymentUseCase:
    """Покупатель сообщает о завершении оплаты; результат берется у провайдера"""

    def __init__(self, unit_of_work: UnitOfWork, payments_service: PaymentsService):
        self._uow = unit_of_work
        self._payments = payments_service

    async def __call__(self, actor: User, order_id: str, payment_intent_id: str) -> PaymentConfirmation:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id)
        if order.buyer_id != actor.id:
            raise NotAuthorizedError("Подтвердить оплату может только покупатель")
        if order.payment_intent_id != payment_intent_id:
            raise PaymentMismatchError("Платежное намерение не соответствует заказу")

        intent = await self._payments.retrieve_payment_intent(payment_intent_id)
        status = provider_status(intent)

        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            await record_payment_result(uow, order, status, payment_method_of(intent))
            await uow.commit()

        return PaymentConfirmation(order=order, payment_status=order.payment_status, provider_status=intent.get("status"))


class ProcessPaymentWebhookUseCase:
    """Вебхук провайдера: проверка подписи, дедупликация через inbox, запись результата"""

    def __init__(self, unit_of_work: UnitOfWork, payments_service: PaymentsService):
        self._uow = unit_of_work
        self._payments = payments_service

    async def __call__(self, payload: bytes, signature: str) -> dict:
        event = self._payments.verify_webhook(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type", "")
        intent = (event.get("data") or {}).get("object") or {}
        if not event_id:
            raise BusinessRuleError("В событии нет id", reason="invalid_event")

        async with self._uow() as uow:
            # Идемпотентность
            if await uow.inbox.is_processed(event_id):
                logger.info(f"Событие {event_id} уже обработано")
                return {"received": True, "duplicate": True}

            inbox_id = await uow.inbox.create(
                event_type=event_type,
                event_data=event,
                aggregate_id=intent.get("id"),
                idempotency_key=event_id
            )

            status = WEBHOOK_PAYMENT_STATUSES.get(event_type)
            if status is None:
                logger.info(f"Необрабатываемый тип события {event_type}")
            else:
                order = await uow.orders.get_by_payment_intent(intent.get("id", ""), for_update=True)
                if order:
                    await record_payment_result(uow, order, status, payment_method_of(intent))
                else:
                    logger.warning(f"Заказ с намерением {intent.get('id')} не найден")

            await uow.inbox.mark_as_processed(inbox_id)
            await uow.commit()

        return {"received": True}


class PaymentStatusView(BaseModel):
    order_id: str
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_intent: Optional[dict] = None


class GetPaymentStatusUseCase:
    def __init__(self, unit_of_work: UnitOfWork, payments_service: PaymentsService):
        self._uow = unit_of_work
        self._payments = payments_service

    async def __call__(self, actor: User, order_id: str) -> PaymentStatusView:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id)
        if actor.id not in (order.buyer_id, order.farmer_id):
            raise NotAuthorizedError("Нет доступа к оплате заказа")

        intent_view = None
        if order.payment_intent_id:
            try:
                intent = await self._payments.retrieve_payment_intent(order.payment_intent_id)
                intent_view = {
                    "status": intent.get("status"),
                    "amount": (intent.get("amount") or 0) / 100,
                    "currency": intent.get("currency"),
                }
            except PaymentServiceError as e:
                logger.error(f"Не удалось получить намерение {order.payment_intent_id}: {e}")

        return PaymentStatusView(
            order_id=order.id,
            payment_status=order.payment_status,
            payment_intent_id=order.payment_intent_id,
            payment_amount=order.payment_amount,
            payment_method=order.payment_method,
            paid_at=order.paid_at,
            payment_intent=intent_view
        )
