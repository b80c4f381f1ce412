import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, Field

from farm_market.domain.models import Order, Product, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import (
    ProductNotFoundError, ProductUnavailableError, InsufficientStockError, BusinessRuleError, NotAuthorizedError
)
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise


logger = logging.getLogger(__name__)


class DeliveryInfoDTO(BaseModel):
    delivery_address: dict[str, Any] = Field(default_factory=dict)
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None


class PlaceOrderDTO(DeliveryInfoDTO):
    product_id: str
    quantity: int
    delivery_cost: Decimal = Decimal("0")


class OrderItemDTO(BaseModel):
    product_id: str
    quantity: int


class PlaceBulkOrderDTO(DeliveryInfoDTO):
    items: List[OrderItemDTO]


def check_can_order(buyer: User, product: Optional[Product], product_id: str, quantity: int) -> Product:
    """Проверки перед размещением заказа; остаток при этом не резервируется"""
    if not product:
        raise ProductNotFoundError(f"Товар {product_id} не найден")
    if not product.is_available():
        raise ProductUnavailableError(f"Товар {product.name} недоступен для заказа")
    if quantity < 1:
        raise BusinessRuleError("Количество должно быть не меньше 1", reason="invalid_quantity")
    if quantity > product.quantity:
        raise InsufficientStockError(product.quantity, quantity)
    if product.farmer_id == buyer.id:
        raise BusinessRuleError("Нельзя заказать собственный товар", reason="own_product")
    return product


class PlaceOrderUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, buyer: User, dto: PlaceOrderDTO) -> Order:
        logger.info(f"Создание заказа для пользователя {buyer.id}, товар {dto.product_id}")

        async with self._uow() as uow:
            product = await uow.products.get_by_id(dto.product_id)
            product = check_can_order(buyer, product, dto.product_id, dto.quantity)
            if dto.delivery_cost < 0:
                raise BusinessRuleError("Стоимость доставки не может быть отрицательной", reason="invalid_delivery_cost")

            order = Order.place(
                order_id=str(uuid.uuid4()),
                buyer_id=buyer.id,
                product=product,
                quantity=dto.quantity,
                delivery_cost=dto.delivery_cost,
                delivery_address=dto.delivery_address,
                contact_phone=dto.contact_phone,
                notes=dto.notes,
                scheduled_delivery_date=dto.scheduled_delivery_date,
            )
            await uow.orders.create(order)

            # Событие для уведомления фермера
            await uow.outbox.create(
                event_type=EventType.ORDER_CREATED.value,
                event_data=order_event_data(order, product.name, buyer_name=buyer.name),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ создан: {order.id}")
        return order


class PlaceBulkOrderUseCase:
    """Несколько заказов за один запрос: либо создаются все, либо ни одного"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, buyer: User, dto: PlaceBulkOrderDTO) -> List[Order]:
        if not dto.items:
            raise BusinessRuleError("Нужна хотя бы одна позиция", reason="empty_order")
        logger.info(f"Создание пакетного заказа для {buyer.id}: {len(dto.items)} позиций")

        async with self._uow() as uow:
            # 1. Сначала проверяем все позиции
            checked = []
            for item in dto.items:
                product = await uow.products.get_by_id(item.product_id)
                checked.append((check_can_order(buyer, product, item.product_id, item.quantity), item.quantity))

            # 2. Затем создаем заказы в той же транзакции
            orders = []
            for product, quantity in checked:
                order = Order.place(
                    order_id=str(uuid.uuid4()),
                    buyer_id=buyer.id,
                    product=product,
                    quantity=quantity,
                    created_note="Bulk order created",
                    delivery_address=dto.delivery_address,
                    contact_phone=dto.contact_phone,
                    notes=dto.notes,
                    scheduled_delivery_date=dto.scheduled_delivery_date,
                )
                await uow.orders.create(order)
                await uow.outbox.create(
                    event_type=EventType.ORDER_CREATED.value,
                    event_data=order_event_data(order, product.name, buyer_name=buyer.name),
                    aggregate_id=order.id
                )
                orders.append(order)

            await uow.commit()

        logger.info(f"Пакетный заказ создан: {[order.id for order in orders]}")
        return orders


class ReorderDTO(BaseModel):
    # Без количества повторяется количество исходного заказа
    quantity: Optional[int] = None


class ReorderUseCase:
    """Повтор заказа покупателя: тот же товар по текущей цене, адрес и телефон из исходного заказа"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, buyer: User, order_id: str, dto: ReorderDTO) -> Order:
        async with self._uow() as uow:
            original = await get_order_or_raise(uow, order_id)
            if original.buyer_id != buyer.id:
                raise NotAuthorizedError("Повторить можно только свой заказ")

            quantity = dto.quantity if dto.quantity is not None else original.quantity
            product = await uow.products.get_by_id(original.product_id)
            product = check_can_order(buyer, product, original.product_id, quantity)

            order = Order.place(
                order_id=str(uuid.uuid4()),
                buyer_id=buyer.id,
                product=product,
                quantity=quantity,
                created_note="Reorder from previous order",
                delivery_address=original.delivery_address,
                contact_phone=original.contact_phone,
                notes=f"Reorder from order #{original.id[:8]}",
            )
            await uow.orders.create(order)
            await uow.outbox.create(
                event_type=EventType.ORDER_CREATED.value,
                event_data=order_event_data(order, product.name, buyer_name=buyer.name),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} создан повтором заказа {original.id}")
        return order
