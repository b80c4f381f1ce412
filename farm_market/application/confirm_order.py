import logging
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from farm_market.domain.models import Order, OrderStatus, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import (
    NotAuthorizedError, InvalidOrderStatusError, InsufficientStockError, ProductNotFoundError
)
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)


class ConfirmOrderDTO(BaseModel):
    farmer_notes: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None


class ConfirmOrderUseCase:
    """Фермер подтверждает заказ; остаток списывается в той же транзакции"""

    def __init__(self, unit_of_work: UnitOfWork, delivery_days: int = 7):
        self._uow = unit_of_work
        self._delivery_days = delivery_days

    async def __call__(self, actor: User, order_id: str, dto: Optional[ConfirmOrderDTO] = None) -> Order:
        dto = dto or ConfirmOrderDTO()
        logger.info(f"Подтверждение заказа {order_id} фермером {actor.id}")

        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.farmer_id != actor.id:
                raise NotAuthorizedError("Подтвердить заказ может только фермер")
            if not order.can_transition_to(OrderStatus.CONFIRMED):
                raise InvalidOrderStatusError(order.status, "confirm")

            product = await uow.products.get_by_id(order.product_id)
            if not product:
                raise ProductNotFoundError(f"Товар {order.product_id} не найден")
            if product.quantity < order.quantity:
                raise InsufficientStockError(product.quantity, order.quantity)

            order.confirm(
                notes=dto.farmer_notes,
                estimated_delivery_date=dto.estimated_delivery_date,
                delivery_days=self._delivery_days
            )
            await uow.orders.save(order, expected_status=OrderStatus.PENDING)

            # Условное списание: параллельное подтверждение могло забрать остаток
            if not await uow.products.reserve_stock(order.product_id, order.quantity):
                current = await uow.products.get_by_id(order.product_id)
                raise InsufficientStockError(current.quantity if current else 0, order.quantity)

            await uow.outbox.create(
                event_type=EventType.ORDER_CONFIRMED.value,
                event_data=order_event_data(order, product.name),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} подтвержден, списано {order.quantity} ед. товара {order.product_id}")
        return order
