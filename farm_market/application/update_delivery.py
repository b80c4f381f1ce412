import logging
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from farm_market.domain.models import Order, DeliveryStatus, User, utcnow
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import NotAuthorizedError, InvalidOrderStatusError
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)


class UpdateDeliveryTrackingDTO(BaseModel):
    delivery_status: Optional[DeliveryStatus] = None
    tracking_number: Optional[str] = None
    delivery_service: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None


class UpdateDeliveryTrackingUseCase:
    """Обновление доставки фермером или администратором.

    Статус доставки пишется в общий журнал статусов заказа. ``delivered``
    завершает подтвержденный заказ и порождает order.completed.
    """

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str, dto: UpdateDeliveryTrackingDTO) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.farmer_id != actor.id and not actor.is_admin:
                raise NotAuthorizedError("Обновлять доставку может только фермер или администратор")

            expected = order.status
            completed = order.update_delivery(
                delivery_status=dto.delivery_status,
                tracking_number=dto.tracking_number,
                delivery_service=dto.delivery_service,
                scheduled_delivery_date=dto.scheduled_delivery_date
            )
            await uow.orders.save(order, expected_status=expected)

            if completed:
                product = await uow.products.get_by_id(order.product_id)
                await uow.outbox.create(
                    event_type=EventType.ORDER_COMPLETED.value,
                    event_data=order_event_data(order, product.name if product else None),
                    aggregate_id=order.id
                )
            await uow.commit()

        if completed:
            logger.info(f"Заказ {order.id} доставлен и завершен")
        else:
            logger.info(f"Доставка заказа {order.id} обновлена: {order.delivery_status.value}")
        return order


class UpdateEstimatedDeliveryDTO(BaseModel):
    estimated_delivery_date: datetime


class UpdateEstimatedDeliveryUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str, dto: UpdateEstimatedDeliveryDTO) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.farmer_id != actor.id:
                raise NotAuthorizedError("Менять дату доставки может только фермер")
            if order.is_terminal():
                raise InvalidOrderStatusError(order.status, "update_delivery_date")

            order.estimated_delivery_date = dto.estimated_delivery_date
            order.updated_at = utcnow()
            await uow.orders.save(order, expected_status=order.status)
            await uow.commit()

        logger.info(f"Ожидаемая дата доставки заказа {order.id}: {order.estimated_delivery_date}")
        return order
