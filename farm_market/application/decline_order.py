import logging
from typing import Optional
from pydantic import BaseModel

from farm_market.domain.models import Order, OrderStatus, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import NotAuthorizedError
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)


class DeclineOrderDTO(BaseModel):
    farmer_notes: Optional[str] = None


class DeclineOrderUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str, dto: Optional[DeclineOrderDTO] = None) -> Order:
        dto = dto or DeclineOrderDTO()

        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.farmer_id != actor.id:
                raise NotAuthorizedError("Отклонить заказ может только фермер")

            order.decline(notes=dto.farmer_notes)
            await uow.orders.save(order, expected_status=OrderStatus.PENDING)

            product = await uow.products.get_by_id(order.product_id)
            await uow.outbox.create(
                event_type=EventType.ORDER_CANCELLED.value,
                event_data=order_event_data(
                    order, product.name if product else None, cancelled_by=order.cancelled_by.value
                ),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} отклонен фермером")
        return order
