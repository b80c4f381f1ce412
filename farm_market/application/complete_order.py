import logging

from farm_market.domain.models import Order, OrderStatus, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import NotAuthorizedError
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)


class CompleteOrderUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.farmer_id != actor.id:
                raise NotAuthorizedError("Завершить заказ может только фермер")

            order.complete()
            await uow.orders.save(order, expected_status=OrderStatus.CONFIRMED)

            product = await uow.products.get_by_id(order.product_id)
            await uow.outbox.create(
                event_type=EventType.ORDER_COMPLETED.value,
                event_data=order_event_data(order, product.name if product else None),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} завершен")
        return order
