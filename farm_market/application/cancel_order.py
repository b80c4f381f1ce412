import logging

from farm_market.domain.models import Order, OrderStatus, User
from farm_market.domain.events import EventType, order_event_data
from farm_market.domain.exceptions import NotAuthorizedError
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    """Отмена покупателем. Остаток возвращается, только если заказ был подтвержден."""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id, for_update=True)
            if order.buyer_id != actor.id:
                raise NotAuthorizedError("Отменить заказ может только покупатель")

            previous = order.cancel()
            await uow.orders.save(order, expected_status=previous)

            if previous == OrderStatus.CONFIRMED:
                await uow.products.restore_stock(order.product_id, order.quantity)
                logger.info(f"Возвращено {order.quantity} ед. товара {order.product_id}")

            product = await uow.products.get_by_id(order.product_id)
            await uow.outbox.create(
                event_type=EventType.ORDER_CANCELLED.value,
                event_data=order_event_data(
                    order, product.name if product else None, cancelled_by=order.cancelled_by.value
                ),
                aggregate_id=order.id
            )
            await uow.commit()

        logger.info(f"Заказ {order.id} отменен покупателем (был {previous.value})")
        return order
