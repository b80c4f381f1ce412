import math
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from farm_market.domain.models import Order, OrderStatus, StatusHistoryEntry, User, UserRole
from farm_market.domain.exceptions import OrderNotFoundError, NotAuthorizedError, BusinessRuleError
from farm_market.application.interfaces import UnitOfWork


ORDER_SORTS = ("newest", "oldest", "status", "price")


async def get_order_or_raise(uow, order_id: str, for_update: bool = False) -> Order:
    if for_update:
        order = await uow.orders.get_for_update(order_id)
    else:
        order = await uow.orders.get_by_id(order_id)
    if not order:
        raise OrderNotFoundError(f"Заказ {order_id} не найден")
    return order


class GetOrderUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id)
        if not order.is_participant(actor):
            raise NotAuthorizedError("Нет доступа к заказу")
        return order


class ListOrdersDTO(BaseModel):
    status: Optional[OrderStatus] = None
    product_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    # Только для администратора
    farmer_id: Optional[str] = None
    buyer_id: Optional[str] = None
    sort_by: str = "newest"
    page: int = 1
    limit: int = 20


class OrderPage(BaseModel):
    items: List[Order]
    total: int
    page: int
    total_pages: int


class ListOrdersUseCase:
    """Фермер видит свои продажи, покупатель свои покупки, администратор все"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, dto: ListOrdersDTO) -> OrderPage:
        if dto.page < 1 or dto.limit < 1:
            raise BusinessRuleError("page и limit должны быть положительными", reason="invalid_paging")
        if dto.sort_by not in ORDER_SORTS:
            raise BusinessRuleError(f"Неизвестная сортировка {dto.sort_by}", reason="invalid_sort")

        filters = {
            "status": dto.status.value if dto.status else None,
            "product_id": dto.product_id,
            "date_from": dto.date_from,
            "date_to": dto.date_to,
        }
        if actor.role == UserRole.FARMER:
            filters["farmer_id"] = actor.id
        elif actor.role == UserRole.BUYER:
            filters["buyer_id"] = actor.id
        else:
            filters["farmer_id"] = dto.farmer_id
            filters["buyer_id"] = dto.buyer_id

        async with self._uow() as uow:
            items, total = await uow.orders.list(
                filters, dto.sort_by, limit=dto.limit, offset=(dto.page - 1) * dto.limit
            )

        return OrderPage(
            items=items,
            total=total,
            page=dto.page,
            total_pages=math.ceil(total / dto.limit)
        )


class OrderTracking(BaseModel):
    order: Order
    timeline: List[StatusHistoryEntry]


class GetOrderTrackingUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, order_id: str) -> OrderTracking:
        async with self._uow() as uow:
            order = await get_order_or_raise(uow, order_id)
        if not order.is_participant(actor):
            raise NotAuthorizedError("Нет доступа к заказу")
        return OrderTracking(order=order, timeline=order.tracking_timeline())
