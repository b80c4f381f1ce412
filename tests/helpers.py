"""Чтение состояния БД в тестах"""


async def load_product(uow, product_id):
    async with uow() as session:
        return await session.products.get_by_id(product_id)


async def load_order(uow, order_id):
    async with uow() as session:
        return await session.orders.get_by_id(order_id)


async def list_notifications(uow, user_id):
    async with uow() as session:
        items, _ = await session.notifications.list_for_user(user_id, False, limit=100, offset=0)
    return items


async def pending_events(uow):
    async with uow() as session:
        return await session.outbox.get_pending(limit=100)
