from enum import Enum


class EventType(str, Enum):
    """Доменные события, которые пишутся в outbox вместе с изменением"""
    ORDER_CREATED = "order.created"
    ORDER_CONFIRMED = "order.confirmed"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_COMPLETED = "order.completed"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PRODUCT_CREATED = "product.created"
    PRICE_DROPPED = "wishlist.price_dropped"
    REVIEW_CREATED = "review.created"
    MESSAGE_SENT = "message.sent"


def order_event_data(order, product_name: str | None = None, **extra) -> dict:
    """Данные события заказа, достаточные для выбора получателя и текста уведомления"""
    data = {
        "order_id": order.id,
        "buyer_id": order.buyer_id,
        "farmer_id": order.farmer_id,
        "product_id": order.product_id,
        "product_name": product_name,
        "quantity": order.quantity,
        "total_price": str(order.total_price),
        "status": order.status.value,
    }
    data.update(extra)
    return data
