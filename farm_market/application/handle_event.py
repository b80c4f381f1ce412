import json
import logging
from decimal import Decimal
from typing import List

from farm_market.domain.events import EventType
from farm_market.domain.models import CancellationActor
from farm_market.domain.notifications import Notification, NotificationType
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.notify import NotifyUseCase

logger = logging.getLogger(__name__)


def _order_data(data: dict) -> dict:
    return {
        "orderId": data.get("order_id"),
        "productId": data.get("product_id"),
        "buyerId": data.get("buyer_id"),
        "farmerId": data.get("farmer_id"),
        "url": "/orders",
    }


class HandleDomainEventUseCase:
    """Выбирает получателей доменного события и уведомляет каждого"""

    def __init__(self, unit_of_work: UnitOfWork, notify: NotifyUseCase):
        self._uow = unit_of_work
        self._notify = notify
        self._handlers = {
            EventType.ORDER_CREATED.value: self._order_created,
            EventType.ORDER_CONFIRMED.value: self._order_confirmed,
            EventType.ORDER_COMPLETED.value: self._order_completed,
            EventType.ORDER_CANCELLED.value: self._order_cancelled,
            EventType.PAYMENT_SUCCEEDED.value: self._payment_succeeded,
            EventType.PRODUCT_CREATED.value: self._product_created,
            EventType.PRICE_DROPPED.value: self._price_dropped,
            EventType.REVIEW_CREATED.value: self._review_created,
            EventType.MESSAGE_SENT.value: self._message_sent,
        }

    async def __call__(self, event: dict) -> List[Notification]:
        event_type = event.get("event_type")
        data = event.get("event_data") or {}
        if isinstance(data, str):
            data = json.loads(data)

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.warning(f"Нет обработчика для события {event_type}")
            return []

        notifications = await handler(data)
        created = [n for n in notifications if n is not None]
        logger.info(f"Событие {event_type} ({event.get('id')}): уведомлений {len(created)}")
        return created

    async def _order_created(self, data: dict):
        product = data.get("product_name") or "a product"
        buyer = data.get("buyer_name") or "a buyer"
        return [await self._notify(
            data["farmer_id"],
            NotificationType.NEW_ORDER,
            "New Order Received",
            f"You have a new order for {product} from {buyer}",
            _order_data(data)
        )]

    async def _order_confirmed(self, data: dict):
        product = data.get("product_name") or "your product"
        return [await self._notify(
            data["buyer_id"],
            NotificationType.ORDER_CONFIRMED,
            "Order Confirmed",
            f"Your order has been confirmed for {product}",
            _order_data(data)
        )]

    async def _order_completed(self, data: dict):
        product = data.get("product_name") or "your product"
        return [await self._notify(
            data["buyer_id"],
            NotificationType.ORDER_COMPLETED,
            "Order Completed",
            f"Your order has been completed for {product}",
            _order_data(data)
        )]

    async def _order_cancelled(self, data: dict):
        # Уведомляем вторую сторону: отказ фермера → покупателю, отмена покупателем → фермеру
        product = data.get("product_name") or "your product"
        if data.get("cancelled_by") == CancellationActor.FARMER.value:
            recipient = data["buyer_id"]
            message = f"Your order has been cancelled for {product}"
        else:
            recipient = data["farmer_id"]
            message = f"An order for {product} has been cancelled by the buyer"
        return [await self._notify(
            recipient,
            NotificationType.ORDER_CANCELLED,
            "Order Cancelled",
            message,
            {**_order_data(data), "cancelledBy": data.get("cancelled_by")}
        )]

    async def _payment_succeeded(self, data: dict):
        product = data.get("product_name") or "your order"
        return [await self._notify(
            data["buyer_id"],
            NotificationType.PAYMENT_SUCCEEDED,
            "Payment Received",
            f"Your payment for {product} was successful. Order ID: {data['order_id']}.",
            _order_data(data)
        )]

    async def _product_created(self, data: dict):
        async with self._uow() as uow:
            follower_ids = await uow.follows.list_follower_ids(data["farmer_id"])

        farmer = data.get("farmer_name") or "A farmer"
        notifications = []
        for follower_id in follower_ids:
            notifications.append(await self._notify(
                follower_id,
                NotificationType.NEW_PRODUCT,
                "New Product from Followed Farmer",
                f"{farmer} has added a new product: {data.get('product_name')}",
                {
                    "productId": data["product_id"],
                    "farmerId": data["farmer_id"],
                    "url": f"/products/{data['product_id']}",
                }
            ))
        return notifications

    async def _price_dropped(self, data: dict):
        old_price = Decimal(str(data["old_price"]))
        new_price = Decimal(str(data["new_price"]))
        drop = old_price - new_price
        percentage = drop / old_price * 100 if old_price else Decimal("0")
        return [await self._notify(
            data["user_id"],
            NotificationType.PRICE_DROP,
            "Price Drop Alert!",
            f"{data.get('product_name')} price dropped by ${drop:.2f} ({percentage:.2f}% off)",
            {
                "productId": data["product_id"],
                "wishlistItemId": data.get("wishlist_item_id"),
                "oldPrice": str(old_price),
                "newPrice": str(new_price),
                "url": f"/products/{data['product_id']}",
            }
        )]

    async def _review_created(self, data: dict):
        buyer = data.get("buyer_name") or "A buyer"
        return [await self._notify(
            data["farmer_id"],
            NotificationType.NEW_REVIEW,
            "New Review",
            f"{buyer} left a {data.get('rating')}-star review for {data.get('product_name') or 'your product'}",
            {
                "reviewId": data.get("review_id"),
                "orderId": data.get("order_id"),
                "productId": data.get("product_id"),
                "url": f"/products/{data.get('product_id')}",
            }
        )]

    async def _message_sent(self, data: dict):
        sender = data.get("sender_name") or "Someone"
        subject = data.get("subject") or (data.get("preview") or "")
        return [await self._notify(
            data["receiver_id"],
            NotificationType.NEW_MESSAGE,
            "New Message",
            f"{sender} sent you a message: {subject}",
            {
                "messageId": data.get("message_id"),
                "senderId": data.get("sender_id"),
                "orderId": data.get("order_id"),
                "url": "/messages",
            }
        )]
