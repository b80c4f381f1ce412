from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Tuple

from farm_market.domain.models import (
    Order, OrderStatus, Product, User, Wishlist, WishlistItem, Review, Message
)
from farm_market.domain.notifications import Notification, NotificationPreference


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: str) -> Optional[Order]:
        """Чтение с блокировкой строки до конца транзакции"""
        pass

    @abstractmethod
    async def get_by_payment_intent(self, payment_intent_id: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def save(self, order: Order, expected_status: OrderStatus) -> None:
        """Сохраняет заказ, только если статус в БД все еще expected_status"""
        pass

    @abstractmethod
    async def record_payment(self, order: Order) -> bool:
        """Пишет поля оплаты, пока заказ не оплачен; False, если успех уже записан"""
        pass

    @abstractmethod
    async def list(self, filters: dict, sort_by: str, limit: int, offset: int) -> Tuple[List[Order], int]:
        pass


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_for_update(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def create(self, product: Product) -> None:
        pass

    @abstractmethod
    async def update(self, product_id: str, values: dict) -> None:
        """Пишет только переданные поля"""
        pass

    @abstractmethod
    async def list(self, filters: dict, sort_by: str, limit: int, offset: int) -> Tuple[List[Product], int]:
        pass

    @abstractmethod
    async def reserve_stock(self, product_id: str, quantity: int) -> bool:
        """Атомарно списывает остаток; False, если остатка не хватило"""
        pass

    @abstractmethod
    async def restore_stock(self, product_id: str, quantity: int) -> None:
        pass


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def create(self, user: User) -> None:
        pass


class NotificationRepository(ABC):
    @abstractmethod
    async def create(self, notification: Notification) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, unread_only: bool, limit: int, offset: int) -> Tuple[List[Notification], int]:
        pass

    @abstractmethod
    async def count_unread(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def mark_as_read(self, notification_id: str, read_at: datetime) -> None:
        pass

    @abstractmethod
    async def mark_all_as_read(self, user_id: str, read_at: datetime) -> int:
        pass

    @abstractmethod
    async def mark_email_sent(self, notification_id: str) -> None:
        pass

    @abstractmethod
    async def delete(self, notification_id: str) -> None:
        pass


class PreferenceRepository(ABC):
    @abstractmethod
    async def get_by_user(self, user_id: str) -> Optional[NotificationPreference]:
        pass

    @abstractmethod
    async def create(self, preference: NotificationPreference) -> None:
        pass

    @abstractmethod
    async def update(self, preference: NotificationPreference) -> None:
        pass


class FollowRepository(ABC):
    @abstractmethod
    async def exists(self, follower_id: str, farmer_id: str) -> bool:
        pass

    @abstractmethod
    async def create(self, follower_id: str, farmer_id: str) -> None:
        pass

    @abstractmethod
    async def delete(self, follower_id: str, farmer_id: str) -> bool:
        pass

    @abstractmethod
    async def list_follower_ids(self, farmer_id: str) -> List[str]:
        pass

    @abstractmethod
    async def list_following(self, follower_id: str) -> List[User]:
        pass


class WishlistRepository(ABC):
    @abstractmethod
    async def get_default(self, user_id: str) -> Optional[Wishlist]:
        pass

    @abstractmethod
    async def create(self, wishlist: Wishlist) -> None:
        pass

    @abstractmethod
    async def get_item(self, wishlist_id: str, product_id: str) -> Optional[WishlistItem]:
        pass

    @abstractmethod
    async def add_item(self, item: WishlistItem) -> None:
        pass

    @abstractmethod
    async def update_item(self, item: WishlistItem) -> None:
        pass

    @abstractmethod
    async def remove_item(self, item_id: str) -> None:
        pass

    @abstractmethod
    async def list_items(self, wishlist_id: str) -> List[WishlistItem]:
        pass

    @abstractmethod
    async def list_product_items(self, product_id: str) -> List[Tuple[WishlistItem, str]]:
        """Все позиции с товаром вместе с id владельца списка"""
        pass


class ReviewRepository(ABC):
    @abstractmethod
    async def get_by_order(self, order_id: str) -> Optional[Review]:
        pass

    @abstractmethod
    async def create(self, review: Review) -> None:
        pass


class MessageRepository(ABC):
    @abstractmethod
    async def create(self, message: Message) -> None:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, aggregate_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class InboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, aggregate_id: str, idempotency_key: str) -> str:
        pass

    @abstractmethod
    async def mark_as_processed(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def is_processed(self, idempotency_key: str) -> bool:
        pass


class UnitOfWork(ABC):
    orders: OrderRepository
    products: ProductRepository
    users: UserRepository
    notifications: NotificationRepository
    preferences: PreferenceRepository
    follows: FollowRepository
    wishlists: WishlistRepository
    reviews: ReviewRepository
    messages: MessageRepository
    outbox: OutboxRepository
    inbox: InboxRepository

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class PaymentsService(ABC):
    @abstractmethod
    async def create_payment_intent(self, amount: int, currency: str, metadata: dict, idempotency_key: str) -> dict:
        pass

    @abstractmethod
    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        pass

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str) -> dict:
        pass


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> bool:
        pass


class PushTransport(ABC):
    @abstractmethod
    async def register(self, user_id: str, channel) -> None:
        pass

    @abstractmethod
    async def unregister(self, user_id: str, channel) -> None:
        pass

    @abstractmethod
    async def push_to(self, user_id: str, event: dict) -> int:
        """Возвращает число живых соединений, получивших событие"""
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event: dict) -> bool:
        pass
