from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_COMPLETED = "order_completed"
    ORDER_CANCELLED = "order_cancelled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    NEW_PRODUCT = "new_product"
    PRICE_DROP = "price_drop"
    NEW_REVIEW = "new_review"
    NEW_MESSAGE = "new_message"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


class PreferenceTopic(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_COMPLETED = "order_completed"
    ORDER_CANCELLED = "order_cancelled"
    NEW_PRODUCT = "new_product"
    PRICE_DROP = "price_drop"
    NEW_REVIEW = "new_review"
    NEW_MESSAGE = "new_message"


# Оплата управляется теми же флагами, что и подтверждение заказа
TOPIC_BY_TYPE: dict[NotificationType, PreferenceTopic] = {
    NotificationType.NEW_ORDER: PreferenceTopic.NEW_ORDER,
    NotificationType.ORDER_CONFIRMED: PreferenceTopic.ORDER_CONFIRMED,
    NotificationType.ORDER_COMPLETED: PreferenceTopic.ORDER_COMPLETED,
    NotificationType.ORDER_CANCELLED: PreferenceTopic.ORDER_CANCELLED,
    NotificationType.PAYMENT_SUCCEEDED: PreferenceTopic.ORDER_CONFIRMED,
    NotificationType.NEW_PRODUCT: PreferenceTopic.NEW_PRODUCT,
    NotificationType.PRICE_DROP: PreferenceTopic.PRICE_DROP,
    NotificationType.NEW_REVIEW: PreferenceTopic.NEW_REVIEW,
    NotificationType.NEW_MESSAGE: PreferenceTopic.NEW_MESSAGE,
}

PREFERENCE_FLAGS: dict[tuple[PreferenceTopic, NotificationChannel], str] = {
    (topic, channel): f"{channel.value}_{topic.value}"
    for topic in PreferenceTopic
    for channel in NotificationChannel
}

FLAG_NAMES: tuple[str, ...] = tuple(PREFERENCE_FLAGS.values())


class Notification(BaseModel):
    """Доставка одного доменного события одному пользователю"""
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None
    email_sent: bool = False
    created_at: datetime

    def to_push_payload(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "createdAt": self.created_at.isoformat(),
        }


class NotificationPreference(BaseModel):
    """Настройки уведомлений пользователя: флаг на каждую пару (тип, канал).

    По умолчанию все включено; строка создается лениво.
    """
    id: str
    user_id: str
    email_new_order: bool = True
    email_order_confirmed: bool = True
    email_order_completed: bool = True
    email_order_cancelled: bool = True
    email_new_product: bool = True
    email_price_drop: bool = True
    email_new_review: bool = True
    email_new_message: bool = True
    push_new_order: bool = True
    push_order_confirmed: bool = True
    push_order_completed: bool = True
    push_order_cancelled: bool = True
    push_new_product: bool = True
    push_price_drop: bool = True
    push_new_review: bool = True
    push_new_message: bool = True

    def is_enabled(self, notification_type: NotificationType, channel: NotificationChannel) -> bool:
        flag = PREFERENCE_FLAGS[(TOPIC_BY_TYPE[notification_type], channel)]
        return getattr(self, flag)

    def flags(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in FLAG_NAMES}

    def apply_changes(self, changes: dict[str, bool]) -> None:
        """Частичное обновление; неизвестные ключи игнорируются"""
        for name, value in changes.items():
            if name in FLAG_NAMES and value is not None:
                setattr(self, name, bool(value))
