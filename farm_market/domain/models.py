from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from farm_market.domain.exceptions import InvalidOrderStatusError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    FARMER = "farmer"
    BUYER = "buyer"
    ADMIN = "admin"


class User(BaseModel):
    """Пользователь площадки"""
    id: str
    name: str
    email: Optional[str] = None
    role: UserRole
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_farmer(self) -> bool:
        return self.role == UserRole.FARMER


class ProductStatus(str, Enum):
    ACTIVE = "active"
    SOLD_OUT = "sold_out"
    INACTIVE = "inactive"


class Product(BaseModel):
    """Товар фермера. quantity - доступный остаток."""
    id: str
    farmer_id: str
    name: str
    category: str = "other"
    description: str = ""
    price: Decimal
    quantity: int
    unit: str = "piece"
    status: ProductStatus = ProductStatus.ACTIVE
    is_approved: bool = False
    # city, state и при наличии latitude/longitude
    farm_location: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_available(self) -> bool:
        """Бизнес-правило: заказывать можно только активный одобренный товар"""
        return self.status == ProductStatus.ACTIVE and self.is_approved

    def can_be_managed_by(self, user: User) -> bool:
        return user.is_admin or self.farmer_id == user.id


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"


class CancellationActor(str, Enum):
    BUYER = "buyer"
    FARMER = "farmer"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


class StatusHistoryEntry(BaseModel):
    status: str
    timestamp: datetime
    notes: Optional[str] = None


class Order(BaseModel):
    """Заказ покупателя на один товар одного фермера.

    Статус меняется только вперед: pending -> confirmed -> completed,
    отмена возможна из pending и confirmed. status_history только дополняется.
    Доставка (delivery_status) пишется в тот же журнал.
    """
    id: str
    buyer_id: str
    farmer_id: str
    product_id: str
    quantity: int = Field(gt=0)
    unit_price: Decimal
    total_price: Decimal
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    delivery_address: dict[str, Any] = Field(default_factory=dict)
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    farmer_notes: Optional[str] = None
    cancelled_by: Optional[CancellationActor] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    scheduled_delivery_date: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    delivery_cost: Decimal = Decimal("0")
    delivery_service: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def place(
        cls,
        order_id: str,
        buyer_id: str,
        product: Product,
        quantity: int,
        delivery_cost: Decimal = Decimal("0"),
        now: Optional[datetime] = None,
        created_note: str = "Order created",
        **delivery_info,
    ) -> "Order":
        now = now or utcnow()
        total_price = (product.price * quantity + delivery_cost).quantize(Decimal("0.01"))
        return cls(
            id=order_id,
            buyer_id=buyer_id,
            farmer_id=product.farmer_id,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            total_price=total_price,
            delivery_cost=delivery_cost,
            status_history=[StatusHistoryEntry(status=OrderStatus.PENDING.value, timestamp=now, notes=created_note)],
            created_at=now,
            updated_at=now,
            **delivery_info,
        )

    # Бизнес-правила
    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in _VALID_TRANSITIONS[self.status]

    def is_participant(self, user: User) -> bool:
        return user.id in (self.buyer_id, self.farmer_id) or user.is_admin

    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[self.status]

    def append_history(self, status: str, notes: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.status_history = [*self.status_history, StatusHistoryEntry(status=status, timestamp=now, notes=notes)]
        self.updated_at = now

    def _transition(self, target: OrderStatus, action: str, notes: Optional[str], now: datetime) -> OrderStatus:
        if not self.can_transition_to(target):
            raise InvalidOrderStatusError(self.status, action)
        previous = self.status
        self.status = target
        self.append_history(target.value, notes, now)
        return previous

    # Переходы
    def confirm(self, notes: Optional[str] = None, estimated_delivery_date: Optional[datetime] = None,
                delivery_days: int = 7, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self._transition(OrderStatus.CONFIRMED, "confirm", notes or "Order confirmed by farmer", now)
        self.farmer_notes = notes
        self.estimated_delivery_date = estimated_delivery_date or now + timedelta(days=delivery_days)

    def decline(self, notes: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        if self.status != OrderStatus.PENDING:
            raise InvalidOrderStatusError(self.status, "decline")
        self._transition(OrderStatus.CANCELLED, "decline", notes or "Order declined by farmer", now)
        self.cancelled_by = CancellationActor.FARMER
        self.cancelled_at = now
        self.farmer_notes = notes

    def cancel(self, now: Optional[datetime] = None) -> OrderStatus:
        """Отмена покупателем. Возвращает предыдущий статус (для возврата остатка)."""
        now = now or utcnow()
        previous = self._transition(OrderStatus.CANCELLED, "cancel", "Order cancelled by buyer", now)
        self.cancelled_by = CancellationActor.BUYER
        self.cancelled_at = now
        return previous

    def complete(self, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self._transition(OrderStatus.COMPLETED, "complete", "Order completed", now)
        self.completed_at = now
        self.actual_delivery_date = now

    def update_delivery(
        self,
        delivery_status: Optional[DeliveryStatus] = None,
        tracking_number: Optional[str] = None,
        delivery_service: Optional[str] = None,
        scheduled_delivery_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Обновление доставки. Возвращает True, если заказ при этом завершен."""
        now = now or utcnow()
        if self.status == OrderStatus.CANCELLED:
            raise InvalidOrderStatusError(self.status, "update_delivery")

        completes = delivery_status == DeliveryStatus.DELIVERED and self.actual_delivery_date is None
        if completes and not self.can_transition_to(OrderStatus.COMPLETED):
            raise InvalidOrderStatusError(self.status, "deliver")

        if tracking_number:
            self.tracking_number = tracking_number
        if delivery_service:
            self.delivery_service = delivery_service
        if scheduled_delivery_date:
            self.scheduled_delivery_date = scheduled_delivery_date

        if delivery_status and delivery_status != self.delivery_status:
            notes = f"Tracking: {tracking_number}" if tracking_number else None
            self.append_history(delivery_status.value, notes, now)
        if delivery_status:
            self.delivery_status = delivery_status

        if completes:
            self.status = OrderStatus.COMPLETED
            self.actual_delivery_date = now
            self.completed_at = now
        self.updated_at = now
        return completes

    # Оплата
    def can_be_paid(self) -> bool:
        """Бизнес-правило: оплатить можно только подтвержденный заказ"""
        return self.status == OrderStatus.CONFIRMED

    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.SUCCEEDED

    def attach_payment_intent(self, payment_intent_id: str, amount: Decimal, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.payment_intent_id = payment_intent_id
        self.payment_amount = amount
        if not self.is_paid():
            self.payment_status = PaymentStatus.PROCESSING
        self.updated_at = now

    def record_payment_result(self, status: PaymentStatus, payment_method: Optional[str] = None,
                              now: Optional[datetime] = None) -> bool:
        """Идемпотентная фиксация результата платежа, статус заказа не меняется.

        Возвращает True только при первой успешной оплате.
        """
        if self.is_paid():
            return False
        now = now or utcnow()
        self.payment_status = status
        if status == PaymentStatus.SUCCEEDED:
            self.paid_at = now
            self.payment_method = payment_method or "card"
        self.updated_at = now
        return status == PaymentStatus.SUCCEEDED

    def tracking_timeline(self) -> list[StatusHistoryEntry]:
        timeline = list(self.status_history)
        if not timeline or timeline[-1].status != self.status.value:
            timeline.append(StatusHistoryEntry(status=self.status.value, timestamp=self.updated_at, notes="Current status"))
        return timeline


class Wishlist(BaseModel):
    id: str
    user_id: str
    name: str = "My Wishlist"
    created_at: Optional[datetime] = None


class WishlistItem(BaseModel):
    id: str
    wishlist_id: str
    product_id: str
    added_at_price: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    price_drop_alert: bool = True
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def recorded_price(self) -> Optional[Decimal]:
        return self.current_price if self.current_price is not None else self.added_at_price

    def is_price_drop(self, new_price: Decimal) -> bool:
        """Бизнес-правило: уведомляем, только если алерт включен и цена строго ниже записанной"""
        recorded = self.recorded_price
        return self.price_drop_alert and recorded is not None and new_price < recorded


class Review(BaseModel):
    id: str
    order_id: str
    buyer_id: str
    farmer_id: str
    product_id: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    created_at: datetime


class Message(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    subject: Optional[str] = None
    body: str
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime
