from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from farm_market.domain.models import (
    OrderStatus, PaymentStatus, DeliveryStatus, ProductStatus, UserRole, StatusHistoryEntry
)
from farm_market.domain.notifications import NotificationType


class ErrorDetail(BaseModel):
    reason: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail


# Пользователи
class RegisterUserRequest(BaseModel):
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.BUYER


class UserResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    role: UserRole

    @classmethod
    def from_domain(cls, user):
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


# Заказы
class CreateOrderRequest(BaseModel):
    product_id: str
    quantity: int
    delivery_address: dict[str, Any] = Field(default_factory=dict)
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None
    delivery_cost: Decimal = Field(default=Decimal("0"), ge=0)


class BulkOrderItem(BaseModel):
    product_id: str
    quantity: int


class CreateBulkOrderRequest(BaseModel):
    items: List[BulkOrderItem]
    delivery_address: dict[str, Any] = Field(default_factory=dict)
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None


class ReorderRequest(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)


class ConfirmOrderRequest(BaseModel):
    farmer_notes: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None


class DeclineOrderRequest(BaseModel):
    farmer_notes: Optional[str] = None


class TrackingUpdateRequest(BaseModel):
    delivery_status: Optional[DeliveryStatus] = None
    tracking_number: Optional[str] = None
    delivery_service: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None


class DeliveryDateRequest(BaseModel):
    estimated_delivery_date: datetime


class DeliveryCostRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    delivery_address: dict[str, Any]


class DeliveryCostResponse(BaseModel):
    distance: Decimal
    weight: int
    delivery_cost: Decimal
    currency: str


class OrderResponse(BaseModel):
    id: str
    buyer_id: str
    farmer_id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    delivery_cost: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    delivery_status: DeliveryStatus
    status_history: List[StatusHistoryEntry]
    delivery_address: dict[str, Any]
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    farmer_notes: Optional[str] = None
    cancelled_by: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_service: Optional[str] = None
    scheduled_delivery_date: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            farmer_id=order.farmer_id,
            product_id=order.product_id,
            quantity=order.quantity,
            unit_price=order.unit_price,
            total_price=order.total_price,
            delivery_cost=order.delivery_cost,
            status=order.status,
            payment_status=order.payment_status,
            delivery_status=order.delivery_status,
            status_history=order.status_history,
            delivery_address=order.delivery_address,
            contact_phone=order.contact_phone,
            notes=order.notes,
            farmer_notes=order.farmer_notes,
            cancelled_by=order.cancelled_by.value if order.cancelled_by else None,
            tracking_number=order.tracking_number,
            delivery_service=order.delivery_service,
            scheduled_delivery_date=order.scheduled_delivery_date,
            estimated_delivery_date=order.estimated_delivery_date,
            actual_delivery_date=order.actual_delivery_date,
            payment_intent_id=order.payment_intent_id,
            paid_at=order.paid_at,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    total_pages: int


class TrackingResponse(BaseModel):
    order_id: str
    status: OrderStatus
    delivery_status: DeliveryStatus
    tracking_number: Optional[str] = None
    delivery_service: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    timeline: List[StatusHistoryEntry]

    @classmethod
    def from_tracking(cls, tracking):
        order = tracking.order
        return cls(
            order_id=order.id,
            status=order.status,
            delivery_status=order.delivery_status,
            tracking_number=order.tracking_number,
            delivery_service=order.delivery_service,
            estimated_delivery_date=order.estimated_delivery_date,
            actual_delivery_date=order.actual_delivery_date,
            timeline=tracking.timeline
        )


# Оплата
class PaymentIntentRequest(BaseModel):
    order_id: str


class PaymentIntentResponse(BaseModel):
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    status: str
    amount: Optional[int] = None
    currency: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    order_id: str
    payment_intent_id: str


class PaymentStatusResponse(BaseModel):
    order_id: str
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_intent: Optional[dict] = None


# Уведомления
class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, notification):
        return cls(
            id=notification.id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at
        )


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    total_pages: int


class UnreadCountResponse(BaseModel):
    unread_count: int


# Товары
class CreateProductRequest(BaseModel):
    name: str
    category: str = "other"
    description: str = ""
    price: Decimal
    quantity: int
    unit: str = "piece"
    farm_location: dict[str, Any] = Field(default_factory=dict)


class UpdateProductRequest(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
    unit: Optional[str] = None
    status: Optional[ProductStatus] = None
    farm_location: Optional[dict[str, Any]] = None


class ProductResponse(BaseModel):
    id: str
    farmer_id: str
    name: str
    category: str
    description: str
    price: Decimal
    quantity: int
    unit: str
    status: ProductStatus
    is_approved: bool
    farm_location: dict[str, Any]

    @classmethod
    def from_domain(cls, product):
        return cls(
            id=product.id,
            farmer_id=product.farmer_id,
            name=product.name,
            category=product.category,
            description=product.description,
            price=product.price,
            quantity=product.quantity,
            unit=product.unit,
            status=product.status,
            is_approved=product.is_approved,
            farm_location=product.farm_location
        )


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    total: int
    page: int
    total_pages: int


# Списки желаний
class WishlistItemRequest(BaseModel):
    product_id: str


class PriceAlertRequest(BaseModel):
    price_drop_alert: bool
    notes: Optional[str] = None


class WishlistItemResponse(BaseModel):
    id: str
    product_id: str
    added_at_price: Optional[Decimal] = None
    current_price: Optional[Decimal] = None
    price_drop_alert: bool
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, item):
        return cls(
            id=item.id,
            product_id=item.product_id,
            added_at_price=item.added_at_price,
            current_price=item.current_price,
            price_drop_alert=item.price_drop_alert,
            notes=item.notes
        )


class PriceAlertResponse(BaseModel):
    product_id: str
    product_name: str
    added_at_price: Optional[Decimal] = None
    price: Decimal
    price_drop: Decimal
    percentage: Decimal


# Отзывы и сообщения
class CreateReviewRequest(BaseModel):
    order_id: str
    rating: int
    comment: Optional[str] = None


class ReviewResponse(BaseModel):
    id: str
    order_id: str
    product_id: str
    farmer_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class SendMessageRequest(BaseModel):
    receiver_id: str
    body: str
    subject: Optional[str] = None
    order_id: Optional[str] = None
    product_id: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    subject: Optional[str] = None
    body: str
    order_id: Optional[str] = None
    created_at: datetime
