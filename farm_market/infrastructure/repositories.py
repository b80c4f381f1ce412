import uuid
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from farm_market.domain.models import (
    Order, OrderStatus, PaymentStatus, DeliveryStatus, CancellationActor, StatusHistoryEntry,
    Product, ProductStatus, User, UserRole, Wishlist, WishlistItem, Review, Message
)
from farm_market.domain.notifications import Notification, NotificationType, NotificationPreference, FLAG_NAMES
from farm_market.domain.exceptions import ConcurrentUpdateError
from farm_market.infrastructure.db_schema import (
    users_tbl, products_tbl, orders_tbl, notifications_tbl, notification_preferences_tbl,
    follows_tbl, wishlists_tbl, wishlist_items_tbl, reviews_tbl, messages_tbl,
    outbox_events_tbl, inbox_events_tbl
)
from farm_market.application.interfaces import (
    OrderRepository, ProductRepository, UserRepository, NotificationRepository,
    PreferenceRepository, FollowRepository, WishlistRepository, ReviewRepository,
    MessageRepository, OutboxRepository, InboxRepository
)


_ORDER_SORTS = {
    "newest": (orders_tbl.c.created_at.desc(),),
    "oldest": (orders_tbl.c.created_at.asc(),),
    "status": (orders_tbl.c.status.asc(), orders_tbl.c.created_at.desc()),
    "price": (orders_tbl.c.total_price.desc(), orders_tbl.c.created_at.desc()),
}

_PRODUCT_SORTS = {
    "newest": (products_tbl.c.created_at.desc(),),
    "price_low": (products_tbl.c.price.asc(), products_tbl.c.created_at.desc()),
    "price_high": (products_tbl.c.price.desc(), products_tbl.c.created_at.desc()),
    "name": (products_tbl.c.name.asc(),),
}


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_for_update(self, order_id: str) -> Optional[Order]:
        # SQLite игнорирует FOR UPDATE, там защищает только compare-and-swap в save()
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id).with_for_update()
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_payment_intent(self, payment_intent_id: str, for_update: bool = False) -> Optional[Order]:
        query = select(orders_tbl).where(orders_tbl.c.payment_intent_id == payment_intent_id)
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            buyer_id=order.buyer_id,
            farmer_id=order.farmer_id,
            product_id=order.product_id,
            quantity=order.quantity,
            unit_price=order.unit_price,
            created_at=order.created_at,
            **self._mutable_values(order)
        )
        await self._session.execute(stmt)

    async def save(self, order: Order, expected_status: OrderStatus) -> None:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order.id,
                orders_tbl.c.status == expected_status.value
            )
            .values(**self._mutable_values(order))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise ConcurrentUpdateError(
                f"Заказ {order.id} был изменен параллельно (ожидался статус {expected_status.value})"
            )

    async def record_payment(self, order: Order) -> bool:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order.id,
                orders_tbl.c.payment_status != PaymentStatus.SUCCEEDED.value
            )
            .values(
                payment_status=order.payment_status.value,
                payment_method=order.payment_method,
                paid_at=order.paid_at,
                updated_at=order.updated_at
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list(self, filters: dict, sort_by: str, limit: int, offset: int) -> Tuple[List[Order], int]:
        conditions = []
        if filters.get("buyer_id"):
            conditions.append(orders_tbl.c.buyer_id == filters["buyer_id"])
        if filters.get("farmer_id"):
            conditions.append(orders_tbl.c.farmer_id == filters["farmer_id"])
        if filters.get("status"):
            conditions.append(orders_tbl.c.status == filters["status"])
        if filters.get("product_id"):
            conditions.append(orders_tbl.c.product_id == filters["product_id"])
        if filters.get("date_from"):
            conditions.append(orders_tbl.c.created_at >= filters["date_from"])
        if filters.get("date_to"):
            conditions.append(orders_tbl.c.created_at <= filters["date_to"])

        total = await self._session.scalar(
            select(func.count()).select_from(orders_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(orders_tbl)
            .where(*conditions)
            .order_by(*_ORDER_SORTS.get(sort_by, _ORDER_SORTS["newest"]))
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in result.fetchall()], total or 0

    def _mutable_values(self, order: Order) -> dict:
        return dict(
            total_price=order.total_price,
            status=order.status.value,
            payment_status=order.payment_status.value,
            delivery_status=order.delivery_status.value,
            # JSON колонка: даты храним строками ISO
            status_history=[entry.model_dump(mode="json") for entry in order.status_history],
            delivery_address=order.delivery_address,
            contact_phone=order.contact_phone,
            notes=order.notes,
            farmer_notes=order.farmer_notes,
            cancelled_by=order.cancelled_by.value if order.cancelled_by else None,
            cancelled_at=order.cancelled_at,
            completed_at=order.completed_at,
            payment_intent_id=order.payment_intent_id,
            payment_amount=order.payment_amount,
            payment_method=order.payment_method,
            paid_at=order.paid_at,
            scheduled_delivery_date=order.scheduled_delivery_date,
            estimated_delivery_date=order.estimated_delivery_date,
            actual_delivery_date=order.actual_delivery_date,
            delivery_cost=order.delivery_cost,
            delivery_service=order.delivery_service,
            tracking_number=order.tracking_number,
            updated_at=order.updated_at
        )

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            buyer_id=row.buyer_id,
            farmer_id=row.farmer_id,
            product_id=row.product_id,
            quantity=row.quantity,
            unit_price=row.unit_price,
            total_price=row.total_price,
            status=OrderStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            delivery_status=DeliveryStatus(row.delivery_status),
            status_history=[StatusHistoryEntry(**entry) for entry in row.status_history or []],
            delivery_address=row.delivery_address or {},
            contact_phone=row.contact_phone,
            notes=row.notes,
            farmer_notes=row.farmer_notes,
            cancelled_by=CancellationActor(row.cancelled_by) if row.cancelled_by else None,
            cancelled_at=row.cancelled_at,
            completed_at=row.completed_at,
            payment_intent_id=row.payment_intent_id,
            payment_amount=row.payment_amount,
            payment_method=row.payment_method,
            paid_at=row.paid_at,
            scheduled_delivery_date=row.scheduled_delivery_date,
            estimated_delivery_date=row.estimated_delivery_date,
            actual_delivery_date=row.actual_delivery_date,
            delivery_cost=row.delivery_cost,
            delivery_service=row.delivery_service,
            tracking_number=row.tracking_number,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_for_update(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id).with_for_update()
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, product: Product) -> None:
        stmt = insert(products_tbl).values(
            id=product.id,
            farmer_id=product.farmer_id,
            name=product.name,
            category=product.category,
            description=product.description,
            price=product.price,
            quantity=product.quantity,
            unit=product.unit,
            status=product.status.value,
            is_approved=product.is_approved,
            farm_location=product.farm_location,
            created_at=product.created_at,
            updated_at=product.updated_at
        )
        await self._session.execute(stmt)

    async def update(self, product_id: str, values: dict) -> None:
        # Остаток меняют reserve_stock/restore_stock; здесь пишем только явно переданные поля
        values = {
            field: value.value if isinstance(value, ProductStatus) else value
            for field, value in values.items()
        }
        values.setdefault("updated_at", datetime.now(timezone.utc))
        await self._session.execute(
            update(products_tbl).where(products_tbl.c.id == product_id).values(**values)
        )

    async def list(self, filters: dict, sort_by: str, limit: int, offset: int) -> Tuple[List[Product], int]:
        conditions = []
        if filters.get("farmer_id"):
            conditions.append(products_tbl.c.farmer_id == filters["farmer_id"])
        if filters.get("status"):
            conditions.append(products_tbl.c.status == filters["status"])
        if filters.get("approved_only"):
            conditions.append(products_tbl.c.is_approved.is_(True))
        if filters.get("category"):
            conditions.append(products_tbl.c.category == filters["category"])
        if filters.get("min_price") is not None:
            conditions.append(products_tbl.c.price >= filters["min_price"])
        if filters.get("max_price") is not None:
            conditions.append(products_tbl.c.price <= filters["max_price"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            conditions.append(or_(products_tbl.c.name.ilike(pattern), products_tbl.c.description.ilike(pattern)))

        total = await self._session.scalar(
            select(func.count()).select_from(products_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(products_tbl)
            .where(*conditions)
            .order_by(*_PRODUCT_SORTS.get(sort_by, _PRODUCT_SORTS["newest"]))
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in result.fetchall()], total or 0

    async def reserve_stock(self, product_id: str, quantity: int) -> bool:
        now = datetime.now(timezone.utc)
        result = await self._session.execute(
            update(products_tbl)
            .where(
                products_tbl.c.id == product_id,
                products_tbl.c.quantity >= quantity
            )
            .values(quantity=products_tbl.c.quantity - quantity, updated_at=now)
        )
        if result.rowcount == 0:
            return False

        await self._session.execute(
            update(products_tbl)
            .where(
                products_tbl.c.id == product_id,
                products_tbl.c.quantity == 0,
                products_tbl.c.status == ProductStatus.ACTIVE.value
            )
            .values(status=ProductStatus.SOLD_OUT.value)
        )
        return True

    async def restore_stock(self, product_id: str, quantity: int) -> None:
        now = datetime.now(timezone.utc)
        await self._session.execute(
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(quantity=products_tbl.c.quantity + quantity, updated_at=now)
        )
        await self._session.execute(
            update(products_tbl)
            .where(
                products_tbl.c.id == product_id,
                products_tbl.c.quantity > 0,
                products_tbl.c.status == ProductStatus.SOLD_OUT.value
            )
            .values(status=ProductStatus.ACTIVE.value)
        )

    def _to_domain(self, row) -> Product:
        return Product(
            id=row.id,
            farmer_id=row.farmer_id,
            name=row.name,
            category=row.category,
            description=row.description,
            price=row.price,
            quantity=row.quantity,
            unit=row.unit,
            status=ProductStatus(row.status),
            is_approved=row.is_approved,
            farm_location=row.farm_location or {},
            created_at=row.created_at,
            updated_at=row.updated_at
        )


def _user_from_row(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=UserRole(row.role),
        created_at=row.created_at
    )


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.id == user_id)
        )
        row = result.fetchone()
        return _user_from_row(row) if row else None

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.email == email)
        )
        row = result.fetchone()
        return _user_from_row(row) if row else None

    async def create(self, user: User) -> None:
        stmt = insert(users_tbl).values(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            created_at=user.created_at or datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)


class SQLAlchemyNotificationRepository(NotificationRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, notification: Notification) -> None:
        stmt = insert(notifications_tbl).values(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            is_read=notification.is_read,
            read_at=notification.read_at,
            email_sent=notification.email_sent,
            created_at=notification.created_at
        )
        await self._session.execute(stmt)

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        result = await self._session.execute(
            select(notifications_tbl).where(notifications_tbl.c.id == notification_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_for_user(self, user_id: str, unread_only: bool, limit: int, offset: int) -> Tuple[List[Notification], int]:
        conditions = [notifications_tbl.c.user_id == user_id]
        if unread_only:
            conditions.append(notifications_tbl.c.is_read.is_(False))

        total = await self._session.scalar(
            select(func.count()).select_from(notifications_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(notifications_tbl)
            .where(*conditions)
            .order_by(notifications_tbl.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [self._to_domain(row) for row in result.fetchall()], total or 0

    async def count_unread(self, user_id: str) -> int:
        total = await self._session.scalar(
            select(func.count())
            .select_from(notifications_tbl)
            .where(
                notifications_tbl.c.user_id == user_id,
                notifications_tbl.c.is_read.is_(False)
            )
        )
        return total or 0

    async def mark_as_read(self, notification_id: str, read_at: datetime) -> None:
        stmt = (
            update(notifications_tbl)
            .where(notifications_tbl.c.id == notification_id)
            .values(is_read=True, read_at=read_at)
        )
        await self._session.execute(stmt)

    async def mark_all_as_read(self, user_id: str, read_at: datetime) -> int:
        stmt = (
            update(notifications_tbl)
            .where(
                notifications_tbl.c.user_id == user_id,
                notifications_tbl.c.is_read.is_(False)
            )
            .values(is_read=True, read_at=read_at)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def mark_email_sent(self, notification_id: str) -> None:
        stmt = (
            update(notifications_tbl)
            .where(notifications_tbl.c.id == notification_id)
            .values(email_sent=True)
        )
        await self._session.execute(stmt)

    async def delete(self, notification_id: str) -> None:
        await self._session.execute(
            delete(notifications_tbl).where(notifications_tbl.c.id == notification_id)
        )

    def _to_domain(self, row) -> Notification:
        return Notification(
            id=row.id,
            user_id=row.user_id,
            type=NotificationType(row.type),
            title=row.title,
            message=row.message,
            data=row.data or {},
            is_read=row.is_read,
            read_at=row.read_at,
            email_sent=row.email_sent,
            created_at=row.created_at
        )


class SQLAlchemyPreferenceRepository(PreferenceRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_user(self, user_id: str) -> Optional[NotificationPreference]:
        result = await self._session.execute(
            select(notification_preferences_tbl)
            .where(notification_preferences_tbl.c.user_id == user_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return NotificationPreference(
            id=row.id,
            user_id=row.user_id,
            **{name: getattr(row, name) for name in FLAG_NAMES}
        )

    async def create(self, preference: NotificationPreference) -> None:
        stmt = insert(notification_preferences_tbl).values(
            id=preference.id,
            user_id=preference.user_id,
            **preference.flags()
        )
        await self._session.execute(stmt)

    async def update(self, preference: NotificationPreference) -> None:
        stmt = (
            update(notification_preferences_tbl)
            .where(notification_preferences_tbl.c.user_id == preference.user_id)
            .values(updated_at=datetime.now(timezone.utc), **preference.flags())
        )
        await self._session.execute(stmt)


class SQLAlchemyFollowRepository(FollowRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def exists(self, follower_id: str, farmer_id: str) -> bool:
        result = await self._session.execute(
            select(follows_tbl.c.id).where(
                follows_tbl.c.follower_id == follower_id,
                follows_tbl.c.farmer_id == farmer_id
            )
        )
        return result.fetchone() is not None

    async def create(self, follower_id: str, farmer_id: str) -> None:
        stmt = insert(follows_tbl).values(
            id=str(uuid.uuid4()),
            follower_id=follower_id,
            farmer_id=farmer_id,
            created_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)

    async def delete(self, follower_id: str, farmer_id: str) -> bool:
        result = await self._session.execute(
            delete(follows_tbl).where(
                follows_tbl.c.follower_id == follower_id,
                follows_tbl.c.farmer_id == farmer_id
            )
        )
        return result.rowcount > 0

    async def list_follower_ids(self, farmer_id: str) -> List[str]:
        result = await self._session.execute(
            select(follows_tbl.c.follower_id)
            .where(follows_tbl.c.farmer_id == farmer_id)
            .order_by(follows_tbl.c.created_at.asc())
        )
        return [row.follower_id for row in result.fetchall()]

    async def list_following(self, follower_id: str) -> List[User]:
        result = await self._session.execute(
            select(users_tbl)
            .join(follows_tbl, follows_tbl.c.farmer_id == users_tbl.c.id)
            .where(follows_tbl.c.follower_id == follower_id)
            .order_by(follows_tbl.c.created_at.desc())
        )
        return [_user_from_row(row) for row in result.fetchall()]


class SQLAlchemyWishlistRepository(WishlistRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_default(self, user_id: str) -> Optional[Wishlist]:
        result = await self._session.execute(
            select(wishlists_tbl)
            .where(wishlists_tbl.c.user_id == user_id)
            .order_by(wishlists_tbl.c.created_at.asc())
            .limit(1)
        )
        row = result.fetchone()
        if not row:
            return None
        return Wishlist(id=row.id, user_id=row.user_id, name=row.name, created_at=row.created_at)

    async def create(self, wishlist: Wishlist) -> None:
        stmt = insert(wishlists_tbl).values(
            id=wishlist.id,
            user_id=wishlist.user_id,
            name=wishlist.name,
            created_at=wishlist.created_at or datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)

    async def get_item(self, wishlist_id: str, product_id: str) -> Optional[WishlistItem]:
        result = await self._session.execute(
            select(wishlist_items_tbl).where(
                wishlist_items_tbl.c.wishlist_id == wishlist_id,
                wishlist_items_tbl.c.product_id == product_id
            )
        )
        row = result.fetchone()
        return self._item_to_domain(row) if row else None

    async def add_item(self, item: WishlistItem) -> None:
        stmt = insert(wishlist_items_tbl).values(
            id=item.id,
            wishlist_id=item.wishlist_id,
            product_id=item.product_id,
            added_at_price=item.added_at_price,
            current_price=item.current_price,
            price_drop_alert=item.price_drop_alert,
            notes=item.notes,
            created_at=item.created_at or datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)

    async def update_item(self, item: WishlistItem) -> None:
        stmt = (
            update(wishlist_items_tbl)
            .where(wishlist_items_tbl.c.id == item.id)
            .values(
                current_price=item.current_price,
                price_drop_alert=item.price_drop_alert,
                notes=item.notes
            )
        )
        await self._session.execute(stmt)

    async def remove_item(self, item_id: str) -> None:
        await self._session.execute(
            delete(wishlist_items_tbl).where(wishlist_items_tbl.c.id == item_id)
        )

    async def list_items(self, wishlist_id: str) -> List[WishlistItem]:
        result = await self._session.execute(
            select(wishlist_items_tbl)
            .where(wishlist_items_tbl.c.wishlist_id == wishlist_id)
            .order_by(wishlist_items_tbl.c.created_at.desc())
        )
        return [self._item_to_domain(row) for row in result.fetchall()]

    async def list_product_items(self, product_id: str) -> List[Tuple[WishlistItem, str]]:
        result = await self._session.execute(
            select(wishlist_items_tbl, wishlists_tbl.c.user_id.label("owner_id"))
            .join(wishlists_tbl, wishlists_tbl.c.id == wishlist_items_tbl.c.wishlist_id)
            .where(wishlist_items_tbl.c.product_id == product_id)
        )
        return [(self._item_to_domain(row), row.owner_id) for row in result.fetchall()]

    def _item_to_domain(self, row) -> WishlistItem:
        return WishlistItem(
            id=row.id,
            wishlist_id=row.wishlist_id,
            product_id=row.product_id,
            added_at_price=row.added_at_price,
            current_price=row.current_price,
            price_drop_alert=row.price_drop_alert,
            notes=row.notes,
            created_at=row.created_at
        )


class SQLAlchemyReviewRepository(ReviewRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_order(self, order_id: str) -> Optional[Review]:
        result = await self._session.execute(
            select(reviews_tbl).where(reviews_tbl.c.order_id == order_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return Review(
            id=row.id,
            order_id=row.order_id,
            buyer_id=row.buyer_id,
            farmer_id=row.farmer_id,
            product_id=row.product_id,
            rating=row.rating,
            comment=row.comment,
            created_at=row.created_at
        )

    async def create(self, review: Review) -> None:
        stmt = insert(reviews_tbl).values(
            id=review.id,
            order_id=review.order_id,
            buyer_id=review.buyer_id,
            farmer_id=review.farmer_id,
            product_id=review.product_id,
            rating=review.rating,
            comment=review.comment,
            created_at=review.created_at
        )
        await self._session.execute(stmt)


class SQLAlchemyMessageRepository(MessageRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, message: Message) -> None:
        stmt = insert(messages_tbl).values(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            subject=message.subject,
            body=message.body,
            order_id=message.order_id,
            product_id=message.product_id,
            is_read=message.is_read,
            created_at=message.created_at
        )
        await self._session.execute(stmt)


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, aggregate_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,  # SQLAlchemy JSON column сериализует автоматически
            aggregate_id=aggregate_id,
            status="pending",
            created_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "aggregate_id": row.aggregate_id
            }
            for row in rows
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)


class SQLAlchemyInboxRepository(InboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, aggregate_id: str, idempotency_key: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(inbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,
            aggregate_id=aggregate_id,
            idempotency_key=idempotency_key,
            status="pending",
            created_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)
        return event_id

    async def mark_as_processed(self, event_id: str) -> None:
        stmt = (
            update(inbox_events_tbl)
            .where(inbox_events_tbl.c.id == event_id)
            .values(
                status="processed",
                processed_at=datetime.now(timezone.utc)
            )
        )
        await self._session.execute(stmt)

    async def is_processed(self, idempotency_key: str) -> bool:
        result = await self._session.execute(
            select(inbox_events_tbl.c.id)
            .where(inbox_events_tbl.c.idempotency_key == idempotency_key)
        )
        return result.fetchone() is not None
