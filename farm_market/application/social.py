import logging
import uuid
from typing import List, Optional
from pydantic import BaseModel

from farm_market.domain.models import User, UserRole, OrderStatus, Review, Message, utcnow
from farm_market.domain.events import EventType
from farm_market.domain.exceptions import (
    UserNotFoundError, NotAuthorizedError, BusinessRuleError, InvalidOrderStatusError
)
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.get_order import get_order_or_raise

logger = logging.getLogger(__name__)

SELF_REGISTER_ROLES = (UserRole.FARMER, UserRole.BUYER)


class RegisterUserDTO(BaseModel):
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.BUYER


class RegisterUserUseCase:
    """Самостоятельная регистрация фермера или покупателя; администраторов заводят вне API"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, dto: RegisterUserDTO) -> User:
        if dto.role not in SELF_REGISTER_ROLES:
            raise BusinessRuleError(f"Роль {dto.role.value} недоступна при регистрации", reason="invalid_role")

        async with self._uow() as uow:
            if dto.email and await uow.users.get_by_email(dto.email):
                raise BusinessRuleError(f"Пользователь с email {dto.email} уже существует", reason="duplicate_email")

            user = User(id=str(uuid.uuid4()), name=dto.name, email=dto.email, role=dto.role, created_at=utcnow())
            await uow.users.create(user)
            await uow.commit()

        logger.info(f"Пользователь зарегистрирован: {user.id} ({user.role.value})")
        return user


class FollowFarmerUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, farmer_id: str) -> None:
        if farmer_id == actor.id:
            raise BusinessRuleError("Нельзя подписаться на себя", reason="self_follow")

        async with self._uow() as uow:
            farmer = await uow.users.get_by_id(farmer_id)
            if not farmer or not farmer.is_farmer:
                raise UserNotFoundError(f"Фермер {farmer_id} не найден")
            if await uow.follows.exists(actor.id, farmer_id):
                raise BusinessRuleError("Подписка уже оформлена", reason="already_following")

            await uow.follows.create(actor.id, farmer_id)
            await uow.commit()

        logger.info(f"{actor.id} подписался на фермера {farmer_id}")


class UnfollowFarmerUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, farmer_id: str) -> None:
        async with self._uow() as uow:
            if not await uow.follows.delete(actor.id, farmer_id):
                raise BusinessRuleError("Подписки нет", reason="not_following")
            await uow.commit()


class ListFollowingUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> List[User]:
        async with self._uow() as uow:
            return await uow.follows.list_following(actor.id)


class CreateReviewDTO(BaseModel):
    order_id: str
    rating: int
    comment: Optional[str] = None


class CreateReviewUseCase:
    """Отзыв покупателя на завершенный заказ, один на заказ"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, dto: CreateReviewDTO) -> Review:
        if not 1 <= dto.rating <= 5:
            raise BusinessRuleError("Оценка должна быть от 1 до 5", reason="invalid_rating")

        async with self._uow() as uow:
            order = await get_order_or_raise(uow, dto.order_id)
            if order.buyer_id != actor.id:
                raise NotAuthorizedError("Оставить отзыв может только покупатель заказа")
            if order.status != OrderStatus.COMPLETED:
                raise InvalidOrderStatusError(order.status, "review")
            if await uow.reviews.get_by_order(order.id):
                raise BusinessRuleError("Отзыв на заказ уже оставлен", reason="duplicate_review")

            review = Review(
                id=str(uuid.uuid4()),
                order_id=order.id,
                buyer_id=actor.id,
                farmer_id=order.farmer_id,
                product_id=order.product_id,
                rating=dto.rating,
                comment=dto.comment,
                created_at=utcnow()
            )
            await uow.reviews.create(review)

            product = await uow.products.get_by_id(order.product_id)
            await uow.outbox.create(
                event_type=EventType.REVIEW_CREATED.value,
                event_data={
                    "review_id": review.id,
                    "order_id": order.id,
                    "farmer_id": order.farmer_id,
                    "product_id": order.product_id,
                    "product_name": product.name if product else None,
                    "buyer_name": actor.name,
                    "rating": review.rating,
                },
                aggregate_id=review.id
            )
            await uow.commit()

        logger.info(f"Отзыв {review.id} на заказ {order.id}: {review.rating}")
        return review


class SendMessageDTO(BaseModel):
    receiver_id: str
    body: str
    subject: Optional[str] = None
    order_id: Optional[str] = None
    product_id: Optional[str] = None


class SendMessageUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, dto: SendMessageDTO) -> Message:
        if not dto.body.strip():
            raise BusinessRuleError("Пустое сообщение", reason="empty_message")
        if dto.receiver_id == actor.id:
            raise BusinessRuleError("Нельзя написать самому себе", reason="self_message")

        async with self._uow() as uow:
            receiver = await uow.users.get_by_id(dto.receiver_id)
            if not receiver:
                raise UserNotFoundError(f"Получатель {dto.receiver_id} не найден")

            if dto.order_id:
                order = await get_order_or_raise(uow, dto.order_id)
                participants = (order.buyer_id, order.farmer_id)
                if actor.id not in participants:
                    raise NotAuthorizedError("Нельзя писать по чужому заказу")
                if receiver.id not in participants:
                    raise BusinessRuleError("Получатель не участвует в заказе", reason="receiver_not_in_order")

            message = Message(
                id=str(uuid.uuid4()),
                sender_id=actor.id,
                receiver_id=receiver.id,
                subject=dto.subject or None,
                body=dto.body.strip(),
                order_id=dto.order_id or None,
                product_id=dto.product_id or None,
                created_at=utcnow()
            )
            await uow.messages.create(message)
            await uow.outbox.create(
                event_type=EventType.MESSAGE_SENT.value,
                event_data={
                    "message_id": message.id,
                    "sender_id": actor.id,
                    "sender_name": actor.name,
                    "receiver_id": receiver.id,
                    "subject": message.subject,
                    "preview": message.body[:50],
                    "order_id": message.order_id,
                },
                aggregate_id=message.id
            )
            await uow.commit()

        logger.info(f"Сообщение {message.id}: {actor.id} → {receiver.id}")
        return message
