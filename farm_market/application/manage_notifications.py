import logging
import math
from typing import List
from pydantic import BaseModel

from farm_market.domain.models import User, utcnow
from farm_market.domain.notifications import Notification, NotificationPreference
from farm_market.domain.exceptions import NotificationNotFoundError, NotAuthorizedError, BusinessRuleError
from farm_market.application.interfaces import UnitOfWork
from farm_market.application.notify import get_or_create_preferences

logger = logging.getLogger(__name__)


class NotificationPage(BaseModel):
    items: List[Notification]
    total: int
    unread_count: int
    page: int
    total_pages: int


class ListNotificationsUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, page: int = 1, limit: int = 20, unread_only: bool = False) -> NotificationPage:
        if page < 1 or limit < 1:
            raise BusinessRuleError("page и limit должны быть положительными", reason="invalid_paging")

        async with self._uow() as uow:
            items, total = await uow.notifications.list_for_user(
                actor.id, unread_only, limit=limit, offset=(page - 1) * limit
            )
            unread = await uow.notifications.count_unread(actor.id)

        return NotificationPage(
            items=items,
            total=total,
            unread_count=unread,
            page=page,
            total_pages=math.ceil(total / limit)
        )


class CountUnreadNotificationsUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> int:
        async with self._uow() as uow:
            return await uow.notifications.count_unread(actor.id)


async def _get_own_notification(uow, actor: User, notification_id: str) -> Notification:
    notification = await uow.notifications.get_by_id(notification_id)
    if not notification:
        raise NotificationNotFoundError(f"Уведомление {notification_id} не найдено")
    if notification.user_id != actor.id:
        raise NotAuthorizedError("Чужое уведомление")
    return notification


class MarkNotificationReadUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, notification_id: str) -> Notification:
        async with self._uow() as uow:
            notification = await _get_own_notification(uow, actor, notification_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                await uow.notifications.mark_as_read(notification.id, notification.read_at)
                await uow.commit()
        return notification


class MarkAllNotificationsReadUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> int:
        async with self._uow() as uow:
            updated = await uow.notifications.mark_all_as_read(actor.id, utcnow())
            await uow.commit()
        logger.info(f"Прочитано уведомлений у {actor.id}: {updated}")
        return updated


class DeleteNotificationUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, notification_id: str) -> None:
        async with self._uow() as uow:
            notification = await _get_own_notification(uow, actor, notification_id)
            await uow.notifications.delete(notification.id)
            await uow.commit()


class GetPreferencesUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> NotificationPreference:
        async with self._uow() as uow:
            preference = await get_or_create_preferences(uow, actor.id)
            await uow.commit()
        return preference


class UpdatePreferencesUseCase:
    """Частичное обновление: меняются только известные флаги"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, changes: dict) -> NotificationPreference:
        async with self._uow() as uow:
            preference = await get_or_create_preferences(uow, actor.id)
            preference.apply_changes(changes)
            await uow.preferences.update(preference)
            await uow.commit()
        logger.info(f"Настройки уведомлений {actor.id} обновлены")
        return preference
