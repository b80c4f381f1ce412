import html
import logging
import uuid
from typing import Optional

from farm_market.domain.models import utcnow
from farm_market.domain.notifications import (
    Notification, NotificationType, NotificationChannel, NotificationPreference
)
from farm_market.application.interfaces import UnitOfWork, PushTransport, EmailSender

logger = logging.getLogger(__name__)


async def get_or_create_preferences(uow, user_id: str) -> NotificationPreference:
    """Настройки создаются лениво, со всеми включенными флагами"""
    preference = await uow.preferences.get_by_user(user_id)
    if preference is None:
        preference = NotificationPreference(id=str(uuid.uuid4()), user_id=user_id)
        await uow.preferences.create(preference)
    return preference


def render_email(notification: Notification, app_url: str = "") -> str:
    url = notification.data.get("url")
    button = ""
    if url:
        link = html.escape(f"{app_url.rstrip('/')}{url}" if url.startswith("/") else url, quote=True)
        button = (
            f'<a href="{link}" style="display: inline-block; margin-top: 20px; padding: 10px 20px; '
            f'background-color: #16a34a; color: white; text-decoration: none; border-radius: 5px;">View Details</a>'
        )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #16a34a;">{html.escape(notification.title)}</h2>'
        f'<p style="color: #333; line-height: 1.6;">{html.escape(notification.message)}</p>'
        f"{button}"
        '<hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;">'
        '<p style="color: #666; font-size: 12px;">You\'re receiving this email because you have email '
        "notifications enabled for this type of update.</p>"
        "</div>"
    )


class NotifyUseCase:
    """Уведомление одного пользователя.

    Запись в БД создается всегда; push и email зависят от настроек
    пользователя. Ошибки каналов доставки логируются и не пробрасываются.
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        push_transport: PushTransport,
        email_sender: Optional[EmailSender] = None,
        app_url: str = ""
    ):
        self._uow = unit_of_work
        self._push = push_transport
        self._email = email_sender
        self._app_url = app_url

    async def __call__(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None
    ) -> Optional[Notification]:
        # 1. Получатель и запись уведомления
        async with self._uow() as uow:
            user = await uow.users.get_by_id(user_id)
            if not user:
                logger.error(f"Пользователь {user_id} не найден, уведомление {notification_type.value} не создано")
                return None

            notification = Notification(
                id=str(uuid.uuid4()),
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                data=data or {},
                created_at=utcnow()
            )
            await uow.notifications.create(notification)
            preference = await get_or_create_preferences(uow, user_id)
            await uow.commit()

        # 2. Push в открытые соединения
        if preference.is_enabled(notification_type, NotificationChannel.PUSH):
            try:
                delivered = await self._push.push_to(user_id, notification.to_push_payload())
                if not delivered:
                    logger.info(f"Нет активных соединений у {user_id}, push пропущен")
            except Exception as e:
                logger.error(f"Ошибка push для {user_id}: {e}", exc_info=True)

        # 3. Email
        if self._email and user.email and preference.is_enabled(notification_type, NotificationChannel.EMAIL):
            await self._send_email(notification, user.email)

        logger.info(f"Уведомление {notification_type.value} для {user_id} создано: {notification.id}")
        return notification

    async def _send_email(self, notification: Notification, address: str) -> None:
        try:
            sent = await self._email.send(address, notification.title, render_email(notification, self._app_url))
        except Exception as e:
            logger.error(f"Ошибка отправки email уведомления {notification.id}: {e}", exc_info=True)
            return
        if not sent:
            return

        try:
            async with self._uow() as uow:
                await uow.notifications.mark_email_sent(notification.id)
                await uow.commit()
            notification.email_sent = True
        except Exception as e:
            logger.error(f"Не удалось отметить email_sent для {notification.id}: {e}", exc_info=True)
