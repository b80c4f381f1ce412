"""Application tests for reading, paging and configuring notifications."""

import pytest

from farm_market.application.manage_notifications import (
    CountUnreadNotificationsUseCase, DeleteNotificationUseCase, GetPreferencesUseCase, ListNotificationsUseCase,
    MarkAllNotificationsReadUseCase, MarkNotificationReadUseCase, UpdatePreferencesUseCase
)
from farm_market.domain.exceptions import BusinessRuleError, NotAuthorizedError, NotificationNotFoundError
from farm_market.domain.notifications import NotificationType


@pytest.fixture
def send(notify):
    async def _send(user, count=1):
        return [
            await notify(user.id, NotificationType.NEW_MESSAGE, "New Message", f"message {i}")
            for i in range(count)
        ]

    return _send


class TestListNotifications:
    async def test_pages_newest_first(self, uow, send, buyer):
        sent = await send(buyer, 5)

        page = await ListNotificationsUseCase(uow)(buyer, page=1, limit=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert page.unread_count == 5
        assert [n.id for n in page.items] == [sent[4].id, sent[3].id]

    async def test_unread_only(self, uow, send, buyer):
        sent = await send(buyer, 3)
        await MarkNotificationReadUseCase(uow)(buyer, sent[0].id)

        page = await ListNotificationsUseCase(uow)(buyer, unread_only=True)

        assert page.total == 2
        assert sent[0].id not in [n.id for n in page.items]

    async def test_invalid_paging(self, uow, buyer):
        with pytest.raises(BusinessRuleError):
            await ListNotificationsUseCase(uow)(buyer, page=0)


class TestReadState:
    async def test_mark_read_sets_timestamp(self, uow, send, buyer):
        [notification] = await send(buyer)

        updated = await MarkNotificationReadUseCase(uow)(buyer, notification.id)

        assert updated.is_read
        assert updated.read_at is not None
        assert await CountUnreadNotificationsUseCase(uow)(buyer) == 0

    async def test_cannot_touch_someone_elses_notification(self, uow, send, buyer, farmer):
        [notification] = await send(buyer)
        with pytest.raises(NotAuthorizedError):
            await MarkNotificationReadUseCase(uow)(farmer, notification.id)
        with pytest.raises(NotAuthorizedError):
            await DeleteNotificationUseCase(uow)(farmer, notification.id)

    async def test_mark_all_read_returns_updated_count(self, uow, send, buyer, farmer):
        await send(buyer, 3)
        await send(farmer, 1)

        assert await MarkAllNotificationsReadUseCase(uow)(buyer) == 3
        assert await CountUnreadNotificationsUseCase(uow)(buyer) == 0
        assert await CountUnreadNotificationsUseCase(uow)(farmer) == 1

    async def test_delete(self, uow, send, buyer):
        [notification] = await send(buyer)

        await DeleteNotificationUseCase(uow)(buyer, notification.id)

        with pytest.raises(NotificationNotFoundError):
            await MarkNotificationReadUseCase(uow)(buyer, notification.id)


class TestPreferences:
    async def test_defaults_are_all_enabled(self, uow, buyer):
        preference = await GetPreferencesUseCase(uow)(buyer)
        assert all(preference.flags().values())

    async def test_partial_update(self, uow, buyer):
        await UpdatePreferencesUseCase(uow)(buyer, {"email_price_drop": False, "bogus": False})

        preference = await GetPreferencesUseCase(uow)(buyer)
        assert preference.email_price_drop is False
        assert preference.push_price_drop is True

    async def test_disabled_channel_is_respected_by_notifier(self, uow, notify, email_sender, buyer):
        await UpdatePreferencesUseCase(uow)(buyer, {"email_new_message": False})

        await notify(buyer.id, NotificationType.NEW_MESSAGE, "New Message", "hello")

        assert email_sender.sent == []
