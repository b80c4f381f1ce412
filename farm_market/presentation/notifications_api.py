import logging
from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status

from farm_market.presentation.schemas import (
    NotificationResponse, NotificationListResponse, UnreadCountResponse, ErrorResponse
)
from farm_market.presentation.dependencies import (
    get_uow, get_current_user, get_connection_registry, to_http_exception
)
from farm_market.application.manage_notifications import (
    ListNotificationsUseCase, CountUnreadNotificationsUseCase, MarkNotificationReadUseCase,
    MarkAllNotificationsReadUseCase, DeleteNotificationUseCase, GetPreferencesUseCase, UpdatePreferencesUseCase
)
from farm_market.domain.models import User
from farm_market.domain.exceptions import DomainException

logger = logging.getLogger(__name__)

router = APIRouter()
ws_router = APIRouter()

_ERRORS = {400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


def get_list_notifications_use_case(uow=Depends(get_uow)):
    return ListNotificationsUseCase(uow)


def get_count_unread_use_case(uow=Depends(get_uow)):
    return CountUnreadNotificationsUseCase(uow)


def get_mark_read_use_case(uow=Depends(get_uow)):
    return MarkNotificationReadUseCase(uow)


def get_mark_all_read_use_case(uow=Depends(get_uow)):
    return MarkAllNotificationsReadUseCase(uow)


def get_delete_notification_use_case(uow=Depends(get_uow)):
    return DeleteNotificationUseCase(uow)


def get_preferences_use_case(uow=Depends(get_uow)):
    return GetPreferencesUseCase(uow)


def get_update_preferences_use_case(uow=Depends(get_uow)):
    return UpdatePreferencesUseCase(uow)


@router.get("/notifications", response_model=NotificationListResponse, responses=_ERRORS)
async def list_notifications(
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    user: User = Depends(get_current_user),
    use_case: ListNotificationsUseCase = Depends(get_list_notifications_use_case)
):
    """Уведомления пользователя, новые первыми"""
    try:
        result = await use_case(user, page, limit, unread_only)
        return NotificationListResponse(
            items=[NotificationResponse.from_domain(n) for n in result.items],
            total=result.total,
            unread_count=result.unread_count,
            page=result.page,
            total_pages=result.total_pages
        )
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: User = Depends(get_current_user),
    use_case: CountUnreadNotificationsUseCase = Depends(get_count_unread_use_case)
):
    return UnreadCountResponse(unread_count=await use_case(user))


@router.get("/notifications/preferences")
async def get_preferences(
    user: User = Depends(get_current_user),
    use_case: GetPreferencesUseCase = Depends(get_preferences_use_case)
):
    """Настройки уведомлений; создаются со значениями по умолчанию при первом обращении"""
    preference = await use_case(user)
    return preference.flags()


@router.put("/notifications/preferences")
async def update_preferences(
    changes: dict[str, bool],
    user: User = Depends(get_current_user),
    use_case: UpdatePreferencesUseCase = Depends(get_update_preferences_use_case)
):
    preference = await use_case(user, changes)
    return preference.flags()


@router.put("/notifications/read-all")
async def mark_all_read(
    user: User = Depends(get_current_user),
    use_case: MarkAllNotificationsReadUseCase = Depends(get_mark_all_read_use_case)
):
    updated = await use_case(user)
    return {"updated": updated}


@router.put("/notifications/{notification_id}/read", response_model=NotificationResponse, responses=_ERRORS)
async def mark_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    use_case: MarkNotificationReadUseCase = Depends(get_mark_read_use_case)
):
    try:
        notification = await use_case(user, notification_id)
        return NotificationResponse.from_domain(notification)
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def delete_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    use_case: DeleteNotificationUseCase = Depends(get_delete_notification_use_case)
):
    try:
        await use_case(user, notification_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@ws_router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    user_id: str = Query(...),
    registry=Depends(get_connection_registry),
    uow=Depends(get_uow)
):
    """Канал real-time уведомлений; входящие сообщения клиента игнорируются"""
    async with uow() as session:
        user = await session.users.get_by_id(user_id)
    if not user:
        logger.warning(f"WebSocket для неизвестного пользователя {user_id} отклонен")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await registry.register(user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket пользователя {user_id} закрыт")
    finally:
        await registry.unregister(user_id, websocket)
