from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from farm_market.config import settings
from farm_market.database import AsyncSessionLocal
from farm_market.domain.models import User
from farm_market.domain.exceptions import (
    DomainException, NotAuthorizedError, InvalidOrderStatusError, ConcurrentUpdateError, NotFoundError,
    InsufficientStockError, ProductUnavailableError, BusinessRuleError, PaymentMismatchError,
    PaymentServiceError, WebhookSignatureError
)
from farm_market.application.interfaces import UnitOfWork as AbstractUnitOfWork, PaymentsService, EmailSender
from farm_market.application.notify import NotifyUseCase
from farm_market.application.handle_event import HandleDomainEventUseCase
from farm_market.infrastructure.unit_of_work import UnitOfWork
from farm_market.infrastructure.http_clients import HTTPPaymentsClient
from farm_market.infrastructure.email_sender import SMTPEmailSender
from farm_market.infrastructure.realtime import ConnectionRegistry

# Один реестр соединений на процесс
connection_registry = ConnectionRegistry()


_STATUS_BY_EXCEPTION = (
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrentUpdateError, status.HTTP_409_CONFLICT),
    (PaymentServiceError, status.HTTP_502_BAD_GATEWAY),
    (InvalidOrderStatusError, status.HTTP_400_BAD_REQUEST),
    (InsufficientStockError, status.HTTP_400_BAD_REQUEST),
    (ProductUnavailableError, status.HTTP_400_BAD_REQUEST),
    (PaymentMismatchError, status.HTTP_400_BAD_REQUEST),
    (WebhookSignatureError, status.HTTP_400_BAD_REQUEST),
    (BusinessRuleError, status.HTTP_400_BAD_REQUEST),
)


def to_http_exception(error: DomainException) -> HTTPException:
    """Доменная ошибка → HTTP ответ с машинно-читаемой причиной"""
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(error, exc_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail={"reason": error.reason, "message": error.message})


# Фабрики инфраструктуры; в тестах подменяются через dependency_overrides
def get_uow() -> AbstractUnitOfWork:
    return UnitOfWork(AsyncSessionLocal, settings.ORDER_TRANSACTION_TIMEOUT)


def get_payments_service() -> PaymentsService:
    return HTTPPaymentsClient(
        settings.PAYMENTS_BASE_URL, settings.PAYMENTS_API_KEY, settings.PAYMENTS_WEBHOOK_SECRET
    )


def get_email_sender() -> Optional[EmailSender]:
    if not settings.email_enabled:
        return None
    return SMTPEmailSender(
        host=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        user=settings.EMAIL_USER,
        password=settings.EMAIL_PASSWORD,
        from_address=settings.EMAIL_FROM,
        use_tls=settings.EMAIL_USE_TLS
    )


def get_connection_registry() -> ConnectionRegistry:
    return connection_registry


def build_event_handler(uow, push_transport, email_sender: Optional[EmailSender]) -> HandleDomainEventUseCase:
    notify = NotifyUseCase(uow, push_transport, email_sender, settings.APP_URL)
    return HandleDomainEventUseCase(uow, notify)


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    uow=Depends(get_uow)
) -> User:
    """Пользователь из заголовка X-User-Id, который ставит шлюз"""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"reason": "not_authenticated", "message": "Не передан X-User-Id"}
        )
    async with uow() as session:
        user = await session.users.get_by_id(x_user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"reason": "not_authenticated", "message": "Пользователь не найден"}
        )
    return user
