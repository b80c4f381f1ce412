class DomainException(Exception):
    """Базовая ошибка предметной области.

    ``reason`` - машинно-читаемый код причины отказа, его отдает API.
    """

    reason = "domain_error"

    def __init__(self, message: str = "", reason: str | None = None):
        if reason is not None:
            self.reason = reason
        self.message = message or self.reason
        super().__init__(self.message)


class NotAuthorizedError(DomainException):
    reason = "not_authorized"


class InvalidOrderStatusError(DomainException):
    reason = "invalid_status"

    def __init__(self, current_status, action: str):
        self.current_status = current_status
        self.action = action
        status_value = getattr(current_status, "value", current_status)
        super().__init__(f"Нельзя выполнить '{action}' для заказа в статусе {status_value}")


class ConcurrentUpdateError(DomainException):
    reason = "concurrent_update"


class NotFoundError(DomainException):
    reason = "not_found"


class OrderNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class NotificationNotFoundError(NotFoundError):
    pass


class WishlistItemNotFoundError(NotFoundError):
    pass


class InsufficientStockError(DomainException):
    reason = "insufficient_stock"

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(f"Недостаточно товара. Доступно: {available}, требуется: {required}")


class ProductUnavailableError(DomainException):
    reason = "product_unavailable"


class BusinessRuleError(DomainException):
    """Нарушение прочих правил (свой товар, повторная подписка, оценка вне диапазона)."""

    reason = "rule_violation"


class PaymentServiceError(DomainException):
    reason = "payment_provider_error"


class PaymentMismatchError(DomainException):
    reason = "payment_mismatch"


class WebhookSignatureError(DomainException):
    reason = "invalid_signature"
