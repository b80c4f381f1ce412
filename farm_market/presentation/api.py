from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from farm_market.presentation.schemas import (
    CreateOrderRequest, CreateBulkOrderRequest, ReorderRequest, ConfirmOrderRequest, DeclineOrderRequest,
    TrackingUpdateRequest, DeliveryDateRequest, DeliveryCostRequest, DeliveryCostResponse, OrderResponse, OrderListResponse, TrackingResponse,
    PaymentIntentRequest, PaymentIntentResponse, ConfirmPaymentRequest, PaymentStatusResponse, ErrorResponse
)
from farm_market.presentation.dependencies import (
    get_uow, get_payments_service, get_current_user, to_http_exception
)
from farm_market.application.place_order import (
    PlaceOrderUseCase, PlaceOrderDTO, PlaceBulkOrderUseCase, PlaceBulkOrderDTO, OrderItemDTO, ReorderUseCase,
    ReorderDTO
)
from farm_market.application.confirm_order import ConfirmOrderUseCase, ConfirmOrderDTO
from farm_market.application.decline_order import DeclineOrderUseCase, DeclineOrderDTO
from farm_market.application.cancel_order import CancelOrderUseCase
from farm_market.application.complete_order import CompleteOrderUseCase
from farm_market.application.get_order import (
    GetOrderUseCase, ListOrdersUseCase, ListOrdersDTO, GetOrderTrackingUseCase
)
from farm_market.application.update_delivery import (
    UpdateDeliveryTrackingUseCase, UpdateDeliveryTrackingDTO,
    UpdateEstimatedDeliveryUseCase, UpdateEstimatedDeliveryDTO
)
from farm_market.application.calculate_delivery import CalculateDeliveryCostUseCase, CalculateDeliveryCostDTO
from farm_market.application.process_payment import (
    CreatePaymentIntentUseCase, ConfirmPaymentUseCase, ProcessPaymentWebhookUseCase, GetPaymentStatusUseCase
)
from farm_market.domain.models import OrderStatus, User
from farm_market.domain.exceptions import DomainException
from farm_market.config import settings

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# Фабрики для создания use cases
def get_place_order_use_case(uow=Depends(get_uow)):
    return PlaceOrderUseCase(uow)


def get_place_bulk_order_use_case(uow=Depends(get_uow)):
    return PlaceBulkOrderUseCase(uow)


def get_reorder_use_case(uow=Depends(get_uow)):
    return ReorderUseCase(uow)


def get_confirm_order_use_case(uow=Depends(get_uow)):
    return ConfirmOrderUseCase(uow, settings.ESTIMATED_DELIVERY_DAYS)


def get_decline_order_use_case(uow=Depends(get_uow)):
    return DeclineOrderUseCase(uow)


def get_cancel_order_use_case(uow=Depends(get_uow)):
    return CancelOrderUseCase(uow)


def get_complete_order_use_case(uow=Depends(get_uow)):
    return CompleteOrderUseCase(uow)


def get_get_order_use_case(uow=Depends(get_uow)):
    return GetOrderUseCase(uow)


def get_list_orders_use_case(uow=Depends(get_uow)):
    return ListOrdersUseCase(uow)


def get_tracking_use_case(uow=Depends(get_uow)):
    return GetOrderTrackingUseCase(uow)


def get_update_tracking_use_case(uow=Depends(get_uow)):
    return UpdateDeliveryTrackingUseCase(uow)


def get_update_delivery_date_use_case(uow=Depends(get_uow)):
    return UpdateEstimatedDeliveryUseCase(uow)


def get_delivery_cost_use_case(uow=Depends(get_uow)):
    return CalculateDeliveryCostUseCase(uow, settings.PAYMENTS_CURRENCY)


def get_create_intent_use_case(uow=Depends(get_uow), payments=Depends(get_payments_service)):
    return CreatePaymentIntentUseCase(uow, payments, settings.PAYMENTS_CURRENCY)


def get_confirm_payment_use_case(uow=Depends(get_uow), payments=Depends(get_payments_service)):
    return ConfirmPaymentUseCase(uow, payments)


def get_webhook_use_case(uow=Depends(get_uow), payments=Depends(get_payments_service)):
    return ProcessPaymentWebhookUseCase(uow, payments)


def get_payment_status_use_case(uow=Depends(get_uow), payments=Depends(get_payments_service)):
    return GetPaymentStatusUseCase(uow, payments)


# Заказы
@router.post("/orders", response_model=OrderResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    user: User = Depends(get_current_user),
    use_case: PlaceOrderUseCase = Depends(get_place_order_use_case)
):
    """Создать заказ на один товар"""
    try:
        order = await use_case(user, PlaceOrderDTO(**request.model_dump()))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/orders/bulk", response_model=List[OrderResponse], responses=_ERRORS, status_code=status.HTTP_201_CREATED
)
async def create_bulk_order(
    request: CreateBulkOrderRequest,
    user: User = Depends(get_current_user),
    use_case: PlaceBulkOrderUseCase = Depends(get_place_bulk_order_use_case)
):
    """Создать по заказу на каждую позицию корзины"""
    try:
        dto = PlaceBulkOrderDTO(
            items=[OrderItemDTO(product_id=item.product_id, quantity=item.quantity) for item in request.items],
            delivery_address=request.delivery_address,
            contact_phone=request.contact_phone,
            notes=request.notes,
            scheduled_delivery_date=request.scheduled_delivery_date
        )
        orders = await use_case(user, dto)
        return [OrderResponse.from_domain(order) for order in orders]
    except DomainException as e:
        raise to_http_exception(e)


@router.post(
    "/orders/{order_id}/reorder", response_model=OrderResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED
)
async def reorder(
    order_id: str,
    request: Optional[ReorderRequest] = None,
    user: User = Depends(get_current_user),
    use_case: ReorderUseCase = Depends(get_reorder_use_case)
):
    """Повторить прошлый заказ, при желании с другим количеством"""
    try:
        order = await use_case(user, order_id, ReorderDTO(quantity=request.quantity if request else None))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/orders", response_model=OrderListResponse, responses=_ERRORS)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    product_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    farmer_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
    sort_by: str = "newest",
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_user),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Заказы пользователя в зависимости от роли"""
    try:
        dto = ListOrdersDTO(
            status=status_filter,
            product_id=product_id,
            date_from=date_from,
            date_to=date_to,
            farmer_id=farmer_id,
            buyer_id=buyer_id,
            sort_by=sort_by,
            page=page,
            limit=limit
        )
        result = await use_case(user, dto)
        return OrderListResponse(
            items=[OrderResponse.from_domain(order) for order in result.items],
            total=result.total,
            page=result.page,
            total_pages=result.total_pages
        )
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=_ERRORS)
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(user, order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/confirm", response_model=OrderResponse, responses=_ERRORS)
async def confirm_order(
    order_id: str,
    request: Optional[ConfirmOrderRequest] = None,
    user: User = Depends(get_current_user),
    use_case: ConfirmOrderUseCase = Depends(get_confirm_order_use_case)
):
    """Фермер подтверждает заказ, остаток резервируется"""
    try:
        dto = ConfirmOrderDTO(**request.model_dump()) if request else None
        order = await use_case(user, order_id, dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/decline", response_model=OrderResponse, responses=_ERRORS)
async def decline_order(
    order_id: str,
    request: Optional[DeclineOrderRequest] = None,
    user: User = Depends(get_current_user),
    use_case: DeclineOrderUseCase = Depends(get_decline_order_use_case)
):
    """Фермер отклоняет новый заказ"""
    try:
        dto = DeclineOrderDTO(farmer_notes=request.farmer_notes) if request else None
        order = await use_case(user, order_id, dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/cancel", response_model=OrderResponse, responses=_ERRORS)
async def cancel_order(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    """Покупатель отменяет заказ"""
    try:
        order = await use_case(user, order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/complete", response_model=OrderResponse, responses=_ERRORS)
async def complete_order(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: CompleteOrderUseCase = Depends(get_complete_order_use_case)
):
    try:
        order = await use_case(user, order_id)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/orders/{order_id}/tracking", response_model=TrackingResponse, responses=_ERRORS)
async def get_order_tracking(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: GetOrderTrackingUseCase = Depends(get_tracking_use_case)
):
    try:
        tracking = await use_case(user, order_id)
        return TrackingResponse.from_tracking(tracking)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/delivery-date", response_model=OrderResponse, responses=_ERRORS)
async def update_delivery_date(
    order_id: str,
    request: DeliveryDateRequest,
    user: User = Depends(get_current_user),
    use_case: UpdateEstimatedDeliveryUseCase = Depends(get_update_delivery_date_use_case)
):
    try:
        dto = UpdateEstimatedDeliveryDTO(estimated_delivery_date=request.estimated_delivery_date)
        order = await use_case(user, order_id, dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


# Доставка
@router.get("/delivery/tracking/{order_id}", response_model=TrackingResponse, responses=_ERRORS)
async def get_delivery_tracking(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: GetOrderTrackingUseCase = Depends(get_tracking_use_case)
):
    try:
        tracking = await use_case(user, order_id)
        return TrackingResponse.from_tracking(tracking)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/delivery/tracking/{order_id}", response_model=OrderResponse, responses=_ERRORS)
async def update_delivery_tracking(
    order_id: str,
    request: TrackingUpdateRequest,
    user: User = Depends(get_current_user),
    use_case: UpdateDeliveryTrackingUseCase = Depends(get_update_tracking_use_case)
):
    """Фермер обновляет статус доставки; delivered завершает заказ"""
    try:
        order = await use_case(user, order_id, UpdateDeliveryTrackingDTO(**request.model_dump()))
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/delivery/calculate-cost", response_model=DeliveryCostResponse, responses=_ERRORS)
async def calculate_delivery_cost(
    request: DeliveryCostRequest,
    user: User = Depends(get_current_user),
    use_case: CalculateDeliveryCostUseCase = Depends(get_delivery_cost_use_case)
):
    try:
        quote = await use_case(user, CalculateDeliveryCostDTO(**request.model_dump()))
        return DeliveryCostResponse(**quote.model_dump())
    except DomainException as e:
        raise to_http_exception(e)


# Оплата
@router.post("/payments/create-intent", response_model=PaymentIntentResponse, responses={**_ERRORS, 502: {"model": ErrorResponse}})
async def create_payment_intent(
    request: PaymentIntentRequest,
    user: User = Depends(get_current_user),
    use_case: CreatePaymentIntentUseCase = Depends(get_create_intent_use_case)
):
    """Создать (или переиспользовать) платежное намерение для заказа"""
    try:
        result = await use_case(user, request.order_id)
        return PaymentIntentResponse(**result.model_dump())
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/payments/confirm", response_model=PaymentStatusResponse, responses={**_ERRORS, 502: {"model": ErrorResponse}})
async def confirm_payment(
    request: ConfirmPaymentRequest,
    user: User = Depends(get_current_user),
    use_case: ConfirmPaymentUseCase = Depends(get_confirm_payment_use_case)
):
    """Покупатель сообщает о завершении оплаты"""
    try:
        confirmation = await use_case(user, request.order_id, request.payment_intent_id)
    except DomainException as e:
        raise to_http_exception(e)

    if not confirmation.succeeded:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": "payment_failed", "message": f"Payment failed: {confirmation.provider_status}"}
        )

    order = confirmation.order
    return PaymentStatusResponse(
        order_id=order.id,
        payment_status=order.payment_status,
        payment_intent_id=order.payment_intent_id,
        payment_amount=order.payment_amount,
        payment_method=order.payment_method,
        paid_at=order.paid_at
    )


@router.post("/payments/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    use_case: ProcessPaymentWebhookUseCase = Depends(get_webhook_use_case)
):
    """Обработка вебхука платежного провайдера"""
    payload = await request.body()
    try:
        return await use_case(payload, stripe_signature or "")
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/payments/status/{order_id}", response_model=PaymentStatusResponse, responses=_ERRORS)
async def get_payment_status(
    order_id: str,
    user: User = Depends(get_current_user),
    use_case: GetPaymentStatusUseCase = Depends(get_payment_status_use_case)
):
    try:
        view = await use_case(user, order_id)
        return PaymentStatusResponse(**view.model_dump())
    except DomainException as e:
        raise to_http_exception(e)
