from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status

from farm_market.presentation.schemas import (
    RegisterUserRequest, UserResponse, CreateProductRequest, UpdateProductRequest, ProductResponse, ProductListResponse,
    WishlistItemRequest, PriceAlertRequest, WishlistItemResponse, PriceAlertResponse,
    CreateReviewRequest, ReviewResponse, SendMessageRequest, MessageResponse, ErrorResponse
)
from farm_market.presentation.dependencies import get_uow, get_current_user, to_http_exception
from farm_market.application.social import (
    RegisterUserUseCase, RegisterUserDTO, FollowFarmerUseCase, UnfollowFarmerUseCase, ListFollowingUseCase,
    CreateReviewUseCase, CreateReviewDTO, SendMessageUseCase, SendMessageDTO
)
from farm_market.application.manage_products import (
    CreateProductUseCase, CreateProductDTO, UpdateProductUseCase, UpdateProductDTO,
    ApproveProductUseCase, GetProductUseCase, ListProductsUseCase, ListProductsDTO, ListFarmerProductsUseCase,
    ProductPage
)
from farm_market.application.manage_wishlists import (
    AddToWishlistUseCase, RemoveFromWishlistUseCase, SetPriceAlertUseCase, ListWishlistUseCase,
    PriceAlertsReportUseCase
)
from farm_market.domain.models import ProductStatus, User
from farm_market.domain.exceptions import DomainException

router = APIRouter()

_ERRORS = {400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


# Пользователи
@router.post("/users", response_model=UserResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED)
async def register_user(request: RegisterUserRequest, uow=Depends(get_uow)):
    try:
        user = await RegisterUserUseCase(uow)(RegisterUserDTO(**request.model_dump()))
        return UserResponse.from_domain(user)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/users/me", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    return UserResponse.from_domain(user)


# Товары
@router.post("/products", response_model=ProductResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: CreateProductRequest,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        product = await CreateProductUseCase(uow)(user, CreateProductDTO(**request.model_dump()))
        return ProductResponse.from_domain(product)
    except DomainException as e:
        raise to_http_exception(e)


def _product_page(page: ProductPage) -> ProductListResponse:
    return ProductListResponse(
        items=[ProductResponse.from_domain(product) for product in page.items],
        total=page.total,
        page=page.page,
        total_pages=page.total_pages
    )


@router.get("/products", response_model=ProductListResponse, responses=_ERRORS)
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    status_filter: ProductStatus = Query(default=ProductStatus.ACTIVE, alias="status"),
    sort_by: str = "newest",
    page: int = 1,
    limit: int = 20,
    uow=Depends(get_uow)
):
    """Каталог одобренных товаров с фильтрами и поиском по названию и описанию"""
    try:
        dto = ListProductsDTO(
            category=category,
            search=search,
            min_price=min_price,
            max_price=max_price,
            status=status_filter,
            sort_by=sort_by,
            page=page,
            limit=limit
        )
        return _product_page(await ListProductsUseCase(uow)(dto))
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/products/farmer/my-products", response_model=ProductListResponse, responses=_ERRORS)
async def list_my_products(
    page: int = 1,
    limit: int = 100,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        return _product_page(await ListFarmerProductsUseCase(uow)(user, page, limit))
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/products/{product_id}", response_model=ProductResponse, responses=_ERRORS)
async def get_product(product_id: str, uow=Depends(get_uow)):
    try:
        product = await GetProductUseCase(uow)(product_id)
        return ProductResponse.from_domain(product)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/products/{product_id}", response_model=ProductResponse, responses=_ERRORS)
async def update_product(
    product_id: str,
    request: UpdateProductRequest,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    """Изменение товара; снижение цены рассылает алерты по спискам желаний"""
    try:
        dto = UpdateProductDTO(**request.model_dump(exclude_unset=True))
        product = await UpdateProductUseCase(uow)(user, product_id, dto)
        return ProductResponse.from_domain(product)
    except DomainException as e:
        raise to_http_exception(e)


@router.put("/products/{product_id}/approve", response_model=ProductResponse, responses=_ERRORS)
async def approve_product(
    product_id: str,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        product = await ApproveProductUseCase(uow)(user, product_id)
        return ProductResponse.from_domain(product)
    except DomainException as e:
        raise to_http_exception(e)


# Списки желаний
@router.get("/wishlists/items", response_model=List[WishlistItemResponse])
async def list_wishlist(user: User = Depends(get_current_user), uow=Depends(get_uow)):
    items = await ListWishlistUseCase(uow)(user)
    return [WishlistItemResponse.from_domain(item) for item in items]


@router.post("/wishlists/items", response_model=WishlistItemResponse, responses=_ERRORS)
async def add_to_wishlist(
    request: WishlistItemRequest,
    response: Response,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        item, created = await AddToWishlistUseCase(uow)(user, request.product_id)
    except DomainException as e:
        raise to_http_exception(e)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return WishlistItemResponse.from_domain(item)


@router.put("/wishlists/items/{product_id}/alert", response_model=WishlistItemResponse, responses=_ERRORS)
async def set_price_alert(
    product_id: str,
    request: PriceAlertRequest,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        item = await SetPriceAlertUseCase(uow)(user, product_id, request.price_drop_alert, request.notes)
        return WishlistItemResponse.from_domain(item)
    except DomainException as e:
        raise to_http_exception(e)


@router.delete("/wishlists/items/{product_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def remove_from_wishlist(
    product_id: str,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        await RemoveFromWishlistUseCase(uow)(user, product_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/wishlists/price-alerts", response_model=List[PriceAlertResponse])
async def price_alerts(user: User = Depends(get_current_user), uow=Depends(get_uow)):
    alerts = await PriceAlertsReportUseCase(uow)(user)
    return [
        PriceAlertResponse(
            product_id=alert.product.id,
            product_name=alert.product.name,
            added_at_price=alert.item.added_at_price,
            price=alert.product.price,
            price_drop=alert.price_drop,
            percentage=alert.percentage
        )
        for alert in alerts
    ]


# Подписки
@router.get("/follows", response_model=List[UserResponse])
async def list_following(user: User = Depends(get_current_user), uow=Depends(get_uow)):
    farmers = await ListFollowingUseCase(uow)(user)
    return [UserResponse.from_domain(farmer) for farmer in farmers]


@router.post("/follows/{farmer_id}", status_code=status.HTTP_201_CREATED, responses=_ERRORS)
async def follow_farmer(farmer_id: str, user: User = Depends(get_current_user), uow=Depends(get_uow)):
    try:
        await FollowFarmerUseCase(uow)(user, farmer_id)
    except DomainException as e:
        raise to_http_exception(e)
    return {"following": farmer_id}


@router.delete("/follows/{farmer_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_ERRORS)
async def unfollow_farmer(farmer_id: str, user: User = Depends(get_current_user), uow=Depends(get_uow)):
    try:
        await UnfollowFarmerUseCase(uow)(user, farmer_id)
    except DomainException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Отзывы и сообщения
@router.post("/reviews", response_model=ReviewResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED)
async def create_review(
    request: CreateReviewRequest,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        review = await CreateReviewUseCase(uow)(user, CreateReviewDTO(**request.model_dump()))
        return ReviewResponse(**review.model_dump())
    except DomainException as e:
        raise to_http_exception(e)


@router.post("/messages", response_model=MessageResponse, responses=_ERRORS, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: SendMessageRequest,
    user: User = Depends(get_current_user),
    uow=Depends(get_uow)
):
    try:
        message = await SendMessageUseCase(uow)(user, SendMessageDTO(**request.model_dump()))
        return MessageResponse(**message.model_dump())
    except DomainException as e:
        raise to_http_exception(e)
