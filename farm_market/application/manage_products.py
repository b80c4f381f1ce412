import logging
import math
import uuid
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, Field

from farm_market.domain.models import Product, ProductStatus, User, UserRole, utcnow
from farm_market.domain.events import EventType
from farm_market.domain.exceptions import ProductNotFoundError, NotAuthorizedError, BusinessRuleError
from farm_market.application.interfaces import UnitOfWork

logger = logging.getLogger(__name__)


PRODUCT_SORTS = ("newest", "price_low", "price_high", "name")


class CreateProductDTO(BaseModel):
    name: str
    category: str = "other"
    description: str = ""
    price: Decimal
    quantity: int
    unit: str = "piece"
    farm_location: dict[str, Any] = Field(default_factory=dict)


class UpdateProductDTO(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
    unit: Optional[str] = None
    status: Optional[ProductStatus] = None
    farm_location: Optional[dict[str, Any]] = None


def _check_values(price: Optional[Decimal], quantity: Optional[int]) -> None:
    if price is not None and price <= 0:
        raise BusinessRuleError("Цена должна быть больше нуля", reason="invalid_price")
    if quantity is not None and quantity < 0:
        raise BusinessRuleError("Количество не может быть отрицательным", reason="invalid_quantity")


def _check_paging(page: int, limit: int) -> None:
    if page < 1 or limit < 1:
        raise BusinessRuleError("page и limit должны быть положительными", reason="invalid_paging")


def _status_for_stock(current: ProductStatus, quantity: int) -> ProductStatus:
    if quantity == 0 and current == ProductStatus.ACTIVE:
        return ProductStatus.SOLD_OUT
    if quantity > 0 and current == ProductStatus.SOLD_OUT:
        return ProductStatus.ACTIVE
    return current


async def _get_product_or_raise(uow, product_id: str, for_update: bool = False) -> Product:
    if for_update:
        product = await uow.products.get_for_update(product_id)
    else:
        product = await uow.products.get_by_id(product_id)
    if not product:
        raise ProductNotFoundError(f"Товар {product_id} не найден")
    return product


class CreateProductUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, dto: CreateProductDTO) -> Product:
        if actor.role not in (UserRole.FARMER, UserRole.ADMIN):
            raise NotAuthorizedError("Создавать товары могут только фермеры")
        _check_values(dto.price, dto.quantity)

        now = utcnow()
        product = Product(
            id=str(uuid.uuid4()),
            farmer_id=actor.id,
            name=dto.name,
            category=dto.category,
            description=dto.description,
            price=dto.price,
            quantity=dto.quantity,
            unit=dto.unit,
            status=ProductStatus.ACTIVE if dto.quantity > 0 else ProductStatus.SOLD_OUT,
            # Товары администратора сразу одобрены
            is_approved=actor.is_admin,
            farm_location=dto.farm_location,
            created_at=now,
            updated_at=now
        )

        async with self._uow() as uow:
            await uow.products.create(product)
            await uow.outbox.create(
                event_type=EventType.PRODUCT_CREATED.value,
                event_data={
                    "product_id": product.id,
                    "product_name": product.name,
                    "farmer_id": product.farmer_id,
                    "farmer_name": actor.name,
                },
                aggregate_id=product.id
            )
            await uow.commit()

        logger.info(f"Товар создан: {product.id} ({product.name})")
        return product


class ApproveProductUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, product_id: str) -> Product:
        if not actor.is_admin:
            raise NotAuthorizedError("Одобрять товары может только администратор")

        async with self._uow() as uow:
            product = await _get_product_or_raise(uow, product_id)
            product.is_approved = True
            product.updated_at = utcnow()
            await uow.products.update(product.id, {"is_approved": True, "updated_at": product.updated_at})
            await uow.commit()

        logger.info(f"Товар {product.id} одобрен")
        return product


class UpdateProductUseCase:
    """Изменение товара владельцем или администратором.

    Строка товара блокируется, в БД пишутся только переданные поля, так что
    параллельное списание остатка при подтверждении заказа не теряется.
    При любой смене цены обновляется current_price позиций в списках желаний;
    позиции с включенным алертом и ценой строго ниже записанной получают
    событие wishlist.price_dropped.
    """

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, product_id: str, dto: UpdateProductDTO) -> Product:
        _check_values(dto.price, dto.quantity)
        changes = dto.model_dump(exclude_none=True)

        async with self._uow() as uow:
            product = await _get_product_or_raise(uow, product_id, for_update=True)
            if not product.can_be_managed_by(actor):
                raise NotAuthorizedError("Нельзя изменять чужой товар")

            old_price = product.price
            if "quantity" in changes and "status" not in changes:
                status = _status_for_stock(product.status, changes["quantity"])
                if status != product.status:
                    changes["status"] = status
            for field, value in changes.items():
                setattr(product, field, value)
            product.updated_at = utcnow()
            await uow.products.update(product.id, {**changes, "updated_at": product.updated_at})

            alerts = 0
            if dto.price is not None and dto.price != old_price:
                alerts = await self._sync_wishlist_prices(uow, product)

            await uow.commit()

        logger.info(f"Товар {product.id} обновлен: {sorted(changes)}; алертов о снижении цены: {alerts}")
        return product

    async def _sync_wishlist_prices(self, uow, product: Product) -> int:
        alerts = 0
        for item, owner_id in await uow.wishlists.list_product_items(product.id):
            old_price = item.recorded_price
            dropped = item.is_price_drop(product.price)
            item.current_price = product.price
            await uow.wishlists.update_item(item)
            if not dropped:
                continue

            await uow.outbox.create(
                event_type=EventType.PRICE_DROPPED.value,
                event_data={
                    "user_id": owner_id,
                    "product_id": product.id,
                    "product_name": product.name,
                    "wishlist_item_id": item.id,
                    "old_price": str(old_price),
                    "new_price": str(product.price),
                },
                aggregate_id=product.id
            )
            alerts += 1
        return alerts


class GetProductUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, product_id: str) -> Product:
        async with self._uow() as uow:
            return await _get_product_or_raise(uow, product_id)


class ListProductsDTO(BaseModel):
    category: Optional[str] = None
    search: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    status: ProductStatus = ProductStatus.ACTIVE
    sort_by: str = "newest"
    page: int = 1
    limit: int = 20


class ProductPage(BaseModel):
    items: List[Product]
    total: int
    page: int
    total_pages: int


class ListProductsUseCase:
    """Публичный каталог: только одобренные товары"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, dto: ListProductsDTO) -> ProductPage:
        _check_paging(dto.page, dto.limit)
        if dto.sort_by not in PRODUCT_SORTS:
            raise BusinessRuleError(f"Неизвестная сортировка {dto.sort_by}", reason="invalid_sort")

        filters = {
            "approved_only": True,
            "status": dto.status.value,
            "category": dto.category,
            "search": dto.search.strip() if dto.search else None,
            "min_price": dto.min_price,
            "max_price": dto.max_price,
        }
        async with self._uow() as uow:
            items, total = await uow.products.list(
                filters, dto.sort_by, limit=dto.limit, offset=(dto.page - 1) * dto.limit
            )

        return ProductPage(items=items, total=total, page=dto.page, total_pages=math.ceil(total / dto.limit))


class ListFarmerProductsUseCase:
    """Все товары фермера, включая неодобренные и снятые с продажи"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, page: int = 1, limit: int = 100) -> ProductPage:
        if actor.role not in (UserRole.FARMER, UserRole.ADMIN):
            raise NotAuthorizedError("Список своих товаров доступен только фермерам")
        _check_paging(page, limit)

        async with self._uow() as uow:
            items, total = await uow.products.list(
                {"farmer_id": actor.id}, "newest", limit=limit, offset=(page - 1) * limit
            )

        logger.info(f"Товаров фермера {actor.id}: {total}")
        return ProductPage(items=items, total=total, page=page, total_pages=math.ceil(total / limit))
