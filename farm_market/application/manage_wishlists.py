import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple
from pydantic import BaseModel

from farm_market.domain.models import Product, User, Wishlist, WishlistItem, utcnow
from farm_market.domain.exceptions import ProductNotFoundError, WishlistItemNotFoundError
from farm_market.application.interfaces import UnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_WISHLIST_NAME = "My Wishlist"


async def _get_default_wishlist(uow, user_id: str, create: bool = False) -> Optional[Wishlist]:
    wishlist = await uow.wishlists.get_default(user_id)
    if wishlist is None and create:
        wishlist = Wishlist(id=str(uuid.uuid4()), user_id=user_id, name=DEFAULT_WISHLIST_NAME, created_at=utcnow())
        await uow.wishlists.create(wishlist)
    return wishlist


async def _get_item_or_raise(uow, user_id: str, product_id: str) -> WishlistItem:
    wishlist = await _get_default_wishlist(uow, user_id)
    item = await uow.wishlists.get_item(wishlist.id, product_id) if wishlist else None
    if not item:
        raise WishlistItemNotFoundError(f"Товара {product_id} нет в списке желаний")
    return item


class AddToWishlistUseCase:
    """Быстрое добавление товара в список по умолчанию; повторное добавление не дублирует позицию"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, product_id: str) -> Tuple[WishlistItem, bool]:
        async with self._uow() as uow:
            product = await uow.products.get_by_id(product_id)
            if not product:
                raise ProductNotFoundError(f"Товар {product_id} не найден")

            wishlist = await _get_default_wishlist(uow, actor.id, create=True)
            existing = await uow.wishlists.get_item(wishlist.id, product_id)
            if existing:
                await uow.commit()
                return existing, False

            item = WishlistItem(
                id=str(uuid.uuid4()),
                wishlist_id=wishlist.id,
                product_id=product_id,
                added_at_price=product.price,
                current_price=product.price,
                price_drop_alert=True,
                created_at=utcnow()
            )
            await uow.wishlists.add_item(item)
            await uow.commit()

        logger.info(f"Товар {product_id} добавлен в список желаний {actor.id}")
        return item, True


class RemoveFromWishlistUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, product_id: str) -> None:
        async with self._uow() as uow:
            item = await _get_item_or_raise(uow, actor.id, product_id)
            await uow.wishlists.remove_item(item.id)
            await uow.commit()


class SetPriceAlertUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User, product_id: str, enabled: bool, notes: Optional[str] = None) -> WishlistItem:
        async with self._uow() as uow:
            item = await _get_item_or_raise(uow, actor.id, product_id)
            item.price_drop_alert = enabled
            if notes is not None:
                item.notes = notes
            await uow.wishlists.update_item(item)
            await uow.commit()
        return item


class ListWishlistUseCase:
    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> List[WishlistItem]:
        async with self._uow() as uow:
            wishlist = await _get_default_wishlist(uow, actor.id)
            if not wishlist:
                return []
            return await uow.wishlists.list_items(wishlist.id)


class PriceAlert(BaseModel):
    item: WishlistItem
    product: Product
    price_drop: Decimal
    percentage: Decimal


class PriceAlertsReportUseCase:
    """Позиции, у которых текущая цена товара ниже цены при добавлении"""

    def __init__(self, unit_of_work: UnitOfWork):
        self._uow = unit_of_work

    async def __call__(self, actor: User) -> List[PriceAlert]:
        alerts = []
        async with self._uow() as uow:
            wishlist = await _get_default_wishlist(uow, actor.id)
            if not wishlist:
                return []
            for item in await uow.wishlists.list_items(wishlist.id):
                if not item.price_drop_alert:
                    continue
                product = await uow.products.get_by_id(item.product_id)
                if not product:
                    continue
                added_price = item.added_at_price if item.added_at_price is not None else product.price
                if product.price < added_price:
                    drop = added_price - product.price
                    alerts.append(PriceAlert(
                        item=item,
                        product=product,
                        price_drop=drop,
                        percentage=(drop / added_price * 100).quantize(Decimal("0.01"))
                    ))
        return alerts
