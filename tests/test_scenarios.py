"""End-to-end flows: order mutations, outbox relay and notification delivery together."""

from decimal import Decimal

from farm_market.application.cancel_order import CancelOrderUseCase
from farm_market.application.confirm_order import ConfirmOrderUseCase
from farm_market.application.manage_notifications import UpdatePreferencesUseCase
from farm_market.application.manage_products import UpdateProductDTO, UpdateProductUseCase
from farm_market.application.manage_wishlists import AddToWishlistUseCase
from farm_market.application.place_order import PlaceOrderDTO, PlaceOrderUseCase
from farm_market.domain.models import CancellationActor, OrderStatus, ProductStatus
from farm_market.domain.notifications import NotificationType

from conftest import FakeChannel
from helpers import list_notifications, load_order, load_product


class TestOrderScenarios:
    async def test_place_confirm_cancel(self, uow, drain_outbox, buyer, farmer, make_product):
        product = await make_product(farmer, price="2.00", quantity=10)

        order = await PlaceOrderUseCase(uow)(buyer, PlaceOrderDTO(product_id=product.id, quantity=3))
        assert order.status == OrderStatus.PENDING
        assert order.total_price == Decimal("6.00")
        assert len(order.status_history) == 1

        await ConfirmOrderUseCase(uow)(farmer, order.id)
        await drain_outbox()
        confirmed = await load_order(uow, order.id)
        assert (await load_product(uow, product.id)).quantity == 7
        assert confirmed.status == OrderStatus.CONFIRMED
        assert len(confirmed.status_history) == 2
        buyer_notifications = await list_notifications(uow, buyer.id)
        assert [n.type for n in buyer_notifications] == [NotificationType.ORDER_CONFIRMED]

        await CancelOrderUseCase(uow)(buyer, order.id)
        cancelled = await load_order(uow, order.id)
        assert (await load_product(uow, product.id)).quantity == 10
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_by == CancellationActor.BUYER
        assert len(cancelled.status_history) == 3

    async def test_last_units_flip_product_status(self, uow, buyer, farmer, make_product):
        product = await make_product(farmer, quantity=3)
        order = await PlaceOrderUseCase(uow)(buyer, PlaceOrderDTO(product_id=product.id, quantity=3))

        await ConfirmOrderUseCase(uow)(farmer, order.id)
        sold_out = await load_product(uow, product.id)
        assert (sold_out.quantity, sold_out.status) == (0, ProductStatus.SOLD_OUT)

        await CancelOrderUseCase(uow)(buyer, order.id)
        restored = await load_product(uow, product.id)
        assert (restored.quantity, restored.status) == (3, ProductStatus.ACTIVE)


class TestPriceDropScenario:
    async def test_push_only_preference(self, uow, drain_outbox, registry, email_sender, buyer, farmer, product):
        await UpdatePreferencesUseCase(uow)(buyer, {"email_price_drop": False, "push_price_drop": True})
        await AddToWishlistUseCase(uow)(buyer, product.id)
        channel = FakeChannel()
        await registry.register(buyer.id, channel)

        await UpdateProductUseCase(uow)(farmer, product.id, UpdateProductDTO(price=Decimal("7.00")))
        await drain_outbox()

        assert [m["type"] for m in channel.messages] == ["price_drop"]
        assert email_sender.sent == []
        [notification] = await list_notifications(uow, buyer.id)
        assert notification.type == NotificationType.PRICE_DROP
