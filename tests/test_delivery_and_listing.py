"""Application tests for delivery tracking, delivery cost, order queries and listing."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from farm_market.application.calculate_delivery import CalculateDeliveryCostDTO, CalculateDeliveryCostUseCase
from farm_market.application.cancel_order import CancelOrderUseCase
from farm_market.application.confirm_order import ConfirmOrderUseCase
from farm_market.application.get_order import (
    GetOrderTrackingUseCase, GetOrderUseCase, ListOrdersDTO, ListOrdersUseCase
)
from farm_market.application.place_order import PlaceOrderDTO, PlaceOrderUseCase
from farm_market.application.update_delivery import (
    UpdateDeliveryTrackingDTO, UpdateDeliveryTrackingUseCase, UpdateEstimatedDeliveryDTO,
    UpdateEstimatedDeliveryUseCase
)
from farm_market.domain.exceptions import (
    BusinessRuleError, InvalidOrderStatusError, NotAuthorizedError, OrderNotFoundError, ProductNotFoundError
)
from farm_market.domain.models import DeliveryStatus, OrderStatus, UserRole

from helpers import load_order, pending_events


@pytest.fixture
def place(uow, buyer):
    async def _place(product, quantity=1, who=None):
        return await PlaceOrderUseCase(uow)(who or buyer, PlaceOrderDTO(product_id=product.id, quantity=quantity))

    return _place


@pytest.fixture
async def confirmed_order(uow, place, farmer, product):
    order = await place(product)
    return await ConfirmOrderUseCase(uow)(farmer, order.id)


class TestDeliveryTracking:
    async def test_status_change_is_logged_in_history(self, uow, farmer, confirmed_order):
        dto = UpdateDeliveryTrackingDTO(
            delivery_status=DeliveryStatus.IN_TRANSIT, tracking_number="TRK-1", delivery_service="FarmExpress"
        )

        order = await UpdateDeliveryTrackingUseCase(uow)(farmer, confirmed_order.id, dto)

        assert order.delivery_status == DeliveryStatus.IN_TRANSIT
        assert order.status == OrderStatus.CONFIRMED
        last = order.status_history[-1]
        assert (last.status, last.notes) == ("in_transit", "Tracking: TRK-1")
        stored = await load_order(uow, order.id)
        assert stored.tracking_number == "TRK-1"
        assert stored.delivery_service == "FarmExpress"

    async def test_delivered_completes_order_once(self, uow, farmer, confirmed_order):
        use_case = UpdateDeliveryTrackingUseCase(uow)
        delivered = UpdateDeliveryTrackingDTO(delivery_status=DeliveryStatus.DELIVERED)

        order = await use_case(farmer, confirmed_order.id, delivered)
        again = await use_case(farmer, confirmed_order.id, delivered)

        assert order.status == OrderStatus.COMPLETED
        assert order.actual_delivery_date is not None
        assert again.status == OrderStatus.COMPLETED
        completed = [e for e in await pending_events(uow) if e["event_type"] == "order.completed"]
        assert len(completed) == 1

    async def test_delivered_requires_confirmed_order(self, uow, place, farmer, product):
        order = await place(product)
        with pytest.raises(InvalidOrderStatusError):
            await UpdateDeliveryTrackingUseCase(uow)(
                farmer, order.id, UpdateDeliveryTrackingDTO(delivery_status=DeliveryStatus.DELIVERED)
            )

    async def test_cancelled_order_rejects_tracking(self, uow, buyer, farmer, confirmed_order):
        await CancelOrderUseCase(uow)(buyer, confirmed_order.id)
        with pytest.raises(InvalidOrderStatusError):
            await UpdateDeliveryTrackingUseCase(uow)(
                farmer, confirmed_order.id, UpdateDeliveryTrackingDTO(tracking_number="TRK-2")
            )

    async def test_only_farmer_or_admin(self, uow, buyer, admin, confirmed_order):
        dto = UpdateDeliveryTrackingDTO(delivery_status=DeliveryStatus.SCHEDULED)
        with pytest.raises(NotAuthorizedError):
            await UpdateDeliveryTrackingUseCase(uow)(buyer, confirmed_order.id, dto)

        order = await UpdateDeliveryTrackingUseCase(uow)(admin, confirmed_order.id, dto)
        assert order.delivery_status == DeliveryStatus.SCHEDULED


class TestEstimatedDelivery:
    async def test_farmer_sets_date(self, uow, farmer, confirmed_order):
        eta = datetime(2030, 5, 1, tzinfo=timezone.utc)

        order = await UpdateEstimatedDeliveryUseCase(uow)(
            farmer, confirmed_order.id, UpdateEstimatedDeliveryDTO(estimated_delivery_date=eta)
        )

        assert order.estimated_delivery_date == eta

    async def test_terminal_order_is_rejected(self, uow, buyer, farmer, confirmed_order):
        await CancelOrderUseCase(uow)(buyer, confirmed_order.id)
        with pytest.raises(InvalidOrderStatusError):
            await UpdateEstimatedDeliveryUseCase(uow)(
                farmer, confirmed_order.id,
                UpdateEstimatedDeliveryDTO(estimated_delivery_date=datetime.now(timezone.utc) + timedelta(days=1))
            )


class TestOrderQueries:
    async def test_participants_and_admin_can_read(self, uow, buyer, farmer, admin, confirmed_order):
        for actor in (buyer, farmer, admin):
            assert (await GetOrderUseCase(uow)(actor, confirmed_order.id)).id == confirmed_order.id

    async def test_stranger_cannot_read(self, uow, make_user, confirmed_order):
        stranger = await make_user()
        with pytest.raises(NotAuthorizedError):
            await GetOrderUseCase(uow)(stranger, confirmed_order.id)

    async def test_missing_order(self, uow, buyer):
        with pytest.raises(OrderNotFoundError):
            await GetOrderUseCase(uow)(buyer, "missing")

    async def test_tracking_timeline(self, uow, buyer, confirmed_order):
        tracking = await GetOrderTrackingUseCase(uow)(buyer, confirmed_order.id)
        assert [entry.status for entry in tracking.timeline] == ["pending", "confirmed"]


class TestListOrders:
    async def test_scoped_by_role(self, uow, place, buyer, farmer, admin, make_user, make_product, product):
        other_farmer = await make_user(UserRole.FARMER)
        other_product = await make_product(other_farmer, name="Eggs")
        await place(product)
        await place(other_product)

        use_case = ListOrdersUseCase(uow)
        assert (await use_case(buyer, ListOrdersDTO())).total == 2
        assert (await use_case(farmer, ListOrdersDTO())).total == 1
        assert (await use_case(admin, ListOrdersDTO(farmer_id=other_farmer.id))).total == 1
        assert (await use_case(admin, ListOrdersDTO())).total == 2

    async def test_status_filter_and_paging(self, uow, place, buyer, farmer, product):
        orders = [await place(product) for _ in range(3)]
        await ConfirmOrderUseCase(uow)(farmer, orders[0].id)

        use_case = ListOrdersUseCase(uow)
        pending = await use_case(buyer, ListOrdersDTO(status=OrderStatus.PENDING, limit=1))

        assert pending.total == 2
        assert pending.total_pages == 2
        assert len(pending.items) == 1

    async def test_price_sort(self, uow, place, buyer, product):
        await place(product, quantity=1)
        await place(product, quantity=3)

        page = await ListOrdersUseCase(uow)(buyer, ListOrdersDTO(sort_by="price"))

        assert [o.quantity for o in page.items] == [3, 1]

    async def test_invalid_sort(self, uow, buyer):
        with pytest.raises(BusinessRuleError) as exc_info:
            await ListOrdersUseCase(uow)(buyer, ListOrdersDTO(sort_by="random"))
        assert exc_info.value.reason == "invalid_sort"

    async def test_invalid_paging(self, uow, buyer):
        with pytest.raises(BusinessRuleError) as exc_info:
            await ListOrdersUseCase(uow)(buyer, ListOrdersDTO(limit=0))
        assert exc_info.value.reason == "invalid_paging"


@pytest.fixture
async def located_product(uow, product):
    async with uow() as session:
        await session.products.update(product.id, {"farm_location": {"city": "Salem", "state": "OR"}})
        await session.commit()
    return product


class TestDeliveryCost:
    async def _quote(self, uow, buyer, product, address, quantity=1):
        dto = CalculateDeliveryCostDTO(product_id=product.id, quantity=quantity, delivery_address=address)
        return await CalculateDeliveryCostUseCase(uow)(buyer, dto)

    async def test_same_city(self, uow, buyer, located_product):
        quote = await self._quote(uow, buyer, located_product, {"city": "Salem", "state": "OR"}, quantity=2)

        assert (quote.distance, quote.weight, quote.delivery_cost) == (Decimal("5.00"), 2, Decimal("7.50"))
        assert quote.currency == "usd"

    async def test_same_state_heavy_order(self, uow, buyer, located_product):
        quote = await self._quote(uow, buyer, located_product, {"city": "Eugene", "state": "OR"}, quantity=20)
        assert (quote.distance, quote.delivery_cost) == (Decimal("50.00"), Decimal("55.00"))

    async def test_other_state(self, uow, buyer, located_product):
        quote = await self._quote(uow, buyer, located_product, {"city": "Boise", "state": "ID"})
        assert quote.delivery_cost == Decimal("105.00")

    async def test_coordinates_take_precedence(self, uow, buyer, product):
        async with uow() as session:
            await session.products.update(product.id, {
                "farm_location": {"city": "A", "state": "X", "latitude": 0, "longitude": 0}
            })
            await session.commit()

        quote = await self._quote(uow, buyer, product, {"city": "A", "state": "X", "latitude": 0, "longitude": 1})

        # Один градус долготы на экваторе
        assert (quote.distance, quote.delivery_cost) == (Decimal("69.10"), Decimal("39.55"))

    async def test_farm_location_required(self, uow, buyer, product):
        with pytest.raises(BusinessRuleError) as exc_info:
            await self._quote(uow, buyer, product, {"city": "Salem", "state": "OR"})
        assert exc_info.value.reason == "farm_location_missing"

    async def test_unknown_product(self, uow, buyer):
        dto = CalculateDeliveryCostDTO(product_id="missing", quantity=1, delivery_address={"city": "Salem"})
        with pytest.raises(ProductNotFoundError):
            await CalculateDeliveryCostUseCase(uow)(buyer, dto)
