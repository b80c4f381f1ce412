"""Domain tests for Order, Product, WishlistItem and notification preferences."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from farm_market.domain.exceptions import InvalidOrderStatusError
from farm_market.domain.models import (
    CancellationActor, DeliveryStatus, Order, OrderStatus, PaymentStatus, Product, ProductStatus,
    User, UserRole, WishlistItem
)
from farm_market.domain.notifications import (
    FLAG_NAMES, Notification, NotificationChannel, NotificationPreference, NotificationType
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _product(**overrides):
    defaults = {
        "id": "prod-1",
        "farmer_id": "farmer-1",
        "name": "Honey",
        "price": Decimal("4.50"),
        "quantity": 10,
        "is_approved": True,
    }
    defaults.update(overrides)
    return Product(**defaults)


def _order(**overrides):
    order = Order.place("order-1", "buyer-1", _product(), 2, now=NOW)
    for field, value in overrides.items():
        setattr(order, field, value)
    return order


class TestProduct:
    def test_available_when_active_and_approved(self):
        assert _product().is_available()

    def test_unapproved_product_is_unavailable(self):
        assert not _product(is_approved=False).is_available()

    def test_sold_out_product_is_unavailable(self):
        assert not _product(status=ProductStatus.SOLD_OUT).is_available()

    def test_owner_and_admin_can_manage(self):
        product = _product()
        assert product.can_be_managed_by(User(id="farmer-1", name="F", role=UserRole.FARMER))
        assert product.can_be_managed_by(User(id="admin", name="A", role=UserRole.ADMIN))
        assert not product.can_be_managed_by(User(id="other", name="O", role=UserRole.FARMER))


class TestOrderPlacement:
    def test_total_price_includes_delivery_cost(self):
        order = Order.place("o", "buyer-1", _product(), 3, delivery_cost=Decimal("2.00"), now=NOW)
        assert order.total_price == Decimal("15.50")
        assert order.unit_price == Decimal("4.50")

    def test_new_order_is_pending_with_single_history_entry(self):
        order = _order()
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert [entry.status for entry in order.status_history] == ["pending"]
        assert order.status_history[0].notes == "Order created"

    def test_participants(self):
        order = _order()
        assert order.is_participant(User(id="buyer-1", name="B", role=UserRole.BUYER))
        assert order.is_participant(User(id="farmer-1", name="F", role=UserRole.FARMER))
        assert not order.is_participant(User(id="stranger", name="S", role=UserRole.BUYER))


class TestOrderTransitions:
    def test_confirm_sets_estimated_delivery_date(self):
        order = _order()
        order.confirm(notes="Ready tomorrow", delivery_days=3, now=NOW)
        assert order.status == OrderStatus.CONFIRMED
        assert order.farmer_notes == "Ready tomorrow"
        assert order.estimated_delivery_date == NOW + timedelta(days=3)
        assert len(order.status_history) == 2

    def test_confirm_keeps_explicit_delivery_date(self):
        order = _order()
        date = NOW + timedelta(days=10)
        order.confirm(estimated_delivery_date=date, now=NOW)
        assert order.estimated_delivery_date == date

    def test_decline_only_from_pending(self):
        order = _order()
        order.confirm(now=NOW)
        with pytest.raises(InvalidOrderStatusError):
            order.decline()

    def test_decline_marks_farmer_cancellation(self):
        order = _order()
        order.decline(notes="Out of season", now=NOW)
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_by == CancellationActor.FARMER
        assert order.cancelled_at == NOW

    def test_cancel_returns_previous_status(self):
        order = _order()
        order.confirm(now=NOW)
        assert order.cancel(now=NOW) == OrderStatus.CONFIRMED
        assert order.cancelled_by == CancellationActor.BUYER

    def test_complete_requires_confirmed(self):
        order = _order()
        with pytest.raises(InvalidOrderStatusError) as exc_info:
            order.complete()
        assert exc_info.value.reason == "invalid_status"

    def test_terminal_orders_reject_every_transition(self):
        order = _order()
        order.cancel(now=NOW)
        assert order.is_terminal()
        for action in (order.confirm, order.cancel, order.complete):
            with pytest.raises(InvalidOrderStatusError):
                action()

    def test_history_grows_by_one_per_transition(self):
        order = _order()
        order.confirm(now=NOW)
        order.complete(now=NOW)
        assert [entry.status for entry in order.status_history] == ["pending", "confirmed", "completed"]


class TestDeliveryTracking:
    def test_delivery_status_is_appended_to_history(self):
        order = _order()
        order.confirm(now=NOW)
        completes = order.update_delivery(DeliveryStatus.IN_TRANSIT, tracking_number="TRK1", now=NOW)
        assert not completes
        assert order.delivery_status == DeliveryStatus.IN_TRANSIT
        assert order.status_history[-1].status == "in_transit"
        assert order.status_history[-1].notes == "Tracking: TRK1"

    def test_same_delivery_status_is_not_duplicated(self):
        order = _order()
        order.confirm(now=NOW)
        order.update_delivery(DeliveryStatus.SCHEDULED, now=NOW)
        order.update_delivery(DeliveryStatus.SCHEDULED, now=NOW)
        assert [e.status for e in order.status_history].count("scheduled") == 1

    def test_delivered_completes_confirmed_order(self):
        order = _order()
        order.confirm(now=NOW)
        assert order.update_delivery(DeliveryStatus.DELIVERED, now=NOW)
        assert order.status == OrderStatus.COMPLETED
        assert order.actual_delivery_date == NOW

    def test_delivered_rejected_for_pending_order(self):
        with pytest.raises(InvalidOrderStatusError):
            _order().update_delivery(DeliveryStatus.DELIVERED)

    def test_cancelled_order_rejects_tracking_updates(self):
        order = _order()
        order.cancel(now=NOW)
        with pytest.raises(InvalidOrderStatusError):
            order.update_delivery(tracking_number="TRK2")

    def test_timeline_appends_current_status_when_history_lags(self):
        order = _order()
        order.confirm(now=NOW)
        order.update_delivery(DeliveryStatus.IN_TRANSIT, now=NOW)
        timeline = order.tracking_timeline()
        assert timeline[-1].status == "confirmed"
        assert timeline[-1].notes == "Current status"
        assert len(order.status_history) == len(timeline) - 1


class TestPaymentResult:
    def test_first_success_is_reported_once(self):
        order = _order()
        assert order.record_payment_result(PaymentStatus.SUCCEEDED, "card", now=NOW)
        assert order.paid_at == NOW
        assert not order.record_payment_result(PaymentStatus.SUCCEEDED)

    def test_late_failure_after_success_is_ignored(self):
        order = _order()
        order.record_payment_result(PaymentStatus.SUCCEEDED, now=NOW)
        order.record_payment_result(PaymentStatus.FAILED)
        assert order.payment_status == PaymentStatus.SUCCEEDED

    def test_payment_does_not_change_order_status(self):
        order = _order()
        order.confirm(now=NOW)
        order.record_payment_result(PaymentStatus.SUCCEEDED, now=NOW)
        assert order.status == OrderStatus.CONFIRMED

    def test_attaching_intent_marks_processing(self):
        order = _order()
        order.attach_payment_intent("pi_1", Decimal("9.00"), now=NOW)
        assert order.payment_status == PaymentStatus.PROCESSING
        assert order.payment_intent_id == "pi_1"


class TestWishlistItem:
    def test_price_drop_compares_with_current_price(self):
        item = WishlistItem(id="i", wishlist_id="w", product_id="p",
                            added_at_price=Decimal("10"), current_price=Decimal("8"))
        assert item.recorded_price == Decimal("8")
        assert item.is_price_drop(Decimal("7.99"))
        assert not item.is_price_drop(Decimal("8"))

    def test_disabled_alert_never_fires(self):
        item = WishlistItem(id="i", wishlist_id="w", product_id="p", added_at_price=Decimal("10"),
                            price_drop_alert=False)
        assert not item.is_price_drop(Decimal("1"))


class TestNotificationPreference:
    def test_everything_enabled_by_default(self):
        preference = NotificationPreference(id="p", user_id="u")
        assert all(preference.flags().values())
        assert len(FLAG_NAMES) == 16

    def test_payment_follows_order_confirmed_flags(self):
        preference = NotificationPreference(id="p", user_id="u", push_order_confirmed=False)
        assert not preference.is_enabled(NotificationType.PAYMENT_SUCCEEDED, NotificationChannel.PUSH)
        assert preference.is_enabled(NotificationType.PAYMENT_SUCCEEDED, NotificationChannel.EMAIL)

    def test_apply_changes_ignores_unknown_keys(self):
        preference = NotificationPreference(id="p", user_id="u")
        preference.apply_changes({"email_new_order": False, "sms_new_order": False})
        assert preference.email_new_order is False
        assert not hasattr(preference, "sms_new_order")

    def test_push_payload_shape(self):
        notification = Notification(
            id="n", user_id="u", type=NotificationType.NEW_ORDER, title="New Order Received",
            message="m", data={"orderId": "o"}, created_at=NOW
        )
        payload = notification.to_push_payload()
        assert payload["type"] == "new_order"
        assert payload["createdAt"] == NOW.isoformat()
        assert payload["data"] == {"orderId": "o"}
