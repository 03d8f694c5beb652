from decimal import Decimal

import pytest

from storefront.core.errors import (
    AlreadyConfirmed, InsufficientInventory, InternalError, InvalidStatusTransition, OptimisticLockError,
    OrderNotFound, ValidationError,
)
from storefront.services import orders as order_service
from storefront.services.order_queries import get_order_by_id
from storefront.services.validation import OrderValidationResult


def _place(store, make_product, order_request, price="25.00", stock=10, qty=2, **kwargs):
    pid = make_product(price=price, stock=stock)["id"]
    order = order_service.create_order(store, order_request([(pid, qty)], **kwargs))
    return order, pid


# --- creation ------------------------------------------------------------------

def test_create_order_computes_totals_and_reserves(store, make_product, order_request, stock_of, customer):
    order, pid = _place(store, make_product, order_request)

    assert order.status == "pending"
    assert not order.payment_confirmed
    assert order.user_id == customer["id"]
    assert order.order_number.startswith("ORD-")
    assert (order.subtotal, order.shipping_amount, order.tax_amount, order.total_amount) == (
        Decimal("50.00"), Decimal("9.99"), Decimal("4.25"), Decimal("64.24"))
    assert stock_of(pid) == 8

    assert len(order.items) == 1
    line = order.items[0]
    assert (line.product_id, line.quantity, line.unit_price, line.total_price) == (
        pid, 2, Decimal("25.00"), Decimal("50.00"))

    assert len(order.status_history) == 1
    created = order.status_history[0]
    assert created.previous_status is None
    assert created.new_status == "pending"
    assert created.comment == "Order created"
    assert created.changed_by == customer["id"]


def test_free_standard_shipping_above_threshold(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request, price="50.01", qty=1)
    assert order.shipping_amount == Decimal("0.00")


def test_line_items_are_a_snapshot(store, make_product, order_request):
    order, pid = _place(store, make_product, order_request, price="12.00", qty=1)
    store.update_record("products", "id", pid, {"price": "99.00", "name": "Renamed"})

    reloaded = get_order_by_id(store, order.id)
    assert reloaded.items[0].unit_price == Decimal("12.00")
    assert reloaded.items[0].product_name != "Renamed"
    assert reloaded.total_amount == order.total_amount


def test_payment_confirmed_at_creation(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request, payment_confirmed=True)
    assert order.status == "confirmed"
    assert order.payment_confirmed
    assert order.confirmed_at is not None
    assert order.status_history[0].comment == "Order created with payment confirmed"


def test_insufficient_stock_creates_nothing(store, make_product, order_request, stock_of):
    pid = make_product(stock=3)["id"]
    with pytest.raises(InsufficientInventory) as exc:
        order_service.create_order(store, order_request([(pid, 5)]))
    assert exc.value.available == 3
    assert exc.value.requested == 5
    assert stock_of(pid) == 3
    assert store.list_records("orders") == []
    assert store.list_records("order_items") == []


def test_validation_errors_are_raised_together(store, make_product, order_request):
    pid = make_product()["id"]
    with pytest.raises(ValidationError) as exc:
        order_service.create_order(store, order_request([(pid, 1)], user_id="ghost", shipping_method="drone"))
    assert not isinstance(exc.value, InsufficientInventory)
    assert [e["field"] for e in exc.value.errors] == ["userId", "shippingAddressId", "shippingMethod"]


def test_stock_lost_after_preflight_fails_inside_transaction(store, make_product, order_request, stock_of,
                                                             monkeypatch):
    pid = make_product(stock=1)["id"]
    monkeypatch.setattr(order_service, "validate_order_request",
                        lambda store, request: OrderValidationResult(is_valid=True))
    with pytest.raises(InsufficientInventory):
        order_service.create_order(store, order_request([(pid, 2)]))
    assert stock_of(pid) == 1
    assert store.list_records("orders") == []
    assert store.list_records("order_status_history") == []


def test_cart_is_cleared_on_success(store, make_product, order_request, customer, make_cart, cart_size):
    pid = make_product()["id"]
    make_cart(customer["id"], [(pid, 2)])

    order_service.create_order(store, order_request([(pid, 2)]))

    assert cart_size(customer["id"]) == 0


def test_failure_late_in_creation_rolls_everything_back(store, make_product, order_request, customer, stock_of,
                                                        make_cart, cart_size, monkeypatch):
    pid = make_product(stock=5)["id"]
    make_cart(customer["id"], [(pid, 1)])

    def boom(tx, user_id):
        raise RuntimeError("cart service down")

    monkeypatch.setattr(order_service, "clear_cart", boom)
    with pytest.raises(InternalError):
        order_service.create_order(store, order_request([(pid, 1)]))

    assert stock_of(pid) == 5
    assert store.list_records("orders") == []
    assert store.list_records("order_items") == []
    assert cart_size(customer["id"]) == 1


# --- status transitions ----------------------------------------------------------

def test_invalid_transition_changes_nothing(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    with pytest.raises(InvalidStatusTransition):
        order_service.update_order_status(store, order.id, "delivered", changed_by="admin")

    reloaded = get_order_by_id(store, order.id)
    assert reloaded.status == "pending"
    assert reloaded.version == 0
    assert len(reloaded.status_history) == 1


def test_transition_sets_timestamp_and_appends_history(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    updated = order_service.update_order_status(store, order.id, "confirmed", comment="checked", changed_by="admin")
    updated = order_service.update_order_status(store, order.id, "processing", changed_by="admin")
    updated = order_service.update_order_status(store, order.id, "shipped", changed_by="admin")

    assert updated.status == "shipped"
    assert updated.confirmed_at is not None
    assert updated.shipped_at is not None
    assert updated.version == 3
    # newest first
    assert [h.new_status for h in updated.status_history] == ["shipped", "processing", "confirmed", "pending"]
    assert updated.status_history[2].comment == "checked"
    stamps = [h.created_at for h in reversed(updated.status_history)]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))


def test_expected_version_mismatch(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    with pytest.raises(OptimisticLockError):
        order_service.update_order_status(store, order.id, "confirmed", expected_version=5)
    assert get_order_by_id(store, order.id).status == "pending"

    updated = order_service.update_order_status(store, order.id, "confirmed", expected_version=0)
    assert updated.version == 1


def test_unknown_order(store):
    with pytest.raises(OrderNotFound):
        order_service.update_order_status(store, "missing", "confirmed")


def test_cancel_then_refund_restores_stock_once(store, make_product, order_request, stock_of):
    order, pid = _place(store, make_product, order_request, stock=10, qty=3)
    assert stock_of(pid) == 7

    cancelled = order_service.cancel_order(store, order.id, "  changed my mind  ", cancelled_by="u")
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert cancelled.status_history[0].comment == "changed my mind"
    assert stock_of(pid) == 10

    order_service.update_order_status(store, order.id, "refunded", changed_by="admin")
    assert stock_of(pid) == 10


def test_return_restores_stock(store, make_product, order_request, stock_of):
    order, pid = _place(store, make_product, order_request, stock=4, qty=4)
    for status in ("confirmed", "processing", "shipped", "returned"):
        order_service.update_order_status(store, order.id, status)
    assert stock_of(pid) == 4


@pytest.mark.parametrize("reason", ["", "   ", "x" * 501])
def test_cancel_needs_a_reason(store, make_product, order_request, reason):
    order, _ = _place(store, make_product, order_request)
    with pytest.raises(ValidationError) as exc:
        order_service.cancel_order(store, order.id, reason)
    assert exc.value.errors[0]["field"] == "reason"
    assert get_order_by_id(store, order.id).status == "pending"


def test_cannot_cancel_shipped_order(store, make_product, order_request, stock_of):
    order, pid = _place(store, make_product, order_request, stock=5, qty=1)
    for status in ("confirmed", "processing", "shipped"):
        order_service.update_order_status(store, order.id, status)
    with pytest.raises(InvalidStatusTransition):
        order_service.cancel_order(store, order.id, "too late")
    assert stock_of(pid) == 4


# --- payment ---------------------------------------------------------------------

def test_confirm_payment_moves_pending_to_confirmed(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    confirmed = order_service.confirm_payment(store, order.id, changed_by="admin")
    assert confirmed.payment_confirmed
    assert confirmed.status == "confirmed"
    assert confirmed.confirmed_at is not None
    assert confirmed.status_history[0].comment == "Payment confirmed by admin"
    assert confirmed.status_history[0].previous_status == "pending"


def test_confirm_payment_twice_conflicts(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    order_service.confirm_payment(store, order.id)
    with pytest.raises(AlreadyConfirmed):
        order_service.confirm_payment(store, order.id)
    assert len(get_order_by_id(store, order.id).status_history) == 2


def test_confirm_payment_after_processing_keeps_status(store, make_product, order_request):
    order, _ = _place(store, make_product, order_request)
    order_service.update_order_status(store, order.id, "confirmed")
    order_service.update_order_status(store, order.id, "processing")

    paid = order_service.confirm_payment(store, order.id, comment="wire received")
    assert paid.status == "processing"
    assert paid.payment_confirmed
    assert paid.version == 3
    latest = paid.status_history[0]
    assert (latest.previous_status, latest.new_status, latest.comment) == ("processing", "processing",
                                                                            "wire received")
