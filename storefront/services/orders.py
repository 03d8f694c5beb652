# storefront/services/orders.py
"""
Order lifecycle: creation, status transitions, payment confirmation and
cancellation.

Each write path is one unit of work (store.transaction()). Failures at any
step roll the whole thing back: no half-created order, no partial stock
movement. Product rows are always locked in product-id order so two
transactions touching the same products cannot deadlock.
"""
from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional
import logging

from storefront.core.errors import (
    AlreadyConfirmed, InsufficientInventory, InternalError, OrderError, OrderNotFound,
    ProductNotFound, ValidationError,
)
from storefront.core.state_machine import restores_inventory
from storefront.database import FileBackedDB, Transaction
from storefront.models.fields import parse_datetime, utcnow
from storefront.models.order import (
    CreateOrderRequest, Order, OrderItem, OrderStatusHistory, next_history_timestamp,
)
from storefront.models.product import Product
from storefront.services import inventory
from storefront.services.cart import clear_cart
from storefront.services.order_numbers import generate_order_number, order_number_taken
from storefront.services.order_queries import get_order_by_id
from storefront.services.pricing import calculate_order_totals, compute_totals
from storefront.services.validation import (
    OrderValidationResult, check_inventory_availability, requested_quantities, validate_order_request,
)

logger = logging.getLogger(__name__)

MAX_CANCEL_REASON = 500


@contextmanager
def _unit_of_work(store: FileBackedDB, action: str) -> Iterator[Transaction]:
    try:
        with store.transaction() as tx:
            yield tx
    except OrderError:
        raise
    except Exception as exc:
        logger.error("Failed to %s", action, exc_info=True)
        raise InternalError(f"Failed to {action}") from exc


def _raise_for(result: OrderValidationResult) -> None:
    check = result.inventory_check
    if check is not None and not check.is_valid:
        raise InsufficientInventory([it.to_dict() for it in check.insufficient_items], errors=result.errors)
    raise ValidationError(result.errors)


def _reload(store: FileBackedDB, order_id: str) -> Order:
    order = get_order_by_id(store, order_id)
    if order is None:
        raise InternalError(f"Failed to retrieve order {order_id}")
    return order


def _last_history_at(tx: Transaction, order_id: str) -> Optional[datetime]:
    stamps = [parse_datetime(r.get("created_at")) for r in tx.find_records("order_status_history", order_id=order_id)]
    stamps = [s for s in stamps if s is not None]
    return max(stamps) if stamps else None


def _lock_order(tx: Transaction, order_id: str) -> Order:
    row = tx.lock_row("orders", "id", order_id)
    if row is None:
        raise OrderNotFound(order_id)
    return Order.from_dict(row)


# --- creation ----------------------------------------------------------------

def create_order(store: FileBackedDB, request: CreateOrderRequest) -> Order:
    """
    Validate, price and persist a new order, reserving stock for every line.

    Raises ValidationError (or InsufficientInventory) with every field error
    before anything is written; inside the transaction the stock check is
    repeated on locked product rows, so a race lost since the pre-flight still
    fails cleanly with InsufficientInventory.
    """
    validation = validate_order_request(store, request)
    if not validation.is_valid:
        _raise_for(validation)

    quoted = calculate_order_totals(store, request.order_items, request.shipping_method)
    order_number = generate_order_number(order_number_taken(store))

    with _unit_of_work(store, "create order") as tx:
        now = utcnow()
        quantities = requested_quantities(request.order_items)
        product_ids = sorted(quantities)

        locked = {}
        for product_id in product_ids:
            row = tx.lock_row("products", "id", product_id)
            if row is None:
                raise ProductNotFound(product_id)
            locked[product_id] = Product.from_dict(row)

        totals = compute_totals({pid: p.price for pid, p in locked.items()}, request.order_items,
                                request.shipping_method)
        if totals != quoted:
            logger.info("Prices changed while placing order %s: quoted %s, charging %s",
                        order_number, quoted.total_amount, totals.total_amount)

        status = "confirmed" if request.payment_confirmed else "pending"
        order = Order(
            user_id=request.user_id,
            order_number=order_number,
            status=status,
            payment_confirmed=bool(request.payment_confirmed),
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            shipping_amount=totals.shipping_amount,
            total_amount=totals.total_amount,
            shipping_method=request.shipping_method,
            shipping_address_id=request.shipping_address_id,
            customer_notes=request.customer_notes,
            metadata=dict(request.metadata or {}),
            created_at=now,
            updated_at=now,
            confirmed_at=now if request.payment_confirmed else None,
        )
        order.id = tx.create_record("orders", order.to_dict(), unique=("order_number",))["id"]

        for item in request.order_items:
            line = OrderItem.snapshot(locked[item.product_id], item.quantity, item.product_variant, order_id=order.id)
            line.created_at = now
            tx.create_record("order_items", line.to_dict())

        tx.create_record("order_status_history", OrderStatusHistory(
            order_id=order.id,
            previous_status=None,
            new_status=status,
            comment="Order created with payment confirmed" if request.payment_confirmed else "Order created",
            changed_by=request.user_id,
            is_customer_visible=True,
            created_at=now,
        ).to_dict())

        final_check = check_inventory_availability(locked, request.order_items)
        if not final_check.is_valid:
            raise InsufficientInventory([it.to_dict() for it in final_check.insufficient_items])

        for item in sorted(request.order_items, key=lambda it: it.product_id):
            inventory.reserve(tx, item.product_id, item.quantity)

        clear_cart(tx, request.user_id)

    logger.info("Order %s created for user %s (total %s)", order_number, request.user_id, order.total_amount)
    return _reload(store, order.id)


# --- status management -------------------------------------------------------

def _release_stock(tx: Transaction, order_id: str) -> List[inventory.InventoryAdjustment]:
    lines = [OrderItem.from_dict(r) for r in tx.find_records("order_items", order_id=order_id)]
    return [inventory.release(tx, line.product_id, line.quantity)
            for line in sorted(lines, key=lambda it: it.product_id)]


def update_order_status(store: FileBackedDB, order_id: str, new_status: str, comment: Optional[str] = None,
                        changed_by: Optional[str] = None, is_customer_visible: bool = True,
                        expected_version: Optional[int] = None) -> Order:
    """
    Apply one whitelisted status transition. Writes the new status and its
    timestamp, appends a history entry and, when the order first enters
    cancelled/returned/refunded, puts every line's quantity back in stock.
    Raises OrderNotFound, InvalidStatusTransition or OptimisticLockError with
    nothing written.
    """
    with _unit_of_work(store, "update order status") as tx:
        order = _lock_order(tx, order_id)
        previous = order.status
        entry = order.transition_to(new_status, changed_by=changed_by, comment=comment,
                                    is_customer_visible=is_customer_visible,
                                    expected_version=expected_version,
                                    at=next_history_timestamp(_last_history_at(tx, order_id)))
        tx.update_record("orders", "id", order_id, order.to_dict())
        tx.create_record("order_status_history", entry.to_dict())

        if restores_inventory(previous, order.status):
            restored = _release_stock(tx, order_id)
            logger.info("Order %s: restored stock for %d line(s)", order.order_number, len(restored))

    logger.info("Order %s moved %s -> %s by %s", order.order_number, previous, order.status, changed_by)
    return _reload(store, order_id)


def confirm_payment(store: FileBackedDB, order_id: str, comment: Optional[str] = None,
                    changed_by: Optional[str] = None, is_customer_visible: bool = True) -> Order:
    """
    Mark the order's payment as confirmed. A pending order also moves to
    confirmed; either way exactly one history entry is written.
    Raises AlreadyConfirmed if the flag is already set.
    """
    with _unit_of_work(store, "confirm payment") as tx:
        order = _lock_order(tx, order_id)
        if order.payment_confirmed:
            raise AlreadyConfirmed(order_id)

        at = next_history_timestamp(_last_history_at(tx, order_id))
        comment = comment or "Payment confirmed by admin"
        if order.status == "pending":
            entry = order.transition_to("confirmed", changed_by=changed_by, comment=comment,
                                        is_customer_visible=is_customer_visible, at=at)
        else:
            order.version += 1
            order.updated_at = at
            entry = OrderStatusHistory(order_id=order_id, previous_status=order.status, new_status=order.status,
                                       comment=comment, changed_by=changed_by,
                                       is_customer_visible=is_customer_visible, created_at=at)
        order.payment_confirmed = True
        tx.update_record("orders", "id", order_id, order.to_dict())
        tx.create_record("order_status_history", entry.to_dict())

    logger.info("Payment confirmed for order %s by %s", order.order_number, changed_by)
    return _reload(store, order_id)


def cancel_order(store: FileBackedDB, order_id: str, reason: str, cancelled_by: Optional[str] = None) -> Order:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError([{"field": "reason", "message": "Cancellation reason is required"}])
    if len(reason) > MAX_CANCEL_REASON:
        raise ValidationError([{"field": "reason",
                                "message": f"Cancellation reason must be at most {MAX_CANCEL_REASON} characters"}])
    return update_order_status(store, order_id, "cancelled", comment=reason, changed_by=cancelled_by,
                               is_customer_visible=True)
