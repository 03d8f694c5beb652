# storefront/services/validation.py
"""
Pre-flight checks for order creation. Nothing here locks or writes: the
inventory check is advisory and is repeated under row locks inside the
creation transaction.
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from storefront.core.errors import FieldError
from storefront.models.order import CreateOrderItem, CreateOrderRequest
from storefront.models.product import Product
from storefront.services.catalog import get_products_by_ids
from storefront.services.directory import get_shipping_address, get_user
from storefront.services.pricing import SHIPPING_METHODS

logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 100
MAX_CUSTOMER_NOTES = 1000


@dataclass
class InsufficientItem:
    product_id: str
    product_name: str
    requested_quantity: int
    available_quantity: int
    allow_backorder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "requested_quantity": self.requested_quantity,
            "available_quantity": self.available_quantity,
            "allow_backorder": self.allow_backorder,
        }


@dataclass
class InventoryCheckResult:
    is_valid: bool
    insufficient_items: List[InsufficientItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "insufficient_items": [it.to_dict() for it in self.insufficient_items]}


@dataclass
class OrderValidationResult:
    is_valid: bool
    errors: List[FieldError] = field(default_factory=list)
    inventory_check: Optional[InventoryCheckResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "inventory_check": self.inventory_check.to_dict() if self.inventory_check else None,
        }


def requested_quantities(items: Iterable[CreateOrderItem]) -> "OrderedDict[str, int]":
    """Total quantity per product id, in first-seen order (repeated lines are summed)."""
    totals: "OrderedDict[str, int]" = OrderedDict()
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + int(item.quantity)
    return totals


def check_inventory_availability(products: Mapping[str, Product],
                                 items: Iterable[CreateOrderItem]) -> InventoryCheckResult:
    """
    Flag every product that is missing, not active, or short of stock without
    backorder. Pure function over already-loaded products.
    """
    insufficient: List[InsufficientItem] = []
    for product_id, quantity in requested_quantities(items).items():
        product = products.get(product_id)
        if product is None:
            insufficient.append(InsufficientItem(product_id, "Unknown Product", quantity, 0))
            continue
        if not product.is_active:
            insufficient.append(InsufficientItem(product_id, product.name, quantity, 0))
            continue
        available = product.inventory_quantity
        if quantity > available and not product.allow_backorder:
            insufficient.append(InsufficientItem(product_id, product.name, quantity, available,
                                                 product.allow_backorder))
    return InventoryCheckResult(is_valid=not insufficient, insufficient_items=insufficient)


def load_and_check_inventory(store, items: Iterable[CreateOrderItem]) -> InventoryCheckResult:
    items = list(items)
    products = get_products_by_ids(store, (it.product_id for it in items))
    return check_inventory_availability(products, items)


def _item_errors(items: List[CreateOrderItem]) -> List[FieldError]:
    errors: List[FieldError] = []
    for idx, item in enumerate(items):
        if not item.product_id:
            errors.append({"field": f"orderItems[{idx}].productId", "message": "Product ID is required"})
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) \
                or not 1 <= item.quantity <= MAX_LINE_QUANTITY:
            errors.append({
                "field": f"orderItems[{idx}].quantity",
                "message": f"Quantity must be a whole number between 1 and {MAX_LINE_QUANTITY}",
            })
    return errors


def validate_order_request(store, request: CreateOrderRequest) -> OrderValidationResult:
    """
    Check user, address ownership, items and stock. Every violation is
    collected; nothing is raised for business-rule failures.
    """
    errors: List[FieldError] = []

    if get_user(store, request.user_id) is None:
        errors.append({"field": "userId", "message": "User not found"})

    if get_shipping_address(store, request.shipping_address_id, request.user_id) is None:
        errors.append({
            "field": "shippingAddressId",
            "message": "Shipping address not found or does not belong to user",
        })

    if request.shipping_method not in SHIPPING_METHODS:
        errors.append({
            "field": "shippingMethod",
            "message": f"Shipping method must be one of: {', '.join(SHIPPING_METHODS)}",
        })

    if request.customer_notes and len(request.customer_notes) > MAX_CUSTOMER_NOTES:
        errors.append({
            "field": "customerNotes",
            "message": f"Customer notes must be at most {MAX_CUSTOMER_NOTES} characters",
        })

    inventory_check: Optional[InventoryCheckResult] = None
    items = list(request.order_items or [])
    if not items:
        errors.append({"field": "orderItems", "message": "At least one order item is required"})
    else:
        item_errors = _item_errors(items)
        errors.extend(item_errors)
        if not item_errors:
            inventory_check = load_and_check_inventory(store, items)
            if not inventory_check.is_valid:
                logger.info("Pre-flight inventory check failed for user %s: %s", request.user_id,
                            [it.product_id for it in inventory_check.insufficient_items])
                errors.append({
                    "field": "orderItems",
                    "message": "Some items are not available in requested quantities",
                })

    return OrderValidationResult(is_valid=not errors, errors=errors, inventory_check=inventory_check)
