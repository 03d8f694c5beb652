# storefront/services/pricing.py
"""
Order totals. Shipping and tax are flat placeholder formulas kept as small
pure functions so a real shipping/tax engine can replace them without
touching order creation.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional
import logging

from storefront.core.errors import ValidationError
from storefront.models.fields import money
from storefront.services.catalog import get_products_by_ids

logger = logging.getLogger(__name__)

SHIPPING_METHODS = ("standard", "express", "free_shipping")

TAX_RATE = Decimal("0.085")
FREE_STANDARD_SHIPPING_OVER = Decimal("50.00")
STANDARD_SHIPPING = Decimal("9.99")
EXPRESS_SHIPPING = Decimal("19.99")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "shipping_amount": str(self.shipping_amount),
            "total_amount": str(self.total_amount),
        }


def shipping_cost(method: str, subtotal: Decimal) -> Decimal:
    # standard is free only strictly above the threshold
    if method == "standard":
        return ZERO if subtotal > FREE_STANDARD_SHIPPING_OVER else STANDARD_SHIPPING
    if method == "express":
        return EXPRESS_SHIPPING
    if method == "free_shipping":
        return ZERO
    raise ValidationError([{"field": "shippingMethod", "message": f"Unknown shipping method: {method}"}])


def tax_for(subtotal: Decimal) -> Decimal:
    return money(subtotal * TAX_RATE)


def _line(item: Any) -> tuple:
    if isinstance(item, Mapping):
        return str(item.get("product_id")), int(item.get("quantity"))
    return str(item.product_id), int(item.quantity)


def compute_totals(prices: Mapping[str, Optional[Decimal]], items: Iterable[Any], shipping_method: str = "standard") -> OrderTotals:
    """
    Pure calculation. `items` are objects or dicts with product_id / quantity.
    A product missing from `prices`, or mapped to None (no price on record), is
    priced at 0 for its line.
    """
    subtotal = Decimal("0")
    for item in items:
        product_id, quantity = _line(item)
        price = prices.get(product_id)
        if price is None:
            logger.warning("No price on record for product %s; pricing line at 0", product_id)
            price = Decimal("0")
        subtotal += Decimal(price) * quantity
    subtotal = money(subtotal)
    shipping = money(shipping_cost(shipping_method, subtotal))
    tax = tax_for(subtotal)
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax,
        shipping_amount=shipping,
        total_amount=subtotal + tax + shipping,
    )


def calculate_order_totals(store, items: Iterable[Any], shipping_method: str = "standard") -> OrderTotals:
    """Look up current prices for every distinct product (one batch read) and compute totals."""
    items = list(items)
    products = get_products_by_ids(store, (_line(it)[0] for it in items))
    prices = {pid: p.price for pid, p in products.items()}
    return compute_totals(prices, items, shipping_method)
