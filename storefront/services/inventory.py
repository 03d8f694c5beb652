# storefront/services/inventory.py
"""
Inventory ledger: reserve / release stock for one product inside the
caller's transaction.

The product row is locked (tx.with_locked_row) before it is read and stays
locked until the surrounding transaction commits or rolls back, so two
orders racing for the last unit are serialized: the second one reads the
already-decremented quantity and fails instead of overselling.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from storefront.core.errors import InsufficientInventory, ProductInactive, ProductNotFound
from storefront.database import Transaction
from storefront.models.fields import utcnow
from storefront.models.product import Product

logger = logging.getLogger(__name__)


@dataclass
class InventoryAdjustment:
    product_id: str
    product_name: str
    previous_quantity: int
    new_quantity: int
    quantity_change: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "quantity_change": self.quantity_change,
        }


def _check_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or int(quantity) != quantity or int(quantity) < 1:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")
    return int(quantity)


def _adjust(tx: Transaction, product_id: str, change: int) -> InventoryAdjustment:
    def _apply(row: Optional[Dict[str, str]]) -> InventoryAdjustment:
        if row is None:
            raise ProductNotFound(product_id)
        product = Product.from_dict(row)
        if not product.is_active:
            raise ProductInactive(product.id, product.name)

        current = product.inventory_quantity
        new_quantity = current + change
        if change < 0 and new_quantity < 0 and not product.allow_backorder:
            logger.warning("Insufficient inventory for product %s: available=%s requested=%s",
                           product.id, current, -change)
            raise InsufficientInventory.for_product(product.id, product.name, available=current, requested=-change)

        tx.update_record("products", "id", product.id, {
            "inventory_quantity": new_quantity,
            "updated_at": utcnow(),
        })
        return InventoryAdjustment(
            product_id=product.id,
            product_name=product.name,
            previous_quantity=current,
            new_quantity=new_quantity,
            quantity_change=change,
        )

    adjustment = tx.with_locked_row("products", "id", product_id, _apply)
    logger.debug("Inventory %s: %s -> %s", product_id, adjustment.previous_quantity, adjustment.new_quantity)
    return adjustment


def reserve(tx: Transaction, product_id: str, quantity: int) -> InventoryAdjustment:
    """
    Take `quantity` units of `product_id` out of stock.
    Raises ProductNotFound, ProductInactive or InsufficientInventory (when the
    result would be negative and the product does not allow backorders).
    """
    return _adjust(tx, product_id, -_check_quantity(quantity))


def release(tx: Transaction, product_id: str, quantity: int) -> InventoryAdjustment:
    """Put `quantity` units back. No upper bound; raises ProductNotFound / ProductInactive."""
    return _adjust(tx, product_id, _check_quantity(quantity))
