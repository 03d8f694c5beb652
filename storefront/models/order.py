# storefront/models/order.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any, List

from storefront.core.state_machine import StateMachine, STATUS_TIMESTAMP_FIELDS
from storefront.models.fields import (
    iso, money, parse_bool, parse_datetime, parse_int, parse_json_map, utcnow,
)
from storefront.models.product import Product


def next_history_timestamp(previous: Optional[datetime]) -> datetime:
    """Now, nudged forward if needed so history timestamps strictly increase per order."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


@dataclass
class OrderItem:
    """
    One order line. Name, slug, weight and unit price are a snapshot taken
    when the order was placed and never follow later product edits.
    """
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_name: str = ""
    product_slug: str = ""
    product_variant: Dict[str, Any] = field(default_factory=dict)
    weight: Optional[str] = None
    weight_unit: str = "kg"
    order_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def snapshot(cls, product: Product, quantity: int, variant: Optional[Dict[str, Any]] = None,
                 order_id: Optional[str] = None) -> "OrderItem":
        unit_price = money(product.price)
        return cls(
            product_id=product.id,
            quantity=int(quantity),
            unit_price=unit_price,
            total_price=money(unit_price * int(quantity)),
            product_name=product.name,
            product_slug=product.slug,
            product_variant=dict(variant or {}),
            weight=product.weight,
            weight_unit=product.weight_unit or "kg",
            order_id=order_id,
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OrderItem":
        return cls(
            id=d.get("id") or None,
            order_id=d.get("order_id") or None,
            product_id=str(d.get("product_id") or ""),
            product_name=d.get("product_name") or "",
            product_slug=d.get("product_slug") or "",
            quantity=parse_int(d.get("quantity"), 1),
            unit_price=money(d.get("unit_price")),
            total_price=money(d.get("total_price")),
            product_variant=parse_json_map(d.get("product_variant")),
            weight=d.get("weight") or None,
            weight_unit=d.get("weight_unit") or "kg",
            created_at=parse_datetime(d.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_slug": self.product_slug,
            "quantity": int(self.quantity),
            "unit_price": str(money(self.unit_price)),
            "total_price": str(money(self.total_price)),
            "product_variant": dict(self.product_variant or {}),
            "weight": self.weight,
            "weight_unit": self.weight_unit,
            "created_at": iso(self.created_at),
        }


@dataclass
class OrderStatusHistory:
    """Append-only audit entry. previous_status is None only for the creation entry."""
    order_id: str
    new_status: str
    previous_status: Optional[str] = None
    comment: Optional[str] = None
    changed_by: Optional[str] = None
    is_customer_visible: bool = True
    created_at: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OrderStatusHistory":
        return cls(
            id=d.get("id") or None,
            order_id=str(d.get("order_id") or ""),
            previous_status=d.get("previous_status") or None,
            new_status=str(d.get("new_status") or ""),
            comment=d.get("comment") or None,
            changed_by=d.get("changed_by") or None,
            is_customer_visible=parse_bool(d.get("is_customer_visible", True)),
            created_at=parse_datetime(d.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "comment": self.comment,
            "changed_by": self.changed_by,
            "is_customer_visible": bool(self.is_customer_visible),
            "created_at": iso(self.created_at),
        }


@dataclass
class Order:
    """
    Order aggregate. Amounts are Decimals rounded to cents and always computed
    server-side (total_amount == subtotal + tax_amount + shipping_amount).
    `items`, `status_history`, `shipping_address` and `user` are only populated
    when the order is loaded through the query service.
    """
    user_id: str
    order_number: str = ""
    status: str = "pending"
    payment_confirmed: bool = False
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    shipping_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    shipping_method: str = "standard"
    shipping_address_id: Optional[str] = None
    customer_notes: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    # optimistic concurrency control
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    id: Optional[str] = None

    items: List[OrderItem] = field(default_factory=list)
    status_history: List[OrderStatusHistory] = field(default_factory=list)
    shipping_address: Optional[Dict[str, Any]] = None
    user: Optional[Dict[str, Any]] = None

    def transition_to(self, new_status: str, changed_by: Optional[str] = None, comment: Optional[str] = None,
                      is_customer_visible: bool = True, expected_version: Optional[int] = None,
                      at: Optional[datetime] = None) -> OrderStatusHistory:
        """
        Move to `new_status` through the StateMachine. Raises InvalidStatusTransition or
        OptimisticLockError and leaves the order untouched on failure. On success updates
        status, the status-specific timestamp, updated_at and version, and returns the
        history entry to persist.
        """
        sm = StateMachine(state=self.status, version=self.version)
        entry = sm.apply(new_status, actor=changed_by, comment=comment,
                         is_customer_visible=is_customer_visible,
                         expected_version=expected_version, at=at)
        self.status = sm.state
        self.version = sm.version
        self.updated_at = entry["created_at"]
        stamp_field = STATUS_TIMESTAMP_FIELDS.get(self.status)
        if stamp_field:
            setattr(self, stamp_field, entry["created_at"])
        return OrderStatusHistory(order_id=self.id or "", **entry)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Order":
        if d is None:
            raise ValueError("Cannot construct Order from None")
        return cls(
            id=d.get("id") or None,
            order_number=d.get("order_number") or "",
            user_id=str(d.get("user_id") or ""),
            status=d.get("status") or "pending",
            payment_confirmed=parse_bool(d.get("payment_confirmed")),
            subtotal=money(d.get("subtotal")),
            tax_amount=money(d.get("tax_amount")),
            shipping_amount=money(d.get("shipping_amount")),
            total_amount=money(d.get("total_amount")),
            shipping_method=d.get("shipping_method") or "standard",
            shipping_address_id=d.get("shipping_address_id") or None,
            customer_notes=d.get("customer_notes") or None,
            metadata=parse_json_map(d.get("metadata")),
            version=parse_int(d.get("version"), 0),
            created_at=parse_datetime(d.get("created_at")),
            updated_at=parse_datetime(d.get("updated_at")),
            confirmed_at=parse_datetime(d.get("confirmed_at")),
            shipped_at=parse_datetime(d.get("shipped_at")),
            delivered_at=parse_datetime(d.get("delivered_at")),
            cancelled_at=parse_datetime(d.get("cancelled_at")),
        )

    def to_dict(self, include_relations: bool = False) -> Dict[str, Any]:
        """
        Plain dict with amounts as fixed-point strings and timestamps as ISO strings.
        Used both for persistence and for API responses (with include_relations=True).
        """
        out: Dict[str, Any] = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_confirmed": bool(self.payment_confirmed),
            "subtotal": str(money(self.subtotal)),
            "tax_amount": str(money(self.tax_amount)),
            "shipping_amount": str(money(self.shipping_amount)),
            "total_amount": str(money(self.total_amount)),
            "shipping_method": self.shipping_method,
            "shipping_address_id": self.shipping_address_id,
            "customer_notes": self.customer_notes,
            "metadata": dict(self.metadata or {}),
            "version": int(self.version or 0),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "confirmed_at": iso(self.confirmed_at),
            "shipped_at": iso(self.shipped_at),
            "delivered_at": iso(self.delivered_at),
            "cancelled_at": iso(self.cancelled_at),
        }
        if include_relations:
            out["items"] = [it.to_dict() for it in self.items]
            out["status_history"] = [h.to_dict() for h in self.status_history]
            out["shipping_address"] = self.shipping_address
            out["user"] = self.user
        return out


@dataclass
class CreateOrderItem:
    product_id: str
    quantity: int
    product_variant: Optional[Dict[str, Any]] = None


@dataclass
class CreateOrderRequest:
    """What the order core needs to place an order on behalf of `user_id`."""
    user_id: str
    shipping_address_id: str
    order_items: List[CreateOrderItem] = field(default_factory=list)
    shipping_method: str = "standard"
    customer_notes: Optional[str] = None
    payment_confirmed: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
