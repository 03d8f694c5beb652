# storefront/services/order_queries.py
"""Read side of the order core. Nothing here writes or takes row locks."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
import math

from storefront.config import settings
from storefront.models.fields import money, parse_datetime
from storefront.models.order import Order, OrderItem, OrderStatusHistory
from storefront.models.user import ShippingAddress, User

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SORT_KEYS: Dict[str, Callable[[Order], Any]] = {
    "createdAt": lambda o: o.created_at or _EPOCH,
    "updatedAt": lambda o: o.updated_at or o.created_at or _EPOCH,
    "totalAmount": lambda o: o.total_amount,
    "orderNumber": lambda o: o.order_number,
}
SORT_KEYS.update({
    "created_at": SORT_KEYS["createdAt"],
    "updated_at": SORT_KEYS["updatedAt"],
    "total_amount": SORT_KEYS["totalAmount"],
    "order_number": SORT_KEYS["orderNumber"],
})


@dataclass
class OrderFilters:
    user_id: Optional[str] = None
    status: Optional[str] = None
    order_number: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    shipping_method: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: Optional[int] = None


@dataclass
class OrderPage:
    orders: List[Order] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total_count: int = 0
    total_pages: int = 0
    has_next_page: bool = False
    has_previous_page: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orders": [o.to_dict(include_relations=True) for o in self.orders],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total_count": self.total_count,
                "total_pages": self.total_pages,
                "has_next_page": self.has_next_page,
                "has_previous_page": self.has_previous_page,
            },
        }


def _group(rows: List[Dict[str, str]], key: str) -> Dict[str, List[Dict[str, str]]]:
    grouped: Dict[str, List[Dict[str, str]]] = {}
    for row in rows:
        grouped.setdefault(row.get(key) or "", []).append(row)
    return grouped


def _load_relations(store, orders: List[Order], with_history: bool = True) -> None:
    """Attach items, history (newest first), shipping address and user summary in a few batch reads."""
    if not orders:
        return
    ids = [o.id for o in orders]
    items = _group(store.get_records("order_items", "order_id", ids), "order_id")
    history = _group(store.get_records("order_status_history", "order_id", ids), "order_id") if with_history else {}
    addresses = {
        r["id"]: ShippingAddress.from_dict(r).to_dict()
        for r in store.get_records("shipping_addresses", "id", {o.shipping_address_id for o in orders})
    }
    users = {r["id"]: User.from_dict(r).summary() for r in store.get_records("users", "id", {o.user_id for o in orders})}

    for order in orders:
        order.items = [OrderItem.from_dict(r) for r in items.get(order.id, [])]
        entries = [OrderStatusHistory.from_dict(r) for r in history.get(order.id, [])]
        order.status_history = sorted(entries, key=lambda h: h.created_at or _EPOCH, reverse=True)
        order.shipping_address = addresses.get(order.shipping_address_id or "")
        order.user = users.get(order.user_id)


def get_order_by_id(store, order_id: str) -> Optional[Order]:
    row = store.get_record("orders", "id", order_id) if order_id else None
    if not row:
        return None
    order = Order.from_dict(row)
    _load_relations(store, [order])
    return order


def get_order_by_number(store, order_number: str) -> Optional[Order]:
    row = store.get_record("orders", "order_number", order_number) if order_number else None
    if not row:
        return None
    order = Order.from_dict(row)
    _load_relations(store, [order])
    return order


def _matches(order: Order, f: OrderFilters) -> bool:
    if f.user_id and order.user_id != f.user_id:
        return False
    if f.status and order.status != f.status:
        return False
    if f.order_number and order.order_number != f.order_number:
        return False
    if f.shipping_method and order.shipping_method != f.shipping_method:
        return False
    created = order.created_at or _EPOCH
    date_from = parse_datetime(f.date_from)
    date_to = parse_datetime(f.date_to)
    if date_from and created < date_from:
        return False
    if date_to and created > date_to:
        return False
    if f.min_amount is not None and order.total_amount < money(f.min_amount):
        return False
    if f.max_amount is not None and order.total_amount > money(f.max_amount):
        return False
    return True


def list_orders(store, filters: Optional[OrderFilters] = None) -> OrderPage:
    """
    Filter, sort and paginate orders. `page` is clamped to >= 1 and `limit` to
    1..settings.ORDERS_MAX_PAGE_LIMIT; an unknown sort_by falls back to newest first.
    """
    f = filters or OrderFilters()
    page = max(1, int(f.page or 1))
    limit = int(f.limit or settings.ORDERS_DEFAULT_PAGE_LIMIT)
    limit = min(max(1, limit), settings.ORDERS_MAX_PAGE_LIMIT)

    matched = [o for o in (Order.from_dict(r) for r in store.list_records("orders")) if _matches(o, f)]

    key = SORT_KEYS.get(f.sort_by or "")
    if key is None:
        key, descending = SORT_KEYS["createdAt"], True
    else:
        descending = (f.sort_order or "desc").lower() != "asc"
    matched.sort(key=key, reverse=descending)

    total_count = len(matched)
    total_pages = math.ceil(total_count / limit)
    offset = (page - 1) * limit
    page_orders = matched[offset:offset + limit]
    _load_relations(store, page_orders, with_history=False)

    return OrderPage(
        orders=page_orders,
        page=page,
        limit=limit,
        total_count=total_count,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def user_order_history(store, user_id: str, page: int = 1, limit: Optional[int] = None) -> OrderPage:
    return list_orders(store, OrderFilters(user_id=user_id, page=page, limit=limit))


def order_statistics(store, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Counts by status and revenue (sum of delivered order totals), optionally for one user."""
    rows = store.find_records("orders", user_id=user_id) if user_id else store.list_records("orders")
    orders = [Order.from_dict(r) for r in rows]
    delivered = [o for o in orders if o.status == "delivered"]
    revenue = sum((o.total_amount for o in delivered), Decimal("0"))
    return {
        "total_orders": len(orders),
        "pending_orders": sum(1 for o in orders if o.status == "pending"),
        "delivered_orders": len(delivered),
        "cancelled_orders": sum(1 for o in orders if o.status == "cancelled"),
        "total_revenue": str(money(revenue)),
    }
