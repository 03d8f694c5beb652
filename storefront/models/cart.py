# storefront/models/cart.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
import json

from storefront.models.fields import parse_int


@dataclass
class CartItem:
    product_id: str
    quantity: int = 1
    product_variant: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CartItem":
        if d is None:
            raise ValueError("Cannot construct CartItem from None")
        variant = d.get("product_variant") or {}
        return cls(
            product_id=str(d.get("product_id") or ""),
            quantity=parse_int(d.get("quantity"), 1),
            product_variant=dict(variant) if isinstance(variant, dict) else {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"product_id": self.product_id, "quantity": int(self.quantity),
                "product_variant": dict(self.product_variant)}


@dataclass
class Cart:
    """
    A user's cart, stored as a single row keyed by user_id with `items`
    serialized as JSON (list of CartItem dicts).
    """
    user_id: str
    items: List[CartItem] = field(default_factory=list)
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Cart":
        if d is None:
            raise ValueError("Cannot construct Cart from None")
        raw_items = d.get("items") or []
        if isinstance(raw_items, str):
            try:
                raw_items = json.loads(raw_items)
            except ValueError:
                raw_items = []
        if not isinstance(raw_items, list):
            raw_items = []
        items = [it if isinstance(it, CartItem) else CartItem.from_dict(it)
                 for it in raw_items if isinstance(it, (CartItem, dict))]
        return cls(user_id=str(d.get("user_id") or ""), items=items, updated_at=d.get("updated_at") or None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "items": json.dumps([it.to_dict() for it in self.items], ensure_ascii=False),
            "updated_at": self.updated_at or "",
        }

    def clear(self) -> None:
        self.items = []
