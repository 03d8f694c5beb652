# storefront/models/product.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from storefront.models.fields import iso, money, parse_bool, parse_datetime, parse_int


@dataclass
class Product:
    """
    The part of a catalog product the order core reads. The catalog owns the
    row; the core only decrements/increments `inventory_quantity` under lock.
    """
    id: str
    name: str = ""
    slug: str = ""
    price: Optional[Decimal] = None
    weight: Optional[str] = None
    weight_unit: str = "kg"
    inventory_quantity: int = 0
    allow_backorder: bool = False
    status: str = "active"
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Product":
        if d is None:
            raise ValueError("Cannot construct Product from None")
        return cls(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            slug=str(d.get("slug") or ""),
            price=money(d.get("price")) if str(d.get("price") or "").strip() else None,
            weight=d.get("weight") or None,
            weight_unit=d.get("weight_unit") or "kg",
            inventory_quantity=parse_int(d.get("inventory_quantity"), 0),
            allow_backorder=parse_bool(d.get("allow_backorder")),
            status=(d.get("status") or "active").strip().lower(),
            updated_at=parse_datetime(d.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "price": str(money(self.price)) if self.price is not None else None,
            "weight": self.weight,
            "weight_unit": self.weight_unit,
            "inventory_quantity": int(self.inventory_quantity),
            "allow_backorder": bool(self.allow_backorder),
            "status": self.status,
            "updated_at": iso(self.updated_at),
        }
