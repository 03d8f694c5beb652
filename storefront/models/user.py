# storefront/models/user.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class User:
    """
    The identity the order core needs: who placed / changed an order and
    whether they may act on other users' orders.
    """
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "User":
        if d is None:
            raise ValueError("Cannot construct User from None")
        role = (d.get("role") or "customer").strip().lower()
        return cls(
            id=str(d.get("id") or d.get("user_id") or ""),
            email=str(d.get("email") or ""),
            first_name=str(d.get("first_name") or ""),
            last_name=str(d.get("last_name") or ""),
            role=role,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
        }

    def summary(self) -> Dict[str, Any]:
        """Fields embedded in order responses."""
        return {"id": self.id, "email": self.email, "first_name": self.first_name, "last_name": self.last_name}


@dataclass
class ShippingAddress:
    id: str
    user_id: str
    full_name: str = ""
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: Optional[str] = None
    postal_code: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ShippingAddress":
        if d is None:
            raise ValueError("Cannot construct ShippingAddress from None")
        return cls(
            id=str(d.get("id") or ""),
            user_id=str(d.get("user_id") or ""),
            full_name=str(d.get("full_name") or ""),
            line1=str(d.get("line1") or d.get("address_line1") or ""),
            line2=d.get("line2") or d.get("address_line2") or None,
            city=str(d.get("city") or ""),
            state=d.get("state") or None,
            postal_code=str(d.get("postal_code") or ""),
            country=str(d.get("country") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "full_name": self.full_name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
