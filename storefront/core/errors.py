from __future__ import annotations
from typing import Any, Dict, List, Optional


FieldError = Dict[str, str]


class OrderError(Exception):
    """Base class for every error raised by the order/inventory core."""

    message: str = "Order processing failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message}


# --- not found -------------------------------------------------------------

class NotFoundError(OrderError):
    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product", f"Product with ID {product_id} not found")


class OrderNotFound(NotFoundError):
    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__("Order", f"Order {order_ref} not found")


# --- validation ------------------------------------------------------------

class ValidationError(OrderError):
    """
    Field-scoped failure. `errors` is the full list of violations, each a
    {"field": ..., "message": ...} dict; the exception message is the first one.
    """

    def __init__(self, errors: List[FieldError], message: Optional[str] = None):
        self.errors = list(errors or [])
        first = self.errors[0]["message"] if self.errors else "Validation failed"
        super().__init__(message or first)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["errors"] = list(self.errors)
        return out


def shortfall_message(shortfall: Dict[str, Any]) -> str:
    return (
        f'Insufficient inventory for product "{shortfall["product_name"]}". '
        f'Available: {shortfall["available_quantity"]}, Required: {shortfall["requested_quantity"]}'
    )


class InsufficientInventory(ValidationError):
    """
    One or more products cannot cover the requested quantity. `shortfalls` holds
    one dict per product (product_id, product_name, requested_quantity,
    available_quantity, allow_backorder); the first one is also exposed as
    product_id / available / requested.
    """

    def __init__(self, shortfalls: List[Dict[str, Any]], errors: Optional[List[FieldError]] = None):
        if not shortfalls:
            raise ValueError("InsufficientInventory needs at least one shortfall")
        self.shortfalls = [dict(s) for s in shortfalls]
        first = self.shortfalls[0]
        self.product_id = first["product_id"]
        self.product_name = first["product_name"]
        self.available = int(first["available_quantity"])
        self.requested = int(first["requested_quantity"])
        if errors is None:
            errors = [{"field": "orderItems", "message": shortfall_message(s)} for s in self.shortfalls]
        super().__init__(errors)

    @classmethod
    def for_product(cls, product_id: str, product_name: str, available: int, requested: int,
                    allow_backorder: bool = False) -> "InsufficientInventory":
        return cls([{
            "product_id": product_id,
            "product_name": product_name,
            "requested_quantity": int(requested),
            "available_quantity": int(available),
            "allow_backorder": allow_backorder,
        }])

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["insufficient_items"] = [dict(s) for s in self.shortfalls]
        return out


class ProductInactive(ValidationError):
    def __init__(self, product_id: str, product_name: str):
        self.product_id = product_id
        self.product_name = product_name
        super().__init__(
            [{"field": "orderItems", "message": f'Product "{product_name}" is not active and cannot be processed'}]
        )


class InvalidStatusTransition(ValidationError):
    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__([{"field": "status", "message": f"Cannot transition from {from_status} to {to_status}"}])


# --- conflicts -------------------------------------------------------------

class ConflictError(OrderError):
    message = "Conflicting update"


class AlreadyConfirmed(ConflictError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Payment is already confirmed for this order")


class OptimisticLockError(ConflictError):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version mismatch (expected {expected}, got {actual})")


class OrderNumberExhausted(ConflictError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not generate a unique order number after {attempts} attempts")


class DuplicateKey(ConflictError):
    def __init__(self, table: str, field: str, value: Any):
        self.table = table
        self.field = field
        self.value = value
        super().__init__(f"Duplicate value for {table}.{field}: {value}")


# --- internal --------------------------------------------------------------

class InternalError(OrderError):
    message = "Internal error"
