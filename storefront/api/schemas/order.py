from typing import List, Literal, Optional, Any, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from storefront.models.order import CreateOrderItem, CreateOrderRequest

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned", "refunded"]
ShippingMethod = Literal["standard", "express", "free_shipping"]


class _Body(BaseModel):
    # accept both the camelCase field names used by clients and snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OrderItemIn(_Body):
    product_id: str = Field(..., min_length=1, description="Product identifier")
    quantity: int = Field(..., ge=1, le=100, description="Quantity ordered")
    product_variant: Optional[Dict[str, Any]] = Field(None, description="Free-form variant, e.g. size/color/material")


class OrderCreate(_Body):
    shipping_address_id: str = Field(..., min_length=1, description="One of the caller's shipping addresses")
    order_items: List[OrderItemIn] = Field(..., min_length=1, description="Order lines")
    shipping_method: ShippingMethod = "standard"
    customer_notes: Optional[str] = Field(None, max_length=1000)
    payment_confirmed: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer_notes")
    def _strip_notes(cls, v):
        if v is None:
            return v
        return v.strip() or None

    def to_request(self, user_id: str) -> CreateOrderRequest:
        return CreateOrderRequest(
            user_id=user_id,
            shipping_address_id=self.shipping_address_id,
            order_items=_to_items(self.order_items),
            shipping_method=self.shipping_method,
            customer_notes=self.customer_notes,
            payment_confirmed=self.payment_confirmed,
            metadata=dict(self.metadata or {}),
        )


def _to_items(lines: List[OrderItemIn]) -> List[CreateOrderItem]:
    return [CreateOrderItem(product_id=it.product_id, quantity=it.quantity, product_variant=it.product_variant)
            for it in lines]


class OrderValidate(OrderCreate):
    # an empty list is reported as a field error by the route, not rejected by the schema
    order_items: List[OrderItemIn] = Field(default_factory=list)


class InventoryCheck(_Body):
    order_items: List[OrderItemIn] = Field(default_factory=list)

    def to_items(self) -> List[CreateOrderItem]:
        return _to_items(self.order_items)


class TotalsPreview(InventoryCheck):
    shipping_method: ShippingMethod = "standard"


class StatusUpdate(_Body):
    new_status: OrderStatus = Field(..., description="Target status")
    comment: Optional[str] = Field(None, max_length=1000)
    is_customer_visible: bool = True
    expected_version: Optional[int] = Field(None, description="Optimistic-lock expected version")


class CancelRequest(_Body):
    reason: str = Field(..., min_length=1, max_length=500, description="Why the order is being cancelled")

    @field_validator("reason")
    def _reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank")
        return v.strip()


class PaymentConfirmation(_Body):
    comment: Optional[str] = Field(None, max_length=1000)
    is_customer_visible: bool = True
