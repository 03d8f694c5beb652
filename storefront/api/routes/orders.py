# storefront/api/routes/orders.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status, Body

from storefront.api.deps import get_db, get_current_user, require_admin
from storefront.api.schemas.order import (
    CancelRequest, InventoryCheck, OrderCreate, OrderStatus, OrderValidate, PaymentConfirmation, ShippingMethod,
    StatusUpdate, TotalsPreview,
)
from storefront.core import errors
from storefront.database import FileBackedDB
from storefront.models.order import Order
from storefront.models.user import User
from storefront.services import order_queries, orders as order_service
from storefront.services.pricing import calculate_order_totals
from storefront.services.validation import load_and_check_inventory, validate_order_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _http_error(exc: errors.OrderError) -> HTTPException:
    if isinstance(exc, errors.NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, errors.ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, errors.ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=exc.to_dict())


def _load_visible_order(store: FileBackedDB, order_id: str, user: User) -> Order:
    """Fetch an order the caller may see: its owner or an admin."""
    order = order_queries.get_order_by_id(store, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if not user.is_admin and order.user_id != user.id:
        raise HTTPException(status_code=403, detail="You don't have permission to access this order")
    return order


@router.post("/", status_code=201)
def create_order(
    payload: OrderCreate = Body(...),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    """
    Place an order for the current user. Totals are computed server-side from
    current product prices; stock is reserved for every line.
    """
    try:
        order = order_service.create_order(store, payload.to_request(current_user.id))
    except errors.OrderError as exc:
        logger.info("Order creation rejected for user %s: %s", current_user.id, exc.message)
        raise _http_error(exc)
    return {"ok": True, "order": order.to_dict(include_relations=True)}


@router.get("/")
def list_orders(
    status_: Optional[OrderStatus] = Query(None, alias="status"),
    order_number: Optional[str] = Query(None, alias="orderNumber"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    min_amount: Optional[Decimal] = Query(None, alias="minAmount", ge=0),
    max_amount: Optional[Decimal] = Query(None, alias="maxAmount", ge=0),
    shipping_method: Optional[ShippingMethod] = Query(None, alias="shippingMethod"),
    sort_by: str = Query("createdAt", alias="sortBy", pattern="^(createdAt|updatedAt|totalAmount|orderNumber)$"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    """
    List orders with filters, sorting and pagination. Customers only ever see
    their own orders; admins see all.
    """
    filters = order_queries.OrderFilters(
        user_id=None if current_user.is_admin else current_user.id,
        status=status_,
        order_number=order_number,
        date_from=date_from,
        date_to=date_to,
        min_amount=min_amount,
        max_amount=max_amount,
        shipping_method=shipping_method,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return {"ok": True, **order_queries.list_orders(store, filters).to_dict()}


@router.get("/me")
def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    return {"ok": True, **order_queries.user_order_history(store, current_user.id, page, limit).to_dict()}


def _require_items(items) -> None:
    if not items:
        raise _http_error(errors.ValidationError([{"field": "orderItems", "message": "Order items are required"}]))


@router.post("/validate")
def validate_order(
    payload: OrderValidate = Body(...),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    """Dry-run the creation checks for the current user. Nothing is written or reserved."""
    _require_items(payload.order_items)
    validation = validate_order_request(store, payload.to_request(current_user.id))
    return {"ok": True, "validation": validation.to_dict()}


@router.post("/check-inventory")
def check_inventory(
    payload: InventoryCheck = Body(...),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    _require_items(payload.order_items)
    return {"ok": True, "inventory_check": load_and_check_inventory(store, payload.to_items()).to_dict()}


@router.post("/calculate-totals")
def calculate_totals(
    payload: TotalsPreview = Body(...),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    """Price a prospective order with current product prices."""
    _require_items(payload.order_items)
    try:
        totals = calculate_order_totals(store, payload.to_items(), payload.shipping_method)
    except errors.OrderError as exc:
        raise _http_error(exc)
    return {"ok": True, "calculations": totals.to_dict()}


@router.get("/statistics")
@router.get("/stats", include_in_schema=False)
def order_stats(
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
) -> Dict[str, Any]:
    """Order counts and delivered revenue. Admins may scope to any user; customers get their own."""
    scope = user_id if current_user.is_admin else current_user.id
    return {"ok": True, "statistics": order_queries.order_statistics(store, scope)}


@router.get("/number/{order_number}")
def get_order_by_number(order_number: str, current_user: User = Depends(get_current_user),
                        store: FileBackedDB = Depends(get_db)):
    order = order_queries.get_order_by_number(store, order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if not current_user.is_admin and order.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="You don't have permission to access this order")
    return {"ok": True, "order": order.to_dict(include_relations=True)}


@router.get("/{order_id}")
def get_order(order_id: str, current_user: User = Depends(get_current_user), store: FileBackedDB = Depends(get_db)):
    order = _load_visible_order(store, order_id, current_user)
    return {"ok": True, "order": order.to_dict(include_relations=True)}


@router.patch("/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: StatusUpdate = Body(...),
    current_user: User = Depends(require_admin),
    store: FileBackedDB = Depends(get_db),
):
    """
    Admin-only: move the order along its state machine. Illegal transitions
    are rejected with 400 and leave the order untouched.
    """
    try:
        order = order_service.update_order_status(
            store,
            order_id,
            payload.new_status,
            comment=payload.comment,
            changed_by=current_user.id,
            is_customer_visible=payload.is_customer_visible,
            expected_version=payload.expected_version,
        )
    except errors.OrderError as exc:
        raise _http_error(exc)
    return {"ok": True, "order": order.to_dict(include_relations=True)}


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    payload: CancelRequest = Body(...),
    current_user: User = Depends(get_current_user),
    store: FileBackedDB = Depends(get_db),
):
    """Cancel an order. The owner or an admin may cancel; a reason is required."""
    _load_visible_order(store, order_id, current_user)
    try:
        order = order_service.cancel_order(store, order_id, payload.reason, cancelled_by=current_user.id)
    except errors.OrderError as exc:
        raise _http_error(exc)
    return {"ok": True, "order": order.to_dict(include_relations=True)}


@router.patch("/{order_id}/confirm-payment")
def confirm_payment(
    order_id: str,
    payload: Optional[PaymentConfirmation] = Body(None),
    current_user: User = Depends(require_admin),
    store: FileBackedDB = Depends(get_db),
):
    """Admin-only: record that payment arrived. A second confirmation returns 409."""
    payload = payload or PaymentConfirmation()
    try:
        order = order_service.confirm_payment(
            store,
            order_id,
            comment=payload.comment,
            changed_by=current_user.id,
            is_customer_visible=payload.is_customer_visible,
        )
    except errors.OrderError as exc:
        raise _http_error(exc)
    return {"ok": True, "order": order.to_dict(include_relations=True)}
