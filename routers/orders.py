"""
Checkout and order administration.

Placing an order validates every line against current stock before anything
is written, prices it from the stored products (the client's total is
ignored), redeems the discount code if one is given, then books the stock
and clears the owner's cart. Confirmation mail goes out on the side-effect
queue.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, EmailStr, Field

import activity
import discounts
import stock
from database import ensure_object_id, serialize, utcnow
from dependencies import Services, get_optional_user, get_services, require_admin
from errors import NotFound, ValidationFailed
from owners import Guest, owner_fields, resolve_owner
from schemas import ORDER_STATUSES, PHONE_PATTERN, Order, OrderItem

logger = logging.getLogger(__name__)

router = APIRouter()

PHONE_RE = re.compile(PHONE_PATTERN)


class CreateOrderRequest(BaseModel):
    products: List[OrderItem] = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1)
    order_email: EmailStr
    phone_number: str
    city: Optional[str] = None
    guestId: Optional[str] = None
    discount_code: Optional[str] = None
    total_amount: Optional[float] = None


class StatusUpdate(BaseModel):
    status: str


def populate_order(services: Services, order: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize(order)
    items = order.get("products") or []
    products = {str(p["_id"]): p for p in services.store.products.by_ids(i["product_id"] for i in items)}
    for item in doc.get("products") or []:
        product = products.get(item["product_id"])
        if product:
            item["product_id"] = serialize(product)
    return doc


@router.post("/create-order", status_code=201)
def create_order(payload: CreateOrderRequest, request: Request, user: Optional[dict] = Depends(get_optional_user),
                 services: Services = Depends(get_services)):
    phone = payload.phone_number.strip()
    if not PHONE_RE.match(phone):
        raise ValidationFailed("Invalid phone number. Provide 11-digit local number or +92XXXXXXXXXX")
    owner = resolve_owner(user, payload.guestId)
    store = services.store

    lines, shipping = stock.validate_items(store.products, payload.products)
    amount = stock.subtotal(lines)

    discount_amount = 0.0
    code = None
    if payload.discount_code and payload.discount_code.strip():
        code = discounts.redeem(store.discount_codes, payload.order_email, payload.discount_code)
        discount_amount = round(amount - discounts.apply_discount(amount), 2)
    if payload.total_amount is not None:
        logger.debug("Ignoring client total %s", payload.total_amount)

    order = Order(
        full_name=payload.full_name,
        products=[OrderItem(**line.as_order_item()) for line in lines],
        original_amount=amount,
        discount_amount=discount_amount,
        shipping_amount=shipping,
        total_amount=round(amount - discount_amount + shipping, 2),
        discount_applied=code is not None,
        discount_code=code,
        shipping_address=payload.shipping_address,
        order_email=payload.order_email,
        phone_number=phone,
        city=payload.city,
    )
    doc = store.orders.create(dict(order.model_dump(), **owner_fields(owner)))
    stock.reserve(store.products, doc["products"])
    store.carts.clear(owner)
    logger.info("Order %s placed for %s (total %.2f)", doc["_id"], owner, doc["total_amount"])

    display = payload.full_name if isinstance(owner, Guest) else (user.get("username") or user.get("email"))
    activity.record_event(
        services, "order_placed", owner,
        {
            "order_id": str(doc["_id"]),
            "total_amount": doc["total_amount"],
            "item_count": sum(line.quantity for line in lines),
            "product_ids": [line.product_id for line in lines],
        },
        request.headers, request.client.host if request.client else None, display,
    )
    mail_lines = [
        {"product_name": line.product.get("product_name"), "quantity": line.quantity, "unit_price": line.unit_price}
        for line in lines
    ]
    services.tasks.submit("order-confirmation", services.mailer.send_order_confirmation, serialize(doc), mail_lines)
    return populate_order(services, doc)


@router.get("/my-orders")
def my_orders(guestId: Optional[str] = Query(None), user: Optional[dict] = Depends(get_optional_user),
              services: Services = Depends(get_services)):
    if user is None and not guestId:
        return []
    owner = resolve_owner(user, guestId)
    return [populate_order(services, o) for o in services.store.orders.for_owner(owner)]


@router.get("/orders")
def list_orders(_: dict = Depends(require_admin), services: Services = Depends(get_services)):
    orders = services.store.orders.find(sort=[("created_at", -1)])
    return [populate_order(services, o) for o in orders]


@router.get("/order/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)):
    ensure_object_id(order_id)
    order = services.store.orders.get(order_id)
    if not order:
        raise NotFound("Order not found")
    return populate_order(services, order)


@router.put("/order/{order_id}")
def update_order_status(order_id: str, payload: StatusUpdate, _: dict = Depends(require_admin),
                        services: Services = Depends(get_services)):
    ensure_object_id(order_id)
    if payload.status not in ORDER_STATUSES:
        raise ValidationFailed("Invalid status")
    store = services.store
    order = store.orders.get(order_id)
    if not order:
        raise NotFound("Order not found")
    stock.transition(store.products, order, payload.status)
    changes: Dict[str, Any] = {"status": payload.status}
    if payload.status == "delivered" and not order.get("delivered_at"):
        changes["delivered_at"] = utcnow()
    logger.info("Order %s: %s -> %s", order_id, order.get("status"), payload.status)
    return populate_order(services, store.orders.update(order_id, changes))


@router.delete("/order/{order_id}")
def delete_order(order_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(order_id)
    store = services.store
    order = store.orders.get(order_id)
    if not order:
        raise NotFound("Order not found")
    stock.restore_on_delete(store.products, order)
    store.orders.delete(order_id)
    return {"message": "Order deleted successfully"}
