"""
Cart and wishlist rows, owned by a signed-in user or by a guest id.

Rows are keyed by (owner, product, selected image, selected size). Listing
responses embed the product and point ``selected_image`` at one of the
product's own images.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import activity
from database import is_object_id, serialize
from dependencies import Services, get_optional_user, get_services
from errors import NotFound, ValidationFailed
from owners import Owner, owner_fields, resolve_owner
from repositories import product_image
from stock import available

logger = logging.getLogger(__name__)

router = APIRouter()


class CartItemIn(BaseModel):
    product_id: Optional[str] = None
    selected_image: Optional[str] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    guestId: Optional[str] = None
    removeAll: bool = False
    url: Optional[str] = None


def _require_item(payload: CartItemIn) -> None:
    if not payload.product_id or not payload.selected_image:
        raise ValidationFailed("Product ID and selected image are required")


def _require_product_id(product_id: str) -> None:
    if not is_object_id(product_id):
        raise ValidationFailed("Invalid product ID format")


def _rows(services: Services, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    products = {str(p["_id"]): p for p in services.store.products.by_ids(r["product_id"] for r in rows)}
    result = []
    for row in rows:
        product = products.get(row["product_id"])
        doc = serialize(row)
        doc["selected_image"] = product_image(product, row.get("selected_image"))
        doc["product_id"] = serialize(product) if product else row["product_id"]
        result.append(doc)
    return result


def _check_can_add(product: Dict[str, Any], size: Optional[str], quantity: int) -> None:
    """``quantity`` is what the row would hold after adding one more."""
    if product.get("sizes"):
        if not size:
            raise ValidationFailed("Size is required for this product")
        if not any(s.get("size") == size for s in product["sizes"]):
            raise ValidationFailed("Invalid size selected")
        in_stock = available(product, size)
        if in_stock <= 0:
            raise ValidationFailed(f"Size {size} is out of stock")
        if quantity > in_stock:
            raise ValidationFailed(f"Cannot add more: Size {size} stock limit reached")
    else:
        in_stock = available(product)
        if in_stock <= 0:
            raise ValidationFailed("Product is out of stock")
        if quantity > in_stock:
            raise ValidationFailed("Cannot add more: Product stock limit reached")


def _log_add(services: Services, request: Request, owner: Owner, user: Optional[Dict[str, Any]],
             product: Dict[str, Any], payload: CartItemIn, cart: List[Dict[str, Any]]) -> None:
    try:
        snapshot = activity.cart_snapshot(services.store, owner)
    except Exception as exc:
        logger.warning("Failed to build cart snapshot: %s", exc)
        snapshot = []
    data = {
        "product_id": payload.product_id,
        "product_name": product.get("product_name"),
        "price": product.get("product_discounted_price") or product.get("product_base_price"),
        "selected_size": payload.selected_size,
        "selected_image": product_image(product, payload.selected_image),
        "quantity": 1,
        "cart_item_count": sum(row.get("quantity", 0) for row in cart),
        "product_snapshot": {
            "product_name": product.get("product_name"),
            "product_images": product.get("product_images") or [],
        },
        "cart_snapshot": snapshot,
    }
    display = (user.get("username") or user.get("email")) if user else None
    peer = request.client.host if request.client else None
    activity.record_event(services, "add_to_cart", owner, data, request.headers, peer, display)


# Cart
@router.post("/cart")
def add_to_cart(payload: CartItemIn, request: Request, user: Optional[dict] = Depends(get_optional_user),
                services: Services = Depends(get_services)):
    _require_item(payload)
    owner = resolve_owner(user, payload.guestId)
    _require_product_id(payload.product_id)
    store = services.store
    product = store.products.get(payload.product_id)
    if not product:
        raise NotFound("Product not found")

    size = payload.selected_size or None
    row = store.carts.entry(owner, payload.product_id, payload.selected_image, size)
    quantity = (row["quantity"] if row else 0) + 1
    _check_can_add(product, size, quantity)
    if row:
        store.carts.update(row["_id"], {"quantity": quantity})
    else:
        store.carts.create(dict(
            owner_fields(owner),
            product_id=payload.product_id,
            selected_image=payload.selected_image,
            selected_size=size,
            selected_color=payload.selected_color,
            quantity=1,
        ))

    cart = store.carts.for_owner(owner)
    _log_add(services, request, owner, user, product, payload, cart)
    return _rows(services, cart)


@router.get("/cart")
def get_cart(guestId: Optional[str] = Query(None), user: Optional[dict] = Depends(get_optional_user),
             services: Services = Depends(get_services)):
    owner = resolve_owner(user, guestId)
    return _rows(services, services.store.carts.for_owner(owner))


@router.post("/cart/remove")
def remove_from_cart(payload: CartItemIn, user: Optional[dict] = Depends(get_optional_user),
                     services: Services = Depends(get_services)):
    _require_item(payload)
    owner = resolve_owner(user, payload.guestId)
    _require_product_id(payload.product_id)
    carts = services.store.carts
    row = carts.entry(owner, payload.product_id, payload.selected_image, payload.selected_size or None)
    if not row:
        raise NotFound("Cart item not found")
    if payload.removeAll or row.get("quantity", 1) <= 1:
        carts.delete(row["_id"])
    else:
        carts.update(row["_id"], {"quantity": row["quantity"] - 1})
    return _rows(services, carts.for_owner(owner))


@router.delete("/cart/clear")
def clear_cart(guestId: Optional[str] = Query(None), user: Optional[dict] = Depends(get_optional_user),
               services: Services = Depends(get_services)):
    owner = resolve_owner(user, guestId)
    services.store.carts.clear(owner)
    return []


# Wishlist
@router.post("/wishlist/add", status_code=201)
def add_to_wishlist(payload: CartItemIn, user: Optional[dict] = Depends(get_optional_user),
                    services: Services = Depends(get_services)):
    _require_item(payload)
    owner = resolve_owner(user, payload.guestId)
    _require_product_id(payload.product_id)
    wishlists = services.store.wishlists
    if not services.store.products.get(payload.product_id):
        raise NotFound("Product not found")
    size = payload.selected_size or None
    if wishlists.entry(owner, payload.product_id, payload.selected_image, size):
        return JSONResponse(status_code=200, content={"message": "Already in wishlist"})
    wishlists.create(dict(
        owner_fields(owner),
        product_id=payload.product_id,
        selected_image=payload.selected_image,
        selected_size=size,
    ))
    return _rows(services, wishlists.for_owner(owner))


@router.post("/wishlist/remove")
def remove_from_wishlist(payload: CartItemIn, user: Optional[dict] = Depends(get_optional_user),
                         services: Services = Depends(get_services)):
    _require_item(payload)
    owner = resolve_owner(user, payload.guestId)
    wishlists = services.store.wishlists
    row = wishlists.entry(owner, payload.product_id, payload.selected_image, payload.selected_size or None)
    if not row:
        raise NotFound("Item not found in wishlist")
    wishlists.delete(row["_id"])
    return _rows(services, wishlists.for_owner(owner))


@router.get("/wishlist")
def get_wishlist(guestId: Optional[str] = Query(None), user: Optional[dict] = Depends(get_optional_user),
                 services: Services = Depends(get_services)):
    owner = resolve_owner(user, guestId)
    return _rows(services, services.store.wishlists.for_owner(owner))
