"""
Stock bookkeeping around the order lifecycle.

A product with a non-empty ``sizes`` list keeps stock per size and its flat
``product_stock`` is ignored; otherwise the flat counter is used. Orders
take stock when placed, give it back when cancelled, take it again when
un-cancelled and give it back when deleted (unless already cancelled).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from errors import InsufficientStock, NotFound, ValidationFailed
from repositories import ProductRepository

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass
class Line:
    product: Dict[str, Any]
    quantity: int
    selected_image: Optional[str] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None

    @property
    def product_id(self) -> str:
        return str(self.product["_id"])

    @property
    def unit_price(self) -> float:
        return float(self.product.get("product_discounted_price") or 0)

    def as_order_item(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "selected_image": self.selected_image,
            "selected_size": self.selected_size,
            "selected_color": self.selected_color,
        }


def available(product: Dict[str, Any], size: Optional[str] = None) -> int:
    sizes = product.get("sizes") or []
    if sizes:
        for entry in sizes:
            if entry.get("size") == size:
                return int(entry.get("stock") or 0)
        return 0
    return int(product.get("product_stock") or 0)


def check_line(product: Dict[str, Any], quantity: int, size: Optional[str]) -> Optional[str]:
    """Return the size to book stock against; raise when the product can't cover ``quantity``."""
    name = product.get("product_name")
    if product.get("sizes"):
        if not size:
            raise ValidationFailed(f"Product {name} requires a size selection")
        in_stock = available(product, size)
        if in_stock < quantity:
            raise InsufficientStock(f"Product {name} size {size} has only {in_stock} units in stock")
        return size
    in_stock = available(product)
    if in_stock < quantity:
        raise InsufficientStock(f"Product {name} has only {in_stock} units in stock")
    return None


def validate_items(products: ProductRepository, items: Iterable[Any]) -> Tuple[List[Line], float]:
    """Check every requested item before anything is written.

    Returns the validated lines and the order's shipping total (per-unit
    shipping times quantity).
    """
    lines: List[Line] = []
    shipping_total = 0.0
    # repeated lines for one product (and size) draw on the same counter
    requested: Dict[Tuple[str, Optional[str]], int] = {}
    for item in items:
        product = products.get(item.product_id)
        if not product:
            raise NotFound(f"Product with ID {item.product_id} not found")
        key = (str(product["_id"]), item.selected_size if product.get("sizes") else None)
        requested[key] = requested.get(key, 0) + item.quantity
        size = check_line(product, requested[key], item.selected_size)
        shipping_total += float(product.get("shipping") or 0) * item.quantity
        lines.append(Line(product, item.quantity, item.selected_image, size, item.selected_color))
    return lines, round(shipping_total, 2)


def subtotal(lines: Iterable[Line]) -> float:
    return round(sum(line.unit_price * line.quantity for line in lines), 2)


def _apply(products: ProductRepository, items: Iterable[Dict[str, Any]], sign: int) -> None:
    for item in items:
        changed = products.adjust_stock(item["product_id"], sign * int(item["quantity"]), item.get("selected_size"))
        if not changed:
            logger.warning("Stock for product %s (size %s) was not adjusted",
                           item["product_id"], item.get("selected_size"))


def reserve(products: ProductRepository, items: Iterable[Dict[str, Any]]) -> None:
    _apply(products, items, -1)


def release(products: ProductRepository, items: Iterable[Dict[str, Any]]) -> None:
    _apply(products, items, 1)


def transition(products: ProductRepository, order: Dict[str, Any], new_status: str) -> None:
    """Move stock for a status change; only crossings of the cancelled state touch it."""
    previous = order.get("status")
    items = order.get("products") or []
    if new_status == CANCELLED and previous != CANCELLED:
        release(products, items)
    elif previous == CANCELLED and new_status != CANCELLED:
        reserve(products, items)


def restore_on_delete(products: ProductRepository, order: Dict[str, Any]) -> None:
    if order.get("status") != CANCELLED:
        release(products, order.get("products") or [])
