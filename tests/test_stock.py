import pytest

import stock
from errors import InsufficientStock, NotFound, ValidationFailed
from schemas import OrderItem


def _item(product, quantity, size=None):
    return OrderItem(product_id=str(product["_id"]), quantity=quantity, selected_size=size)


def _size_stock(store, product, size):
    doc = store.products.get(product["_id"])
    return next(s["stock"] for s in doc["sizes"] if s["size"] == size)


def test_validate_items_prices_and_shipping(store, flat_product):
    lines, shipping = stock.validate_items(store.products, [_item(flat_product, 3)])
    assert len(lines) == 1
    assert lines[0].selected_size is None
    assert stock.subtotal(lines) == 270.0
    assert shipping == 15.0


def test_flat_stock_reserve_then_overdraw(store, flat_product):
    lines, _ = stock.validate_items(store.products, [_item(flat_product, 3)])
    stock.reserve(store.products, [line.as_order_item() for line in lines])
    assert store.products.get(flat_product["_id"])["product_stock"] == 7

    with pytest.raises(InsufficientStock) as exc:
        stock.validate_items(store.products, [_item(flat_product, 8)])
    assert "has only 7 units" in exc.value.message
    assert store.products.get(flat_product["_id"])["product_stock"] == 7


def test_sized_product_requires_size(store, sized_product):
    with pytest.raises(ValidationFailed) as exc:
        stock.validate_items(store.products, [_item(sized_product, 1)])
    assert "requires a size selection" in exc.value.message


def test_sized_product_checks_the_selected_size(store, sized_product):
    with pytest.raises(InsufficientStock):
        stock.validate_items(store.products, [_item(sized_product, 1, "L")])
    with pytest.raises(InsufficientStock):
        stock.validate_items(store.products, [_item(sized_product, 1, "XL")])

    lines, _ = stock.validate_items(store.products, [_item(sized_product, 2, "M")])
    stock.reserve(store.products, [line.as_order_item() for line in lines])
    assert _size_stock(store, sized_product, "M") == 0
    assert _size_stock(store, sized_product, "L") == 0


def test_failing_item_aborts_without_mutation(store, flat_product, sized_product):
    with pytest.raises(InsufficientStock):
        stock.validate_items(store.products, [_item(flat_product, 2), _item(sized_product, 5, "M")])
    assert store.products.get(flat_product["_id"])["product_stock"] == 10
    assert _size_stock(store, sized_product, "M") == 2


def test_unknown_product(store):
    with pytest.raises(NotFound):
        stock.validate_items(store.products, [OrderItem(product_id="0" * 24, quantity=1)])


def test_transition_only_moves_stock_across_cancelled(store, flat_product):
    order = {"status": "pending", "products": [{"product_id": str(flat_product["_id"]), "quantity": 4}]}
    stock.reserve(store.products, order["products"])
    assert store.products.get(flat_product["_id"])["product_stock"] == 6

    stock.transition(store.products, order, "shipped")
    assert store.products.get(flat_product["_id"])["product_stock"] == 6

    stock.transition(store.products, order, "cancelled")
    assert store.products.get(flat_product["_id"])["product_stock"] == 10

    order["status"] = "cancelled"
    stock.transition(store.products, order, "cancelled")
    assert store.products.get(flat_product["_id"])["product_stock"] == 10

    stock.transition(store.products, order, "processing")
    assert store.products.get(flat_product["_id"])["product_stock"] == 6


def test_restore_on_delete_skips_cancelled(store, flat_product):
    items = [{"product_id": str(flat_product["_id"]), "quantity": 2}]
    stock.restore_on_delete(store.products, {"status": "cancelled", "products": items})
    assert store.products.get(flat_product["_id"])["product_stock"] == 10

    stock.restore_on_delete(store.products, {"status": "pending", "products": items})
    assert store.products.get(flat_product["_id"])["product_stock"] == 12


def test_repeated_lines_share_one_counter(store, flat_product, sized_product):
    with pytest.raises(InsufficientStock) as exc:
        stock.validate_items(store.products, [_item(flat_product, 6), _item(flat_product, 6)])
    assert "has only 10 units" in exc.value.message

    with pytest.raises(InsufficientStock):
        stock.validate_items(store.products, [_item(sized_product, 1, "M"), _item(sized_product, 2, "M")])

    lines, _ = stock.validate_items(store.products, [_item(flat_product, 4), _item(flat_product, 6)])
    assert [line.quantity for line in lines] == [4, 6]
