def _add(client, product, guest="g1", image="a.jpg", size=None, headers=None):
    body = {"product_id": str(product["_id"]), "selected_image": image, "selected_size": size}
    if guest:
        body["guestId"] = guest
    return client.post("/api/cart", json=body, headers=headers or {})


def test_add_increments_quantity(client, flat_product):
    _add(client, flat_product)
    rows = _add(client, flat_product).json()
    assert len(rows) == 1
    assert rows[0]["quantity"] == 2
    assert rows[0]["product_id"]["product_name"] == "Steel Chronograph"


def test_add_requires_owner_and_item(client, flat_product):
    assert _add(client, flat_product, guest=None).json() == {"detail": "User or guest ID required"}
    resp = client.post("/api/cart", json={"guestId": "g1"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Product ID and selected image are required"


def test_add_respects_stock(client, store, sized_product):
    assert _add(client, sized_product).json()["detail"] == "Size is required for this product"
    assert _add(client, sized_product, size="XXL").json()["detail"] == "Invalid size selected"
    assert _add(client, sized_product, size="L").json()["detail"] == "Size L is out of stock"

    _add(client, sized_product, size="M")
    _add(client, sized_product, size="M")
    resp = _add(client, sized_product, size="M")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot add more: Size M stock limit reached"
    assert store.carts.find_one({"guest_id": "g1"})["quantity"] == 2


def test_add_logs_event(client, store, flat_product):
    _add(client, flat_product)
    event = store.activities.find_one({"event_type": "add_to_cart"})
    assert event["guest_id"] == "g1"
    assert event["data"]["cart_item_count"] == 1
    assert event["meta"]["server_logged"] is True


def test_listing_normalises_foreign_image(client, store, flat_product):
    store.carts.create({"user_id": None, "guest_id": "g1", "product_id": str(flat_product["_id"]),
                        "selected_image": "stale.jpg", "selected_size": None, "quantity": 1})
    rows = client.get("/api/cart", params={"guestId": "g1"}).json()
    assert rows[0]["selected_image"] == "a.jpg"


def test_remove_and_clear(client, flat_product):
    _add(client, flat_product)
    _add(client, flat_product)
    body = {"product_id": str(flat_product["_id"]), "selected_image": "a.jpg", "guestId": "g1"}
    assert client.post("/api/cart/remove", json=body).json()[0]["quantity"] == 1
    assert client.post("/api/cart/remove", json=body).json() == []
    assert client.post("/api/cart/remove", json=body).status_code == 404

    _add(client, flat_product)
    assert client.post("/api/cart/remove", json=dict(body, removeAll=True)).json() == []

    _add(client, flat_product)
    assert client.delete("/api/cart/clear", params={"guestId": "g1"}).json() == []
    assert client.get("/api/cart", params={"guestId": "g1"}).json() == []


def test_user_and_guest_carts_are_separate(client, user_headers, flat_product):
    _add(client, flat_product, guest=None, headers=user_headers)
    assert len(client.get("/api/cart", headers=user_headers).json()) == 1
    assert client.get("/api/cart", params={"guestId": "g1"}).json() == []


def test_wishlist(client, flat_product):
    body = {"product_id": str(flat_product["_id"]), "selected_image": "b.jpg", "guestId": "g1"}
    resp = client.post("/api/wishlist/add", json=body)
    assert resp.status_code == 201
    assert len(resp.json()) == 1

    again = client.post("/api/wishlist/add", json=body)
    assert again.status_code == 200
    assert again.json() == {"message": "Already in wishlist"}

    assert len(client.get("/api/wishlist", params={"guestId": "g1"}).json()) == 1
    assert client.post("/api/wishlist/remove", json=body).json() == []
    assert client.post("/api/wishlist/remove", json=body).status_code == 404
