import discounts


def _order_body(product, quantity=1, **extra):
    body = {
        "products": [{"product_id": str(product["_id"]), "quantity": quantity, "selected_image": "a.jpg"}],
        "full_name": "Ali Raza",
        "shipping_address": "12 Mall Road",
        "order_email": "ali@example.com",
        "phone_number": "03001234567",
        "city": "Lahore",
        "guestId": "guest-1",
    }
    body.update(extra)
    return body


def _stock(store, product):
    return store.products.get(product["_id"])["product_stock"]


def test_guest_order_prices_from_products(client, store, services, flat_product):
    store.carts.create({"user_id": None, "guest_id": "guest-1", "product_id": str(flat_product["_id"]),
                        "selected_image": "a.jpg", "selected_size": None, "quantity": 1})

    resp = client.post("/api/create-order", json=_order_body(flat_product, 2, total_amount=1.0))
    assert resp.status_code == 201
    order = resp.json()
    assert order["guest_id"] == "guest-1"
    assert order["user_id"] is None
    assert order["original_amount"] == 180.0
    assert order["shipping_amount"] == 10.0
    assert order["total_amount"] == 190.0
    assert order["status"] == "pending"
    assert order["payment_status"] == "completed"
    assert order["products"][0]["product_id"]["_id"] == str(flat_product["_id"])

    assert _stock(store, flat_product) == 8
    assert store.carts.count({"guest_id": "guest-1"}) == 0
    assert store.activities.count({"event_type": "order_placed"}) == 1

    services.tasks.run_pending()
    assert len(services.mailer.of_kind("order")) == 1


def test_order_with_discount_code(client, store, flat_product):
    code = discounts.issue(store.discount_codes, "ali@example.com")["code"]
    resp = client.post("/api/create-order", json=_order_body(flat_product, 1, discount_code=code.lower()))
    assert resp.status_code == 201
    order = resp.json()
    assert order["discount_applied"] is True
    assert order["discount_amount"] == 9.0
    assert order["total_amount"] == 86.0

    again = client.post("/api/create-order", json=_order_body(flat_product, 1, discount_code=code))
    assert again.status_code == 400
    assert again.json()["detail"] == discounts.ALREADY_USED
    assert _stock(store, flat_product) == 9


def test_insufficient_stock_writes_nothing(client, store, flat_product):
    resp = client.post("/api/create-order", json=_order_body(flat_product, 11))
    assert resp.status_code == 400
    assert "has only 10 units" in resp.json()["detail"]
    assert store.orders.count() == 0
    assert _stock(store, flat_product) == 10


def test_order_validation(client, flat_product):
    resp = client.post("/api/create-order", json=_order_body(flat_product, phone_number="12345"))
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Invalid phone number")

    resp = client.post("/api/create-order", json=_order_body(flat_product, guestId=None))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "User or guest ID required"

    resp = client.post("/api/create-order", json=_order_body(flat_product, products=[]))
    assert resp.status_code == 400


def test_registered_order_and_my_orders(client, user_headers, flat_product):
    resp = client.post("/api/create-order", json=_order_body(flat_product, phone_number="+923001234567"),
                       headers=user_headers)
    assert resp.status_code == 201
    assert resp.json()["guest_id"] is None

    mine = client.get("/api/my-orders", headers=user_headers).json()
    assert [o["_id"] for o in mine] == [resp.json()["_id"]]
    assert client.get("/api/my-orders").json() == []


def test_failing_mailer_does_not_affect_order(client, services, flat_product):
    services.mailer.fail = True
    resp = client.post("/api/create-order", json=_order_body(flat_product))
    assert resp.status_code == 201
    services.tasks.run_pending()
    assert services.tasks.failed == 1


def test_cancel_uncancel_and_delete(client, store, admin_headers, flat_product):
    order_id = client.post("/api/create-order", json=_order_body(flat_product, 3)).json()["_id"]
    assert _stock(store, flat_product) == 7

    resp = client.put(f"/api/order/{order_id}", json={"status": "cancelled"}, headers=admin_headers)
    assert resp.status_code == 200
    assert _stock(store, flat_product) == 10

    client.put(f"/api/order/{order_id}", json={"status": "processing"}, headers=admin_headers)
    assert _stock(store, flat_product) == 7

    client.put(f"/api/order/{order_id}", json={"status": "cancelled"}, headers=admin_headers)
    resp = client.delete(f"/api/order/{order_id}", headers=admin_headers)
    assert resp.json() == {"message": "Order deleted successfully"}
    assert _stock(store, flat_product) == 10


def test_delete_pending_order_restores_stock(client, store, admin_headers, flat_product):
    order_id = client.post("/api/create-order", json=_order_body(flat_product, 4)).json()["_id"]
    client.delete(f"/api/order/{order_id}", headers=admin_headers)
    assert _stock(store, flat_product) == 10


def test_status_update_rules(client, admin_headers, user_headers, flat_product):
    order_id = client.post("/api/create-order", json=_order_body(flat_product)).json()["_id"]

    assert client.put(f"/api/order/{order_id}", json={"status": "lost"}, headers=admin_headers).json() == \
        {"detail": "Invalid status"}
    assert client.put(f"/api/order/{order_id}", json={"status": "shipped"}, headers=user_headers).status_code == 403
    assert client.put(f"/api/order/{order_id}", json={"status": "shipped"}).status_code == 401

    delivered = client.put(f"/api/order/{order_id}", json={"status": "delivered"}, headers=admin_headers).json()
    assert delivered["delivered_at"] is not None


def test_get_order(client, admin_headers, flat_product):
    order_id = client.post("/api/create-order", json=_order_body(flat_product)).json()["_id"]
    assert client.get(f"/api/order/{order_id}").json()["_id"] == order_id
    assert client.get("/api/order/" + "0" * 24).status_code == 404
    assert client.get("/api/order/not-an-id").status_code == 400
    assert len(client.get("/api/orders", headers=admin_headers).json()) == 1


def test_duplicate_lines_cannot_oversell(client, store, flat_product):
    body = _order_body(flat_product, 6)
    body["products"] = body["products"] * 2
    resp = client.post("/api/create-order", json=body)
    assert resp.status_code == 400
    assert store.orders.count() == 0
    assert _stock(store, flat_product) == 10
