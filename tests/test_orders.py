from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

import orders
from errors import InsufficientStockError
from models import Order, OrderItem, Product, User
from schemas import OrderCreate, OrderItemIn

ADDRESS = "221B Baker Street, London NW1 6XE"


def _checkout(client, headers, items, address=ADDRESS):
    return client.post("/orders", json={"shipping_address": address, "items": items}, headers=headers)


def _stock(db_scalar, product_id):
    return db_scalar(select(Product.stock).where(Product.id == product_id))


def test_orders_require_token(client):
    assert client.get("/orders").status_code == 401
    assert client.post("/orders", json={}).status_code == 401


def test_checkout_uses_stored_price_and_clears_cart(client, user_headers, make_product, db_scalar):
    shirt = make_product(price=19.99, stock=10)
    saree = make_product(name="Silk Saree", price=149.0, stock=3, category="women")
    socks = make_product(name="Wool Socks", price=5.0, stock=10)

    # socks stay in the cart but are not ordered; checkout still empties the cart
    client.post("/cart", json={"product_id": shirt["id"], "quantity": 2}, headers=user_headers)
    client.post("/cart", json={"product_id": socks["id"], "quantity": 1}, headers=user_headers)

    response = _checkout(
        client,
        user_headers,
        [
            {"product_id": shirt["id"], "quantity": 2, "price": 0.01},
            {"product_id": saree["id"], "quantity": 1, "price": 1.00},
        ],
    )
    assert response.status_code == 201
    order = response.json()["data"]["order"]
    assert order["total_amount"] == 188.98
    assert order["status"] == "pending"
    assert order["shipping_address"] == ADDRESS
    assert [(i["name"], i["quantity"], i["price"]) for i in order["items"]] == [
        ("Cotton Shirt", 2, 19.99),
        ("Silk Saree", 1, 149.0),
    ]
    assert order["items"][1]["category"] == "women"

    assert _stock(db_scalar, shirt["id"]) == 8
    assert _stock(db_scalar, saree["id"]) == 2
    assert _stock(db_scalar, socks["id"]) == 10
    assert client.get("/cart", headers=user_headers).json()["data"]["count"] == 0


def test_checkout_over_stock_changes_nothing(client, user_headers, make_product, db_scalar):
    shirt = make_product(stock=10)
    saree = make_product(name="Silk Saree", stock=1)
    client.post("/cart", json={"product_id": shirt["id"], "quantity": 1}, headers=user_headers)

    response = _checkout(
        client,
        user_headers,
        [
            {"product_id": shirt["id"], "quantity": 2, "price": 19.99},
            {"product_id": saree["id"], "quantity": 2, "price": 19.99},
        ],
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient stock for product Silk Saree. Only 1 available."

    assert db_scalar(select(func.count(Order.id))) == 0
    assert db_scalar(select(func.count(OrderItem.id))) == 0
    assert _stock(db_scalar, shirt["id"]) == 10
    assert _stock(db_scalar, saree["id"]) == 1
    assert client.get("/cart", headers=user_headers).json()["data"]["count"] == 1


def test_checkout_counts_repeated_lines_against_stock(client, user_headers, make_product, db_scalar):
    product = make_product(stock=3)
    line = {"product_id": product["id"], "quantity": 2, "price": 19.99}
    response = _checkout(client, user_headers, [line, line])
    assert response.status_code == 400
    assert _stock(db_scalar, product["id"]) == 3


def test_checkout_missing_product(client, user_headers, make_product, db_scalar):
    product = make_product()
    response = _checkout(
        client,
        user_headers,
        [
            {"product_id": product["id"], "quantity": 1, "price": 19.99},
            {"product_id": 4242, "quantity": 1, "price": 19.99},
        ],
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Product with ID 4242 not found"
    assert db_scalar(select(func.count(Order.id))) == 0


@pytest.mark.parametrize(
    "body",
    [
        {"shipping_address": "short", "items": [{"product_id": 1, "quantity": 1, "price": 1}]},
        {"shipping_address": ADDRESS, "items": []},
        {"shipping_address": ADDRESS, "items": [{"product_id": 0, "quantity": 1, "price": 1}]},
        {"shipping_address": ADDRESS, "items": [{"product_id": 1, "quantity": 11, "price": 1}]},
        {"shipping_address": ADDRESS, "items": [{"product_id": 1, "quantity": 1, "price": 0}]},
        {"shipping_address": ADDRESS, "items": [{"product_id": 1, "quantity": 1}]},
    ],
)
def test_checkout_validation(client, user_headers, body):
    response = client.post("/orders", json=body, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_list_and_get_orders(client, user_headers, other_headers, make_product):
    product = make_product(stock=10)
    first = _checkout(client, user_headers, [{"product_id": product["id"], "quantity": 1, "price": 1}]).json()
    second = _checkout(client, user_headers, [{"product_id": product["id"], "quantity": 2, "price": 1}]).json()
    first_id = first["data"]["order"]["id"]
    second_id = second["data"]["order"]["id"]

    listed = client.get("/orders", headers=user_headers).json()["data"]["orders"]
    assert [o["id"] for o in listed] == [second_id, first_id]
    assert listed[0]["items"][0]["quantity"] == 2

    one = client.get(f"/orders/{first_id}", headers=user_headers)
    assert one.status_code == 200
    assert one.json()["data"]["order"]["total_amount"] == 19.99

    assert client.get(f"/orders/{first_id}", headers=other_headers).status_code == 404
    assert client.get("/orders/999", headers=user_headers).status_code == 404
    assert client.get("/orders", headers=other_headers).json()["data"]["orders"] == []


def _make_user(session, email):
    user = User(name="Shopper", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user.id


def test_stock_is_rechecked_inside_transaction(client, app, make_product, db_scalar):
    product = make_product(stock=5)
    database = app.state.database

    with database.SessionLocal() as session:
        user_id = _make_user(session, "racer@example.com")
        # load the row now so the resolution pass sees a stale stock of 5
        session.get(Product, product["id"])
        session.commit()

        with database.SessionLocal() as other:
            other.get(Product, product["id"]).stock = 0
            other.commit()

        payload = OrderCreate(
            shipping_address=ADDRESS,
            items=[OrderItemIn(product_id=product["id"], quantity=2, price=1)],
        )
        with pytest.raises(InsufficientStockError):
            orders.place_order(session, user_id, payload)

    assert db_scalar(select(func.count(Order.id))) == 0
    assert db_scalar(select(func.count(OrderItem.id))) == 0
    assert _stock(db_scalar, product["id"]) == 0


def test_concurrent_checkouts_never_oversell(client, app, make_product, db_scalar):
    buyers = 6
    product = make_product(stock=buyers - 1)
    database = app.state.database

    with database.SessionLocal() as session:
        user_ids = [_make_user(session, f"buyer{i}@example.com") for i in range(buyers)]

    def buy(user_id):
        payload = OrderCreate(
            shipping_address=ADDRESS,
            items=[OrderItemIn(product_id=product["id"], quantity=1, price=1)],
        )
        with database.SessionLocal() as session:
            try:
                orders.place_order(session, user_id, payload)
                return "ok"
            except InsufficientStockError:
                return "insufficient"

    with ThreadPoolExecutor(max_workers=buyers) as pool:
        results = list(pool.map(buy, user_ids))

    assert results.count("ok") == buyers - 1
    assert results.count("insufficient") == 1
    assert _stock(db_scalar, product["id"]) == 0
    assert db_scalar(select(func.count(Order.id))) == buyers - 1
