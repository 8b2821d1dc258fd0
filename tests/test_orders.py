from decimal import Decimal
from unittest.mock import patch

from fastapi import status

from agriconnect.models import Cart, CartItem, Notification, Order, Product
from agriconnect.models.enums import OrderStatus, PaymentStatus, UserRole
from agriconnect.services.payment_gateway import PaymentResult


def _order_payload(*lines: tuple[int, int]) -> dict:
    return {
        "items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
        "delivery_address": "KG 11 Ave, Kigali",
        "notes": "Deliver before noon",
    }


def test_create_order_splits_by_farmer(client, db, make_user, make_product, farmer, seller, seller_headers):
    other_farmer = make_user(UserRole.FARMER)
    potatoes = make_product(farmer, name="Potatoes", unit_price="500.00", quantity_available=100)
    beans = make_product(farmer, name="Beans", unit_price="800.00", quantity_available=50)
    coffee = make_product(other_farmer, name="Coffee", unit_price="3000.00", quantity_available=10)

    response = client.post(
        "/api/orders",
        json=_order_payload((potatoes.id, 20), (beans.id, 5), (coffee.id, 2)),
        headers=seller_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    orders = {o["farmer_id"]: o for o in response.json()["orders"]}
    assert set(orders) == {farmer.id, other_farmer.id}

    first = orders[farmer.id]
    assert first["status"] == "PENDING"
    assert first["payment_status"] == "PENDING"
    assert first["seller_id"] == seller.id
    assert Decimal(first["total_amount"]) == Decimal("14000")
    assert {i["product_name"] for i in first["items"]} == {"Potatoes", "Beans"}
    assert Decimal(orders[other_farmer.id]["total_amount"]) == Decimal("6000")

    db.expire_all()
    assert db.get(Product, potatoes.id).quantity_available == 80
    assert db.get(Product, coffee.id).quantity_available == 8
    notifications = db.query(Notification).filter(Notification.type == "ORDER_CREATED").all()
    assert {n.user_id for n in notifications} == {farmer.id, other_farmer.id}


def test_create_order_snapshots_price(client, db, product, seller_headers):
    response = client.post("/api/orders", json=_order_payload((product.id, 2)), headers=seller_headers)
    order_id = response.json()["orders"][0]["id"]

    product.unit_price = Decimal("999.00")
    db.commit()

    detail = client.get(f"/api/orders/{order_id}", headers=seller_headers).json()
    assert Decimal(detail["items"][0]["price_at_order"]) == Decimal("500")
    assert Decimal(detail["total_amount"]) == Decimal("1000")


def test_create_order_marks_product_sold_out(client, db, make_product, farmer, seller_headers):
    product = make_product(farmer, quantity_available=5)
    response = client.post("/api/orders", json=_order_payload((product.id, 5)), headers=seller_headers)
    assert response.status_code == status.HTTP_201_CREATED

    db.expire_all()
    stored = db.get(Product, product.id)
    assert stored.quantity_available == 0
    assert stored.status == "SOLD_OUT"


def test_create_order_removes_products_from_cart(client, db, make_product, farmer, seller, seller_headers):
    ordered = make_product(farmer, name="Ordered")
    kept = make_product(farmer, name="Kept")
    cart = Cart(user_id=seller.id)
    db.add(cart)
    db.flush()
    db.add_all(
        [
            CartItem(cart_id=cart.id, product_id=ordered.id, quantity=1),
            CartItem(cart_id=cart.id, product_id=kept.id, quantity=1),
        ]
    )
    db.commit()

    client.post("/api/orders", json=_order_payload((ordered.id, 1)), headers=seller_headers)

    remaining = db.query(CartItem).all()
    assert [item.product_id for item in remaining] == [kept.id]


def test_create_order_insufficient_stock_creates_nothing(client, db, make_product, farmer, seller_headers):
    plenty = make_product(farmer, name="Plenty", quantity_available=100)
    scarce = make_product(farmer, name="Scarce", quantity_available=1)

    response = client.post(
        "/api/orders",
        json=_order_payload((plenty.id, 10), (scarce.id, 2)),
        headers=seller_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert db.query(Order).count() == 0
    db.expire_all()
    assert db.get(Product, plenty.id).quantity_available == 100


def test_create_order_below_minimum_quantity(client, make_product, farmer, seller_headers):
    product = make_product(farmer, minimum_order_quantity=10)
    response = client.post("/api/orders", json=_order_payload((product.id, 3)), headers=seller_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_create_order_unknown_product(client, seller_headers):
    response = client.post("/api/orders", json=_order_payload((9999, 1)), headers=seller_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_create_order_rejects_duplicate_products(client, product, seller_headers):
    response = client.post(
        "/api/orders",
        json=_order_payload((product.id, 1), (product.id, 2)),
        headers=seller_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_farmer_cannot_place_orders(client, product, farmer_headers):
    response = client.post("/api/orders", json=_order_payload((product.id, 1)), headers=farmer_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_list_orders_per_role(client, make_order, product, farmer, seller, farmer_headers, seller_headers, make_user):
    make_order(seller, farmer, product)
    other_buyer = make_user()
    make_order(other_buyer, farmer, product)

    seller_view = client.get("/api/orders", headers=seller_headers).json()
    farmer_view = client.get("/api/orders", headers=farmer_headers).json()
    assert seller_view["pagination"]["total"] == 1
    assert farmer_view["pagination"]["total"] == 2


def test_list_orders_filters_by_status(client, make_order, product, farmer, seller, seller_headers):
    make_order(seller, farmer, product, status=OrderStatus.DELIVERED)
    make_order(seller, farmer, product)

    response = client.get("/api/orders", params={"status": "DELIVERED"}, headers=seller_headers)
    assert [o["status"] for o in response.json()["items"]] == ["DELIVERED"]


def test_list_orders_forbidden_for_admin(client, admin_headers):
    response = client.get("/api/orders", headers=admin_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_get_order_access(client, make_order, product, farmer, seller, admin_headers, make_user, auth_headers):
    order = make_order(seller, farmer, product)

    assert client.get(f"/api/orders/{order.id}", headers=admin_headers).status_code == status.HTTP_200_OK
    stranger = make_user()
    response = client.get(f"/api/orders/{order.id}", headers=auth_headers(stranger))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_get_order_not_found(client, seller_headers):
    response = client.get("/api/orders/9999", headers=seller_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_farmer_advances_order_status(client, db, make_order, product, farmer, seller, farmer_headers):
    order = make_order(seller, farmer, product)

    response = client.patch(f"/api/orders/{order.id}/status", json={"status": "CONFIRMED"}, headers=farmer_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "CONFIRMED"

    notification = db.query(Notification).filter(Notification.user_id == seller.id).one()
    assert notification.type == "ORDER_UPDATED"
    assert "CONFIRMED" in notification.content


def test_invalid_status_transition_rejected(client, make_order, product, farmer, seller, farmer_headers):
    order = make_order(seller, farmer, product)
    response = client.patch(f"/api/orders/{order.id}/status", json={"status": "DELIVERED"}, headers=farmer_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_buyer_cannot_update_status(client, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product)
    response = client.patch(f"/api/orders/{order.id}/status", json={"status": "CONFIRMED"}, headers=seller_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_cancel_order_restores_stock(client, db, make_product, farmer, seller_headers):
    product = make_product(farmer, quantity_available=5)
    created = client.post("/api/orders", json=_order_payload((product.id, 5)), headers=seller_headers).json()
    order_id = created["orders"][0]["id"]

    response = client.post(f"/api/orders/{order_id}/cancel", json={"reason": "Changed plans"}, headers=seller_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "CANCELLED"

    db.expire_all()
    restored = db.get(Product, product.id)
    assert restored.quantity_available == 5
    assert restored.status == "ACTIVE"
    cancelled = db.query(Notification).filter(Notification.user_id == farmer.id, Notification.type == "ORDER_UPDATED")
    assert "Changed plans" in cancelled.one().content


def test_cannot_cancel_order_in_progress(client, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product, status=OrderStatus.IN_PROGRESS)
    response = client.post(f"/api/orders/{order.id}/cancel", headers=seller_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_initiate_payment(client, db, make_order, product, farmer, seller, seller_headers, monkeypatch):
    monkeypatch.setenv("PAYMENT_GATEWAY_URL", "https://pay.example.rw")
    monkeypatch.setenv("PAYMENT_GATEWAY_API_KEY", "test-key")
    order = make_order(seller, farmer, product, quantity=20, delivery_fee="1500")

    result = PaymentResult(success=True, payment_url="https://pay.example.rw/checkout/abc", transaction_id="txn_abc")
    with patch("agriconnect.api.orders.payment_gateway.initiate_payment", return_value=result) as mock_init:
        response = client.post(f"/api/orders/{order.id}/pay", headers=seller_headers)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["payment_url"] == "https://pay.example.rw/checkout/abc"
    assert data["currency"] == "RWF"
    assert Decimal(data["amount"]) == Decimal("11500")
    kwargs = mock_init.call_args.kwargs
    assert kwargs["amount"] == Decimal("11500")
    assert kwargs["callback_url"].endswith("/api/webhooks/payment")

    db.refresh(order)
    assert order.payment_ref_id == "txn_abc"


def test_initiate_payment_gateway_not_configured(client, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product)
    response = client.post(f"/api/orders/{order.id}/pay", headers=seller_headers)
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["code"] == "SERVICE_UNAVAILABLE"


def test_initiate_payment_gateway_failure(client, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product)
    with patch(
        "agriconnect.api.orders.payment_gateway.initiate_payment",
        return_value=PaymentResult(success=False, error="timeout"),
    ):
        response = client.post(f"/api/orders/{order.id}/pay", headers=seller_headers)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR


def test_initiate_payment_rejected_when_already_paid(client, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product, payment_status=PaymentStatus.ESCROWED)
    response = client.post(f"/api/orders/{order.id}/pay", headers=seller_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_failed_payment_can_be_retried(client, db, make_order, product, farmer, seller, seller_headers):
    order = make_order(seller, farmer, product, payment_status=PaymentStatus.FAILED)
    with patch(
        "agriconnect.api.orders.payment_gateway.initiate_payment",
        return_value=PaymentResult(success=True, payment_url="https://pay/x", transaction_id="txn_retry"),
    ):
        response = client.post(f"/api/orders/{order.id}/pay", headers=seller_headers)
    assert response.status_code == status.HTTP_200_OK
    db.refresh(order)
    assert order.payment_status == "PENDING"
    assert order.payment_ref_id == "txn_retry"


def test_only_buyer_pays(client, make_order, product, farmer, seller, farmer_headers):
    order = make_order(seller, farmer, product)
    response = client.post(f"/api/orders/{order.id}/pay", headers=farmer_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
