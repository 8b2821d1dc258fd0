from decimal import Decimal

from fastapi import status

from agriconnect.models import Cart, CartItem, Review, SavedProduct
from agriconnect.models.enums import OrderStatus, PaymentStatus, ProductStatus


def test_farmer_dashboard(client, db, farmer, seller, farmer_headers, make_product, make_order):
    product = make_product(farmer)
    make_product(farmer, name="Draft", status=ProductStatus.DRAFT)
    make_order(seller, farmer, product, quantity=10, status=OrderStatus.DELIVERED)
    make_order(seller, farmer, product, quantity=2, status=OrderStatus.PENDING)
    db.add(
        Review(
            reviewer_id=seller.id,
            reviewed_entity_id=farmer.id,
            reviewed_entity_type="FARMER",
            rating=4,
            is_approved=True,
        )
    )
    db.commit()

    response = client.get("/api/dashboard/stats", headers=farmer_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["role"] == "FARMER"
    assert data["stats"] == {
        "active_products_count": 1,
        "pending_orders_count": 1,
        "monthly_sales": "5000.00",
        "average_rating": 4.0,
        "review_count": 1,
    }


def test_seller_dashboard(client, db, farmer, seller, seller_headers, product, make_order):
    cart = Cart(user_id=seller.id)
    db.add(cart)
    db.flush()
    db.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=3))
    db.add(SavedProduct(user_id=seller.id, product_id=product.id))
    db.commit()
    make_order(seller, farmer, product, quantity=4, status=OrderStatus.CONFIRMED)
    make_order(seller, farmer, product, quantity=6, status=OrderStatus.DELIVERED)
    make_order(seller, farmer, product, quantity=1, status=OrderStatus.CANCELLED)

    response = client.get("/api/dashboard/stats", headers=seller_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "role": "SELLER",
        "stats": {
            "cart_items_count": 1,
            "active_orders_count": 1,
            "monthly_spent": "3000.00",
            "saved_products_count": 1,
        },
    }


def test_admin_dashboard(client, farmer, seller, admin_headers, product, make_order):
    make_order(seller, farmer, product, quantity=10, status=OrderStatus.DELIVERED, payment_status=PaymentStatus.RELEASED)
    make_order(seller, farmer, product, quantity=10, status=OrderStatus.DELIVERED, payment_status=PaymentStatus.ESCROWED)

    response = client.get("/api/dashboard/stats", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    stats = response.json()["stats"]
    assert stats["total_users"] == 3
    assert stats["active_products"] == 1
    assert Decimal(stats["monthly_revenue"]) == Decimal("5000")
    assert stats["user_growth_rate"] == 100.0


def test_dashboard_requires_auth(client):
    response = client.get("/api/dashboard/stats")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
