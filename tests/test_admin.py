from decimal import Decimal

from fastapi import status

from agriconnect.models import Notification, Review
from agriconnect.models.enums import OrderStatus, PaymentStatus, ProductStatus, UserRole


def test_list_users_filters(client, farmer, seller, admin, make_user, admin_headers):
    make_user(UserRole.FARMER, is_verified=False)

    response = client.get("/api/admin/users", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["pagination"]["total"] == 4

    response = client.get("/api/admin/users", params={"role": "FARMER"}, headers=admin_headers)
    assert response.json()["pagination"]["total"] == 2

    response = client.get("/api/admin/users", params={"is_verified": "false"}, headers=admin_headers)
    assert response.json()["pagination"]["total"] == 1

    response = client.get("/api/admin/users", params={"search": "jean"}, headers=admin_headers)
    assert [u["id"] for u in response.json()["items"]] == [farmer.id]

    response = client.get("/api/admin/users", params={"search": "+250788222"}, headers=admin_headers)
    assert [u["id"] for u in response.json()["items"]] == [seller.id]


def test_admin_routes_reject_other_roles(client, farmer_headers, seller_headers):
    for headers in (farmer_headers, seller_headers):
        response = client.get("/api/admin/users", headers=headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["code"] == "FORBIDDEN"


def test_admin_routes_require_auth(client):
    response = client.get("/api/admin/stats")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_user_stats(client, farmer, seller, admin, make_user, admin_headers):
    make_user(UserRole.SELLER, is_verified=False)
    response = client.get("/api/admin/users/stats", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "total": 4,
        "farmers": 1,
        "sellers": 2,
        "admins": 1,
        "verified": 3,
        "unverified": 1,
        "new_last_30_days": 4,
    }


def test_platform_stats(client, db, farmer, seller, admin_headers, make_product, make_order):
    product = make_product(farmer)
    make_product(farmer, name="Old stock", status=ProductStatus.INACTIVE)
    make_order(seller, farmer, product, quantity=20, status=OrderStatus.DELIVERED, payment_status=PaymentStatus.RELEASED)
    make_order(seller, farmer, product, quantity=4, status=OrderStatus.PENDING)
    db.add(
        Review(
            reviewer_id=seller.id,
            reviewed_entity_id=product.id,
            reviewed_entity_type="PRODUCT",
            product_id=product.id,
            rating=3,
            is_approved=False,
        )
    )
    db.commit()

    response = client.get("/api/admin/stats", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["users"] == 3
    assert data["products"] == 2
    assert data["active_products"] == 1
    assert data["orders"] == 2
    assert data["orders_by_status"]["DELIVERED"] == 1
    assert data["orders_by_status"]["CANCELLED"] == 0
    assert Decimal(data["total_revenue"]) == Decimal("10000")
    assert data["pending_reviews"] == 1


def test_update_user_verification(client, db, make_user, admin_headers):
    user = make_user(UserRole.FARMER, is_verified=False)
    response = client.patch(
        f"/api/admin/users/{user.id}/verification",
        json={"is_verified": True},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_verified"] is True

    notification = db.query(Notification).filter(Notification.user_id == user.id).one()
    assert notification.type == "SYSTEM_ANNOUNCEMENT"
    assert notification.content == "Your account has been verified"


def test_update_verification_unknown_user(client, admin_headers):
    response = client.patch("/api/admin/users/9999/verification", json={"is_verified": True}, headers=admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_pending_reviews(client, db, product, seller, admin_headers):
    for rating, approved in ((4, False), (2, False), (5, True)):
        db.add(
            Review(
                reviewer_id=seller.id,
                reviewed_entity_id=product.id,
                reviewed_entity_type="PRODUCT",
                product_id=product.id,
                rating=rating,
                is_approved=approved,
            )
        )
    db.commit()

    response = client.get("/api/admin/reviews/pending", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert [r["rating"] for r in data["items"]] == [4, 2]
    assert data["rating_distribution"]["5"] == 0


def test_announcement_to_role(client, db, farmer, seller, make_user, admin_headers):
    other_farmer = make_user(UserRole.FARMER)
    response = client.post(
        "/api/admin/announcements",
        json={"content": "Market closed on Umuganda day", "target_role": "FARMER"},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"recipients": 2}
    recipients = {n.user_id for n in db.query(Notification).all()}
    assert recipients == {farmer.id, other_farmer.id}


def test_announcement_to_everyone(client, db, farmer, seller, admin_headers):
    response = client.post("/api/admin/announcements", json={"content": "Welcome"}, headers=admin_headers)
    assert response.json() == {"recipients": 3}
    assert db.query(Notification).count() == 3


def test_announcement_rejects_unknown_role(client, admin_headers):
    response = client.post(
        "/api/admin/announcements",
        json={"content": "Hi", "target_role": "GUEST"},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
