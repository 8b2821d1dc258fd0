import os
from datetime import datetime
from decimal import Decimal
from typing import Callable, Generator

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "pay_whsec_test_mock"
os.environ["SMS_API_URL"] = ""
os.environ["SMS_API_KEY"] = ""
os.environ["PAYMENT_GATEWAY_URL"] = ""
os.environ["PAYMENT_GATEWAY_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agriconnect.api.auth import create_access_token, get_password_hash
from agriconnect.main import app
from agriconnect.models import (
    Category,
    FarmerProfile,
    Order,
    OrderItem,
    Product,
    Profile,
    SellerProfile,
    User,
)
from agriconnect.models.database import Base, get_db
from agriconnect.models.enums import OrderStatus, PaymentStatus, ProductStatus, UserRole
from agriconnect.services.rate_limiter import reset_rate_limiters

TEST_PASSWORD = "Password123"

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limiters()
    yield
    reset_rate_limiters()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory for users with a profile and the role-specific profile."""
    counter = {"n": 0}

    def _make_user(
        role: UserRole = UserRole.SELLER,
        email: str | None = None,
        phone_number: str | None = None,
        name: str | None = None,
        is_verified: bool = True,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=email or f"{role.value.lower()}{n}@example.rw",
            phone_number=phone_number or f"+25078{n:07d}",
            hashed_password=get_password_hash(TEST_PASSWORD),
            role=role.value,
            is_verified=is_verified,
        )
        profile = Profile(name=name or f"{role.value.title()} {n}")
        if role == UserRole.FARMER:
            profile.farmer_profile = FarmerProfile(
                farm_name=f"Green Hills Farm {n}",
                farm_location_details="Musanze, Northern Province",
                farm_capacity="SMALL",
                certifications=[],
            )
        elif role == UserRole.SELLER:
            profile.seller_profile = SellerProfile(business_name=f"Kigali Fresh {n}", delivery_options=["PICKUP"])
        user.profile = profile
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def farmer(make_user) -> User:
    return make_user(UserRole.FARMER, email="farmer@example.rw", phone_number="+250788111111", name="Jean Farmer")


@pytest.fixture
def seller(make_user) -> User:
    return make_user(UserRole.SELLER, email="seller@example.rw", phone_number="+250788222222", name="Alice Buyer")


@pytest.fixture
def admin(make_user) -> User:
    return make_user(UserRole.ADMIN, email="admin@example.rw", phone_number="+250788333333", name="Admin")


def headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def farmer_headers(farmer: User) -> dict[str, str]:
    return headers_for(farmer)


@pytest.fixture
def seller_headers(seller: User) -> dict[str, str]:
    return headers_for(seller)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return headers_for(admin)


@pytest.fixture
def category(db: Session) -> Category:
    category = Category(name="Vegetables", description="Fresh vegetables")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def make_product(db: Session, category: Category) -> Callable[..., Product]:
    def _make_product(
        owner: User,
        name: str = "Irish potatoes",
        unit_price: str = "500.00",
        quantity_available: int = 100,
        minimum_order_quantity: int = 1,
        status: ProductStatus = ProductStatus.ACTIVE,
    ) -> Product:
        product = Product(
            farmer_id=owner.profile.farmer_profile.id,
            category_id=category.id,
            name=name,
            description=f"{name} from Musanze",
            unit_price=Decimal(unit_price),
            unit="kg",
            quantity_available=quantity_available,
            minimum_order_quantity=minimum_order_quantity,
            image_urls=[],
            status=status.value,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make_product


@pytest.fixture
def product(make_product, farmer: User) -> Product:
    return make_product(farmer)


@pytest.fixture
def make_order(db: Session) -> Callable[..., Order]:
    """Insert an order directly, bypassing the checkout flow."""

    def _make_order(
        buyer: User,
        farmer_user: User,
        product: Product,
        quantity: int = 20,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        payment_ref_id: str | None = None,
        updated_at: datetime | None = None,
        delivery_fee: str = "0",
    ) -> Order:
        order = Order(
            seller_id=buyer.id,
            farmer_id=farmer_user.id,
            status=status.value,
            payment_status=payment_status.value,
            total_amount=Decimal(product.unit_price) * quantity,
            delivery_fee=Decimal(delivery_fee),
            delivery_address="KG 11 Ave, Kigali",
            payment_ref_id=payment_ref_id,
        )
        if updated_at is not None:
            order.updated_at = updated_at
        order.items.append(OrderItem(product_id=product.id, quantity=quantity, price_at_order=product.unit_price))
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make_order


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    return headers_for
