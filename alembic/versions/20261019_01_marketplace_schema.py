"""marketplace schema

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _index(table_name: str, *columns: str, unique: bool = False) -> None:
    op.create_index(f"ix_{table_name}_{'_'.join(columns)}", table_name, list(columns), unique=unique)


def _create_user_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone_number", sa.String(length=20), nullable=True),
            sa.Column("hashed_password", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="SELLER"),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            _updated_at(),
        )
        _index("users", "id")
        _index("users", "email", unique=True)
        _index("users", "phone_number", unique=True)
        _index("users", "role")

    if not _table_exists(inspector, "profiles"):
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("location", sa.JSON(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("profile_picture_url", sa.String(length=512), nullable=True),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("contact_phone", sa.String(length=20), nullable=True),
            sa.Column("social_links", sa.JSON(), nullable=True),
            _created_at(),
            _updated_at(),
        )
        _index("profiles", "id")

    if not _table_exists(inspector, "farmer_profiles"):
        op.create_table(
            "farmer_profiles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False, unique=True),
            sa.Column("farm_name", sa.String(length=255), nullable=False),
            sa.Column("farm_location_details", sa.String(length=512), nullable=False),
            sa.Column("farm_capacity", sa.String(length=16), nullable=False),
            sa.Column("certifications", sa.JSON(), nullable=False),
            sa.Column("gps_coordinates", sa.String(length=64), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            _created_at(),
        )
        _index("farmer_profiles", "id")

    if not _table_exists(inspector, "seller_profiles"):
        op.create_table(
            "seller_profiles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False, unique=True),
            sa.Column("business_name", sa.String(length=255), nullable=False),
            sa.Column("delivery_options", sa.JSON(), nullable=False),
            sa.Column("business_registration_number", sa.String(length=64), nullable=True),
            _created_at(),
        )
        _index("seller_profiles", "id")


def _create_catalog_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("image_url", sa.String(length=512), nullable=True),
            _created_at(),
        )
        _index("categories", "id")
        _index("categories", "name", unique=True)

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("farmer_id", sa.Integer(), sa.ForeignKey("farmer_profiles.id"), nullable=False),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("unit", sa.String(length=32), nullable=False, server_default="kg"),
            sa.Column("quantity_available", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("minimum_order_quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
            sa.Column("image_urls", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
            _created_at(),
            _updated_at(),
        )
        _index("products", "id")
        _index("products", "farmer_id")
        _index("products", "category_id")
        _index("products", "status")

    if not _table_exists(inspector, "carts"):
        op.create_table(
            "carts",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
            _created_at(),
        )
        _index("carts", "id")

    if not _table_exists(inspector, "cart_items"):
        op.create_table(
            "cart_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("cart_id", sa.Integer(), sa.ForeignKey("carts.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            _created_at(),
            sa.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        )
        _index("cart_items", "id")
        _index("cart_items", "cart_id")

    if not _table_exists(inspector, "saved_products"):
        op.create_table(
            "saved_products",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            _created_at(),
            sa.UniqueConstraint("user_id", "product_id", name="uq_saved_products_user_product"),
        )
        _index("saved_products", "id")
        _index("saved_products", "user_id")


def _create_order_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("farmer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("delivery_fee", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
            sa.Column("delivery_address", sa.Text(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("payment_ref_id", sa.String(length=255), nullable=True),
            sa.Column("escrow_release_claimed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("order_date", sa.DateTime(timezone=True), server_default=sa.func.now()),
            _created_at(),
            _updated_at(),
        )
        _index("orders", "id")
        _index("orders", "seller_id")
        _index("orders", "farmer_id")
        _index("orders", "status")
        _index("orders", "payment_status")
        _index("orders", "payment_ref_id")
        _index("orders", "updated_at")

    if not _table_exists(inspector, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("price_at_order", sa.Numeric(12, 2), nullable=False),
        )
        _index("order_items", "id")
        _index("order_items", "order_id")
        _index("order_items", "product_id")

    if not _table_exists(inspector, "reviews"):
        op.create_table(
            "reviews",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("reviewer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("reviewed_entity_id", sa.Integer(), nullable=False),
            sa.Column("reviewed_entity_type", sa.String(length=16), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=True),
            sa.Column("rating", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("moderation_notes", sa.Text(), nullable=True),
            _created_at(),
        )
        _index("reviews", "id")
        _index("reviews", "reviewer_id")
        _index("reviews", "reviewed_entity_id")
        _index("reviews", "product_id")


def _create_messaging_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("type", sa.String(length=32), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("related_entity_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        _index("notifications", "id")
        _index("notifications", "user_id")
        _index("notifications", "type")

    if not _table_exists(inspector, "chat_sessions"):
        op.create_table(
            "chat_sessions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("participant1_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("participant2_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("last_message_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            _created_at(),
        )
        _index("chat_sessions", "id")
        _index("chat_sessions", "participant1_id")
        _index("chat_sessions", "participant2_id")

    if not _table_exists(inspector, "chat_messages"):
        op.create_table(
            "chat_messages",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("chat_session_id", sa.Integer(), sa.ForeignKey("chat_sessions.id"), nullable=False),
            sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        _index("chat_messages", "id")
        _index("chat_messages", "chat_session_id")

    if not _table_exists(inspector, "newsletter_subscriptions"):
        op.create_table(
            "newsletter_subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            _created_at(),
        )
        _index("newsletter_subscriptions", "id")
        _index("newsletter_subscriptions", "email", unique=True)


def _create_token_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "one_time_tokens"):
        op.create_table(
            "one_time_tokens",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("purpose", sa.String(length=32), nullable=False),
            sa.Column("token_hash", sa.String(length=128), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
        )
        _index("one_time_tokens", "id")
        _index("one_time_tokens", "user_id")
        _index("one_time_tokens", "purpose")
        _index("one_time_tokens", "token_hash", unique=True)

    if not _table_exists(inspector, "refresh_tokens"):
        op.create_table(
            "refresh_tokens",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("token_hash", sa.String(length=128), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("replaced_by_id", sa.Integer(), sa.ForeignKey("refresh_tokens.id"), nullable=True),
            sa.Column("ip", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=512), nullable=True),
            _created_at(),
        )
        _index("refresh_tokens", "id")
        _index("refresh_tokens", "user_id")
        _index("refresh_tokens", "token_hash", unique=True)


def upgrade() -> None:
    bind = op.get_bind()
    for create in (
        _create_user_tables,
        _create_catalog_tables,
        _create_order_tables,
        _create_messaging_tables,
        _create_token_tables,
    ):
        create(sa.inspect(bind))


def downgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    for table_name in (
        "refresh_tokens",
        "one_time_tokens",
        "newsletter_subscriptions",
        "chat_messages",
        "chat_sessions",
        "notifications",
        "reviews",
        "order_items",
        "orders",
        "saved_products",
        "cart_items",
        "carts",
        "products",
        "categories",
        "seller_profiles",
        "farmer_profiles",
        "profiles",
        "users",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
