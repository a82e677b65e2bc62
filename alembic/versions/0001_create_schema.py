from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB


revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table_name: str) -> bool:
    return table_name in inspect(bind).get_table_names()


def _has_index(bind, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspect(bind).get_indexes(table_name))


def _create_index(bind, name: str, table_name: str, columns: list[str]) -> None:
    if not _has_index(bind, table_name, name):
        op.create_index(name, table_name, columns, unique=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "establishments"):
        op.create_table(
            "establishments",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("image_key", sa.String(length=512), nullable=True),
            sa.Column("banner_key", sa.String(length=512), nullable=True),
            sa.Column("phone", sa.String(length=20), nullable=True),
            *_timestamps(),
        )

    if not _has_table(bind, "product_categories"):
        op.create_table(
            "product_categories",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column(
                "establishment_id",
                sa.Uuid(),
                sa.ForeignKey("establishments.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_product_categories_establishment_id", "product_categories", ["establishment_id"])

    if not _has_table(bind, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column(
                "establishment_id",
                sa.Uuid(),
                sa.ForeignKey("establishments.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "category_id",
                sa.Uuid(),
                sa.ForeignKey("product_categories.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price_cents", sa.Integer(), nullable=False),
            sa.Column("image_key", sa.String(length=512), nullable=True),
            sa.Column("banner_key", sa.String(length=512), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
    _create_index(bind, "ix_products_establishment_id", "products", ["establishment_id"])

    if not _has_table(bind, "ingredients"):
        op.create_table(
            "ingredients",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("name", sa.String(length=100), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
        )

    if not _has_table(bind, "product_ingredients"):
        op.create_table(
            "product_ingredients",
            sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(
                "ingredient_id",
                sa.Uuid(),
                sa.ForeignKey("ingredients.id", ondelete="RESTRICT"),
                primary_key=True,
            ),
            sa.Column("quantity", sa.String(length=50), nullable=True),
        )

    if not _has_table(bind, "customers"):
        op.create_table(
            "customers",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("phone", sa.String(length=20), nullable=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            *_timestamps(),
        )

    if not _has_table(bind, "coupons"):
        op.create_table(
            "coupons",
            sa.Column("code", sa.String(length=50), primary_key=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("discount_type", sa.String(length=10), nullable=False),
            sa.Column("discount_value", sa.Integer(), nullable=False),
            sa.Column("valid_from", sa.Date(), nullable=False),
            sa.Column("valid_until", sa.Date(), nullable=False),
            sa.Column("max_uses", sa.Integer(), nullable=True),
            sa.Column("uses_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("discount_type IN ('percent','fixed')", name="ck_coupons_discount_type"),
            sa.CheckConstraint("valid_from <= valid_until", name="ck_coupons_validity_window"),
            sa.CheckConstraint("discount_value >= 0", name="ck_coupons_discount_value"),
            sa.CheckConstraint("max_uses IS NULL OR uses_count <= max_uses", name="ck_coupons_uses_within_max"),
        )

    if not _has_table(bind, "coupon_redemptions"):
        op.create_table(
            "coupon_redemptions",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("coupon_code", sa.String(length=50), sa.ForeignKey("coupons.code", ondelete="CASCADE"), nullable=False),
            sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
            sa.Column("order_id", sa.Uuid(), nullable=True),
            sa.Column("redeemed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("coupon_code", "customer_id", "order_id", name="uq_coupon_redemptions_use"),
        )
    _create_index(bind, "ix_coupon_redemptions_coupon_code", "coupon_redemptions", ["coupon_code"])
    _create_index(bind, "ix_coupon_redemptions_customer_id", "coupon_redemptions", ["customer_id"])
    _create_index(bind, "ix_coupon_redemptions_order_id", "coupon_redemptions", ["order_id"])

    if not _has_table(bind, "loyalty_accounts"):
        op.create_table(
            "loyalty_accounts",
            sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("tier", sa.String(length=50), nullable=False, server_default="standard"),
            *_timestamps(),
            sa.CheckConstraint("points_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
        )

    if not _has_table(bind, "loyalty_transactions"):
        op.create_table(
            "loyalty_transactions",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
            sa.Column("order_id", sa.Uuid(), nullable=True),
            sa.Column("points_delta", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_loyalty_transactions_customer_id", "loyalty_transactions", ["customer_id"])
    _create_index(bind, "ix_loyalty_transactions_order_id", "loyalty_transactions", ["order_id"])

    if not _has_table(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
            sa.Column(
                "establishment_id",
                sa.Uuid(),
                sa.ForeignKey("establishments.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("coupon_code", sa.String(length=50), sa.ForeignKey("coupons.code", ondelete="SET NULL"), nullable=True),
            sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("subtotal_cents", sa.BigInteger(), nullable=False),
            sa.Column("discount_cents", sa.BigInteger(), nullable=False),
            sa.Column("loyalty_discount_cents", sa.BigInteger(), nullable=False),
            sa.Column("total_cents", sa.BigInteger(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("ordered_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.CheckConstraint(
                "status IN ('PENDING','PROCESSING','COMPLETED','CANCELLED','FAILED')",
                name="ck_orders_status",
            ),
            sa.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
            sa.CheckConstraint("loyalty_points >= 0", name="ck_orders_loyalty_points"),
        )
    _create_index(bind, "ix_orders_customer_id", "orders", ["customer_id"])
    _create_index(bind, "ix_orders_establishment_id", "orders", ["establishment_id"])
    _create_index(bind, "ix_orders_status", "orders", ["status"])

    if not _has_table(bind, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price_cents", sa.BigInteger(), nullable=False),
            sa.Column("total_price_cents", sa.BigInteger(), nullable=False),
            sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
            sa.CheckConstraint("total_price_cents = quantity * unit_price_cents", name="ck_order_items_line_total"),
        )

    if not _has_table(bind, "order_events"):
        op.create_table(
            "order_events",
            sa.Column(
                "id",
                sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
                primary_key=True,
                autoincrement=True,
            ),
            sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column("event_type", sa.String(length=20), nullable=False),
            sa.Column("payload", JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_order_events_order_id", "order_events", ["order_id"])
    _create_index(bind, "ix_order_events_order_id_occurred_at", "order_events", ["order_id", "occurred_at"])


def downgrade() -> None:
    bind = op.get_bind()
    for table_name in (
        "order_events",
        "order_items",
        "orders",
        "loyalty_transactions",
        "loyalty_accounts",
        "coupon_redemptions",
        "coupons",
        "customers",
        "product_ingredients",
        "ingredients",
        "products",
        "product_categories",
        "establishments",
    ):
        if _has_table(bind, table_name):
            op.drop_table(table_name)
