"""Request fulfillment schema: directory, warehouse access, requests, inventory, audit, notifications

Revision ID: 20261019_fulfillment_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_fulfillment_init"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_role", ["role"], unique=False)

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_warehouses"),
        sa.UniqueConstraint("name", name="uq_warehouses_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("warehouses", schema=None) as batch_op:
        batch_op.create_index("ix_warehouses_is_active", ["is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "user_warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("access_level", sa.String(length=20), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("access_level IN ('ReadOnly', 'Full')", name="ck_user_warehouses_access_level_valid"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_warehouses_user_id_users"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"], name="fk_user_warehouses_warehouse_id_warehouses"),
        sa.PrimaryKeyConstraint("id", name="pk_user_warehouses"),
        sa.UniqueConstraint("user_id", "warehouse_id", name="uq_user_warehouses_user_warehouse"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("user_warehouses", schema=None) as batch_op:
        batch_op.create_index("ix_user_warehouses_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_user_warehouses_warehouse_id", ["warehouse_id"], unique=False)
        # At most one default per user
        batch_op.create_index(
            "uq_user_warehouses_one_default",
            ["user_id"],
            unique=True,
            sqlite_where=sa.text("is_default = 1"),
            postgresql_where=sa.text("is_default"),
        )

    op.create_table(
        "requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=64), nullable=False),
        sa.Column("approved_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], name="fk_requests_created_by_user_id_users"),
        sa.ForeignKeyConstraint(["approved_by_user_id"], ["users.id"], name="fk_requests_approved_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_requests"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("requests", schema=None) as batch_op:
        batch_op.create_index("ix_requests_status", ["status"], unique=False)
        batch_op.create_index("ix_requests_created_by_user_id", ["created_by_user_id"], unique=False)
        batch_op.create_index("ix_requests_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "request_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_request_items_quantity_positive"),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"], name="fk_request_items_request_id_requests"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_request_items_product_id_products"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"], name="fk_request_items_warehouse_id_warehouses"),
        sa.PrimaryKeyConstraint("id", name="pk_request_items"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("request_items", schema=None) as batch_op:
        batch_op.create_index("ix_request_items_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_request_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_request_items_warehouse_id", ["warehouse_id"], unique=False)

    op.create_table(
        "request_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("previous_status", sa.String(length=20), nullable=True),
        sa.Column("new_status", sa.String(length=20), nullable=False),
        sa.Column("actor_user_id", sa.String(length=64), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("comment", sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"], name="fk_request_history_request_id_requests"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], name="fk_request_history_actor_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_request_history"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("request_history", schema=None) as batch_op:
        batch_op.create_index("ix_request_history_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_request_history_actor_user_id", ["actor_user_id"], unique=False)
        batch_op.create_index("ix_request_history_request_changed", ["request_id", "changed_at"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("total_price", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_transactions_quantity_positive"),
        sa.CheckConstraint("type IN ('Income', 'Outcome', 'Install')", name="ck_inventory_transactions_type_valid"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_inventory_transactions_product_id_products"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"], name="fk_inventory_transactions_warehouse_id_warehouses"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_inventory_transactions_user_id_users"),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"], name="fk_inventory_transactions_request_id_requests"),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_transactions"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_warehouse_id", ["warehouse_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_inventory_transactions_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_warehouse_date", ["warehouse_id", "date"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("action_type", sa.String(length=16), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("is_success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index("ix_audit_logs_entity", ["entity_type", "entity_id"], unique=False)
        batch_op.create_index("ix_audit_logs_user_occurred", ["user_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_audit_logs_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_audit_logs_is_success", ["is_success"], unique=False)
        batch_op.create_index("ix_audit_logs_occurred_at", ["occurred_at"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("action_url", sa.String(length=255), nullable=True),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_notifications_user_id_users"),
        sa.ForeignKeyConstraint(["request_id"], ["requests.id"], name="fk_notifications_request_id_requests"),
        sa.ForeignKeyConstraint(
            ["transaction_id"], ["inventory_transactions.id"],
            name="fk_notifications_transaction_id_inventory_transactions",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_notifications_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_notifications_user_read", ["user_id", "is_read"], unique=False)


def downgrade():
    op.drop_table("notifications")
    op.drop_table("audit_logs")
    op.drop_table("inventory_transactions")
    op.drop_table("request_history")
    op.drop_table("request_items")
    op.drop_table("requests")
    op.drop_table("user_warehouses")
    op.drop_table("products")
    op.drop_table("warehouses")
    op.drop_table("users")
