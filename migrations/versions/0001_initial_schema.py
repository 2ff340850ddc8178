"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2025-06-10 12:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

TIMESTAMP = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "menu_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("prep_time", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price > 0", name="menu_items_price_check"),
        sa.CheckConstraint("prep_time > 0", name="menu_items_prep_time_check"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_menu_items_title", "menu_items", ["title"])
    op.create_index("ix_menu_items_category", "menu_items", ["category"])
    op.create_index("ix_menu_items_is_available", "menu_items", ["is_available"])

    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("table_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="free"),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('free', 'occupied')", name="tables_status_check"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("table_number"),
    )

    op.create_table(
        "device_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("device_id", sa.String(), nullable=False),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["table_id"], ["tables.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("table_id", "device_id", name="device_sessions_table_id_device_id_key"),
    )
    op.create_index("ix_device_sessions_table_id", "device_sessions", ["table_id"])
    op.create_index("ix_device_sessions_device_id", "device_sessions", ["device_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("device_id", sa.String(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_prep_time", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'preparing', 'order is ready', 'served', 'cancelled')",
            name="orders_status_check",
        ),
        sa.CheckConstraint("total_amount >= 0", name="orders_total_amount_check"),
        sa.ForeignKeyConstraint(["table_id"], ["tables.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_table_id", "orders", ["table_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "customer_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=False),
        sa.Column("request_type", sa.String(), nullable=False),
        sa.Column("is_served", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.Column("served_at", TIMESTAMP, nullable=True),
        sa.CheckConstraint(
            "request_type IN ('water', 'bill', 'order_more')",
            name="customer_requests_request_type_check",
        ),
        sa.CheckConstraint(
            "(is_served AND served_at IS NOT NULL) OR (NOT is_served AND served_at IS NULL)",
            name="customer_requests_served_at_check",
        ),
        sa.ForeignKeyConstraint(["table_id"], ["tables.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customer_requests_table_id", "customer_requests", ["table_id"])
    op.create_index("ix_customer_requests_is_served", "customer_requests", ["is_served"])
    op.create_index("ix_customer_requests_created_at", "customer_requests", ["created_at"])

    op.create_table(
        "identities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_identities_email", "identities", ["email"], unique=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('manager', 'servant')", name="profiles_role_check"),
        sa.ForeignKeyConstraint(["id"], ["identities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("profiles")
    op.drop_index("ix_identities_email", table_name="identities")
    op.drop_table("identities")
    op.drop_index("ix_customer_requests_created_at", table_name="customer_requests")
    op.drop_index("ix_customer_requests_is_served", table_name="customer_requests")
    op.drop_index("ix_customer_requests_table_id", table_name="customer_requests")
    op.drop_table("customer_requests")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_table_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_device_sessions_device_id", table_name="device_sessions")
    op.drop_index("ix_device_sessions_table_id", table_name="device_sessions")
    op.drop_table("device_sessions")
    op.drop_table("tables")
    op.drop_index("ix_menu_items_is_available", table_name="menu_items")
    op.drop_index("ix_menu_items_category", table_name="menu_items")
    op.drop_index("ix_menu_items_title", table_name="menu_items")
    op.drop_table("menu_items")
