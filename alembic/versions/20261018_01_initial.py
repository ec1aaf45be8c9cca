"""Initial schema: tenant hierarchy, commerce entities and deletion ledger

Revision ID: 20261018_01_initial
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_01_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLES = ("SUPER_ADMIN", "ADMIN", "MANAGER", "USER")
SCOPE_TYPES = ("ORGANIZATION", "CLIENT", "COMPANY", "DEPARTMENT")

# Parents before children; downgrade drops in reverse.
SOFT_DELETE_TABLES = (
    "clients",
    "companies",
    "departments",
    "users",
    "customers",
    "addresses",
    "subscriptions",
    "orders",
    "products",
    "merchant_accounts",
    "routing_rules",
    "webhooks",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _soft_delete_columns() -> list[sa.Column]:
    return [
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("cascade_id", sa.String(length=64), nullable=True),
    ]


def _company_fk() -> sa.Column:
    return sa.Column(
        "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=True),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column(
            "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=True
        ),
        sa.Column("role", sa.Enum(*USER_ROLES, name="user_role"), nullable=False),
        sa.Column(
            "scope_type", sa.Enum(*SCOPE_TYPES, name="scope_type"), nullable=False
        ),
        sa.Column("scope_id", sa.Integer(), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "addresses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("line1", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("postal_code", sa.String(length=32), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    for table in ("subscriptions", "orders"):
        extra = (
            [
                sa.Column("name", sa.String(length=255), nullable=False),
                sa.Column("status", sa.String(length=32), nullable=False),
            ]
            if table == "subscriptions"
            else [
                sa.Column("order_number", sa.String(length=64), nullable=False),
                sa.Column("total", sa.Numeric(12, 2), nullable=False),
            ]
        )
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            _company_fk(),
            sa.Column(
                "customer_id",
                sa.Integer(),
                sa.ForeignKey("customers.id"),
                nullable=False,
            ),
            *extra,
            *_timestamps(),
            *_soft_delete_columns(),
        )
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "merchant_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("provider", sa.String(length=64), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "routing_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column(
            "merchant_account_id",
            sa.Integer(),
            sa.ForeignKey("merchant_accounts.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        *_timestamps(),
        *_soft_delete_columns(),
    )
    op.create_table(
        "webhooks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("events", sa.JSON(), nullable=True),
        *_timestamps(),
        *_soft_delete_columns(),
    )

    # Foreign-key and lookup indexes
    op.create_index("ix_clients_organization_id", "clients", ["organization_id"])
    op.create_index("ix_companies_client_id", "companies", ["client_id"])
    op.create_index("ix_companies_slug", "companies", ["slug"])
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_customers_email", "customers", ["email"])
    op.create_index("ix_addresses_customer_id", "addresses", ["customer_id"])
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_order_number", "orders", ["order_number"])
    op.create_index("ix_products_sku", "products", ["sku"])
    op.create_index(
        "ix_routing_rules_merchant_account_id",
        "routing_rules",
        ["merchant_account_id"],
    )
    for table in SOFT_DELETE_TABLES:
        if table not in ("clients", "companies", "addresses"):
            op.create_index(f"ix_{table}_company_id", table, ["company_id"])
        op.create_index(f"ix_{table}_deleted_at", table, ["deleted_at"])
        op.create_index(f"ix_{table}_cascade_id", table, ["cascade_id"])

    op.create_table(
        "deletion_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("entity_name", sa.String(length=255), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("cascade_id", sa.String(length=64), nullable=False),
        sa.Column("cascaded_from", sa.Integer(), nullable=True),
        sa.Column("snapshot", sa.JSON(), nullable=True),
        sa.Column("restored_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("restored_by", sa.Integer(), nullable=True),
        sa.Column("purged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purge_reason", sa.String(length=32), nullable=True),
    )
    op.create_index(
        "ix_deletion_logs_entity", "deletion_logs", ["entity_type", "entity_id"]
    )
    op.create_index("ix_deletion_logs_entity_type", "deletion_logs", ["entity_type"])
    op.create_index("ix_deletion_logs_company_id", "deletion_logs", ["company_id"])
    op.create_index("ix_deletion_logs_deleted_at", "deletion_logs", ["deleted_at"])
    op.create_index("ix_deletion_logs_cascade_id", "deletion_logs", ["cascade_id"])


def downgrade() -> None:
    op.drop_table("deletion_logs")
    for table in reversed(SOFT_DELETE_TABLES):
        op.drop_table(table)
    op.drop_table("organizations")
    sa.Enum(name="scope_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="user_role").drop(op.get_bind(), checkfirst=True)
