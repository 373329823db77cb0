"""create sales engine tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "inventory_items"):
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("unit", sa.String(length=30), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("min_stock", sa.Integer(), nullable=True),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_inventory_items_name", "inventory_items", ["name"], unique=False)

    if not _table_exists(inspector, "sale_headers"):
        op.create_table(
            "sale_headers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("buyer", sa.String(length=255), nullable=False),
            sa.Column("sale_date", sa.Date(), nullable=False),
            sa.Column("total_base", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_donation", sa.Numeric(12, 2), nullable=False),
            sa.Column("grand_total", sa.Numeric(12, 2), nullable=False),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("ledger_entry_id", sa.String(length=36), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("updated_by", sa.String(length=36), nullable=True),
            _created_at(),
            _updated_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sale_headers_sale_date", "sale_headers", ["sale_date"], unique=False)
        op.create_index("ix_sale_headers_ledger_entry_id", "sale_headers", ["ledger_entry_id"], unique=False)

    if not _table_exists(inspector, "sale_line_items"):
        op.create_table(
            "sale_line_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("sale_header_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("item_name", sa.String(length=255), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("donation", sa.Numeric(12, 2), nullable=False),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
            sa.ForeignKeyConstraint(["sale_header_id"], ["sale_headers.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sale_line_items_sale_header_id", "sale_line_items", ["sale_header_id"], unique=False)
        op.create_index("ix_sale_line_items_item_id", "sale_line_items", ["item_id"], unique=False)

    if not _table_exists(inspector, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("direction", sa.String(length=10), nullable=False),
            sa.Column("mode", sa.String(length=30), nullable=False, server_default="sale"),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("movement_date", sa.Date(), nullable=False),
            sa.Column("sale_header_id", sa.String(length=36), nullable=True),
            sa.Column("sale_line_id", sa.String(length=36), nullable=True),
            sa.Column("ledger_entry_id", sa.String(length=36), nullable=True),
            sa.Column("buyer", sa.String(length=255), nullable=True),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("base_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("donation", sa.Numeric(12, 2), nullable=True),
            sa.Column("total_price", sa.Numeric(12, 2), nullable=True),
            _created_at(),
            sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
            sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
            sa.ForeignKeyConstraint(["sale_header_id"], ["sale_headers.id"]),
            sa.ForeignKeyConstraint(["sale_line_id"], ["sale_line_items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stock_movements_item_id", "stock_movements", ["item_id"], unique=False)
        op.create_index("ix_stock_movements_sale_header_id", "stock_movements", ["sale_header_id"], unique=False)
        op.create_index("ix_stock_movements_sale_line_id", "stock_movements", ["sale_line_id"], unique=False)
        op.create_index("ix_stock_movements_ledger_entry_id", "stock_movements", ["ledger_entry_id"], unique=False)
        op.create_index("ix_stock_movements_item_date", "stock_movements", ["item_id", "movement_date"], unique=False)
        op.create_index(
            "ix_stock_movements_mode_direction_date",
            "stock_movements",
            ["mode", "direction", "movement_date"],
            unique=False,
        )

    if not _table_exists(inspector, "ledger_entries"):
        op.create_table(
            "ledger_entries",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("entry_type", sa.String(length=20), nullable=False),
            sa.Column("category", sa.String(length=100), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("entry_date", sa.Date(), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("reference", sa.String(length=100), nullable=True),
            sa.Column("sale_header_id", sa.String(length=36), nullable=True),
            sa.Column("cash_account_id", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="posted"),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_ledger_entries_reference", "ledger_entries", ["reference"], unique=False)
        op.create_index("ix_ledger_entries_sale_header_id", "ledger_entries", ["sale_header_id"], unique=False)
        op.create_index("ix_ledger_entries_type_date", "ledger_entries", ["entry_type", "entry_date"], unique=False)

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=36), nullable=True),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
        op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"], unique=False)
        op.create_index("ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"], unique=False)
        op.create_index(
            "ix_audit_logs_target_created_at",
            "audit_logs",
            ["target_type", "target_id", "created_at"],
            unique=False,
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in (
        "audit_logs",
        "ledger_entries",
        "stock_movements",
        "sale_line_items",
        "sale_headers",
        "inventory_items",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
