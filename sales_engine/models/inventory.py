from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sales_engine.db.base import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # pcs, kg, pack...

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    min_stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        Index("ix_inventory_items_name", "name"),
    )


class StockMovement(Base):
    """
    One row per stock change. Sale lines write direction "out" rows linked to
    their header and line. Rows with mode "sale" and no sale_header_id are the
    older single-item sales that carry buyer and price columns themselves.
    """
    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), index=True)

    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # "out", "in"
    mode: Mapped[str] = mapped_column(String(30), nullable=False, default="sale", server_default="sale")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    sale_header_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("sale_headers.id"), nullable=True, index=True
    )
    sale_line_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("sale_line_items.id"), nullable=True, index=True
    )
    ledger_entry_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    # single-item sale columns
    buyer: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    base_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    donation: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        Index("ix_stock_movements_item_date", "item_id", "movement_date"),
        Index("ix_stock_movements_mode_direction_date", "mode", "direction", "movement_date"),
    )
