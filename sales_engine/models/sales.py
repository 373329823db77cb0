from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sales_engine.db.base import Base


class SaleHeader(Base):
    __tablename__ = "sale_headers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    buyer: Mapped[str] = mapped_column(String(255), nullable=False)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_base: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_donation: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    ledger_entry_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_sale_headers_sale_date", "sale_date"),
    )


class SaleLineItem(Base):
    __tablename__ = "sale_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sale_header_id: Mapped[str] = mapped_column(String(36), ForeignKey("sale_headers.id"), index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    donation: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
