from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sales_engine.db.base import Base


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    entry_type: Mapped[str] = mapped_column(String(20), nullable=False, default="income")  # income/expense
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # free text, e.g. "inventory_sale:<id>"; older rows use "inventaris:<id>"
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    sale_header_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    cash_account_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="posted", server_default="posted")

    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_ledger_entries_type_date", "entry_type", "entry_date"),
    )
