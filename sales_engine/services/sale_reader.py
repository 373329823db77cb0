"""Read model for sales.

Two storage shapes exist: a header with line rows, and the older
single-item sale kept entirely on one stock movement row. Both are loaded
into a tagged record and normalized by :func:`normalize_sale`; nothing here
writes to the database.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Union

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from sales_engine.core.money import ZERO_MONEY, to_money
from sales_engine.models.inventory import InventoryItem, StockMovement
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.services.sale_math import subtotal

SaleSource = Literal["modern", "legacy"]


@dataclass(frozen=True)
class SaleLine:
    id: str
    item_id: str
    item_name: str
    quantity: int
    base_price: Decimal
    donation: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Sale:
    id: str
    source: SaleSource
    buyer: str
    sale_date: date
    note: str | None
    total_base: Decimal
    total_donation: Decimal
    grand_total: Decimal
    ledger_entry_id: str | None
    lines: list[SaleLine] = field(default_factory=list)
    created_at: datetime | None = None

    @property
    def item_count(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class ModernSaleRecord:
    header: SaleHeader
    lines: list[SaleLineItem]
    movements: list[StockMovement]


@dataclass(frozen=True)
class LegacySaleRecord:
    movement: StockMovement
    item: InventoryItem | None


SaleRecord = Union[ModernSaleRecord, LegacySaleRecord]


def legacy_sale_filter():
    return (
        StockMovement.direction == "out",
        StockMovement.mode == "sale",
        StockMovement.sale_header_id.is_(None),
    )


def load_sale_record(db: Session, sale_id: str) -> SaleRecord | None:
    header = db.get(SaleHeader, sale_id)
    if header is not None:
        lines = db.execute(
            select(SaleLineItem)
            .where(SaleLineItem.sale_header_id == sale_id)
            .order_by(SaleLineItem.position.asc(), SaleLineItem.id.asc())
        ).scalars().all()
        movements = db.execute(
            select(StockMovement).where(StockMovement.sale_header_id == sale_id)
        ).scalars().all()
        return ModernSaleRecord(header=header, lines=list(lines), movements=list(movements))

    movement = db.execute(
        select(StockMovement).where(StockMovement.id == sale_id, *legacy_sale_filter())
    ).scalar_one_or_none()
    if movement is None:
        return None
    return LegacySaleRecord(movement=movement, item=db.get(InventoryItem, movement.item_id))


def normalize_sale(record: SaleRecord) -> Sale:
    if isinstance(record, ModernSaleRecord):
        return _normalize_modern(record)
    return _normalize_legacy(record)


def _normalize_modern(record: ModernSaleRecord) -> Sale:
    header = record.header
    return Sale(
        id=header.id,
        source="modern",
        buyer=header.buyer,
        sale_date=header.sale_date,
        note=header.note,
        total_base=to_money(header.total_base),
        total_donation=to_money(header.total_donation),
        grand_total=to_money(header.grand_total),
        ledger_entry_id=header.ledger_entry_id,
        created_at=header.created_at,
        lines=[
            SaleLine(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item_name,
                quantity=line.quantity,
                base_price=to_money(line.base_price),
                donation=to_money(line.donation),
                subtotal=to_money(line.subtotal),
            )
            for line in record.lines
        ],
    )


def _normalize_legacy(record: LegacySaleRecord) -> Sale:
    movement = record.movement
    quantity = int(movement.quantity or 0)

    if movement.base_price is not None:
        total_base = to_money(to_money(movement.base_price) * quantity)
        total_donation = to_money(movement.donation)
        grand_total = subtotal(quantity, movement.base_price, movement.donation or ZERO_MONEY)
        base_price = to_money(movement.base_price)
    else:
        # no breakdown stored: the whole amount is reported as the grand total only
        total_base = ZERO_MONEY
        total_donation = ZERO_MONEY
        if movement.total_price is not None:
            grand_total = to_money(movement.total_price)
        else:
            grand_total = to_money(to_money(movement.unit_price) * quantity)
        base_price = to_money(movement.unit_price)

    item_name = record.item.name if record.item is not None else movement.item_id
    return Sale(
        id=movement.id,
        source="legacy",
        buyer=movement.buyer or "",
        sale_date=movement.movement_date,
        note=movement.note,
        total_base=total_base,
        total_donation=total_donation,
        grand_total=grand_total,
        ledger_entry_id=movement.ledger_entry_id,
        created_at=movement.created_at,
        lines=[
            SaleLine(
                id=movement.id,
                item_id=movement.item_id,
                item_name=item_name,
                quantity=quantity,
                base_price=base_price,
                donation=total_donation,
                subtotal=grand_total,
            )
        ],
    )


def read_sale(db: Session, sale_id: str) -> Sale | None:
    record = load_sale_record(db, sale_id)
    if record is None:
        return None
    return normalize_sale(record)


@dataclass(frozen=True)
class SaleListPage:
    total: int
    items: list[Sale]


def _date_bounds(stmt, column, start_date: date | None, end_date: date | None):
    if start_date:
        stmt = stmt.where(column >= start_date)
    if end_date:
        stmt = stmt.where(column <= end_date)
    return stmt


def list_sales(
    db: Session,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> SaleListPage:
    """Modern and single-item sales merged into one list, newest first."""
    header_stmt = _date_bounds(select(SaleHeader), SaleHeader.sale_date, start_date, end_date)
    legacy_stmt = _date_bounds(
        select(StockMovement).where(*legacy_sale_filter()),
        StockMovement.movement_date,
        start_date,
        end_date,
    )
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        header_stmt = header_stmt.where(
            or_(func.lower(SaleHeader.buyer).like(pattern), func.lower(SaleHeader.note).like(pattern))
        )
        legacy_stmt = legacy_stmt.where(
            or_(func.lower(StockMovement.buyer).like(pattern), func.lower(StockMovement.note).like(pattern))
        )

    # both sources are needed to page over the merged order
    window = offset + limit
    headers = db.execute(
        header_stmt.order_by(SaleHeader.sale_date.desc(), SaleHeader.created_at.desc()).limit(window)
    ).scalars().all()
    legacy_rows = db.execute(
        legacy_stmt.order_by(StockMovement.movement_date.desc(), StockMovement.created_at.desc()).limit(window)
    ).scalars().all()

    header_total = db.execute(select(func.count()).select_from(header_stmt.subquery())).scalar_one()
    legacy_total = db.execute(select(func.count()).select_from(legacy_stmt.subquery())).scalar_one()

    header_ids = [header.id for header in headers]
    lines_by_header: dict[str, list[SaleLineItem]] = {header_id: [] for header_id in header_ids}
    if header_ids:
        for line in db.execute(
            select(SaleLineItem)
            .where(SaleLineItem.sale_header_id.in_(header_ids))
            .order_by(SaleLineItem.position.asc())
        ).scalars():
            lines_by_header[line.sale_header_id].append(line)

    item_ids = {row.item_id for row in legacy_rows}
    items = {}
    if item_ids:
        items = {
            item.id: item
            for item in db.execute(select(InventoryItem).where(InventoryItem.id.in_(item_ids))).scalars()
        }

    sales = [
        normalize_sale(ModernSaleRecord(header=header, lines=lines_by_header[header.id], movements=[]))
        for header in headers
    ] + [
        normalize_sale(LegacySaleRecord(movement=row, item=items.get(row.item_id)))
        for row in legacy_rows
    ]
    sales.sort(
        key=lambda sale: (sale.sale_date, sale.created_at.timestamp() if sale.created_at else 0.0),
        reverse=True,
    )
    return SaleListPage(total=int(header_total) + int(legacy_total), items=sales[offset:window])


@dataclass(frozen=True)
class ItemSalesSummary:
    item_id: str
    item_name: str
    quantity: int
    total: Decimal
    transactions: int


@dataclass(frozen=True)
class SalesSummary:
    total_revenue: Decimal
    transactions: int
    quantity: int
    average_sale: Decimal
    items: list[ItemSalesSummary]


def sales_summary(db: Session, *, start_date: date | None = None, end_date: date | None = None) -> SalesSummary:
    header_stmt = _date_bounds(
        select(func.count(SaleHeader.id), func.coalesce(func.sum(SaleHeader.grand_total), 0)),
        SaleHeader.sale_date,
        start_date,
        end_date,
    )
    header_count, header_revenue = db.execute(header_stmt).one()

    line_stmt = _date_bounds(
        select(
            SaleLineItem.item_id,
            SaleLineItem.item_name,
            func.coalesce(func.sum(SaleLineItem.quantity), 0),
            func.coalesce(func.sum(SaleLineItem.subtotal), 0),
            func.count(func.distinct(SaleLineItem.sale_header_id)),
        )
        .join(SaleHeader, SaleHeader.id == SaleLineItem.sale_header_id)
        .group_by(SaleLineItem.item_id, SaleLineItem.item_name),
        SaleHeader.sale_date,
        start_date,
        end_date,
    )

    per_item: dict[str, dict] = {}
    for item_id, item_name, qty, total, count in db.execute(line_stmt).all():
        bucket = per_item.setdefault(
            item_id, {"name": item_name, "quantity": 0, "total": ZERO_MONEY, "transactions": 0}
        )
        bucket["quantity"] += int(qty)
        bucket["total"] += to_money(total)
        bucket["transactions"] += int(count)

    legacy_stmt = _date_bounds(
        select(StockMovement).where(*legacy_sale_filter()),
        StockMovement.movement_date,
        start_date,
        end_date,
    )
    legacy_rows = db.execute(legacy_stmt).scalars().all()
    legacy_items = {}
    if legacy_rows:
        legacy_items = {
            item.id: item
            for item in db.execute(
                select(InventoryItem).where(InventoryItem.id.in_({row.item_id for row in legacy_rows}))
            ).scalars()
        }

    legacy_revenue = ZERO_MONEY
    for row in legacy_rows:
        sale = normalize_sale(LegacySaleRecord(movement=row, item=legacy_items.get(row.item_id)))
        legacy_revenue += sale.grand_total
        line = sale.lines[0]
        bucket = per_item.setdefault(
            line.item_id, {"name": line.item_name, "quantity": 0, "total": ZERO_MONEY, "transactions": 0}
        )
        bucket["quantity"] += line.quantity
        bucket["total"] += line.subtotal
        bucket["transactions"] += 1

    transactions = int(header_count) + len(legacy_rows)
    total_revenue = to_money(to_money(header_revenue) + legacy_revenue)
    quantity = sum(bucket["quantity"] for bucket in per_item.values())
    return SalesSummary(
        total_revenue=total_revenue,
        transactions=transactions,
        quantity=quantity,
        average_sale=to_money(total_revenue / transactions) if transactions else ZERO_MONEY,
        items=sorted(
            (
                ItemSalesSummary(
                    item_id=item_id,
                    item_name=bucket["name"],
                    quantity=bucket["quantity"],
                    total=to_money(bucket["total"]),
                    transactions=bucket["transactions"],
                )
                for item_id, bucket in per_item.items()
            ),
            key=lambda summary: summary.total,
            reverse=True,
        ),
    )
