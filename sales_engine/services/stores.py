"""Single-table write collaborators used by the sale engine.

Every method is one acknowledged write: it commits on success and rolls back
and raises :class:`StepFailed` on any database error, including timeouts.
The engine composes these calls and owns compensation, so none of them may
be wrapped in a surrounding transaction by the caller.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol, TypeVar

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sales_engine.core.id_utils import generate_shortuuid
from sales_engine.models.inventory import InventoryItem, StockMovement
from sales_engine.models.ledger import LedgerEntry
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.services.errors import ConditionalDecrementFailed, StepFailed

T = TypeVar("T")


@dataclass(frozen=True)
class ItemSnapshot:
    id: str
    name: str
    quantity: int
    unit: str | None = None


@dataclass(frozen=True)
class LedgerPosting:
    amount: Decimal
    entry_date: date
    category: str
    description: str
    reference: str
    sale_header_id: str | None
    cash_account_id: str | None = None
    created_by: str | None = None


class InventoryStore(Protocol):
    def read_items(self, item_ids: Iterable[str]) -> dict[str, ItemSnapshot]: ...

    def adjust_quantity(self, item_id: str, delta: int) -> None: ...


class SaleStore(Protocol):
    def insert_header(self, header: SaleHeader) -> str: ...

    def update_header(self, header_id: str, values: dict) -> None: ...

    def delete_header(self, header_id: str) -> None: ...

    def insert_lines(self, lines: Sequence[SaleLineItem]) -> list[str]: ...

    def delete_lines(self, line_ids: Sequence[str]) -> None: ...

    def insert_movements(self, movements: Sequence[StockMovement]) -> list[str]: ...

    def delete_movements(self, movement_ids: Sequence[str]) -> None: ...

    def update_movements(self, movement_ids: Sequence[str], values: dict) -> None: ...


class LedgerService(Protocol):
    def post_entry(self, posting: LedgerPosting) -> str: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def find_sale_entries(
        self, *, entry_id: str | None, sale_header_id: str | None, references: Sequence[str]
    ) -> list[str]: ...

    def relink_entry(self, entry_id: str, sale_header_id: str, reference: str) -> None: ...

    def restore_entry(self, snapshot: LedgerPosting, entry_id: str) -> None: ...

    def snapshot(self, entry_id: str) -> LedgerPosting | None: ...


class _SqlWriter:
    def __init__(self, db: Session):
        self.db = db

    def _write(self, step: str, operation: Callable[[], T]) -> T:
        try:
            result = operation()
            self.db.commit()
        except StepFailed:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StepFailed(step, str(exc)) from exc
        return result


class SqlInventoryStore(_SqlWriter):
    def read_items(self, item_ids: Iterable[str]) -> dict[str, ItemSnapshot]:
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return {}
        try:
            rows = self.db.execute(
                select(InventoryItem.id, InventoryItem.name, InventoryItem.quantity, InventoryItem.unit).where(
                    InventoryItem.id.in_(ids)
                )
            ).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StepFailed("stock_read", str(exc)) from exc
        return {
            item_id: ItemSnapshot(id=item_id, name=name, quantity=int(quantity or 0), unit=unit)
            for item_id, name, quantity, unit in rows
        }

    def adjust_quantity(self, item_id: str, delta: int) -> None:
        step = "stock_decrement" if delta < 0 else "stock_restore"

        def operation() -> None:
            stmt = update(InventoryItem).where(InventoryItem.id == item_id)
            if delta < 0:
                # never let the stored quantity go negative
                stmt = stmt.where(InventoryItem.quantity >= -delta)
            stmt = stmt.values(quantity=InventoryItem.quantity + delta).execution_options(
                synchronize_session=False
            )
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                if delta < 0:
                    raise ConditionalDecrementFailed(item_id, -delta)
                raise StepFailed(step, f"item {item_id} not found")

        self._write(step, operation)


class SqlSaleStore(_SqlWriter):
    def insert_header(self, header: SaleHeader) -> str:
        self._write("header_insert", lambda: self.db.add(header))
        return header.id

    def update_header(self, header_id: str, values: dict) -> None:
        def operation() -> None:
            result = self.db.execute(
                update(SaleHeader)
                .where(SaleHeader.id == header_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StepFailed("header_update", f"header {header_id} not found")

        self._write("header_update", operation)

    def delete_header(self, header_id: str) -> None:
        self._write(
            "header_delete",
            lambda: self.db.execute(delete(SaleHeader).where(SaleHeader.id == header_id)),
        )

    def insert_lines(self, lines: Sequence[SaleLineItem]) -> list[str]:
        self._write("lines_insert", lambda: self.db.add_all(lines))
        return [line.id for line in lines]

    def delete_lines(self, line_ids: Sequence[str]) -> None:
        if not line_ids:
            return
        self._write(
            "lines_delete",
            lambda: self.db.execute(delete(SaleLineItem).where(SaleLineItem.id.in_(list(line_ids)))),
        )

    def insert_movements(self, movements: Sequence[StockMovement]) -> list[str]:
        self._write("movements_insert", lambda: self.db.add_all(movements))
        return [movement.id for movement in movements]

    def delete_movements(self, movement_ids: Sequence[str]) -> None:
        if not movement_ids:
            return
        self._write(
            "movements_delete",
            lambda: self.db.execute(delete(StockMovement).where(StockMovement.id.in_(list(movement_ids)))),
        )

    def update_movements(self, movement_ids: Sequence[str], values: dict) -> None:
        if not movement_ids:
            return
        self._write(
            "movements_update",
            lambda: self.db.execute(
                update(StockMovement)
                .where(StockMovement.id.in_(list(movement_ids)))
                .values(**values)
                .execution_options(synchronize_session=False)
            ),
        )


class SqlLedgerService(_SqlWriter):
    def post_entry(self, posting: LedgerPosting) -> str:
        entry_id = generate_shortuuid()
        self.restore_entry(posting, entry_id, step="ledger_post")
        return entry_id

    def restore_entry(self, snapshot: LedgerPosting, entry_id: str, *, step: str = "ledger_restore") -> None:
        entry = LedgerEntry(
            id=entry_id,
            entry_type="income",
            category=snapshot.category,
            amount=snapshot.amount,
            entry_date=snapshot.entry_date,
            description=snapshot.description,
            reference=snapshot.reference,
            sale_header_id=snapshot.sale_header_id,
            cash_account_id=snapshot.cash_account_id,
            status="posted",
            created_by=snapshot.created_by,
        )
        self._write(step, lambda: self.db.add(entry))

    def delete_entry(self, entry_id: str) -> None:
        self._write(
            "ledger_delete",
            lambda: self.db.execute(delete(LedgerEntry).where(LedgerEntry.id == entry_id)),
        )

    def find_sale_entries(
        self, *, entry_id: str | None, sale_header_id: str | None, references: Sequence[str]
    ) -> list[str]:
        conditions = []
        if entry_id:
            conditions.append(LedgerEntry.id == entry_id)
        if sale_header_id:
            conditions.append(LedgerEntry.sale_header_id == sale_header_id)
        if references:
            conditions.append(LedgerEntry.reference.in_(list(references)))
        if not conditions:
            return []
        try:
            rows = self.db.execute(select(LedgerEntry.id).where(or_(*conditions))).scalars().all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StepFailed("ledger_read", str(exc)) from exc
        return list(rows)

    def relink_entry(self, entry_id: str, sale_header_id: str, reference: str) -> None:
        self._write(
            "ledger_relink",
            lambda: self.db.execute(
                update(LedgerEntry)
                .where(LedgerEntry.id == entry_id)
                .values(sale_header_id=sale_header_id, reference=reference)
                .execution_options(synchronize_session=False)
            ),
        )

    def snapshot(self, entry_id: str) -> LedgerPosting | None:
        try:
            entry = self.db.get(LedgerEntry, entry_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StepFailed("ledger_read", str(exc)) from exc
        if entry is None:
            return None
        posting = LedgerPosting(
            amount=entry.amount,
            entry_date=entry.entry_date,
            category=entry.category,
            description=entry.description or "",
            reference=entry.reference or "",
            sale_header_id=entry.sale_header_id,
            cash_account_id=entry.cash_account_id,
            created_by=entry.created_by,
        )
        # a later restore_entry re-inserts under this id
        self.db.expunge(entry)
        return posting
