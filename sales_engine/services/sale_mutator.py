from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from sales_engine.core.config import settings
from sales_engine.core.id_utils import generate_row_id
from sales_engine.core.money import to_money
from sales_engine.core.observability import log_event
from sales_engine.models.inventory import StockMovement
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.services.compensation import CompensationLog
from sales_engine.services.errors import SaleCommitError, SaleNotFoundError, StepFailed, StockError
from sales_engine.services.sale_reader import (
    LegacySaleRecord,
    ModernSaleRecord,
    SaleRecord,
    load_sale_record,
    normalize_sale,
)
from sales_engine.services.sale_writer import (
    SaleInput,
    SaleWriter,
    validate_sale_input,
)
from sales_engine.services.stock_service import validate_stock

LEGACY_REFERENCE_PREFIXES = ("inventaris", "inventory_sale")
UNKNOWN_BUYER = "Unknown buyer"


def _row_values(row: Any) -> dict[str, Any]:
    mapper = sa_inspect(type(row))
    return {attr.key: getattr(row, attr.key) for attr in mapper.column_attrs}


def _detach_values(db: Session, rows: list[Any]) -> list[dict[str, Any]]:
    """Copy column values and drop the rows from the identity map.

    Undo actions re-insert rows under the same primary key, which the session
    refuses while the deleted instance is still tracked.
    """
    values = [_row_values(row) for row in rows]
    for row in rows:
        if row in db:
            db.expunge(row)
    return values


def legacy_references(movement_id: str) -> list[str]:
    prefixes = dict.fromkeys((*LEGACY_REFERENCE_PREFIXES, settings.ledger_reference_prefix))
    return [f"{prefix}:{movement_id}" for prefix in prefixes]


def sold_allocation(record: SaleRecord) -> dict[str, int]:
    """Quantity per item currently held by the sale."""
    if isinstance(record, LegacySaleRecord):
        return {record.movement.item_id: int(record.movement.quantity)}
    allocation: dict[str, int] = {}
    for movement in record.movements:
        if movement.direction == "out":
            allocation[movement.item_id] = allocation.get(movement.item_id, 0) + int(movement.quantity)
    return allocation


class SaleMutator:
    """Edit, delete and legacy migration for stored sales.

    Editing releases the current allocation first and then runs the normal
    create steps against the same header, all recorded in one compensation
    log; if the new write fails the log restores the original sale.
    """

    def __init__(self, db: Session, writer: SaleWriter):
        self.db = db
        self.writer = writer
        self.inventory = writer.inventory
        self.sales = writer.sales
        self.ledger = writer.ledger

    def update(self, sale_id: str, sale: SaleInput) -> str:
        record = load_sale_record(self.db, sale_id)
        if record is None:
            raise SaleNotFoundError(sale_id)
        validate_sale_input(sale)

        # the sale's own allocation counts as available for its replacement
        check = validate_stock(self.inventory, sale.lines, released=sold_allocation(record))
        if not check.valid:
            raise StockError(check.errors)

        undo = CompensationLog(sale_id)
        self._release(record, undo)
        existing_header = record.header if isinstance(record, ModernSaleRecord) else None
        outcome = self.writer.write(sale, undo, items=check.items, existing_header=existing_header)
        log_event(
            "sale_updated",
            sale_id=outcome.header_id,
            previous_id=sale_id,
            source="legacy" if existing_header is None else "modern",
        )
        return outcome.header_id

    def delete(self, sale_id: str) -> bool:
        """Returns False when there was nothing to delete."""
        record = load_sale_record(self.db, sale_id)
        if record is None:
            log_event("sale_delete_noop", sale_id=sale_id)
            return False

        undo = CompensationLog(sale_id)
        self._release(record, undo)
        if isinstance(record, ModernSaleRecord):
            try:
                self.sales.delete_header(sale_id)
            except StepFailed as exc:
                undo.unwind(failed_step=exc.step)
                raise SaleCommitError(
                    "Sale could not be deleted, no changes were made", step=exc.step
                ) from exc
            log_event("sale_deleted", sale_id=sale_id, source="modern")
        else:
            log_event("sale_deleted", sale_id=sale_id, source="legacy")
        return True

    def migrate_legacy(self, sale_id: str) -> str:
        record = load_sale_record(self.db, sale_id)
        if record is None:
            raise SaleNotFoundError(sale_id)
        if isinstance(record, ModernSaleRecord):
            return record.header.id

        movement = record.movement
        movement_values = _row_values(movement)
        view = normalize_sale(record)
        view_line = view.lines[0]
        header_id = generate_row_id()
        undo = CompensationLog(header_id)

        # keep the recorded amount; without a breakdown it is all base price
        grand_total = view.grand_total
        total_donation = view.total_donation
        total_base = to_money(grand_total - total_donation)
        step = "ledger_read"
        try:
            entry_ids = self.ledger.find_sale_entries(
                entry_id=movement_values["ledger_entry_id"],
                sale_header_id=None,
                references=legacy_references(sale_id),
            )
            ledger_entry_id = movement_values["ledger_entry_id"] or (entry_ids[0] if entry_ids else None)

            step = "header"
            self.sales.insert_header(
                SaleHeader(
                    id=header_id,
                    buyer=(view.buyer or "").strip() or UNKNOWN_BUYER,
                    sale_date=view.sale_date,
                    note=view.note,
                    total_base=total_base,
                    total_donation=total_donation,
                    grand_total=grand_total,
                    ledger_entry_id=ledger_entry_id,
                    created_by=self.writer.actor_id,
                    updated_by=self.writer.actor_id,
                )
            )
            undo.record("delete_header", lambda: self.sales.delete_header(header_id))

            step = "lines"
            line_id = generate_row_id()
            self.sales.insert_lines(
                [
                    SaleLineItem(
                        id=line_id,
                        sale_header_id=header_id,
                        item_id=view_line.item_id,
                        item_name=view_line.item_name,
                        position=0,
                        quantity=view_line.quantity,
                        base_price=view_line.base_price,
                        donation=view_line.donation,
                        subtotal=view_line.subtotal,
                    )
                ]
            )
            undo.record("delete_lines", lambda: self.sales.delete_lines([line_id]))

            step = "movements"
            self.sales.update_movements(
                [sale_id],
                {"sale_header_id": header_id, "sale_line_id": line_id, "ledger_entry_id": ledger_entry_id},
            )
            undo.record(
                "unlink_movement",
                lambda: self.sales.update_movements(
                    [sale_id],
                    {
                        "sale_header_id": None,
                        "sale_line_id": None,
                        "ledger_entry_id": movement_values["ledger_entry_id"],
                    },
                ),
            )

            step = "link"
            for entry_id in entry_ids:
                snapshot = self.ledger.snapshot(entry_id)
                if snapshot is None:
                    continue
                self.ledger.relink_entry(entry_id, header_id, f"{settings.ledger_reference_prefix}:{header_id}")
                undo.record(
                    "restore_ledger_link",
                    lambda entry_id=entry_id, snapshot=snapshot: self.ledger.relink_entry(
                        entry_id, snapshot.sale_header_id, snapshot.reference
                    ),
                )
        except StepFailed as exc:
            undo.unwind(failed_step=step)
            raise SaleCommitError(
                "Sale could not be migrated, no changes were made", step=exc.step
            ) from exc

        log_event("sale_migrated", sale_id=header_id, legacy_id=sale_id)
        return header_id

    def _release(self, record: SaleRecord, undo: CompensationLog) -> None:
        """Give back stock, drop the ledger entry, movements and lines.

        The header row, when there is one, is left in place.
        """
        try:
            if isinstance(record, ModernSaleRecord):
                self._release_modern(record, undo)
            else:
                self._release_legacy(record, undo)
        except StepFailed as exc:
            undo.unwind(failed_step=exc.step)
            raise SaleCommitError(
                "Sale could not be changed, no changes were made", step=exc.step
            ) from exc

    def _release_modern(self, record: ModernSaleRecord, undo: CompensationLog) -> None:
        header = record.header
        header_id = header.id
        ledger_entry_id = header.ledger_entry_id
        line_values = _detach_values(self.db, record.lines)
        movement_values = _detach_values(self.db, record.movements)

        self._restore_stock(movement_values, undo)
        self._delete_ledger_entries(
            undo,
            entry_id=ledger_entry_id,
            sale_header_id=header_id,
            references=[f"{settings.ledger_reference_prefix}:{header_id}"],
        )

        movement_ids = [values["id"] for values in movement_values]
        self.sales.delete_movements(movement_ids)
        undo.record(
            "restore_movements",
            lambda: self.sales.insert_movements([StockMovement(**values) for values in movement_values]),
        )

        line_ids = [values["id"] for values in line_values]
        self.sales.delete_lines(line_ids)
        undo.record(
            "restore_lines",
            lambda: self.sales.insert_lines([SaleLineItem(**values) for values in line_values]),
        )

    def _release_legacy(self, record: LegacySaleRecord, undo: CompensationLog) -> None:
        values = _detach_values(self.db, [record.movement])[0]
        movement_id = values["id"]

        self._restore_stock([values], undo)
        self._delete_ledger_entries(
            undo,
            entry_id=values["ledger_entry_id"],
            sale_header_id=None,
            references=legacy_references(movement_id),
        )
        self.sales.delete_movements([movement_id])
        undo.record(
            "restore_movements",
            lambda: self.sales.insert_movements([StockMovement(**values)]),
        )

    def _restore_stock(self, movement_values: list[dict[str, Any]], undo: CompensationLog) -> None:
        for values in movement_values:
            if values["direction"] != "out":
                continue
            item_id = values["item_id"]
            quantity = int(values["quantity"])
            self.inventory.adjust_quantity(item_id, quantity)
            undo.record(
                f"redecrement_stock:{item_id}",
                lambda item_id=item_id, quantity=quantity: self.inventory.adjust_quantity(item_id, -quantity),
            )

    def _delete_ledger_entries(
        self,
        undo: CompensationLog,
        *,
        entry_id: str | None,
        sale_header_id: str | None,
        references: list[str],
    ) -> None:
        entry_ids = self.ledger.find_sale_entries(
            entry_id=entry_id, sale_header_id=sale_header_id, references=references
        )
        for found_id in entry_ids:
            snapshot = self.ledger.snapshot(found_id)
            if snapshot is None:
                continue
            self.ledger.delete_entry(found_id)
            undo.record(
                "restore_ledger_entry",
                lambda found_id=found_id, snapshot=snapshot: self.ledger.restore_entry(snapshot, found_id),
            )
