from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from sales_engine.core.config import settings
from sales_engine.core.id_utils import generate_row_id
from sales_engine.core.money import ZERO_MONEY, to_money
from sales_engine.core.observability import log_event
from sales_engine.models.inventory import StockMovement
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.services.compensation import CompensationLog
from sales_engine.services.errors import (
    ConditionalDecrementFailed,
    LedgerError,
    LineError,
    SaleCommitError,
    SaleValidationError,
    StepFailed,
    StockError,
)
from sales_engine.services.sale_math import SaleTotals, aggregate, subtotal
from sales_engine.services.stock_service import INSUFFICIENT_STOCK, validate_stock
from sales_engine.services.stores import (
    InventoryStore,
    ItemSnapshot,
    LedgerPosting,
    LedgerService,
    SaleStore,
)

LEDGER_DESCRIPTION_LIMIT = 500


class SaleState(str, Enum):
    VALIDATING = "validating"
    HEADER_WRITTEN = "header_written"
    LINES_WRITTEN = "lines_written"
    MOVEMENTS_WRITTEN = "movements_written"
    STOCK_DECREMENTED = "stock_decremented"
    LEDGER_POSTED = "ledger_posted"
    LINKED = "linked"
    FAILED = "failed"


@dataclass(frozen=True)
class SaleLineInput:
    item_id: str
    quantity: int
    base_price: Decimal
    donation: Decimal = ZERO_MONEY


@dataclass(frozen=True)
class SaleInput:
    buyer: str
    sale_date: date
    lines: list[SaleLineInput]
    note: str | None = None
    cash_account_id: str | None = None


@dataclass
class WriteOutcome:
    header_id: str
    totals: SaleTotals
    line_ids: list[str] = field(default_factory=list)
    movement_ids: list[str] = field(default_factory=list)
    ledger_entry_id: str | None = None
    state: SaleState = SaleState.VALIDATING


def validate_sale_input(sale: SaleInput) -> None:
    problems: list[str] = []
    if not sale.lines:
        problems.append("sale must contain at least one line")
    if not (sale.buyer or "").strip():
        problems.append("buyer name is required")
    if sale.sale_date is None:
        problems.append("sale date is required")
    for index, line in enumerate(sale.lines, start=1):
        if not (line.item_id or "").strip():
            problems.append(f"line {index}: item is required")
        if int(line.quantity) <= 0:
            problems.append(f"line {index}: quantity must exceed zero")
        if to_money(line.base_price) < ZERO_MONEY:
            problems.append(f"line {index}: base price cannot be negative")
        if to_money(line.donation) < ZERO_MONEY:
            problems.append(f"line {index}: donation cannot be negative")
    if problems:
        raise SaleValidationError(problems)


def describe_items(lines: Sequence[SaleLineInput], items: dict[str, ItemSnapshot]) -> str:
    parts = []
    for line in lines:
        snapshot = items.get(line.item_id)
        name = snapshot.name if snapshot else line.item_id
        parts.append(f"{name} x{int(line.quantity)}")
    description = "Inventory sale: " + ", ".join(parts)
    if len(description) > LEDGER_DESCRIPTION_LIMIT:
        description = description[: LEDGER_DESCRIPTION_LIMIT - 3] + "..."
    return description


class SaleWriter:
    """Runs the create path: header, lines, movements, stock, ledger, link.

    Each step is acknowledged before the next begins and records its undo
    action in the supplied CompensationLog. When a step fails the whole log
    is unwound before the translated error is raised.
    """

    def __init__(
        self,
        *,
        inventory: InventoryStore,
        sales: SaleStore,
        ledger: LedgerService,
        actor_id: str | None = None,
    ):
        self.inventory = inventory
        self.sales = sales
        self.ledger = ledger
        self.actor_id = actor_id

    def create(self, sale: SaleInput) -> WriteOutcome:
        validate_sale_input(sale)
        check = validate_stock(self.inventory, sale.lines)
        if not check.valid:
            raise StockError(check.errors)
        return self.write(sale, CompensationLog(), items=check.items)

    def write(
        self,
        sale: SaleInput,
        undo: CompensationLog,
        *,
        items: dict[str, ItemSnapshot],
        existing_header: SaleHeader | None = None,
    ) -> WriteOutcome:
        """Steps 2-7. Input must already be validated.

        With ``existing_header`` the header row is rewritten in place instead
        of inserted, so an edited sale keeps its id.
        """
        totals = aggregate(sale.lines)
        header_id = existing_header.id if existing_header else generate_row_id()
        undo.sale_id = undo.sale_id or header_id
        outcome = WriteOutcome(header_id=header_id, totals=totals)
        step = "header"

        try:
            self._write_header(sale, totals, header_id, existing_header, undo)
            outcome.state = SaleState.HEADER_WRITTEN

            step = "lines"
            lines = self._build_lines(sale, header_id, items)
            outcome.line_ids = self.sales.insert_lines(lines)
            undo.record("delete_lines", lambda ids=list(outcome.line_ids): self.sales.delete_lines(ids))
            outcome.state = SaleState.LINES_WRITTEN

            step = "movements"
            movements = self._build_movements(sale, header_id, lines)
            outcome.movement_ids = self.sales.insert_movements(movements)
            undo.record(
                "delete_movements",
                lambda ids=list(outcome.movement_ids): self.sales.delete_movements(ids),
            )
            outcome.state = SaleState.MOVEMENTS_WRITTEN

            step = "stock"
            self._decrement_stock(sale, undo)
            outcome.state = SaleState.STOCK_DECREMENTED

            step = "ledger"
            entry_id = self.ledger.post_entry(
                LedgerPosting(
                    amount=totals.grand_total,
                    entry_date=sale.sale_date,
                    category=settings.ledger_sale_category,
                    description=describe_items(sale.lines, items),
                    reference=f"{settings.ledger_reference_prefix}:{header_id}",
                    sale_header_id=header_id,
                    cash_account_id=sale.cash_account_id or settings.default_cash_account_id,
                    created_by=self.actor_id,
                )
            )
            undo.record("delete_ledger_entry", lambda: self.ledger.delete_entry(entry_id))
            outcome.ledger_entry_id = entry_id
            outcome.state = SaleState.LEDGER_POSTED

            step = "link"
            self.sales.update_header(header_id, {"ledger_entry_id": entry_id})
            self.sales.update_movements(outcome.movement_ids, {"ledger_entry_id": entry_id})
            outcome.state = SaleState.LINKED
        except StockError as exc:
            self._fail(undo, outcome, step, exc)
            raise
        except ConditionalDecrementFailed as exc:
            self._fail(undo, outcome, step, exc)
            snapshot = items.get(exc.item_id)
            raise StockError(
                [
                    LineError(
                        line_index=_line_index(sale.lines, exc.item_id),
                        item_id=exc.item_id,
                        message=INSUFFICIENT_STOCK,
                        requested=exc.quantity,
                        available=self._current_quantity(exc.item_id),
                        item_name=snapshot.name if snapshot else None,
                    )
                ],
                message="Stock changed while the sale was being saved",
            ) from exc
        except StepFailed as exc:
            self._fail(undo, outcome, step, exc)
            if step in {"ledger", "link"}:
                raise LedgerError(step=exc.step) from exc
            raise SaleCommitError(step=exc.step) from exc

        log_event(
            "sale_written",
            sale_id=header_id,
            state=outcome.state.value,
            lines=len(outcome.line_ids),
            grand_total=str(totals.grand_total),
            ledger_entry_id=outcome.ledger_entry_id,
        )
        return outcome

    def _write_header(
        self,
        sale: SaleInput,
        totals: SaleTotals,
        header_id: str,
        existing_header: SaleHeader | None,
        undo: CompensationLog,
    ) -> None:
        values = {
            "buyer": sale.buyer.strip(),
            "sale_date": sale.sale_date,
            "note": sale.note,
            "total_base": totals.total_base,
            "total_donation": totals.total_donation,
            "grand_total": totals.grand_total,
            "ledger_entry_id": None,
            "updated_by": self.actor_id,
        }
        if existing_header is None:
            self.sales.insert_header(SaleHeader(id=header_id, created_by=self.actor_id, **values))
            undo.record("delete_header", lambda: self.sales.delete_header(header_id))
            return

        previous = {key: getattr(existing_header, key) for key in values}
        self.sales.update_header(header_id, values)
        undo.record("restore_header", lambda: self.sales.update_header(header_id, previous))

    def _build_lines(
        self, sale: SaleInput, header_id: str, items: dict[str, ItemSnapshot]
    ) -> list[SaleLineItem]:
        lines = []
        for position, line in enumerate(sale.lines):
            snapshot = items.get(line.item_id)
            lines.append(
                SaleLineItem(
                    id=generate_row_id(),
                    sale_header_id=header_id,
                    item_id=line.item_id,
                    item_name=snapshot.name if snapshot else line.item_id,
                    position=position,
                    quantity=int(line.quantity),
                    base_price=to_money(line.base_price),
                    donation=to_money(line.donation),
                    subtotal=subtotal(line.quantity, line.base_price, line.donation),
                )
            )
        return lines

    def _build_movements(
        self, sale: SaleInput, header_id: str, lines: list[SaleLineItem]
    ) -> list[StockMovement]:
        return [
            StockMovement(
                id=generate_row_id(),
                item_id=line.item_id,
                direction="out",
                mode="sale",
                quantity=line.quantity,
                movement_date=sale.sale_date,
                sale_header_id=header_id,
                sale_line_id=line.id,
                buyer=sale.buyer.strip(),
                note=sale.note,
            )
            for line in lines
        ]

    def _decrement_stock(self, sale: SaleInput, undo: CompensationLog) -> None:
        # the earlier check is advisory; re-read right before touching stock
        recheck = validate_stock(self.inventory, sale.lines)
        if not recheck.valid:
            raise StockError(recheck.errors, message="Stock changed while the sale was being saved")
        for line in sale.lines:
            quantity = int(line.quantity)
            self.inventory.adjust_quantity(line.item_id, -quantity)
            undo.record(
                f"restore_stock:{line.item_id}",
                lambda item_id=line.item_id, qty=quantity: self.inventory.adjust_quantity(item_id, qty),
            )

    def _current_quantity(self, item_id: str) -> int:
        try:
            snapshot = self.inventory.read_items([item_id]).get(item_id)
        except StepFailed:
            return 0
        return snapshot.quantity if snapshot else 0

    def _fail(self, undo: CompensationLog, outcome: WriteOutcome, step: str, exc: Exception) -> None:
        log_event(
            "sale_write_failed",
            level="warning",
            sale_id=outcome.header_id,
            state=outcome.state.value,
            step=step,
            error=str(exc),
        )
        outcome.state = SaleState.FAILED
        undo.unwind(failed_step=step)


def _line_index(lines: Sequence[SaleLineInput], item_id: str) -> int:
    for index, line in enumerate(lines):
        if line.item_id == item_id:
            return index
    return -1
