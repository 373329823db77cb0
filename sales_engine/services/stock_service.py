from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from sales_engine.core.config import settings
from sales_engine.models.inventory import InventoryItem
from sales_engine.services.errors import LineError
from sales_engine.services.stores import InventoryStore, ItemSnapshot

QUANTITY_NOT_POSITIVE = "quantity must exceed zero"
ITEM_NOT_FOUND = "item not found"
INSUFFICIENT_STOCK = "insufficient stock"


class StockLine(Protocol):
    item_id: str
    quantity: int


@dataclass(frozen=True)
class StockValidationResult:
    valid: bool
    errors: list[LineError] = field(default_factory=list)
    items: dict[str, ItemSnapshot] = field(default_factory=dict)


def validate_stock(
    store: InventoryStore,
    lines: Sequence[StockLine],
    *,
    released: dict[str, int] | None = None,
) -> StockValidationResult:
    """Check every line against one batched stock snapshot.

    Lines are checked independently, in input order; two lines for the same
    item are each compared with the full snapshot quantity. ``released`` adds
    quantities that the caller is about to give back (an edited sale's own
    allocation) to the snapshot before comparing.
    """
    items = store.read_items(line.item_id for line in lines)
    released = released or {}
    errors: list[LineError] = []

    for index, line in enumerate(lines):
        quantity = int(line.quantity)
        snapshot = items.get(line.item_id)
        if quantity <= 0:
            errors.append(
                LineError(
                    line_index=index,
                    item_id=line.item_id,
                    message=QUANTITY_NOT_POSITIVE,
                    requested=quantity,
                    available=snapshot.quantity if snapshot else 0,
                    item_name=snapshot.name if snapshot else None,
                )
            )
            continue
        if snapshot is None:
            errors.append(
                LineError(
                    line_index=index,
                    item_id=line.item_id,
                    message=ITEM_NOT_FOUND,
                    requested=quantity,
                    available=0,
                )
            )
            continue
        available = snapshot.quantity + released.get(line.item_id, 0)
        if quantity > available:
            errors.append(
                LineError(
                    line_index=index,
                    item_id=line.item_id,
                    message=INSUFFICIENT_STOCK,
                    requested=quantity,
                    available=available,
                    item_name=snapshot.name,
                )
            )

    return StockValidationResult(valid=not errors, errors=errors, items=items)


def stock_warning(requested: int, available: int, item_name: str) -> str | None:
    if requested > available:
        return f"Insufficient stock for {item_name}. Available: {available}, requested: {requested}"
    if available > 0 and requested > available * settings.stock_warning_ratio:
        percent = round(requested / available * 100)
        return f"Warning: {item_name} request uses {percent}% of remaining stock"
    return None


def describe_line_error(error: LineError) -> str:
    if error.message == INSUFFICIENT_STOCK:
        name = error.item_name or error.item_id
        return f"Insufficient stock for {name}. Available: {error.available}, requested: {error.requested}"
    if error.message == ITEM_NOT_FOUND:
        return f"Item {error.item_id} not found"
    return f"Line {error.line_index + 1}: {error.message}"


def format_stock_errors(errors: Sequence[LineError]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return describe_line_error(errors[0])
    lines = [f"{idx}. {describe_line_error(error)}" for idx, error in enumerate(errors, start=1)]
    return f"Found {len(errors)} stock problems:\n" + "\n".join(lines)


def list_low_stock(db: Session, threshold: int | None = None) -> list[InventoryItem]:
    limit = settings.low_stock_default_threshold if threshold is None else threshold
    rows = db.execute(
        select(InventoryItem)
        .where(
            or_(
                InventoryItem.quantity < limit,
                InventoryItem.quantity < InventoryItem.min_stock,
            )
        )
        .order_by(InventoryItem.quantity.asc(), InventoryItem.name.asc())
    ).scalars().all()
    return list(rows)
