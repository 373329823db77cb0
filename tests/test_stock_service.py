from dataclasses import dataclass

import pytest

from sales_engine.models.inventory import InventoryItem
from sales_engine.services.errors import LineError
from sales_engine.services.stock_service import (
    INSUFFICIENT_STOCK,
    ITEM_NOT_FOUND,
    QUANTITY_NOT_POSITIVE,
    format_stock_errors,
    list_low_stock,
    stock_warning,
    validate_stock,
)
from sales_engine.services.stores import SqlInventoryStore


@dataclass
class _Line:
    item_id: str
    quantity: int


def _add_item(db, item_id: str, quantity: int, *, min_stock: int | None = None):
    db.add(InventoryItem(id=item_id, name=f"Item {item_id}", quantity=quantity, min_stock=min_stock))
    db.commit()


def test_validate_stock_reports_every_failing_line_in_order(db):
    _add_item(db, "a", 5)
    _add_item(db, "b", 2)

    result = validate_stock(
        SqlInventoryStore(db),
        [_Line("a", 10), _Line("b", 2), _Line("missing", 1), _Line("b", 0)],
    )

    assert result.valid is False
    assert [(e.line_index, e.item_id, e.message) for e in result.errors] == [
        (0, "a", INSUFFICIENT_STOCK),
        (2, "missing", ITEM_NOT_FOUND),
        (3, "b", QUANTITY_NOT_POSITIVE),
    ]
    assert result.errors[0].requested == 10
    assert result.errors[0].available == 5


def test_duplicate_item_lines_are_checked_independently(db):
    _add_item(db, "a", 5)

    result = validate_stock(SqlInventoryStore(db), [_Line("a", 4), _Line("a", 4)])

    assert result.valid is True
    assert result.errors == []


def test_released_allocation_counts_as_available(db):
    _add_item(db, "a", 1)

    assert not validate_stock(SqlInventoryStore(db), [_Line("a", 3)]).valid
    assert validate_stock(SqlInventoryStore(db), [_Line("a", 3)], released={"a": 2}).valid


def test_read_items_is_one_batched_snapshot(db):
    _add_item(db, "a", 5)
    _add_item(db, "b", 0)

    items = SqlInventoryStore(db).read_items(["a", "b", "a", "zzz"])

    assert set(items) == {"a", "b"}
    assert items["a"].quantity == 5
    assert items["b"].name == "Item b"


@pytest.mark.parametrize(
    ("requested", "available", "expected"),
    [
        (10, 5, "Insufficient stock for Tea. Available: 5, requested: 10"),
        (9, 10, "Warning: Tea request uses 90% of remaining stock"),
        (8, 10, None),
        (1, 0, "Insufficient stock for Tea. Available: 0, requested: 1"),
    ],
)
def test_stock_warning(requested, available, expected):
    assert stock_warning(requested, available, "Tea") == expected


def test_format_stock_errors_numbers_multiple_problems():
    errors = [
        LineError(line_index=0, item_id="a", message=INSUFFICIENT_STOCK, requested=4, available=1, item_name="Tea"),
        LineError(line_index=1, item_id="b", message=ITEM_NOT_FOUND, requested=1, available=0),
    ]

    assert format_stock_errors([]) == ""
    assert format_stock_errors(errors[:1]) == "Insufficient stock for Tea. Available: 1, requested: 4"
    assert format_stock_errors(errors) == (
        "Found 2 stock problems:\n"
        "1. Insufficient stock for Tea. Available: 1, requested: 4\n"
        "2. Item b not found"
    )


def test_list_low_stock_uses_threshold_and_item_minimum(db):
    _add_item(db, "plenty", 50)
    _add_item(db, "low", 3)
    _add_item(db, "below_min", 12, min_stock=20)

    rows = list_low_stock(db, 10)

    assert [row.id for row in rows] == ["low", "below_min"]
