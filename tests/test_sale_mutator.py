from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from sales_engine.models.audit_log import AuditLog
from sales_engine.models.inventory import InventoryItem, StockMovement
from sales_engine.models.ledger import LedgerEntry
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.services.errors import LedgerError, SaleCommitError, SaleNotFoundError, StepFailed, StockError
from sales_engine.services.sale_writer import SaleInput, SaleLineInput
from sales_engine.services.sales_service import SalesEngine
from sales_engine.services.stores import SqlLedgerService, SqlSaleStore


class FailingLedger(SqlLedgerService):
    def post_entry(self, posting):
        raise StepFailed("ledger_post", "statement timeout")


class FailingHeaderDelete(SqlSaleStore):
    def delete_header(self, header_id):
        raise StepFailed("header_delete", "lock timeout")


def _add_item(db, item_id: str, quantity: int):
    db.add(InventoryItem(id=item_id, name=item_id.upper(), quantity=quantity))
    db.commit()


def _stock(session_factory, item_id: str) -> int:
    with session_factory() as db:
        return db.get(InventoryItem, item_id).quantity


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def _sale(*lines: tuple[str, int, str]) -> SaleInput:
    return SaleInput(
        buyer="Ibu Sari",
        sale_date=date(2026, 3, 14),
        lines=[
            SaleLineInput(item_id=item_id, quantity=quantity, base_price=Decimal(price))
            for item_id, quantity, price in lines
        ],
    )


def _add_legacy_sale(db, movement_id: str, *, item_id: str, quantity: int, ledger_entry_id: str | None = None):
    db.add(
        StockMovement(
            id=movement_id,
            item_id=item_id,
            direction="out",
            mode="sale",
            quantity=quantity,
            movement_date=date(2026, 2, 1),
            buyer="Walk-in",
            base_price=Decimal("1000"),
            donation=Decimal("200"),
            total_price=Decimal("3200"),
            ledger_entry_id=ledger_entry_id,
        )
    )
    db.add(
        LedgerEntry(
            id="legacy-entry",
            entry_type="income",
            category="Sale income",
            amount=Decimal("3200"),
            entry_date=date(2026, 2, 1),
            reference=f"inventaris:{movement_id}",
        )
    )
    db.commit()


@pytest.fixture()
def stocked(db):
    _add_item(db, "x", 10)
    _add_item(db, "y", 10)
    return db


def test_edit_one_line_sale_into_two_lines(stocked, session_factory):
    engine = SalesEngine(stocked)
    original = engine.create_sale(_sale(("x", 3, "1000")))
    assert _stock(session_factory, "x") == 7

    edited = engine.update_sale(original.id, _sale(("x", 1, "1000"), ("y", 2, "500")))

    assert edited.id == original.id
    assert edited.grand_total == Decimal("2000.00")
    assert [(line.item_id, line.quantity) for line in edited.lines] == [("x", 1), ("y", 2)]
    # net delta for x is (-1) - (-3)
    assert _stock(session_factory, "x") == 9
    assert _stock(session_factory, "y") == 8

    with session_factory() as db:
        entries = db.execute(select(LedgerEntry)).scalars().all()
        assert len(entries) == 1
        assert entries[0].amount == Decimal("2000.00")
        assert entries[0].id == edited.ledger_entry_id
        assert entries[0].id != original.ledger_entry_id
    assert _count(session_factory, SaleLineItem) == 2
    assert _count(session_factory, StockMovement) == 2


def test_edit_may_reuse_the_sales_own_stock(stocked, session_factory):
    engine = SalesEngine(stocked)
    original = engine.create_sale(_sale(("x", 8, "1000")))

    # only 2 left on the shelf, but the sale itself holds 8
    edited = engine.update_sale(original.id, _sale(("x", 10, "1000")))

    assert edited.lines[0].quantity == 10
    assert _stock(session_factory, "x") == 0


def test_edit_beyond_available_stock_changes_nothing(stocked, session_factory):
    engine = SalesEngine(stocked)
    original = engine.create_sale(_sale(("x", 3, "1000")))

    with pytest.raises(StockError):
        engine.update_sale(original.id, _sale(("x", 14, "1000")))

    assert _stock(session_factory, "x") == 7
    assert engine.read_sale(original.id).lines[0].quantity == 3


def test_failed_edit_restores_the_original_sale(stocked, session_factory):
    original = SalesEngine(stocked).create_sale(_sale(("x", 3, "1000")))

    with pytest.raises(LedgerError):
        SalesEngine(stocked, ledger=FailingLedger(stocked)).update_sale(
            original.id, _sale(("x", 1, "1000"), ("y", 2, "500"))
        )

    restored = SalesEngine(stocked).read_sale(original.id)
    assert restored.grand_total == Decimal("3000.00")
    assert [(line.item_id, line.quantity) for line in restored.lines] == [("x", 3)]
    assert restored.ledger_entry_id == original.ledger_entry_id
    assert _stock(session_factory, "x") == 7
    assert _stock(session_factory, "y") == 10
    with session_factory() as db:
        entry = db.get(LedgerEntry, original.ledger_entry_id)
        assert entry is not None
        assert entry.amount == Decimal("3000.00")
        movement = db.execute(select(StockMovement)).scalar_one()
        assert movement.ledger_entry_id == original.ledger_entry_id


def test_update_unknown_sale(stocked):
    with pytest.raises(SaleNotFoundError):
        SalesEngine(stocked).update_sale("missing", _sale(("x", 1, "1000")))


def test_delete_restores_stock_and_leaves_no_rows(stocked, session_factory):
    engine = SalesEngine(stocked, actor_id="cashier-1")
    sale = engine.create_sale(_sale(("x", 3, "1000"), ("y", 1, "500")))

    assert engine.delete_sale(sale.id) is True

    assert _stock(session_factory, "x") == 10
    assert _stock(session_factory, "y") == 10
    for model in (SaleHeader, SaleLineItem, StockMovement, LedgerEntry):
        assert _count(session_factory, model) == 0, model.__tablename__
    with session_factory() as db:
        actions = db.execute(select(AuditLog.action).order_by(AuditLog.created_at)).scalars().all()
        assert sorted(actions) == ["sale.create", "sale.delete"]


def test_delete_twice_is_a_no_op(stocked, session_factory):
    engine = SalesEngine(stocked)
    sale = engine.create_sale(_sale(("x", 3, "1000")))

    assert engine.delete_sale(sale.id) is True
    assert engine.delete_sale(sale.id) is False
    assert _stock(session_factory, "x") == 10


def test_failed_delete_puts_the_sale_back(stocked, session_factory):
    engine = SalesEngine(stocked)
    sale = engine.create_sale(_sale(("x", 3, "1000"), ("y", 1, "500")))

    with pytest.raises(SaleCommitError) as exc_info:
        SalesEngine(stocked, sales=FailingHeaderDelete(stocked)).delete_sale(sale.id)

    assert exc_info.value.step == "header_delete"
    assert _stock(session_factory, "x") == 7
    assert _stock(session_factory, "y") == 9
    assert _count(session_factory, SaleLineItem) == 2
    assert _count(session_factory, StockMovement) == 2
    restored = SalesEngine(stocked).read_sale(sale.id)
    assert restored.grand_total == Decimal("3500.00")
    assert [(line.item_id, line.quantity) for line in restored.lines] == [("x", 3), ("y", 1)]
    assert restored.ledger_entry_id == sale.ledger_entry_id
    with session_factory() as db:
        entry = db.get(LedgerEntry, sale.ledger_entry_id)
        assert entry is not None
        assert entry.amount == Decimal("3500.00")


def test_delete_legacy_sale_removes_its_ledger_entry(stocked, session_factory):
    _add_legacy_sale(stocked, "mv-legacy", item_id="x", quantity=3)

    assert SalesEngine(stocked).delete_sale("mv-legacy") is True

    assert _stock(session_factory, "x") == 13
    assert _count(session_factory, StockMovement) == 0
    assert _count(session_factory, LedgerEntry) == 0


def test_edit_legacy_sale_becomes_a_modern_sale(stocked, session_factory):
    _add_legacy_sale(stocked, "mv-legacy", item_id="x", quantity=3)

    edited = SalesEngine(stocked).update_sale("mv-legacy", _sale(("x", 2, "1000")))

    assert edited.source == "modern"
    assert edited.id != "mv-legacy"
    assert _stock(session_factory, "x") == 11
    with session_factory() as db:
        entries = db.execute(select(LedgerEntry)).scalars().all()
        assert [entry.sale_header_id for entry in entries] == [edited.id]
        assert db.get(StockMovement, "mv-legacy") is None


def test_migrate_legacy_sale_keeps_stock_and_ledger(stocked, session_factory):
    _add_legacy_sale(stocked, "mv-legacy", item_id="x", quantity=3)

    migrated = SalesEngine(stocked).migrate_legacy_sale("mv-legacy")

    assert migrated.source == "modern"
    assert migrated.grand_total == Decimal("3200.00")
    assert migrated.total_base == Decimal("3000.00")
    assert migrated.total_donation == Decimal("200.00")
    assert migrated.ledger_entry_id == "legacy-entry"
    assert _stock(session_factory, "x") == 10
    with session_factory() as db:
        movement = db.get(StockMovement, "mv-legacy")
        assert movement.sale_header_id == migrated.id
        entry = db.get(LedgerEntry, "legacy-entry")
        assert entry.sale_header_id == migrated.id

    # the movement now belongs to the header, so its old id no longer resolves
    with pytest.raises(SaleNotFoundError):
        SalesEngine(stocked).read_sale("mv-legacy")


def test_migrate_keeps_the_recorded_total_without_a_breakdown(stocked, session_factory):
    stocked.add(
        StockMovement(
            id="mv-discounted",
            item_id="x",
            direction="out",
            mode="sale",
            quantity=2,
            movement_date=date(2026, 2, 1),
            buyer="Pak Budi",
            unit_price=Decimal("1000"),
            total_price=Decimal("1800"),
        )
    )
    stocked.commit()
    engine = SalesEngine(stocked)
    assert engine.read_sale("mv-discounted").grand_total == Decimal("1800.00")

    migrated = engine.migrate_legacy_sale("mv-discounted")

    assert migrated.grand_total == Decimal("1800.00")
    assert migrated.total_donation == Decimal("0.00")
    assert migrated.total_base == Decimal("1800.00")
    assert migrated.lines[0].subtotal == Decimal("1800.00")
    assert migrated.lines[0].quantity == 2
    assert _stock(session_factory, "x") == 10


def test_migrate_modern_sale_is_a_no_op(stocked):
    engine = SalesEngine(stocked)
    sale = engine.create_sale(_sale(("x", 1, "1000")))

    assert engine.migrate_legacy_sale(sale.id).id == sale.id
