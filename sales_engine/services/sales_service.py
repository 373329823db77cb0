"""Entry points used by the HTTP layer and by other modules.

Everything below returns a :class:`Sale` read model or raises one of the
errors in :mod:`sales_engine.services.errors`; storage errors never escape.
"""

import hashlib
import json
from collections.abc import Callable
from datetime import date
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sales_engine.core.config import settings
from sales_engine.core.idempotency import IdempotencyCache
from sales_engine.core.money import money_out, to_money
from sales_engine.core.observability import log_event
from sales_engine.services.audit_service import log_audit_event
from sales_engine.services.errors import SaleCommitError, SaleError, SaleNotFoundError, StepFailed
from sales_engine.services.sale_mutator import SaleMutator
from sales_engine.services.sale_reader import (
    Sale,
    SaleListPage,
    SalesSummary,
    list_sales,
    read_sale,
    sales_summary,
)
from sales_engine.services.sale_writer import SaleInput, SaleWriter
from sales_engine.services.stock_service import StockLine, StockValidationResult, validate_stock
from sales_engine.services.stores import (
    InventoryStore,
    LedgerService,
    SaleStore,
    SqlInventoryStore,
    SqlLedgerService,
    SqlSaleStore,
)

T = TypeVar("T")

submission_cache = IdempotencyCache(ttl_seconds=settings.idempotency_ttl_seconds)


def submission_fingerprint(sale: SaleInput) -> str:
    payload = {
        "buyer": sale.buyer.strip(),
        "sale_date": sale.sale_date.isoformat(),
        "note": sale.note,
        "cash_account_id": sale.cash_account_id,
        "lines": [
            [line.item_id, int(line.quantity), str(to_money(line.base_price)), str(to_money(line.donation))]
            for line in sale.lines
        ],
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class SalesEngine:
    def __init__(
        self,
        db: Session,
        *,
        actor_id: str | None = None,
        inventory: InventoryStore | None = None,
        sales: SaleStore | None = None,
        ledger: LedgerService | None = None,
        idempotency: IdempotencyCache | None = None,
    ):
        self.db = db
        self.actor_id = actor_id
        self.inventory = inventory or SqlInventoryStore(db)
        self.writer = SaleWriter(
            inventory=self.inventory,
            sales=sales or SqlSaleStore(db),
            ledger=ledger or SqlLedgerService(db),
            actor_id=actor_id,
        )
        self.mutator = SaleMutator(db, self.writer)
        self.idempotency = idempotency or submission_cache

    def validate_stock(self, lines: list[StockLine]) -> StockValidationResult:
        return self._guard("validate_stock", lambda: validate_stock(self.inventory, lines))

    def create_sale(self, sale: SaleInput, *, idempotency_key: str | None = None) -> Sale:
        if idempotency_key:
            replayed_id = self.idempotency.begin(idempotency_key, submission_fingerprint(sale))
            if replayed_id is not None:
                log_event("sale_create_replayed", sale_id=replayed_id, idempotency_key=idempotency_key)
                return self.read_sale(replayed_id)

        try:
            outcome = self._guard("create_sale", lambda: self.writer.create(sale))
        except Exception:
            if idempotency_key:
                self.idempotency.release(idempotency_key)
            raise

        if idempotency_key:
            self.idempotency.complete(idempotency_key, outcome.header_id)
        log_audit_event(
            self.db,
            actor_id=self.actor_id,
            action="sale.create",
            target_type="sale",
            target_id=outcome.header_id,
            metadata_json={
                "items_count": len(sale.lines),
                "grand_total": money_out(outcome.totals.grand_total),
                "ledger_entry_id": outcome.ledger_entry_id,
            },
        )
        return self.read_sale(outcome.header_id)

    def read_sale(self, sale_id: str) -> Sale:
        sale = self._guard("read_sale", lambda: read_sale(self.db, sale_id))
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    def update_sale(self, sale_id: str, sale: SaleInput) -> Sale:
        new_id = self._guard("update_sale", lambda: self.mutator.update(sale_id, sale))
        log_audit_event(
            self.db,
            actor_id=self.actor_id,
            action="sale.update",
            target_type="sale",
            target_id=new_id,
            metadata_json={"previous_id": sale_id, "items_count": len(sale.lines)},
        )
        return self.read_sale(new_id)

    def delete_sale(self, sale_id: str) -> bool:
        deleted = self._guard("delete_sale", lambda: self.mutator.delete(sale_id))
        if deleted:
            log_audit_event(
                self.db,
                actor_id=self.actor_id,
                action="sale.delete",
                target_type="sale",
                target_id=sale_id,
            )
        return deleted

    def migrate_legacy_sale(self, sale_id: str) -> Sale:
        new_id = self._guard("migrate_sale", lambda: self.mutator.migrate_legacy(sale_id))
        if new_id != sale_id:
            log_audit_event(
                self.db,
                actor_id=self.actor_id,
                action="sale.migrate",
                target_type="sale",
                target_id=new_id,
                metadata_json={"legacy_id": sale_id},
            )
        return self.read_sale(new_id)

    def list_sales(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SaleListPage:
        return self._guard(
            "list_sales",
            lambda: list_sales(
                self.db,
                start_date=start_date,
                end_date=end_date,
                search=search,
                limit=limit,
                offset=offset,
            ),
        )

    def sales_summary(self, *, start_date: date | None = None, end_date: date | None = None) -> SalesSummary:
        return self._guard(
            "sales_summary",
            lambda: sales_summary(self.db, start_date=start_date, end_date=end_date),
        )

    def _guard(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except SaleError:
            raise
        except (StepFailed, SQLAlchemyError) as exc:
            self.db.rollback()
            log_event("sale_operation_failed", level="warning", operation=operation, error=str(exc))
            raise SaleCommitError(step=getattr(exc, "step", operation)) from exc
