from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from sales_engine.core.actor import get_sales_engine
from sales_engine.core.api_docs import error_responses
from sales_engine.core.money import money_out, to_money
from sales_engine.schemas.common import PaginationMeta
from sales_engine.schemas.sales import (
    ItemSalesSummaryOut,
    SaleCreate,
    SaleDeleteOut,
    SaleLineOut,
    SaleListOut,
    SaleOut,
    SalesSummaryOut,
    SaleUpdate,
    StockLineErrorOut,
    StockValidationIn,
    StockValidationOut,
)
from sales_engine.services.sale_reader import Sale
from sales_engine.services.sale_writer import SaleInput, SaleLineInput
from sales_engine.services.sales_service import SalesEngine
from sales_engine.services.stock_service import format_stock_errors, stock_warning

router = APIRouter(prefix="/sales", tags=["sales"])


def _to_sale_input(payload: SaleCreate) -> SaleInput:
    return SaleInput(
        buyer=payload.buyer,
        sale_date=payload.sale_date,
        note=payload.note,
        cash_account_id=payload.cash_account_id,
        lines=[
            SaleLineInput(
                item_id=line.item_id,
                quantity=line.quantity,
                base_price=to_money(line.base_price),
                donation=to_money(line.donation),
            )
            for line in payload.lines
        ],
    )


def _sale_out(sale: Sale) -> SaleOut:
    return SaleOut(
        id=sale.id,
        source=sale.source,
        buyer=sale.buyer,
        sale_date=sale.sale_date,
        note=sale.note,
        total_base=money_out(sale.total_base),
        total_donation=money_out(sale.total_donation),
        grand_total=money_out(sale.grand_total),
        ledger_entry_id=sale.ledger_entry_id,
        item_count=sale.item_count,
        created_at=sale.created_at,
        lines=[
            SaleLineOut(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item_name,
                quantity=line.quantity,
                base_price=money_out(line.base_price),
                donation=money_out(line.donation),
                subtotal=money_out(line.subtotal),
            )
            for line in sale.lines
        ],
    )


def _check_date_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date cannot be after end_date")


@router.post(
    "",
    response_model=SaleOut,
    summary="Create sale",
    description=(
        "Validates stock for every line, then writes the header, lines, stock movements, "
        "stock decrement and ledger entry. Any failed step is compensated before the error is returned."
    ),
    responses=error_responses(409, 422, 500, 503),
)
def create_sale(
    payload: SaleCreate,
    idempotency_key: str | None = Header(default=None, max_length=128),
    engine: SalesEngine = Depends(get_sales_engine),
):
    sale = engine.create_sale(_to_sale_input(payload), idempotency_key=idempotency_key)
    return _sale_out(sale)


@router.get(
    "",
    response_model=SaleListOut,
    summary="List sales",
    description="Multi-item and single-item sales merged into one list, newest first.",
    responses=error_responses(400, 422, 503),
)
def list_sales(
    start_date: date | None = Query(default=None, description="Inclusive start date (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, description="Inclusive end date (YYYY-MM-DD)"),
    q: str | None = Query(default=None, max_length=100, description="Search buyer or note"),
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    engine: SalesEngine = Depends(get_sales_engine),
):
    _check_date_range(start_date, end_date)
    page = engine.list_sales(start_date=start_date, end_date=end_date, search=q, limit=limit, offset=offset)
    count = len(page.items)
    return SaleListOut(
        items=[_sale_out(sale) for sale in page.items],
        pagination=PaginationMeta(
            total=page.total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=offset + count < page.total,
        ),
        start_date=start_date,
        end_date=end_date,
    )


@router.get(
    "/summary",
    response_model=SalesSummaryOut,
    summary="Sales revenue summary",
    responses=error_responses(400, 422, 503),
)
def get_sales_summary(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    engine: SalesEngine = Depends(get_sales_engine),
):
    _check_date_range(start_date, end_date)
    summary = engine.sales_summary(start_date=start_date, end_date=end_date)
    return SalesSummaryOut(
        start_date=start_date,
        end_date=end_date,
        total_revenue=money_out(summary.total_revenue),
        transactions=summary.transactions,
        quantity=summary.quantity,
        average_sale=money_out(summary.average_sale),
        items=[
            ItemSalesSummaryOut(
                item_id=item.item_id,
                item_name=item.item_name,
                quantity=item.quantity,
                total=money_out(item.total),
                transactions=item.transactions,
            )
            for item in summary.items
        ],
    )


@router.post(
    "/validate-stock",
    response_model=StockValidationOut,
    summary="Check stock for draft sale lines",
    description="Runs the stock check without writing anything. Warnings flag lines that use most of the remaining stock.",
    responses=error_responses(422, 503),
)
def validate_sale_stock(
    payload: StockValidationIn,
    engine: SalesEngine = Depends(get_sales_engine),
):
    result = engine.validate_stock(payload.lines)
    warnings = []
    for line in payload.lines:
        snapshot = result.items.get(line.item_id)
        # shortfalls are already reported as errors
        if snapshot is None or not 0 < line.quantity <= snapshot.quantity:
            continue
        warning = stock_warning(line.quantity, snapshot.quantity, snapshot.name)
        if warning:
            warnings.append(warning)
    return StockValidationOut(
        valid=result.valid,
        message=format_stock_errors(result.errors) or None,
        errors=[StockLineErrorOut(**error.to_dict()) for error in result.errors],
        warnings=warnings,
    )


@router.get(
    "/{sale_id}",
    response_model=SaleOut,
    summary="Get sale",
    responses=error_responses(404, 503),
)
def get_sale(sale_id: str, engine: SalesEngine = Depends(get_sales_engine)):
    return _sale_out(engine.read_sale(sale_id))


@router.put(
    "/{sale_id}",
    response_model=SaleOut,
    summary="Update sale",
    description=(
        "Replaces the lines of a sale. The sale's own stock counts as available. "
        "Single-item sales are rewritten as multi-item sales under a new id."
    ),
    responses=error_responses(404, 409, 422, 500, 503),
)
def update_sale(
    sale_id: str,
    payload: SaleUpdate,
    engine: SalesEngine = Depends(get_sales_engine),
):
    return _sale_out(engine.update_sale(sale_id, _to_sale_input(payload)))


@router.delete(
    "/{sale_id}",
    response_model=SaleDeleteOut,
    summary="Delete sale",
    description="Restores stock and removes the ledger entry. Deleting an unknown sale is a no-op.",
    responses=error_responses(500, 503),
)
def delete_sale(sale_id: str, engine: SalesEngine = Depends(get_sales_engine)):
    return SaleDeleteOut(id=sale_id, deleted=engine.delete_sale(sale_id))


@router.post(
    "/{sale_id}/migrate",
    response_model=SaleOut,
    summary="Convert a single-item sale",
    description="Moves a single-item sale onto a header and line, keeping its stock movement and ledger entry.",
    responses=error_responses(404, 500, 503),
)
def migrate_sale(sale_id: str, engine: SalesEngine = Depends(get_sales_engine)):
    return _sale_out(engine.migrate_legacy_sale(sale_id))
