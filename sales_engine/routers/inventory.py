from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from sales_engine.core.api_docs import error_responses
from sales_engine.core.config import settings
from sales_engine.core.deps import get_db
from sales_engine.schemas.inventory import (
    LowStockItemOut,
    LowStockListOut,
    StockLevelListOut,
    StockLevelOut,
)
from sales_engine.services.errors import SaleCommitError, StepFailed
from sales_engine.services.stock_service import list_low_stock
from sales_engine.services.stores import SqlInventoryStore

router = APIRouter(prefix="/inventory", tags=["inventory"])

MAX_STOCK_IDS = 200


@router.get(
    "/stock",
    response_model=StockLevelListOut,
    summary="Get stock levels for several items",
    description="One batched read. Unknown ids are returned in `missing`.",
    responses=error_responses(400, 422, 503),
)
def get_stock_levels(
    ids: list[str] = Query(..., description="Item ids; repeat the parameter or pass a comma separated list"),
    db: Session = Depends(get_db),
):
    item_ids = list(dict.fromkeys(part.strip() for raw in ids for part in raw.split(",") if part.strip()))
    if not item_ids:
        raise HTTPException(status_code=400, detail="At least one item id is required")
    if len(item_ids) > MAX_STOCK_IDS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_STOCK_IDS} item ids per request")

    try:
        snapshots = SqlInventoryStore(db).read_items(item_ids)
    except StepFailed as exc:
        raise SaleCommitError("Stock levels are unavailable, try again", step=exc.step) from exc

    return StockLevelListOut(
        items=[
            StockLevelOut(
                item_id=item_id,
                name=snapshots[item_id].name,
                quantity=snapshots[item_id].quantity,
                unit=snapshots[item_id].unit,
            )
            for item_id in item_ids
            if item_id in snapshots
        ],
        missing=[item_id for item_id in item_ids if item_id not in snapshots],
    )


@router.get(
    "/low-stock",
    response_model=LowStockListOut,
    summary="List items running low",
    description="Items below the threshold or below their own minimum stock, lowest first.",
    responses=error_responses(422),
)
def get_low_stock(
    threshold: int | None = Query(default=None, ge=0, description="Defaults to the configured threshold"),
    db: Session = Depends(get_db),
):
    effective = settings.low_stock_default_threshold if threshold is None else threshold
    rows = list_low_stock(db, effective)
    return LowStockListOut(
        threshold=effective,
        items=[
            LowStockItemOut(
                item_id=row.id,
                name=row.name,
                category=row.category,
                unit=row.unit,
                quantity=row.quantity,
                min_stock=row.min_stock,
            )
            for row in rows
        ],
    )
