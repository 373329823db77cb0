from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from sales_engine.schemas.common import PaginationMeta

SaleSource = Literal["modern", "legacy"]


class SaleLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    quantity: int
    base_price: Decimal = Field(ge=0)
    donation: Decimal = Field(default=Decimal("0"), ge=0)


class SaleCreate(BaseModel):
    buyer: str = Field(max_length=255)
    sale_date: date
    note: str | None = Field(default=None, max_length=255)
    cash_account_id: str | None = Field(default=None, max_length=36)
    lines: list[SaleLineIn]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "buyer": "Ibu Sari",
                "sale_date": "2026-03-14",
                "note": "Charity bazaar",
                "lines": [
                    {"item_id": "item-id-a", "quantity": 2, "base_price": 10000, "donation": 2000},
                    {"item_id": "item-id-b", "quantity": 1, "base_price": 5000, "donation": 0},
                ],
            }
        }
    )


class SaleUpdate(SaleCreate):
    pass


class SaleLineOut(BaseModel):
    id: str
    item_id: str
    item_name: str
    quantity: int
    base_price: float
    donation: float
    subtotal: float


class SaleOut(BaseModel):
    id: str
    source: SaleSource
    buyer: str
    sale_date: date
    note: str | None = None
    total_base: float
    total_donation: float
    grand_total: float
    ledger_entry_id: str | None = None
    item_count: int
    lines: list[SaleLineOut]
    created_at: datetime | None = None


class SaleListOut(BaseModel):
    pagination: PaginationMeta
    start_date: date | None = None
    end_date: date | None = None
    items: list[SaleOut]


class SaleDeleteOut(BaseModel):
    id: str
    deleted: bool


class StockCheckLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    quantity: int


class StockValidationIn(BaseModel):
    lines: list[StockCheckLineIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "lines": [
                    {"item_id": "item-id-a", "quantity": 2},
                    {"item_id": "item-id-b", "quantity": 9},
                ]
            }
        }
    )


class StockLineErrorOut(BaseModel):
    line_index: int
    item_id: str
    message: str
    requested: int
    available: int
    item_name: str | None = None


class StockValidationOut(BaseModel):
    valid: bool
    message: str | None = None
    errors: list[StockLineErrorOut]
    warnings: list[str]


class ItemSalesSummaryOut(BaseModel):
    item_id: str
    item_name: str
    quantity: int
    total: float
    transactions: int


class SalesSummaryOut(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    total_revenue: float
    transactions: int
    quantity: int
    average_sale: float
    items: list[ItemSalesSummaryOut]
