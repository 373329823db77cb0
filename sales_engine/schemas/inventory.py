from pydantic import BaseModel


class StockLevelOut(BaseModel):
    item_id: str
    name: str
    quantity: int
    unit: str | None = None


class StockLevelListOut(BaseModel):
    items: list[StockLevelOut]
    missing: list[str]


class LowStockItemOut(BaseModel):
    item_id: str
    name: str
    category: str | None = None
    unit: str | None = None
    quantity: int
    min_stock: int | None = None


class LowStockListOut(BaseModel):
    threshold: int
    items: list[LowStockItemOut]
