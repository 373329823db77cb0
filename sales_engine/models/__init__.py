from sales_engine.models.inventory import InventoryItem, StockMovement
from sales_engine.models.sales import SaleHeader, SaleLineItem
from sales_engine.models.ledger import LedgerEntry
from sales_engine.models.audit_log import AuditLog
