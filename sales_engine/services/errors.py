from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class LineError:
    line_index: int
    item_id: str
    message: str
    requested: int
    available: int
    item_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SaleError(Exception):
    code = "sale_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class SaleValidationError(SaleError):
    """Malformed input. Raised before anything is written."""

    code = "validation_error"

    def __init__(self, problems: list[str]):
        message = problems[0] if len(problems) == 1 else "Sale input is invalid"
        super().__init__(message, details=[{"field": "sale", "message": p} for p in problems])
        self.problems = problems


class StockError(SaleError):
    code = "insufficient_stock"

    def __init__(self, errors: list[LineError], message: str | None = None):
        super().__init__(
            message or "One or more lines failed the stock check",
            details=[error.to_dict() for error in errors],
        )
        self.errors = errors


class SaleCommitError(SaleError):
    """A write failed and every earlier write was compensated."""

    code = "sale_not_completed"

    def __init__(self, message: str = "Sale could not be completed, no changes were made", *, step: str | None = None):
        super().__init__(message, details=[{"step": step}] if step else None)
        self.step = step


class LedgerError(SaleCommitError):
    code = "ledger_error"


class PartialRollbackError(SaleError):
    """Compensation stopped partway. Needs manual remediation."""

    code = "partial_rollback"

    def __init__(self, *, sale_id: str | None, failed_step: str | None, pending_undo: list[str]):
        super().__init__(
            "Sale rollback did not complete; contact support",
            details=[
                {
                    "sale_id": sale_id,
                    "failed_step": failed_step,
                    "pending_undo": pending_undo,
                }
            ],
        )
        self.sale_id = sale_id
        self.failed_step = failed_step
        self.pending_undo = pending_undo


class DuplicateSubmissionError(SaleError):
    code = "duplicate_submission"

    def __init__(self, key: str, message: str = "A submission with this idempotency key is still in progress"):
        super().__init__(message)
        self.key = key


class SaleNotFoundError(SaleError):
    code = "not_found"

    def __init__(self, sale_id: str):
        super().__init__("Sale not found")
        self.sale_id = sale_id


class StepFailed(Exception):
    """Raised by store collaborators when a single write is not acknowledged."""

    def __init__(self, step: str, reason: str):
        super().__init__(f"{step}: {reason}")
        self.step = step
        self.reason = reason


class ConditionalDecrementFailed(StepFailed):
    def __init__(self, item_id: str, quantity: int):
        super().__init__("stock_decrement", f"item {item_id} cannot release {quantity}")
        self.item_id = item_id
        self.quantity = quantity
