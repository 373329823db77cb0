from collections.abc import Callable
from dataclasses import dataclass

from sales_engine.core.observability import log_event
from sales_engine.services.errors import PartialRollbackError, StepFailed


@dataclass(frozen=True)
class _UndoStep:
    label: str
    action: Callable[[], None]


class CompensationLog:
    """Undo actions for writes that have been acknowledged, newest last."""

    def __init__(self, sale_id: str | None = None):
        self.sale_id = sale_id
        self._steps: list[_UndoStep] = []

    def record(self, label: str, action: Callable[[], None]) -> None:
        self._steps.append(_UndoStep(label=label, action=action))

    @property
    def labels(self) -> list[str]:
        return [step.label for step in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    def unwind(self, *, failed_step: str | None) -> None:
        """Run every undo action in reverse order.

        Raises PartialRollbackError naming the actions that never ran when
        one of them fails.
        """
        log_event(
            "sale_compensation_started",
            level="warning",
            sale_id=self.sale_id,
            failed_step=failed_step,
            undo=list(reversed(self.labels)),
        )
        while self._steps:
            step = self._steps[-1]
            try:
                step.action()
            except StepFailed as exc:
                pending = [s.label for s in reversed(self._steps)]
                log_event(
                    "sale_partial_rollback",
                    level="error",
                    sale_id=self.sale_id,
                    failed_step=failed_step,
                    undo_failed=step.label,
                    pending_undo=pending,
                    error=str(exc),
                )
                raise PartialRollbackError(
                    sale_id=self.sale_id,
                    failed_step=failed_step,
                    pending_undo=pending,
                ) from exc
            self._steps.pop()
        log_event("sale_compensation_finished", sale_id=self.sale_id, failed_step=failed_step)
