from fastapi import Depends, Header
from sqlalchemy.orm import Session

from sales_engine.core.deps import get_db
from sales_engine.services.sales_service import SalesEngine


def get_current_actor(x_actor_id: str | None = Header(default=None, max_length=36)) -> str | None:
    """Identity is established upstream; the header is only carried into audit rows."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


def get_sales_engine(
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_current_actor),
) -> SalesEngine:
    return SalesEngine(db, actor_id=actor_id)
