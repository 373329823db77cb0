from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sales_engine.core.config import settings

engine_kwargs: dict[str, object] = {
    # Detect and recover from stale pooled connections.
    "pool_pre_ping": True,
}

database_url = settings.database_url.lower()

if database_url.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    # Each engine step is a separate round-trip; a slow write must fail that step.
    engine_kwargs.update(
        {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout_seconds,
            "pool_recycle": settings.db_pool_recycle_seconds,
        }
    )
    if database_url.startswith("postgresql"):
        engine_kwargs["connect_args"] = {
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
        }

engine = create_engine(settings.database_url, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
