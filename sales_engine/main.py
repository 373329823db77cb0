from sqlalchemy import text

from sales_engine.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    sale_error_handler,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from sales_engine.core.config import settings
from sales_engine.db.session import engine
from sales_engine.routers import inventory, sales
from sales_engine.services.errors import SaleError

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Multi-item sales for the inventory module.\n\n"
        "A sale is written step by step: header, lines, stock movements, stock decrement, "
        "ledger entry. A failed step is compensated so no partial sale is left behind.\n\n"
        "Send `Idempotency-Key` on `POST /sales` to make retries safe, and `X-Actor-Id` "
        "to attribute changes in the audit log."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "sales", "description": "Sale capture, edits, deletes and sales history."},
        {"name": "inventory", "description": "Stock levels and low-stock listing."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(SaleError, sale_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    # local tooling runs on dynamic localhost ports
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sales.router)
app.include_router(inventory.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
