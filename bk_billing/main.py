from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bk_billing.api.routes_invoices import router as invoices_router
from bk_billing.api.routes_refunds import router as refunds_router
from bk_billing.core.config import get_settings
from bk_billing.core.logging import configure_logging
from bk_billing.domain.errors import (
    BillingError,
    InvalidStateError,
    NotFoundError,
    RefundValidationError,
    StorageError,
)
from bk_billing.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("billing api ready: env=%s invoice_backend=%s email_backend=%s", settings.env, settings.invoice_backend, settings.email_backend)


@app.exception_handler(RefundValidationError)
async def refund_validation_handler(_: Request, exc: RefundValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "error": "refund_validation", "errors": exc.errors},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(_: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "invalid_state"})


@app.exception_handler(StorageError)
async def storage_error_handler(_: Request, exc: StorageError):
    logger.error("storage failure: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc), "error": "storage"})


@app.exception_handler(BillingError)
async def billing_error_handler(_: Request, exc: BillingError):
    logger.error("billing failure: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc), "error": "billing"})


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(refunds_router)
app.include_router(invoices_router)
