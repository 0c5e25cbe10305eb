"""Storefront settlement service entrypoint."""

from uuid import uuid4

from fastapi import FastAPI, Request

from services.storefront.app.db.init_db import init_db
from services.storefront.app.routers.audit import router as audit_router
from services.storefront.app.routers.checkout import router as checkout_router
from services.storefront.app.routers.settlement import router as settlement_router
from services.storefront.app.routers.shipping import router as shipping_router
from services.storefront.app.routers.webhook import router as webhook_router
from services.storefront.app.utils.logging import add_context, clear_context, configure_logging

app = FastAPI(title="Storefront Settlement API")

app.include_router(checkout_router)
app.include_router(settlement_router)
app.include_router(shipping_router)
app.include_router(webhook_router)
app.include_router(audit_router)


@app.middleware("http")
async def _request_context(request: Request, call_next):
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    try:
        return await call_next(request)
    finally:
        clear_context()


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
