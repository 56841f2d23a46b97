import logging

from fastapi import FastAPI

from .config import settings
from .db import init_db_pool, close_db_pool, ping
from .routes.orders import router as orders_router, sign_url_router
from .routes.webhooks import router as webhooks_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

app = FastAPI(title="Order Fulfillment & Signature API", version="1.0.0")
app.include_router(orders_router)
app.include_router(sign_url_router)
app.include_router(webhooks_router)

@app.on_event("startup")
async def _startup():
    await init_db_pool()

@app.on_event("shutdown")
async def _shutdown():
    await close_db_pool()

@app.get("/health")
async def health():
    return {"ok": True, "service": settings.service_name, "env": settings.env}

@app.get("/health/db")
async def health_db():
    return {"ok": await ping()}
