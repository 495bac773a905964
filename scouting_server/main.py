import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from scouting_server.admin.routes import admin_router
from scouting_server.api import payment_router, subscription_router, validation_router, webhook_router
from scouting_server.config import settings
from scouting_server.db.session import SessionLocal
from scouting_server.services.expiry_sweeper import ExpirySweeper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

sweeper = ExpirySweeper(
    SessionLocal,
    interval_seconds=settings.expiry_sweep_interval_seconds,
    duration_days=settings.subscription_duration_days,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.enable_test_webhooks and settings.app_env != "development":
        logger.warning("Test webhook endpoints are enabled outside development")
    sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()


app = FastAPI(title="Scouting platform backend", lifespan=lifespan)

app.include_router(webhook_router.router, prefix="/api")
app.include_router(payment_router.router, prefix="/api")
app.include_router(subscription_router.router, prefix="/api")
app.include_router(validation_router.router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok"}
