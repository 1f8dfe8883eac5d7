"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import text

from app.core.config import Settings, get_settings
from app.core.database import SessionLocal, close_engine, session_scope
from app.core.log_config import configure_logging
from app.core.metrics import build_metrics_response, instrument_http_request
from app.modules.billing.router import router as billing_router
from app.modules.identity.repository import IdentityRepository
from app.modules.identity.router import router as identity_router
from app.modules.identity.service import IdentityService
from app.modules.notifications.router import router as notifications_router
from app.modules.recordings.router import router as recordings_router
from app.modules.scheduling.router import router as scheduling_router
from app.modules.sessions.router import router as sessions_router
from app.shared.exceptions import register_exception_handlers
from app.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


def missing_integrations(config: Settings) -> list[str]:
    """Integrations whose credentials are absent; their jobs will fail until configured."""
    required = {
        "stripe": config.stripe_secret_key,
        "paymob": config.paymob_api_key and config.paymob_integration_id,
        "zoom": config.zoom_account_id and config.zoom_client_id and config.zoom_client_secret,
        "storage": config.storage_endpoint_host and config.storage_bucket_name,
        "deepgram": config.deepgram_api_key,
    }
    return [name for name, value in required.items() if not value]


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    logger.info("Starting %s (%s)", settings.app_name, settings.app_env)
    missing = missing_integrations(settings)
    if missing:
        logger.warning("Integrations not configured: %s", ", ".join(missing))

    try:
        async with session_scope() as session:
            await IdentityService(IdentityRepository(session)).ensure_default_roles()
    except Exception:
        logger.exception("Failed to ensure default roles")
        raise

    yield

    logger.info("Shutting down %s", settings.app_name)
    await close_engine()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)
app.middleware("http")(instrument_http_request)

register_exception_handlers(app)

for module_router in (
    identity_router,
    scheduling_router,
    sessions_router,
    billing_router,
    recordings_router,
    notifications_router,
):
    app.include_router(module_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "ok"}


async def _is_database_ready() -> bool:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe; 503 until the database answers."""
    if not await _is_database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    return build_metrics_response()
