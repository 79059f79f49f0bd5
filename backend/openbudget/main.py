# backend/openbudget/main.py
from __future__ import annotations

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Import router objects explicitly to avoid module name collisions
from openbudget.routers.health import router as health_router
from openbudget.routers.sync import router as sync_router
from openbudget.routers.stats import router as stats_router
from openbudget.routers.forecast import router as forecast_router
from openbudget.db import init_db
from openbudget.core.security import get_current_principal
from openbudget.observability.logging import configure_logging
from openbudget.observability.middleware import register_request_middleware, unhandled_exception_handler
from openbudget.observability.metrics import router as observability_router
from openbudget.scheduler.setup import init_scheduler, shutdown_scheduler
from openbudget.schemas.common import fail
from openbudget.config import get_settings

import structlog

configure_logging()
logger = structlog.get_logger(__name__)

DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


async def validation_exception_handler(request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return fail("VALIDATION_ERROR", "Invalid request", status_code=422, details={"errors": errors})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="OpenBudget Sync & Statistics", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400
    )

    register_request_middleware(app)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Ensure tables exist in dev/e2e so tests don't 500 on brand-new DBs
    @app.on_event("startup")
    def _ensure_tables() -> None:
        if settings.ENV not in ("dev", "test"):
            return
        try:
            init_db()
        except Exception:
            logger.exception("startup.create_all_failed")

    @app.on_event("startup")
    async def _start_scheduler() -> None:
        await init_scheduler(app)

    @app.on_event("shutdown")
    async def _stop_scheduler() -> None:
        await shutdown_scheduler()

    # Public routers
    app.include_router(health_router)
    app.include_router(observability_router)

    # Private routers share the same auth dependency; sync additionally requires admin
    require_auth = [Depends(get_current_principal)]

    app.include_router(stats_router, dependencies=require_auth)
    app.include_router(forecast_router, dependencies=require_auth)
    app.include_router(sync_router)

    return app


app = create_app()
