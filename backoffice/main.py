from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pythonjsonlogger import jsonlogger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_settings
from .database import init_db
from .errors import BackofficeError, UpstreamFailure
from .guard import EdgeGuardMiddleware, GuardStore, StoreSweeper
from .rate_limit import limiter
from .api import routes_admin, routes_bookings, routes_disputes, routes_providers, routes_transactions
from .auth.routes_auth import router as auth_router
from .auth.seed import seed_admin

log = logging.getLogger("backoffice")

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

_logging_configured = False


def _configure_logging(settings: Settings) -> None:
    """Configure structured JSON logging when log_format=json (default)."""
    global _logging_configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    if _logging_configured:
        return
    _logging_configured = True

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    root.addHandler(handler)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------

async def _backoffice_error_handler(request: Request, exc: BackofficeError) -> JSONResponse:
    return exc.to_response()


async def _data_store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("Data store failure on %s %s: %s", request.method, request.url.path, exc)
    return UpstreamFailure().to_response()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[GuardStore] = None,
) -> FastAPI:
    """
    Build the back-office API.

    The guard store is created here (or injected by tests) and shared by
    the edge middleware, the login route and the sweeper; nothing about
    the guard lives at module level.
    """
    settings = settings or get_settings()
    _configure_logging(settings)

    init_db()
    seed_admin(settings)

    store = store or GuardStore.from_settings(settings)
    sweeper = StoreSweeper(store, interval=settings.sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            sweeper.stop()

    app = FastAPI(
        title="Marketplace Back-office",
        version="1.0.0",
        description=(
            "Administrative API for the services marketplace: bookings, providers, "
            "payments and disputes, behind an edge guard that rate-limits logins, "
            "locks out repeated failures and enforces CSRF tokens."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.guard_store = store
    app.state.guard_sweeper = sweeper

    # Data-route rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(BackofficeError, _backoffice_error_handler)
    app.add_exception_handler(SQLAlchemyError, _data_store_error_handler)

    # Last added runs outermost: CORS headers apply to guard rejections too.
    app.add_middleware(EdgeGuardMiddleware, store=store, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(routes_bookings.router)
    app.include_router(routes_providers.router)
    app.include_router(routes_transactions.router)
    app.include_router(routes_disputes.router)
    app.include_router(routes_admin.router)

    @app.get("/", tags=["meta"])
    def root() -> dict:
        return {"status": "ok", "service": "marketplace-backoffice", "version": "1.0.0"}

    @app.get("/health", tags=["meta"])
    def health() -> dict:
        return {"status": "healthy"}

    return app


app = create_app()
