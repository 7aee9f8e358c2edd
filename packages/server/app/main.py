"""
Tenantgate API Server

Entry point for the FastAPI application.
"""

from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import router as api_v1_router
from app.core.auth import JwtTokenVerifier
from app.core.config import Settings, get_settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.errors import ServiceError, StorageUnavailable
from app.core.logging import configure_logging
from app.core.middleware import RequestLogMiddleware
from app.core.storage import SqlStorage
from app.models.base import tables as bound_tables
from app.services.tiers import DEFAULT_TIERS, load_tier_catalog, seed_tiers
from tenantgate_shared.schemas.common import ErrorBody, ErrorResponse

log = structlog.get_logger()


def _error_response(exc: ServiceError) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            code=exc.code,
            message=exc.message,
            status=exc.status_code,
            context=exc.context or None,
        )
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


async def startup(app: FastAPI) -> None:
    """Create tables (when enabled) and seed the tier catalogue."""
    settings: Settings = app.state.settings
    if settings.auto_create_tables:
        await init_db(app.state.engine)
    catalog = load_tier_catalog(settings.tiers_file) if settings.tiers_file else DEFAULT_TIERS
    await seed_tiers(app.state.storage, catalog)


def create_app(
    settings: Optional[Settings] = None,
    verifier: Optional[JwtTokenVerifier] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    if settings.tables != bound_tables:
        raise ValueError(
            "Table names are fixed when the models are imported; "
            "configure them through TG_TABLES__* environment variables"
        )
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Tenantgate",
        description="Organization membership, authorization and tier enforcement.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    engine = create_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.storage = SqlStorage(create_session_factory(engine))
    app.state.token_verifier = verifier or JwtTokenVerifier(settings)

    # Middleware (order matters: outermost first)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        log.warning(
            "request.failed",
            code=exc.code,
            status=exc.status_code,
            path=request.url.path,
            context=exc.context,
        )
        return _error_response(exc)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint: storage must answer."""
        try:
            await app.state.storage.ping()
        except StorageUnavailable as exc:
            return _error_response(exc)
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("Tenantgate starting", database=engine.url.render_as_string(hide_password=True))
        await startup(app)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Tenantgate shutting down")
        await engine.dispose()

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
