# uploadgate/main.py
import time
import uuid
from typing import Optional

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from uploadgate.core.errors import UploadError
from uploadgate.core.logging_config import logger, setup_logging
from uploadgate.core.rate_limit import build_limiter
from uploadgate.core.settings import Settings, get_settings
from uploadgate.infra.s3_client import S3ClientPool
from uploadgate.observability.metrics import router as metrics_router
from uploadgate.routers import multipart
from uploadgate.services.multipart import MultipartCoordinator
from uploadgate.services.session_store import SessionStore
from uploadgate.services.upload_fields import AuthorizationProvider, UploadFieldRegistry


def create_app(
    settings: Optional[Settings] = None,
    *,
    client_pool: Optional[S3ClientPool] = None,
    sessions: Optional[SessionStore] = None,
    auth_provider: Optional[AuthorizationProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()

    setup_logging(settings.log_level)
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, integrations=[FastApiIntegration()], environment=settings.app_env)

    app = FastAPI(title=settings.APP_NAME, version="0.1.0")

    # ----------------------------------------------------
    # Wiring (één client per disk, gedeeld door alle requests)
    # ----------------------------------------------------
    app.state.settings = settings
    app.state.upload_fields = UploadFieldRegistry(settings.UPLOAD_FIELDS, settings.STORAGE_DISKS, auth_provider)
    app.state.coordinator = MultipartCoordinator(
        client_pool or S3ClientPool(settings.STORAGE_DISKS),
        sessions or SessionStore(settings.SESSION_RETENTION_SECONDS),
        presign_expires=settings.PRESIGN_EXPIRES_SECONDS,
        max_part_number=settings.MAX_PART_NUMBER,
        verify_session_on_sign=settings.VERIFY_SESSION_ON_SIGN,
    )

    # ----------------------------------------------------
    # Health
    # ----------------------------------------------------
    @app.get("/health", include_in_schema=True)
    def health() -> dict:
        return {"status": "ok"}

    # ----------------------------------------------------
    # Logging middleware
    # ----------------------------------------------------
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        bound_logger = logger.bind(
            ip=request.client.host if request.client else "unknown",
            endpoint=str(request.url.path),
            method=request.method,
        )

        bound_logger.info("request_started")
        response = await call_next(request)
        latency_ms = round((time.time() - start) * 1000, 2)

        bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info("request_finished")
        response.headers["X-Request-ID"] = request_id
        return response

    # ----------------------------------------------------
    # Middleware
    # ----------------------------------------------------
    app.state.limiter = build_limiter(settings)
    app.add_middleware(SlowAPIMiddleware)

    # preflight: Uppy stuurt X-CSRF-TOKEN mee
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.exception_handler(RateLimitExceeded)
    def ratelimit_handler(request: Request, exc: RateLimitExceeded):
        return PlainTextResponse(str(exc), status_code=429)

    @app.exception_handler(UploadError)
    def upload_error_handler(request: Request, exc: UploadError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    # ----------------------------------------------------
    # Routers
    # ----------------------------------------------------
    app.include_router(multipart.router, prefix=settings.ROUTE_PREFIX.rstrip("/"))
    app.include_router(metrics_router)  # /metrics

    logger.info("startup", service=settings.APP_NAME, disks=sorted(settings.STORAGE_DISKS))
    return app


app = create_app()
