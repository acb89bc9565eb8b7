import datetime as dt
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from identity_service.api.rate_limit import limiter
from identity_service.api.routes_health import router as health_router
from identity_service.api.routes_oauth import router as oauth_router
from identity_service.api.routes_user import router as user_router
from identity_service.core.config import settings
from identity_service.core.context import set_request_id
from identity_service.core.errors import register_error_handlers
from identity_service.core.logger import init_logging
from identity_service.core.monitoring import init_monitoring
from identity_service.core.security import SessionTokenService
from identity_service.services.oauth import HandoffStore, build_providers
from identity_service.services.sync import create_sync_pipeline

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def _rate_limit_handler(request, exc: RateLimitExceeded):
    logger.warning("Rate limit exceeded | path=%s limit=%s", request.url.path, exc.detail)
    return JSONResponse(status_code=429, content={"detail": "Too many requests"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):  # type: ignore[override]
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):  # type: ignore[override]
        response = await call_next(request)
        response.headers.setdefault(
            "Strict-Transport-Security",
            f"max-age={settings.HSTS_SECONDS}; includeSubDomains; preload",
        )
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide components once; release them on shutdown."""
    app.state.oauth_providers = build_providers(settings)
    app.state.handoff_store = HandoffStore(
        ttl=dt.timedelta(seconds=settings.HANDOFF_TTL_SECONDS),
        sweep_interval=dt.timedelta(seconds=settings.HANDOFF_SWEEP_INTERVAL_SECONDS),
    )
    app.state.token_service = SessionTokenService()
    app.state.sync_pipeline = create_sync_pipeline(settings)
    app.state.sync_pipeline.start()
    logger.info(
        "%s started | env=%s providers=%s",
        settings.APP_NAME,
        settings.ENV,
        ",".join(sorted(app.state.oauth_providers)) or "none",
    )
    try:
        yield
    finally:
        await app.state.sync_pipeline.close()
        app.state.handoff_store.close()
        logger.info("%s stopped", settings.APP_NAME)


def create_app() -> FastAPI:
    init_logging()
    init_monitoring()

    is_production = settings.ENV == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    if is_production:
        app.add_middleware(HTTPSRedirectMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    # Outermost, so every layer below logs with the request's id
    app.add_middleware(RequestIdMiddleware)
    register_error_handlers(app)
    app.include_router(oauth_router)
    app.include_router(user_router, prefix="/users", tags=["users"])
    app.include_router(health_router)
    return app


app = create_app()
