"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from authgate.api.routers import admin, oauth, two_factor
from authgate.api.routers import auth as auth_router
from authgate.core.config import Settings, get_settings
from authgate.core.errors import AuthGateError
from authgate.core.limiter import limiter
from authgate.core.logging import configure_logging, get_logger
from authgate.services.authority import Authority

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    authority: Authority = app.state.authority
    logger.info(
        "Starting AuthGate",
        debug=authority.settings.app_debug,
        providers=[meta.name for meta in authority.broker.configured_providers()],
    )

    yield

    await authority.aclose()
    logger.info("AuthGate stopped")


async def _auth_error_handler(request: Request, exc: AuthGateError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
        headers=headers,
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Unparseable bodies are reported like every other input error
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid input")
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "detail": f"{location}: {message}" if location else message,
        },
    )


def create_app(
    settings: Settings | None = None, authority: Authority | None = None
) -> FastAPI:
    settings = settings or (authority.settings if authority else get_settings())
    authority = authority or Authority.build(settings)

    app = FastAPI(
        title="AuthGate",
        description="Identity and session authority: local accounts, OAuth linking and TOTP",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.authority = authority
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthGateError, _auth_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    api_prefix = "/api/v1"
    app.include_router(auth_router.router, prefix=api_prefix)
    app.include_router(oauth.router, prefix=api_prefix)
    app.include_router(two_factor.router, prefix=api_prefix)
    app.include_router(admin.router, prefix=api_prefix)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
