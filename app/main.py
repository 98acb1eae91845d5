"""Main FastAPI application."""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from app.api.v1.api import api_router
from app.config.database import get_engine, get_session_factory, init_db
from app.config.logging import get_logger, setup_logging
from app.config.settings import settings
from app.core.exceptions import AppError, RateLimitExceeded, RequestInProgressError
from app.core.middleware import (
    CorrelationIdMiddleware,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from app.services.guards.rate_limiter import RateLimiter

# Get logger
logger = get_logger(__name__)


def _error_headers(exc: AppError) -> Optional[dict]:
    if isinstance(exc, (RateLimitExceeded, RequestInProgressError)):
        return {"Retry-After": str(exc.retry_after)}
    return None


def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """
    Build the application.

    Tests pass their own session factory; otherwise the process-wide engine
    from ``DATABASE_URL`` is used and its tables are created on startup.
    """
    is_prod = settings.ENVIRONMENT.lower() == "production"
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=None if is_prod else f"{settings.API_V1_STR}/openapi.json",
        docs_url=None if is_prod else "/docs",
        redoc_url=None if is_prod else "/redoc",
    )
    owns_database = session_factory is None
    app.state.session_factory = session_factory or get_session_factory()

    # Add middleware in order (last added = first executed)
    # CORSMiddleware is added last so it executes first and handles preflight requests.
    app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(app.state.session_factory))
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=_error_headers(exc),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"detail": detail, "code": "validation_error"},
        )

    # Health check
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": settings.VERSION
        }

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        if owns_database:
            init_db(get_engine())

    return app


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT)
