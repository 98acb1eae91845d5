"""Middleware for request processing, error handling, and rate limiting."""
import time
import logging
import uuid
from typing import Callable, Iterable, Optional
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from app.config.settings import settings
from app.core.exceptions import RateLimitExceeded
from app.services.guards.rate_limiter import IP_NAMESPACE, RateLimiter

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure each request has a correlation ID.
    Adds/propagates `X-Request-ID` header and stores it in request.state.request_id.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = str(uuid.uuid4())

        # Attach to state for downstream usage
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for handling unhandled exceptions."""
    
    def __init__(self, app: ASGIApp):
        super().__init__(app)
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            request_id = getattr(request.state, "request_id", None)
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: {exc}",
                exc_info=True,
                extra={"request_id": request_id},
            )
            return JSONResponse(
                status_code=500,
                content={
                    "detail": "Internal server error",
                    "code": "internal_error",
                }
            )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all requests."""
    
    def __init__(self, app: ASGIApp):
        super().__init__(app)
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        
        # Log request
        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )
        
        response = await call_next(request)
        
        # Log response
        process_time = time.time() - start_time
        logger.info(
            f"Response: {response.status_code} {request.method} {request.url.path} "
            f"took {process_time:.3f}s",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "duration": round(process_time * 1000, 2),
            },
        )
        
        # Add timing header
        response.headers["X-Process-Time"] = str(process_time)
        
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on write requests to the configured path prefixes."""

    WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

    def __init__(
        self,
        app: ASGIApp,
        limiter: Optional[RateLimiter] = None,
        limit_per_minute: Optional[int] = None,
        paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.limit_per_minute = limit_per_minute or settings.IP_RATE_LIMIT_PER_MINUTE
        self.paths = tuple(paths if paths is not None else settings.RATE_LIMITED_PATHS)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.limiter or not self._is_limited_route(request):
            return await call_next(request)

        client_id = self._get_client_id(request)
        decision = await run_in_threadpool(self.limiter.check, client_id, self.limit_per_minute, IP_NAMESPACE)
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests. Please slow down.",
                    "code": RateLimitExceeded.code,
                    "retry_after": decision.retry_after,
                },
                headers={"Retry-After": str(decision.retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    def _is_limited_route(self, request: Request) -> bool:
        if request.method not in self.WRITE_METHODS:
            return False
        return any(request.url.path.startswith(prefix) for prefix in self.paths)

    def _get_client_id(self, request: Request) -> str:
        """Get the caller's address, honouring the first hop of X-Forwarded-For."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware for adding security headers."""
    
    def __init__(self, app: ASGIApp):
        super().__init__(app)
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        
        # Add security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        if settings.ENVIRONMENT.lower() == "production":
            response.headers["X-Frame-Options"] = "DENY"
        else:
            response.headers["Content-Security-Policy"] = (
                "frame-ancestors 'self' http://localhost:* http://127.0.0.1:*"
            )
        
        return response

