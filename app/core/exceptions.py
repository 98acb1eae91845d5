"""Application error types rendered as `{"detail", "code"}` responses."""
from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class UnauthorizedError(AppError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class InvalidStateTransition(ConflictError):
    """An order is not in the exact predecessor state for the requested move."""

    status_code = 400
    code = "invalid_state_transition"

    def __init__(self, detail: str = "", order_id: Optional[str] = None,
                 current_status: Optional[str] = None):
        super().__init__(detail)
        self.order_id = order_id
        self.current_status = current_status


class RequestInProgressError(ConflictError):
    """Another request holding the same idempotency key has not finished yet."""

    code = "request_in_progress"

    def __init__(self, detail: str = "Request is already in progress, retry shortly",
                 retry_after: int = 2):
        super().__init__(detail)
        self.retry_after = retry_after


class RateLimitExceeded(AppError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, detail: str = "Too many requests", retry_after: int = 60):
        super().__init__(detail)
        self.retry_after = retry_after


class InternalError(AppError):
    status_code = 500
    code = "internal_error"
