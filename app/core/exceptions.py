# ============================================================================
# Custom Exceptions
# ============================================================================
from typing import Optional

class AppException(Exception):
    """Base exception for the learning platform API"""
    def __init__(
        self,
        detail: str,
        status_code: int = 400,
        error_code: Optional[str] = None
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code or "APP_ERROR"
        super().__init__(self.detail)

class ValidationError(AppException):
    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            status_code=400,
            error_code="VALIDATION_ERROR"
        )

class UnauthorizedError(AppException):
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            detail=detail,
            status_code=401,
            error_code="UNAUTHORIZED"
        )

class ForbiddenError(AppException):
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(
            detail=detail,
            status_code=403,
            error_code="FORBIDDEN"
        )

class NotFoundError(AppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            detail=detail,
            status_code=404,
            error_code="NOT_FOUND"
        )

class ConflictError(AppException):
    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            status_code=409,
            error_code="CONFLICT"
        )

class InternalError(AppException):
    def __init__(self, detail: str = "Internal Server Error"):
        super().__init__(
            detail=detail,
            status_code=500,
            error_code="INTERNAL_ERROR"
        )

class EmailDeliveryError(InternalError):
    def __init__(self, recipient: str):
        super().__init__(detail="Failed to send email")
        self.recipient = recipient

class RateLimitExceeded(AppException):
    def __init__(self, retry_after: int = 0):
        super().__init__(
            detail="Too many requests. Please try again later.",
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED"
        )
        self.retry_after = retry_after
