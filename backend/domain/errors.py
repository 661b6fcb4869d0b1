"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. Each class carries a stable `code` used in the error envelope.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    code = "domain_error"

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class UnauthenticatedError(DomainError):
    """No credential supplied (401)."""
    code = "unauthenticated"

    def __init__(self, message: str = "Authentication required", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class InvalidCredentialError(DomainError):
    """Malformed, expired or badly signed credential (401)."""
    code = "invalid_credential"

    def __init__(self, message: str = "Invalid or expired credential", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ForbiddenError(DomainError):
    """Valid identity, insufficient privilege (403)."""
    code = "forbidden"

    def __init__(self, message: str = "Forbidden", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class NotFoundError(DomainError):
    """Resource not found (404)."""
    code = "not_found"

    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class RecoveryFailedError(DomainError):
    """Unknown email or wrong security answer on password reset (404)."""
    code = "invalid_email_or_answer"

    def __init__(self, message: str = "Invalid email or answer", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Validation error (400)."""
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InvalidStatusError(ValidationError):
    """Order status outside the enumerated values (400)."""
    code = "invalid_status"

    def __init__(self, value: str, details: dict | None = None):
        from domain.enums import OrderStatus

        super().__init__(
            f"Invalid Status: {value!r}",
            details={"allowed": OrderStatus.values(), **(details or {})},
        )


class PriceOrStockMismatchError(DomainError):
    """Cart disagrees with the catalog (409)."""
    code = "price_or_stock_mismatch"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class PriceMismatchError(PriceOrStockMismatchError):
    code = "price_mismatch"


class InsufficientStockError(PriceOrStockMismatchError):
    code = "insufficient_stock"


class GatewayError(DomainError):
    """Payment declined or payment gateway fault (402)."""
    code = "gateway_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_402_PAYMENT_REQUIRED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    code = "conflict"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class RateLimitError(DomainError):
    """Rate limit exceeded (429)."""
    code = "rate_limited"

    def __init__(self, message: str = "Rate limit exceeded", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, details=details)


class InternalError(DomainError):
    """Unexpected or defensive failure (500)."""
    code = "internal_error"

    def __init__(self, message: str = "Internal error", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)
