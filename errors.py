"""Domain exceptions for the storefront API.

Every exception carries the HTTP status it maps to; the exception handler in
main.py turns them into ``{"success": false, "message": ...}`` responses.
"""


class StoreError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(StoreError):
    """Raised when request input is well-formed JSON but semantically invalid."""

    status_code = 400


class UnauthorizedError(StoreError):
    """Raised for bad credentials or a missing/invalid/expired token."""

    status_code = 401

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class ForbiddenError(StoreError):
    """Raised when the caller is authenticated but lacks the capability."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    status_code = 409


class InsufficientStockError(StoreError):
    """Raised when a product cannot cover the requested quantity."""

    status_code = 400

    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Insufficient stock for {product_name}")


class UpstreamServiceError(StoreError):
    """Raised when the generative-text provider is unavailable or fails."""

    status_code = 502
