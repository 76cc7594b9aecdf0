"""
Domain Exceptions

Services raise these; the API layer turns them into flat JSON error bodies
with the matching HTTP status code.

Usage:
    from bill_generator.core.exceptions import NotFound, ValidationError

    raise NotFound("Menu not found")
    raise ValidationError("Size 'Medium' not available for item 'Cola'")
"""

from typing import Any, Optional


class BillGeneratorError(Exception):
    """
    Base class for all errors surfaced to API clients.

    Attributes:
        status_code: HTTP status the error maps to
        message: Client-safe description
        detail: Optional structured context (validation errors, etc.)
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, detail: Any = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON error body."""
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationError(BillGeneratorError):
    """Malformed or missing input."""
    status_code = 400
    default_message = "Validation error"


class Unauthorized(BillGeneratorError):
    """Missing, invalid or expired session, or bad credentials."""
    status_code = 401
    default_message = "Unauthorized"


class SubscriptionExpired(BillGeneratorError):
    """The restaurant's plan window has ended. Distinct from bad credentials."""
    status_code = 403
    default_message = "Trial period has ended. Please upgrade your subscription."


class NotFound(BillGeneratorError):
    """Referenced restaurant, menu, category, item or order is absent."""
    status_code = 404
    default_message = "Resource not found"


class Conflict(BillGeneratorError):
    """The menu changed underneath a read-modify-write."""
    status_code = 409
    default_message = "Menu was modified concurrently, reload and retry"


class InternalError(BillGeneratorError):
    status_code = 500
