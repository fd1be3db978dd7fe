"""
Error kinds raised by the rental core.

Every failed operation surfaces exactly one of these. The request layer maps
them to status codes; nothing in here knows about HTTP.
"""

from typing import Optional


class RentalError(Exception):
    """Base class for all typed failures of the rental core."""

    default_message = "Error: rental operation failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class NotFoundError(RentalError):
    """Raised when a vehicle, booking or user cannot be found."""

    default_message = "Resource not found"


class NotAvailableError(RentalError):
    """Raised when the vehicle is already booked."""

    default_message = "Vehicle is not available for booking"


class InvalidRangeError(RentalError):
    """Raised when the rental end date is not after the start date."""

    default_message = "End date must be after start date"


class ForbiddenError(RentalError):
    """Raised when the access policy denies the operation."""

    default_message = "You do not have permission to perform this action"


class ConflictError(RentalError):
    """Raised on a unique constraint violation (email, registration number)."""

    default_message = "Resource already exists"


class DependencyExistsError(RentalError):
    """Raised when a delete is blocked by a referencing booking."""

    default_message = "Resource has dependent records"


class TransientError(RentalError):
    """Raised on lock timeouts and deadlocks. Safe for the caller to retry."""

    default_message = "The resource is busy, please retry"


class InternalError(RentalError):
    default_message = "Internal server error"
