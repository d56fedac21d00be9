"""
Text Entry Exceptions

Business errors raised by the text entry service. These always reach the
caller; none of them is ever cached.
"""

from typing import Any, Dict, Optional


class TextEntryException(Exception):
    """Base exception for text entry operations."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or "TEXT_ENTRY_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class TextEntryNotFoundException(TextEntryException):
    """Raised when no entry exists for an id."""

    def __init__(self, entry_id: int):
        super().__init__(
            message=f"TextEntry not found with id: {entry_id}",
            error_code="TEXT_ENTRY_NOT_FOUND",
            details={"entry_id": entry_id},
        )
        self.entry_id = entry_id


class UserNotFoundException(TextEntryException):
    """Raised when a referenced user does not exist."""

    def __init__(self, email: str):
        super().__init__(
            message=f"User not found with email: {email}",
            error_code="USER_NOT_FOUND",
            details={"email": email},
        )
        self.email = email


class AccessDeniedException(TextEntryException):
    """Raised when the acting user may not perform an operation."""

    def __init__(self, message: str = "Access denied", action: Optional[str] = None):
        details = {}
        if action:
            details["action"] = action
        super().__init__(message=message, error_code="ACCESS_DENIED", details=details)


class ValidationException(TextEntryException, ValueError):
    """Raised for invalid input before any cache key or query is built."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(
            message=message, error_code="VALIDATION_ERROR", details=details
        )
        self.field = field
