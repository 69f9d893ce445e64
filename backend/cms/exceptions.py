"""
Cordova CMS Backend - Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for the resource CRUD layer.
How:   Each exception carries a user-safe message and an optional context
       dict. Global exception handlers (registered in main.py) catch these
       and return structured JSON error responses with the right status.
Who:   Raised by DAOs and controllers; caught by the global handlers.

Exception Hierarchy:
    CMSError (base)
    ├── ValidationError   → 400 Bad Request (malformed payload)
    ├── NotFoundError     → 404 Not Found
    ├── ConflictError     → 409 Conflict (identifier collision)
    └── StoreError        → 500 Internal Server Error (MongoDB fault)

NotFound is not raised by DAOs: a missing document is an ordinary outcome
(`None` / `False`) and the controller turns it into NotFoundError.
"""

from typing import Any, Dict, Optional


class CMSError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    # Machine-readable code used in the "error" field of the response body
    code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CMSError):
    """
    Raised when a request payload is structurally invalid.

    When:    Body is not a JSON object, POST body is empty, payload names the
             store-internal `_id`, or an identifier cannot be coerced.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Request body must be a JSON object",
            "details": {"field": "body"}
        }
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(CMSError):
    """
    Raised when a requested document does not exist.

    HTTP:    404 Not Found
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(CMSError):
    """
    Raised when a write would give two documents the same identifier.

    When:    POST with an identifier that already exists, or PUT renaming the
             identifier onto another document's value. Detected by the unique
             index on the identifier field, so concurrent writers race safely.
    HTTP:    409 Conflict
    """

    code = "conflict"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"A {resource} with the same identifier already exists"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' already exists"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class StoreError(CMSError):
    """
    Raised when MongoDB fails for reasons outside the taxonomy above.

    When:    Server selection timeout, network error, write concern failure.
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. The driver's own
    error text is kept in `context` and logged server-side only. This layer
    never retries; retrying is the driver's concern.
    """

    code = "store_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
