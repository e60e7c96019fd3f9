"""
HEARDROP Backend — Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    HeardropError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── AccountLockedError       → 423 Locked
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── UpstreamServiceError     → 503 Service Unavailable (retry later)
    └── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
"""

from typing import Any, Dict, Optional


class HeardropError(Exception):
    """
    Base exception for all HEARDROP application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(HeardropError):
    """
    Raised when client input fails a business rule.

    HTTP: 400. Schema-level problems are still reported by FastAPI as 422;
    this covers rules Pydantic cannot express (unknown brand ids, CSV rows,
    file contents, too many style tags).
    """

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


class AuthenticationError(HeardropError):
    """Missing, invalid or expired credentials. HTTP: 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(HeardropError):
    """
    The caller is authenticated but lacks the required role or ownership.

    HTTP: 403
    """

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(HeardropError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that
    into this exception so routes stay free of HTTP concerns.
    """

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


class ConflictError(HeardropError):
    """Unique constraint would be violated (duplicate email, slug...). HTTP: 409."""

    def __init__(
        self,
        message: str = "Resource already exists",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AccountLockedError(HeardropError):
    """
    Login refused because the account or the source IP is locked out.

    HTTP: 423, with Retry-After set to the remaining lock time.
    """

    def __init__(
        self,
        message: str,
        retry_after: int,
        scope: str = "account",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        ctx["scope"] = scope
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
        self.scope = scope


class FileStorageError(HeardropError):
    """
    Raised when file system operations fail.

    HTTP: 500. Paths and OS errors stay in the context and are only logged.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamServiceError(HeardropError):
    """
    Raised when an external provider (Mapbox, Pwned Passwords, Gemini)
    fails after all retries.

    HTTP: 503. 503 tells the client to retry later; the fault is upstream,
    not in our gateway.
    """

    def __init__(
        self,
        message: str = "An external service is temporarily unavailable",
        service: Optional[str] = None,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if service:
            ctx["service"] = service
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.service = service
        self.retry_after = retry_after


class CircuitBreakerOpenError(HeardropError):
    """
    Raised when a provider's circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery timeout)
        → After the timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED; if it fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        service: str = "external service",
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The {service} is temporarily unavailable due to repeated failures. "
            f"It will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
        self.service = service


class DatabaseError(HeardropError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the query and
    constraint details are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(HeardropError):
    """
    Raised when a client exceeds a per-IP request limit.

    HTTP: 429, with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = message or (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
