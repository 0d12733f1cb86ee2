"""
Service-wide exception hierarchy.

Every service raises one of these typed outcomes; the app factory registers
a single handler per type so the HTTP status mapping lives in one place:

    AuthenticationError    → 401
    PermissionDeniedError  → 403
    NotFoundError          → 404
    ValidationError        → 400
    ConflictError          → 409
    anything else          → 500 (cause logged, never returned)

Usage:
    from ppmp.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Plan", resource_id=42)
    raise ValidationError("End date must be after start date", details={"end_date": "..."})
"""


class AuthenticationError(Exception):
    """Raised when the caller has no valid session (missing/expired token)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised when the actor's role, department or ownership forbids an action.

    Args:
        action: The action that was attempted (e.g. "edit", "approve").
        reason: Human-readable explanation returned to the caller.
    """

    def __init__(self, action: str, reason: str | None = None) -> None:
        self.action = action
        self.reason = reason
        msg = reason or f"Insufficient permissions to {action}"
        super().__init__(msg)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND children that belong to a
    different parent. A child of another plan is indistinguishable from a
    missing row so that parent data is never leaked.

    Args:
        resource: Human-readable model/entity name (e.g. "Plan", "LineItem").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Covers missing fields, bad enum values, negative amounts, bad date
    order and unmet state-transition guards ("no items", "wrong status").

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if value is None:
            msg = f"{resource} with the same {field} already exists"
        else:
            msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
