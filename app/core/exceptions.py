"""
Application-wide exception hierarchy.

Services raise these types; ``create_app`` registers one handler per type
so every blueprint gets the same HTTP status codes without catching them
individually.

Usage:
    from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationError

    raise NotFoundError(resource="Customer", resource_id=42)
    raise AccessDeniedError(resource="Customer", resource_id=42, user_id=7)
    raise ValidationError("Priority must be between 1 and 5", details={"priority": 9})
"""


class NotFoundError(Exception):
    """Raised when a requested resource (or the acting user) does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Deal").
        resource_id: The PK that was looked up. Logged, not part of the message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class AccessDeniedError(Exception):
    """Raised when the acting user does not own the target entity.

    Maps to HTTP 403. The ownership check always runs after the existence
    check, so a 403 implies the entity exists.

    Args:
        resource: Model name of the entity that failed the check.
        resource_id: PK of that entity.
        user_id: The acting user. For logging only; not sent to the client.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        user_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.user_id = user_id
        super().__init__("Access denied")


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint); this
    exception signals that the data was well-formed but violated a business
    rule (e.g. priority out of range, unknown stage, deal of another customer).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (logged; not echoed to the client).
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with this {field} already exists"
        super().__init__(msg)
