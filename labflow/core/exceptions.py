"""
Service-wide exception hierarchy.

Every service raises one of these types; ``labflow.utils.errors`` registers
a single handler per type so that HTTP status codes stay consistent
across blueprints.

    ValidationError        → 422  malformed / incomplete input, bad target status
    AuthenticationError    → 401  missing identity, e-signature re-auth failed
    ForbiddenError         → 403  role not permitted for this status / operation
    NotFoundError          → 404  unknown report, correction, template
    ConflictError          → 409  duplicate unique value
    VersionConflictError   → 409  stale expectedVersion (optimistic concurrency)

Usage:
    from labflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Report", resource_id=report_id)
    raise ValidationError("expectedVersion is required", details={"expectedVersion": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Report", "CorrectionItem").
        resource_id: The key that was looked up.
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
    """Raised when input fails validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the caller's role may not perform the operation.

    Args:
        message: Explanation naming the role and the report status.
        role: The caller's role, for logging.
        status: The report status the check ran against, if any.
    """

    def __init__(self, message: str, role: str | None = None, status: str | None = None) -> None:
        self.role = role
        self.status = status
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when the caller cannot be identified or re-authentication fails."""


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class VersionConflictError(ConflictError):
    """Raised when a compare-and-swap write finds a different version.

    The caller's snapshot is stale; it must reload and retry.

    Args:
        resource: Model name.
        resource_id: Primary key of the entity.
        expected_version: Version the caller believed was current.
        current_version: Version actually stored.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str,
        expected_version: int,
        current_version: int | None,
    ) -> None:
        self.resource = resource
        self.field = "version"
        self.value = expected_version
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.current_version = current_version
        Exception.__init__(
            self,
            f"{resource} id={resource_id} was modified concurrently "
            f"(expected version {expected_version}, current {current_version})",
        )


class WorkflowConfigurationError(Exception):
    """Raised at import time when a workflow table is incomplete or inconsistent."""
