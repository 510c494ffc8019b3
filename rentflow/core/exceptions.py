"""
Service-wide exception hierarchy.

Services raise these internally; public service functions catch them at
their boundary and convert them to the ``(None, error_dict)`` shape that
blueprints turn into JSON. Blueprints also register handlers against them
for the few read paths that let them propagate.

Usage:
    from rentflow.core.exceptions import NotFoundError, TransitionError

    raise NotFoundError(resource="Certification", resource_id=cert_id)
    raise TransitionError("certification", current, target)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "RoleChangeRequest").
        resource_id: The key that was looked up. Logged, never returned.
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
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown (field -> message).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class DuplicateRequestError(ConflictError):
    """An open role-change request already exists for (user_id, to_role)."""

    def __init__(self, user_id: str, to_role: str) -> None:
        self.user_id = user_id
        self.to_role = to_role
        super().__init__("RoleChangeRequest", "user_id,to_role", f"{user_id},{to_role}")


class TransitionError(Exception):
    """Raised when a status change is not listed in the entity's transition table.

    Maps to HTTP 409.
    """

    def __init__(self, entity: str, current, target) -> None:
        self.entity = entity
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        super().__init__(f"Invalid {entity} transition: {self.current} -> {self.target}")


class DocumentUploadError(Exception):
    """Raised by a document storage backend when a store or delete fails.

    Maps to HTTP 502. ``document_type`` names the failing document so the
    user-facing message can say which upload broke.
    """

    def __init__(self, document_type: str, detail: str = "") -> None:
        self.document_type = document_type
        self.detail = detail
        super().__init__(f"Upload of {document_type!r} failed: {detail}")


class PermissionDenied(Exception):
    """Raised when the caller may not act on the entity. Maps to HTTP 403."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)
