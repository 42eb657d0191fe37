"""
Error types for ModelForge.

Every failure the core can report maps to one of these exceptions:
- ModelForgeError: Base exception
- ValidationError: Malformed model definition or record payload
- UnknownFieldError: Payload names a field the model does not define
- TableConflictError: Two model names bound to the same table
- UniqueConstraintError: Write would duplicate a unique column value
- UnknownFieldTypeError: Field type outside the closed enumeration
- PermissionDeniedError: Role lacks the requested action
- NotFoundError: Model name or record id absent
- StorageError / StorageTimeoutError: Table Store failed or timed out
- PartialPublishError: Definition persisted but not registered
- IdentityError: Request arrived without a usable role claim

Invariants:
    - All errors inherit from ModelForgeError
    - Each error carries a stable `code` for programmatic handling
    - Nothing in the core retries; callers decide
"""

from __future__ import annotations

from typing import Any, Optional


class ModelForgeError(Exception):
    """Base exception for all ModelForge errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "MODELFORGE_ERROR"
        self.details = details or {}


class ValidationError(ModelForgeError):
    """Model definition or record payload failed validation.

    Raised when:
    - A definition has an empty name, no fields, duplicate field names
    - A permission matrix names an unknown role or action
    - A required record field is missing or a value does not coerce
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[list[str]] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class UnknownFieldError(ValidationError):
    """Unknown field in a record payload.

    Includes suggestions for similar field names.
    """

    def __init__(
        self,
        field_name: str,
        model_name: str,
        suggestions: Optional[list[str]] = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' in model '{model_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"
        super().__init__(msg, field_name=field_name, errors=[msg], code="UNKNOWN_FIELD")
        self.details.update({"model": model_name, "suggestions": suggestions})
        self.model_name = model_name
        self.suggestions = suggestions


class TableConflictError(ValidationError):
    """A definition's table is already bound to a different model."""

    def __init__(self, model_name: str, table_name: str, owner: str) -> None:
        msg = (
            f"Table '{table_name}' for model '{model_name}' "
            f"is already bound to model '{owner}'"
        )
        super().__init__(msg, errors=[msg], code="TABLE_CONFLICT")
        self.details.update({"model": model_name, "table": table_name, "owner": owner})
        self.model_name = model_name
        self.table_name = table_name
        self.owner = owner


class UniqueConstraintError(ValidationError):
    """A write would duplicate a value in a unique column."""

    def __init__(self, table_name: str, column: Optional[str] = None) -> None:
        target = f"{table_name}.{column}" if column else table_name
        msg = f"Duplicate value for unique field {target}"
        super().__init__(msg, field_name=column, errors=[msg], code="UNIQUE_VIOLATION")
        self.details["table"] = table_name
        self.table_name = table_name


class UnknownFieldTypeError(ModelForgeError):
    """Field type is not part of the closed field-type enumeration."""

    def __init__(self, field_type: Any) -> None:
        super().__init__(
            f"Unknown field type: {field_type!r}",
            code="UNKNOWN_FIELD_TYPE",
            details={"field_type": str(field_type)},
        )
        self.field_type = field_type


class PermissionDeniedError(ModelForgeError):
    """Role lacks the action on a model.

    Raised before any storage access.
    """

    def __init__(self, role: str, action: str, model_name: str) -> None:
        super().__init__(
            f"Forbidden: Role '{role}' cannot perform '{action}' on {model_name}.",
            code="PERMISSION_DENIED",
            details={"role": role, "action": action, "model": model_name},
        )
        self.role = role
        self.action = action
        self.model_name = model_name


class NotFoundError(ModelForgeError):
    """Resource not found.

    Raised when:
    - No active model has the requested name
    - No record has the requested id
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class StorageError(ModelForgeError):
    """Table Store operation failed.

    A Create that fails here may or may not have committed; there is no
    idempotency token to tell the two apart.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        code: str = "STORAGE_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"operation": operation, "table": table},
        )
        self.operation = operation
        self.table = table


class StorageTimeoutError(StorageError):
    """Table Store operation exceeded its time bound."""

    def __init__(
        self,
        operation: str,
        table: Optional[str],
        timeout_seconds: float,
    ) -> None:
        super().__init__(
            f"Storage operation '{operation}' on {table or '<none>'} "
            f"timed out after {timeout_seconds}s",
            operation=operation,
            table=table,
            code="STORAGE_TIMEOUT",
        )
        self.details["timeout_seconds"] = timeout_seconds
        self.timeout_seconds = timeout_seconds


class PartialPublishError(ModelForgeError):
    """Definition was written to the File Store but registration failed.

    The on-disk definition and the live registry now disagree. Operators
    reconcile by republishing.
    """

    def __init__(self, model_name: str, path: str, cause: Exception) -> None:
        super().__init__(
            f"Model '{model_name}' was persisted to {path} but registration failed: {cause}",
            code="PARTIAL_PUBLISH",
            details={
                "model": model_name,
                "path": path,
                "cause": getattr(cause, "code", type(cause).__name__),
            },
        )
        self.model_name = model_name
        self.path = path
        self.cause = cause


class IdentityError(ModelForgeError):
    """Request carries no verified role claim."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="UNAUTHENTICATED")
