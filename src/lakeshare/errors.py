"""⚠️ Errors - Exception hierarchy and collaborator error kinds."""

from __future__ import annotations

# Error kinds reported by external collaborators
ALREADY_EXISTS = "AlreadyExists"
ENTITY_NOT_FOUND = "EntityNotFound"
ACCESS_DENIED = "AccessDenied"
TASK_FAILED = "States.TaskFailed"

# botocore error codes → collaborator error kinds
AWS_ERROR_KINDS = {
    "AlreadyExistsException": ALREADY_EXISTS,
    "EntityNotFoundException": ENTITY_NOT_FOUND,
    "ResourceNotFoundException": ENTITY_NOT_FOUND,
    "AccessDeniedException": ACCESS_DENIED,
}


class LakeshareError(Exception):
    """Base class for all lakeshare errors."""


class ConfigError(LakeshareError):
    """Invalid or incomplete configuration."""


class DefinitionError(LakeshareError):
    """A state machine definition is malformed."""


class ServiceError(LakeshareError):
    """A collaborator call failed with a named error kind.

    Example:
        raise ServiceError(ALREADY_EXISTS, "Database sales already exists", "create_database")
    """

    def __init__(self, kind: str, message: str = "", operation: str | None = None):
        self.kind = kind
        self.message = message or kind
        self.operation = operation
        super().__init__(f"{kind}: {self.message}")

    @property
    def already_exists(self) -> bool:
        return self.kind == ALREADY_EXISTS


class ExecutionFailed(LakeshareError):
    """Raised by Execution.raise_for_status() for a failed execution."""

    def __init__(self, workflow: str, execution_id: str, error: str, cause: str):
        self.workflow = workflow
        self.execution_id = execution_id
        self.error = error
        self.cause = cause
        super().__init__(f"{workflow} execution {execution_id} failed: {error} ({cause})")
