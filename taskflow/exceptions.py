"""Domain exceptions and their HTTP mapping."""

from fastapi import HTTPException, status


class TaskflowError(Exception):
    """Base exception for TaskFlow service errors."""

    def __init__(self, message: str, error_type: str = "taskflow_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class UnauthorizedError(TaskflowError):
    """Raised when no authenticated user is attached to the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "unauthorized")


class ForbiddenError(TaskflowError):
    """Raised when the user lacks the role or ownership for an action."""

    def __init__(self, user_id: int, action: str):
        super().__init__(
            f"User {user_id} is not allowed to {action}",
            "forbidden",
        )
        self.user_id = user_id
        self.action = action


class NotFoundError(TaskflowError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, identifier: int | str):
        super().__init__(
            f"{entity.capitalize()} '{identifier}' not found",
            "not_found",
        )
        self.entity = entity
        self.identifier = identifier


class ValidationError(TaskflowError):
    """Raised on malformed input (empty title, unknown enum value, ...)."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid {field}: {message}", "validation_error")
        self.field = field


class ConflictError(TaskflowError):
    """Raised when a write collides with an existing unique value."""

    def __init__(self, entity: str, field: str, value: str):
        super().__init__(
            f"{entity.capitalize()} with {field} '{value}' already exists",
            "conflict",
        )
        self.entity = entity
        self.field = field


class PersistenceError(TaskflowError):
    """Raised when the store is unavailable or a write fails."""

    def __init__(self, operation: str, detail: str | None = None):
        message = f"Persistence failure during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, "persistence_error")
        self.operation = operation


_STATUS_MAP = {
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "persistence_error": status.HTTP_503_SERVICE_UNAVAILABLE,
    "taskflow_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_http_exception(error: TaskflowError) -> None:
    """Convert TaskflowError to HTTPException."""
    status_code = _STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail = error.message
    # Store failures surface generically.
    if error.error_type == "persistence_error":
        detail = "The operation could not be saved, please retry"

    headers = {"WWW-Authenticate": "Bearer"} if error.error_type == "unauthorized" else None
    raise HTTPException(
        status_code=status_code,
        detail={
            "type": error.error_type,
            "title": error.error_type.replace("_", " ").title(),
            "status": status_code,
            "detail": detail,
        },
        headers=headers,
    )
