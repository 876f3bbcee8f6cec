"""Domain exceptions raised by the stackit core.

Every public operation raises one of these (or lets it propagate) so that the
calling API layer can map them to responses without inspecting messages.
"""


class StackitError(Exception):
    """Base exception for all domain errors."""

    pass


class NotFoundError(StackitError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, key):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} '{key}' not found")


class ConflictError(StackitError):
    """Raised on a uniqueness violation or when a concurrent-modification
    retry budget is exhausted."""

    def __init__(self, message: str, cause: Exception = None):
        self.cause = cause
        super().__init__(message)


class ForbiddenError(StackitError):
    """Raised when the acting profile may not perform the transition."""

    def __init__(self, action: str, profile_id=None, reason: str = None):
        self.action = action
        self.profile_id = profile_id
        message = f"Profile '{profile_id}' may not {action}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ValidationError(StackitError):
    """Raised for malformed input (empty title, unknown vote direction, ...)."""

    def __init__(self, message: str, errors: list = None):
        self.errors = errors or []
        super().__init__(message)


__all__ = [
    "StackitError",
    "NotFoundError",
    "ConflictError",
    "ForbiddenError",
    "ValidationError",
]
