from __future__ import annotations


class DomainError(Exception):
    code = "DOMAIN_ERROR"


class DomainValidationError(DomainError):
    code = "VALIDATION_ERROR"


class DomainInvariantError(DomainError):
    code = "INVARIANT_VIOLATION"


class NotFoundError(DomainError):
    code = "NOT_FOUND"


class ForbiddenError(DomainError):
    code = "FORBIDDEN"


class ModuleDisabledError(DomainError):
    code = "MODULE_DISABLED"

    def __init__(self, *, space_id: str, module: str) -> None:
        super().__init__(f"module '{module}' is disabled for space {space_id}")
        self.space_id = space_id
        self.module = module


class InvalidTransitionError(DomainError):
    code = "INVALID_TRANSITION"

    def __init__(self, *, current: str, requested: str, reason: str | None = None) -> None:
        message = f"cannot move from '{current}' to '{requested}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.requested = requested
        self.reason = reason
