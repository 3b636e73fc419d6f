from __future__ import annotations

from postflow.domain.errors import (
    DomainError,
    DomainInvariantError,
    DomainValidationError,
    ForbiddenError,
    InvalidTransitionError,
    ModuleDisabledError,
    NotFoundError,
)

COMPONENT_ID = "api.domain_error_mapping"

# Most specific first; DomainError subclasses do not overlap today.
HTTP_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ModuleDisabledError, 403),
    (InvalidTransitionError, 409),
    (DomainInvariantError, 409),
    (DomainValidationError, 400),
)


def http_status_for(exc: DomainError) -> int:
    for error_type, status_code in HTTP_STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_body(exc: DomainError) -> dict[str, str]:
    return {"code": exc.code, "detail": str(exc)}
