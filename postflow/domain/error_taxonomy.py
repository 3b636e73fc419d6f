from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary for worker-side failures.
ErrorCode = Literal[
    "payload_invalid",
    "content_missing",
    "binding_missing",
    "remote_transport_failed",
    "lease_expired",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

# Allowed prefixes of persisted outbox last_error text.
CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "payload_invalid",
    "content_missing",
    "binding_missing",
    "remote_transport_failed",
    "lease_expired",
    "internal_error",
)

# Errors that the queue may redeliver within the job retry policy.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        "remote_transport_failed",
        "lease_expired",
        "internal_error",
    }
)

# Job-type allowlist. If a handler emits a code outside this map,
# it is normalized to internal_error by resolve_job_error().
JOB_ERROR_MAP: Mapping[str, frozenset[ErrorCode]] = {
    "publish": frozenset(
        {
            "payload_invalid",
            "content_missing",
            "binding_missing",
            "remote_transport_failed",
            "lease_expired",
            "internal_error",
        }
    ),
    "delete_remote": frozenset(
        {
            "payload_invalid",
            "binding_missing",
            "remote_transport_failed",
            "lease_expired",
            "internal_error",
        }
    ),
    "sync_comments": frozenset(
        {
            "payload_invalid",
            "remote_transport_failed",
            "lease_expired",
            "internal_error",
        }
    ),
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def resolve_job_error(*, job_type: str, code: str) -> ErrorCode:
    allowed = JOB_ERROR_MAP.get(job_type, frozenset({"internal_error"}))
    if code in allowed and is_canonical_error_code(code):
        return code
    # Keep persisted last_error stable even if a handler emitted an unknown code.
    return "internal_error"


def format_last_error(*, code: ErrorCode, detail: str) -> str:
    detail = detail.strip()
    if not detail:
        return code
    return f"{code}: {detail}"
