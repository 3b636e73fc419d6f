from __future__ import annotations

from postflow.domain.models import ContentStatus, OutboxJobStatus, OutboxJobType


CONTENT_TRANSITIONS: dict[str, frozenset[str]] = {
    ContentStatus.DRAFT: frozenset({ContentStatus.PENDING_CLIENT, ContentStatus.ARCHIVED}),
    ContentStatus.PENDING_CLIENT: frozenset(
        {ContentStatus.CHANGES_REQUESTED, ContentStatus.APPROVED, ContentStatus.ARCHIVED}
    ),
    ContentStatus.CHANGES_REQUESTED: frozenset({ContentStatus.PENDING_CLIENT, ContentStatus.ARCHIVED}),
    ContentStatus.APPROVED: frozenset({ContentStatus.SCHEDULED, ContentStatus.ARCHIVED}),
    ContentStatus.SCHEDULED: frozenset({ContentStatus.PUBLISHED, ContentStatus.ARCHIVED}),
    ContentStatus.PUBLISHED: frozenset({ContentStatus.ARCHIVED}),
    ContentStatus.ARCHIVED: frozenset(),
}

INITIAL_CONTENT_STATUS = ContentStatus.DRAFT
TERMINAL_CONTENT_STATUSES: frozenset[str] = frozenset({ContentStatus.ARCHIVED})


# Queue backoff puts a processing row back to queued; failed rows only leave
# through explicit retry, which also accepts queued/processing rows.
JOB_TRANSITIONS: dict[str, frozenset[str]] = {
    OutboxJobStatus.QUEUED: frozenset({OutboxJobStatus.PROCESSING, OutboxJobStatus.QUEUED}),
    OutboxJobStatus.PROCESSING: frozenset(
        {OutboxJobStatus.COMPLETED, OutboxJobStatus.FAILED, OutboxJobStatus.QUEUED}
    ),
    OutboxJobStatus.FAILED: frozenset({OutboxJobStatus.QUEUED}),
    OutboxJobStatus.COMPLETED: frozenset(),
}

RETRYABLE_JOB_STATUSES: frozenset[str] = frozenset(
    {OutboxJobStatus.FAILED, OutboxJobStatus.QUEUED, OutboxJobStatus.PROCESSING}
)

# One named queue per job type.
JOB_QUEUES: dict[str, str] = {
    OutboxJobType.PUBLISH: "publish",
    OutboxJobType.DELETE_REMOTE: "delete_remote",
    OutboxJobType.SYNC_COMMENTS: "sync_comments",
}


def can_transition(from_status: str, to_status: str) -> bool:
    # Unknown source states have no edges: fail closed.
    allowed = CONTENT_TRANSITIONS.get(from_status)
    if allowed is None:
        return False
    return to_status in allowed


def can_transition_job(from_status: str, to_status: str) -> bool:
    allowed = JOB_TRANSITIONS.get(from_status)
    if allowed is None:
        return False
    return to_status in allowed


def job_failure_sources(*, requeue: bool) -> tuple[str, ...]:
    """Rows a worker failure may touch: requeues also cover reclaimed rows never marked processing."""
    if requeue:
        return (OutboxJobStatus.PROCESSING, OutboxJobStatus.QUEUED)
    return (OutboxJobStatus.PROCESSING,)


def queue_for_job_type(job_type: str) -> str:
    queue = JOB_QUEUES.get(job_type)
    if queue is None:
        raise ValueError(f"unsupported job type: {job_type}")
    return queue
