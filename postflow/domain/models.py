from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from postflow.domain.error_taxonomy import ErrorCode, RetryClassification


# Canonical content lifecycle states.
#
# IMPORTANT:
# - Keep this enum synchronized with postflow/domain/lifecycle.py
#   (CONTENT_TRANSITIONS).
# - Keep this enum synchronized with the DB status CHECK constraint in
#   db/migrations/000001_bootstrap.up.sql.
class ContentStatus(StrEnum):
    # Initial state.
    DRAFT = "draft"

    # Approval loop.
    PENDING_CLIENT = "pending_client"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"

    # Publishing.
    SCHEDULED = "scheduled"
    PUBLISHED = "published"

    # Terminal state.
    ARCHIVED = "archived"


class OutboxJobType(StrEnum):
    PUBLISH = "publish"
    DELETE_REMOTE = "delete_remote"
    SYNC_COMMENTS = "sync_comments"


class OutboxJobStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Role(StrEnum):
    AGENCY_ADMIN = "agency_admin"
    AGENCY_MANAGER = "agency_manager"
    AGENCY_PRODUCTION = "agency_production"
    CLIENT_ADMIN = "client_admin"
    CLIENT_USER = "client_user"


class AuthorRole(StrEnum):
    AGENCY = "agency"
    CLIENT = "client"


class InboxItemType(StrEnum):
    VALIDATION = "validation"
    SIGNAL = "signal"
    MESSAGE = "message"


class InboxStatus(StrEnum):
    UNREAD = "unread"
    OPEN = "open"
    DONE = "done"
    BLOCKED = "blocked"


AVAILABLE_SPACE_MODULES: tuple[str, ...] = (
    "messages",
    "social",
    "docs",
    "projects",
    "planning",
)


@dataclass(frozen=True)
class Actor:
    """Identity handed over by the session collaborator."""

    user_id: str
    role: str
    tenant_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TenantSnapshot:
    tenant_id: str
    name: str
    modules: tuple[str, ...]


@dataclass(frozen=True)
class ContentSnapshot:
    content_id: str
    tenant_id: str
    status: str
    title: str
    body: str
    scheduled_at: datetime | None = None
    updated_by: str | None = None
    archived_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ChannelBindingSnapshot:
    binding_id: str
    content_id: str
    network: str
    idempotency_key: str | None
    remote_id: str | None
    remote_url: str | None
    last_error: str | None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class OutboxJobSnapshot:
    job_id: str
    tenant_id: str
    job_type: str
    payload: dict[str, object]
    status: str
    attempts: int
    last_error: str | None
    submitted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CommentSnapshot:
    comment_id: str
    content_id: str
    body: str
    author_role: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class InboxItemSnapshot:
    item_id: str
    space_id: str
    entity_key: str
    item_type: str
    title: str
    description: str | None
    action_url: str
    actor_type: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class AuditEntrySnapshot:
    tenant_id: str
    action: str
    entity_type: str
    entity_id: str
    payload: dict[str, object]
    created_at: datetime | None = None


@dataclass(frozen=True)
class OutboxJobDraft:
    tenant_id: str
    job_type: OutboxJobType
    payload: dict[str, object]


@dataclass(frozen=True)
class CommentDraft:
    body: str
    author_role: AuthorRole


@dataclass(frozen=True)
class InboxItemDraft:
    space_id: str
    entity_key: str
    item_type: InboxItemType
    title: str
    action_url: str
    actor_type: AuthorRole
    description: str | None = None
    status: InboxStatus = InboxStatus.UNREAD


@dataclass(frozen=True)
class TransitionCommand:
    """One atomic status change: status, audit row and write-ahead rows."""

    content_id: str
    from_status: ContentStatus
    to_status: ContentStatus
    actor_user_id: str
    audit_action: str
    audit_payload: dict[str, object] = field(default_factory=dict)
    scheduled_at: datetime | None = None
    outbox_jobs: tuple[OutboxJobDraft, ...] = ()
    comment: CommentDraft | None = None


@dataclass(frozen=True)
class ContentEditCommand:
    """Field edit guarded by the status the caller read; None keeps a field."""

    content_id: str
    expected_status: ContentStatus
    actor_user_id: str
    title: str | None = None
    body: str | None = None
    audit_payload: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionRecord:
    content: ContentSnapshot
    outbox_jobs: tuple[OutboxJobSnapshot, ...] = ()
    comment: CommentSnapshot | None = None


@dataclass(frozen=True)
class OutboxJobListQuery:
    tenant_ids: tuple[str, ...] | None = None
    statuses: tuple[OutboxJobStatus, ...] | None = None
    job_types: tuple[OutboxJobType, ...] | None = None
    unsubmitted_only: bool = False
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class JobClaim:
    message_id: str
    queue: str
    outbox_job_id: str
    payload: dict[str, object]
    attempt: int
    max_attempts: int
    lease_expires_at: datetime | None = None

    @property
    def redelivery_left(self) -> bool:
        return self.attempt < self.max_attempts


@dataclass(frozen=True)
class ReclaimedMessage:
    outbox_job_id: str
    attempt: int
    redelivered: bool


@dataclass(frozen=True)
class ProcessResult:
    success: bool
    detail: str = ""
    error_code: ErrorCode | None = None
    retry_classification: RetryClassification | None = None


@dataclass(frozen=True)
class RemotePost:
    remote_id: str
    remote_url: str
