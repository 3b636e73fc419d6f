from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from postflow.domain.models import (
    AuditEntrySnapshot,
    ChannelBindingSnapshot,
    CommentSnapshot,
    ContentEditCommand,
    ContentSnapshot,
    InboxItemDraft,
    InboxItemSnapshot,
    JobClaim,
    OutboxJobDraft,
    OutboxJobListQuery,
    OutboxJobSnapshot,
    ReclaimedMessage,
    RemotePost,
    TenantSnapshot,
    TransitionCommand,
    TransitionRecord,
)
from postflow.domain.retry_policy import RetryPolicy


CLAIM_SQL_CONTRACT = "SELECT ... FOR UPDATE SKIP LOCKED"
INBOX_UPSERT_SQL_CONTRACT = "INSERT ... ON CONFLICT (space_id, entity_key) DO UPDATE"


@runtime_checkable
class ContentRepository(Protocol):
    """Persistence contract for tenants, content and their collaborators.

    apply_transition must commit the status change, its audit row, any
    write-ahead outbox rows and an optional comment as one unit, re-checking
    the current status (optimistic) before writing.
    """

    async def create_tenant(self, *, name: str, modules: Sequence[str] = ()) -> TenantSnapshot: ...

    async def get_tenant(self, *, tenant_id: str) -> TenantSnapshot | None: ...

    async def set_tenant_modules(self, *, tenant_id: str, modules: Sequence[str]) -> TenantSnapshot | None: ...

    async def has_module(self, *, space_id: str, module: str) -> bool: ...

    async def create_content(
        self,
        *,
        tenant_id: str,
        title: str,
        body: str,
        created_by: str,
    ) -> ContentSnapshot: ...

    async def get_content(self, *, content_id: str) -> ContentSnapshot | None: ...

    async def list_contents(self, *, tenant_id: str) -> list[ContentSnapshot]: ...

    async def apply_transition(self, cmd: TransitionCommand) -> TransitionRecord: ...

    # Same optimistic status check as apply_transition; the audit row commits with the edit.
    async def update_content(self, cmd: ContentEditCommand) -> ContentSnapshot: ...

    async def get_channel_binding(self, *, binding_id: str) -> ChannelBindingSnapshot | None: ...

    async def find_channel_binding(self, *, content_id: str, network: str) -> ChannelBindingSnapshot | None: ...

    async def get_or_create_channel_binding(
        self,
        *,
        content_id: str,
        network: str,
        idempotency_key: str,
    ) -> ChannelBindingSnapshot: ...

    async def list_channel_bindings(self, *, content_id: str) -> list[ChannelBindingSnapshot]: ...

    async def record_publish_success(
        self,
        *,
        binding_id: str,
        idempotency_key: str,
        remote_id: str,
        remote_url: str,
    ) -> ChannelBindingSnapshot | None: ...

    async def record_binding_error(self, *, binding_id: str, error: str) -> None: ...

    async def clear_binding_remote(self, *, binding_id: str) -> ChannelBindingSnapshot | None: ...

    async def list_comments(self, *, content_id: str) -> list[CommentSnapshot]: ...

    async def append_audit(
        self,
        *,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, object],
    ) -> None: ...

    async def list_audit_entries(self, *, tenant_id: str, entity_id: str | None = None) -> list[AuditEntrySnapshot]: ...

    # Single atomic upsert keyed by (space_id, entity_key): update in place
    # while the existing item is not done, otherwise (re)create it.
    async def upsert_inbox_item(self, draft: InboxItemDraft) -> InboxItemSnapshot: ...

    async def list_inbox_items(self, *, space_id: str, exclude_done: bool = False) -> list[InboxItemSnapshot]: ...

    async def get_inbox_item(self, *, item_id: str) -> InboxItemSnapshot | None: ...

    async def set_inbox_status(self, *, item_id: str, status: str) -> InboxItemSnapshot | None: ...


@runtime_checkable
class OutboxStore(Protocol):
    """Durable mirror of side-effecting jobs, the source of truth for operators."""

    async def create_outbox_job(self, draft: OutboxJobDraft) -> OutboxJobSnapshot: ...

    async def get_outbox_job(self, *, job_id: str) -> OutboxJobSnapshot | None: ...

    async def list_outbox_jobs(self, *, query: OutboxJobListQuery) -> list[OutboxJobSnapshot]: ...

    async def mark_outbox_submitted(self, *, job_id: str) -> None: ...

    # queued -> processing; False when the row is not queued anymore.
    async def start_outbox_job(self, *, job_id: str) -> bool: ...

    async def complete_outbox_job(self, *, job_id: str) -> None: ...

    # processing -> queued (requeue=True) or failed; attempts + 1 either way.
    async def fail_outbox_job(self, *, job_id: str, last_error: str, requeue: bool) -> None: ...

    # Any non-completed row -> queued, attempts + 1, error cleared, audited.
    async def reset_outbox_job_for_retry(self, *, job_id: str, actor_user_id: str) -> OutboxJobSnapshot: ...


@runtime_checkable
class JobQueue(Protocol):
    """Named work queues with per-message retry policy and claim leases.

    Claim semantics must remain compatible with Postgres row claims using
    SELECT ... FOR UPDATE SKIP LOCKED.
    """

    async def submit(
        self,
        *,
        queue: str,
        outbox_job_id: str,
        payload: dict[str, object],
        policy: RetryPolicy,
    ) -> str: ...

    async def claim_next(self, *, queue: str, worker_id: str, lease_seconds: int = 30) -> JobClaim | None: ...

    async def heartbeat(self, *, message_id: str, worker_id: str, lease_seconds: int = 30) -> bool: ...

    async def ack(self, *, message_id: str, worker_id: str) -> None: ...

    # Returns True when the message was scheduled for redelivery with backoff.
    async def nack(self, *, message_id: str, worker_id: str, retry: bool) -> bool: ...

    async def reclaim_expired(self, *, queue: str) -> list[ReclaimedMessage]: ...


@runtime_checkable
class PublishingClient(Protocol):
    def publish(
        self,
        *,
        network: str,
        binding_id: str,
        content_id: str,
        title: str,
        body: str,
        idempotency_key: str,
    ) -> RemotePost: ...

    def delete(self, *, network: str, remote_id: str) -> None: ...
