from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
import itertools

from postflow.domain.errors import DomainInvariantError, InvalidTransitionError, NotFoundError
from postflow.domain.ids import (
    new_binding_id,
    new_comment_id,
    new_content_id,
    new_inbox_item_id,
    new_message_id,
    new_outbox_job_id,
    new_tenant_id,
)
from postflow.domain.lifecycle import (
    INITIAL_CONTENT_STATUS,
    can_transition,
    can_transition_job,
    job_failure_sources,
)
from postflow.domain.models import (
    AuditEntrySnapshot,
    ChannelBindingSnapshot,
    CommentSnapshot,
    ContentEditCommand,
    ContentSnapshot,
    ContentStatus,
    InboxItemDraft,
    InboxItemSnapshot,
    InboxStatus,
    JobClaim,
    OutboxJobDraft,
    OutboxJobListQuery,
    OutboxJobSnapshot,
    OutboxJobStatus,
    ReclaimedMessage,
    TenantSnapshot,
    TransitionCommand,
    TransitionRecord,
)
from postflow.domain.retry_policy import RetryPolicy


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


_sequence = itertools.count(1)


@dataclass
class _TenantRow:
    tenant_id: str
    name: str
    modules: tuple[str, ...]


@dataclass
class _ContentRow:
    content_id: str
    tenant_id: str
    status: str
    title: str
    body: str
    scheduled_at: datetime | None = None
    updated_by: str | None = None
    archived_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def snapshot(self) -> ContentSnapshot:
        return ContentSnapshot(
            content_id=self.content_id,
            tenant_id=self.tenant_id,
            status=self.status,
            title=self.title,
            body=self.body,
            scheduled_at=self.scheduled_at,
            updated_by=self.updated_by,
            archived_at=self.archived_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class _BindingRow:
    binding_id: str
    content_id: str
    network: str
    idempotency_key: str | None = None
    remote_id: str | None = None
    remote_url: str | None = None
    last_error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def snapshot(self) -> ChannelBindingSnapshot:
        return ChannelBindingSnapshot(
            binding_id=self.binding_id,
            content_id=self.content_id,
            network=self.network,
            idempotency_key=self.idempotency_key,
            remote_id=self.remote_id,
            remote_url=self.remote_url,
            last_error=self.last_error,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class _OutboxRow:
    job_id: str
    tenant_id: str
    job_type: str
    payload: dict[str, object]
    status: str = OutboxJobStatus.QUEUED
    attempts: int = 0
    last_error: str | None = None
    submitted_at: datetime | None = None
    seq: int = field(default_factory=lambda: next(_sequence))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def snapshot(self) -> OutboxJobSnapshot:
        return OutboxJobSnapshot(
            job_id=self.job_id,
            tenant_id=self.tenant_id,
            job_type=self.job_type,
            payload=dict(self.payload),
            status=self.status,
            attempts=self.attempts,
            last_error=self.last_error,
            submitted_at=self.submitted_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class _InboxRow:
    item_id: str
    space_id: str
    entity_key: str
    item_type: str
    title: str
    description: str | None
    action_url: str
    actor_type: str
    status: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def snapshot(self) -> InboxItemSnapshot:
        return InboxItemSnapshot(
            item_id=self.item_id,
            space_id=self.space_id,
            entity_key=self.entity_key,
            item_type=self.item_type,
            title=self.title,
            description=self.description,
            action_url=self.action_url,
            actor_type=self.actor_type,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class InMemoryWorkflowRepository:
    """Non-network content repository and outbox store for skeleton mode and tests.

    Every mutating method runs without awaiting in between, which makes each
    call atomic under a single event loop.
    """

    tenants: dict[str, _TenantRow] = field(default_factory=dict)
    contents: dict[str, _ContentRow] = field(default_factory=dict)
    bindings: dict[str, _BindingRow] = field(default_factory=dict)
    outbox: dict[str, _OutboxRow] = field(default_factory=dict)
    comments: list[CommentSnapshot] = field(default_factory=list)
    inbox: dict[tuple[str, str], _InboxRow] = field(default_factory=dict)
    audit: list[AuditEntrySnapshot] = field(default_factory=list)
    transitions: list[tuple[str, str, str]] = field(default_factory=list)

    async def create_tenant(self, *, name: str, modules: Sequence[str] = ()) -> TenantSnapshot:
        row = _TenantRow(tenant_id=new_tenant_id(), name=name, modules=tuple(modules))
        self.tenants[row.tenant_id] = row
        return TenantSnapshot(tenant_id=row.tenant_id, name=row.name, modules=row.modules)

    async def get_tenant(self, *, tenant_id: str) -> TenantSnapshot | None:
        row = self.tenants.get(tenant_id)
        if row is None:
            return None
        return TenantSnapshot(tenant_id=row.tenant_id, name=row.name, modules=row.modules)

    async def set_tenant_modules(self, *, tenant_id: str, modules: Sequence[str]) -> TenantSnapshot | None:
        row = self.tenants.get(tenant_id)
        if row is None:
            return None
        row.modules = tuple(modules)
        return TenantSnapshot(tenant_id=row.tenant_id, name=row.name, modules=row.modules)

    async def has_module(self, *, space_id: str, module: str) -> bool:
        row = self.tenants.get(space_id)
        return row is not None and module in row.modules

    async def create_content(
        self,
        *,
        tenant_id: str,
        title: str,
        body: str,
        created_by: str,
    ) -> ContentSnapshot:
        if tenant_id not in self.tenants:
            raise DomainInvariantError("tenant is not found")
        row = _ContentRow(
            content_id=new_content_id(),
            tenant_id=tenant_id,
            status=INITIAL_CONTENT_STATUS,
            title=title,
            body=body,
            updated_by=created_by,
        )
        self.contents[row.content_id] = row
        self._audit(
            tenant_id=tenant_id,
            action="content.create",
            entity_type="content",
            entity_id=row.content_id,
            payload={"user_id": created_by},
        )
        return row.snapshot()

    async def get_content(self, *, content_id: str) -> ContentSnapshot | None:
        row = self.contents.get(content_id)
        return row.snapshot() if row is not None else None

    async def list_contents(self, *, tenant_id: str) -> list[ContentSnapshot]:
        rows = [row for row in self.contents.values() if row.tenant_id == tenant_id]
        rows.sort(key=lambda row: (row.created_at, row.content_id))
        return [row.snapshot() for row in rows]

    async def apply_transition(self, cmd: TransitionCommand) -> TransitionRecord:
        row = self.contents.get(cmd.content_id)
        if row is None:
            raise NotFoundError(f"content not found: {cmd.content_id}")
        if row.status != cmd.from_status:
            raise InvalidTransitionError(
                current=row.status,
                requested=cmd.to_status,
                reason="content status changed concurrently",
            )
        if not can_transition(cmd.from_status, cmd.to_status):
            raise DomainInvariantError(f"invalid transition: {cmd.from_status} -> {cmd.to_status}")

        now = _utcnow()
        self.transitions.append((row.content_id, row.status, cmd.to_status))
        row.status = cmd.to_status
        row.updated_by = cmd.actor_user_id
        row.updated_at = now
        if cmd.scheduled_at is not None:
            row.scheduled_at = cmd.scheduled_at
        if cmd.to_status == ContentStatus.ARCHIVED:
            row.archived_at = now

        self._audit(
            tenant_id=row.tenant_id,
            action=cmd.audit_action,
            entity_type="content",
            entity_id=row.content_id,
            payload=dict(cmd.audit_payload),
        )
        jobs = tuple(self._insert_outbox(draft).snapshot() for draft in cmd.outbox_jobs)
        comment = None
        if cmd.comment is not None:
            comment = CommentSnapshot(
                comment_id=new_comment_id(),
                content_id=row.content_id,
                body=cmd.comment.body,
                author_role=cmd.comment.author_role,
                created_at=now,
            )
            self.comments.append(comment)
        return TransitionRecord(content=row.snapshot(), outbox_jobs=jobs, comment=comment)

    async def update_content(self, cmd: ContentEditCommand) -> ContentSnapshot:
        row = self.contents.get(cmd.content_id)
        if row is None:
            raise NotFoundError(f"content not found: {cmd.content_id}")
        if row.status != cmd.expected_status:
            raise DomainInvariantError(f"content status changed concurrently: {row.status}")

        if cmd.title is not None:
            row.title = cmd.title
        if cmd.body is not None:
            row.body = cmd.body
        row.updated_by = cmd.actor_user_id
        row.updated_at = _utcnow()
        self._audit(
            tenant_id=row.tenant_id,
            action="content.update",
            entity_type="content",
            entity_id=row.content_id,
            payload=dict(cmd.audit_payload),
        )
        return row.snapshot()

    async def get_channel_binding(self, *, binding_id: str) -> ChannelBindingSnapshot | None:
        row = self.bindings.get(binding_id)
        return row.snapshot() if row is not None else None

    async def find_channel_binding(self, *, content_id: str, network: str) -> ChannelBindingSnapshot | None:
        for row in self.bindings.values():
            if row.content_id == content_id and row.network == network:
                return row.snapshot()
        return None

    async def get_or_create_channel_binding(
        self,
        *,
        content_id: str,
        network: str,
        idempotency_key: str,
    ) -> ChannelBindingSnapshot:
        if content_id not in self.contents:
            raise DomainInvariantError("content is not found")
        existing = await self.find_channel_binding(content_id=content_id, network=network)
        if existing is not None:
            return existing
        row = _BindingRow(
            binding_id=new_binding_id(),
            content_id=content_id,
            network=network,
            idempotency_key=idempotency_key,
        )
        self.bindings[row.binding_id] = row
        return row.snapshot()

    async def list_channel_bindings(self, *, content_id: str) -> list[ChannelBindingSnapshot]:
        rows = [row for row in self.bindings.values() if row.content_id == content_id]
        rows.sort(key=lambda row: row.network)
        return [row.snapshot() for row in rows]

    async def record_publish_success(
        self,
        *,
        binding_id: str,
        idempotency_key: str,
        remote_id: str,
        remote_url: str,
    ) -> ChannelBindingSnapshot | None:
        row = self.bindings.get(binding_id)
        if row is None:
            return None
        row.idempotency_key = idempotency_key
        row.remote_id = remote_id
        row.remote_url = remote_url
        row.last_error = None
        row.updated_at = _utcnow()
        return row.snapshot()

    async def record_binding_error(self, *, binding_id: str, error: str) -> None:
        row = self.bindings.get(binding_id)
        if row is None:
            return
        row.last_error = error
        row.updated_at = _utcnow()

    async def clear_binding_remote(self, *, binding_id: str) -> ChannelBindingSnapshot | None:
        row = self.bindings.get(binding_id)
        if row is None:
            return None
        row.remote_id = None
        row.remote_url = None
        row.last_error = None
        row.updated_at = _utcnow()
        return row.snapshot()

    async def list_comments(self, *, content_id: str) -> list[CommentSnapshot]:
        return [comment for comment in self.comments if comment.content_id == content_id]

    async def append_audit(
        self,
        *,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, object],
    ) -> None:
        self._audit(tenant_id=tenant_id, action=action, entity_type=entity_type, entity_id=entity_id, payload=payload)

    async def list_audit_entries(self, *, tenant_id: str, entity_id: str | None = None) -> list[AuditEntrySnapshot]:
        return [
            entry
            for entry in self.audit
            if entry.tenant_id == tenant_id and (entity_id is None or entry.entity_id == entity_id)
        ]

    async def upsert_inbox_item(self, draft: InboxItemDraft) -> InboxItemSnapshot:
        key = (draft.space_id, draft.entity_key)
        now = _utcnow()
        existing = self.inbox.get(key)
        if existing is not None and existing.status != InboxStatus.DONE:
            existing.item_type = draft.item_type
            existing.title = draft.title
            existing.description = draft.description
            existing.action_url = draft.action_url
            existing.actor_type = draft.actor_type
            existing.updated_at = now
            return existing.snapshot()

        row = _InboxRow(
            item_id=new_inbox_item_id(),
            space_id=draft.space_id,
            entity_key=draft.entity_key,
            item_type=draft.item_type,
            title=draft.title,
            description=draft.description,
            action_url=draft.action_url,
            actor_type=draft.actor_type,
            status=draft.status,
            created_at=now,
            updated_at=now,
        )
        self.inbox[key] = row
        return row.snapshot()

    async def list_inbox_items(self, *, space_id: str, exclude_done: bool = False) -> list[InboxItemSnapshot]:
        rows = [
            row
            for row in self.inbox.values()
            if row.space_id == space_id and not (exclude_done and row.status == InboxStatus.DONE)
        ]
        rows.sort(key=lambda row: row.updated_at, reverse=True)
        return [row.snapshot() for row in rows]

    async def get_inbox_item(self, *, item_id: str) -> InboxItemSnapshot | None:
        for row in self.inbox.values():
            if row.item_id == item_id:
                return row.snapshot()
        return None

    async def set_inbox_status(self, *, item_id: str, status: str) -> InboxItemSnapshot | None:
        for row in self.inbox.values():
            if row.item_id == item_id:
                row.status = status
                row.updated_at = _utcnow()
                return row.snapshot()
        return None

    async def create_outbox_job(self, draft: OutboxJobDraft) -> OutboxJobSnapshot:
        return self._insert_outbox(draft).snapshot()

    async def get_outbox_job(self, *, job_id: str) -> OutboxJobSnapshot | None:
        row = self.outbox.get(job_id)
        return row.snapshot() if row is not None else None

    async def list_outbox_jobs(self, *, query: OutboxJobListQuery) -> list[OutboxJobSnapshot]:
        rows: list[_OutboxRow] = []
        for row in self.outbox.values():
            if query.tenant_ids is not None and row.tenant_id not in set(query.tenant_ids):
                continue
            if query.statuses is not None and row.status not in set(query.statuses):
                continue
            if query.job_types is not None and row.job_type not in set(query.job_types):
                continue
            if query.unsubmitted_only and row.submitted_at is not None:
                continue
            rows.append(row)
        rows.sort(key=lambda row: row.seq, reverse=True)
        return [row.snapshot() for row in rows[query.offset : query.offset + query.limit]]

    async def mark_outbox_submitted(self, *, job_id: str) -> None:
        row = self.outbox.get(job_id)
        if row is None:
            return
        row.submitted_at = _utcnow()
        row.updated_at = row.submitted_at

    async def start_outbox_job(self, *, job_id: str) -> bool:
        row = self.outbox.get(job_id)
        if row is None or row.status != OutboxJobStatus.QUEUED:
            return False
        self._move_job(row, OutboxJobStatus.PROCESSING)
        return True

    async def complete_outbox_job(self, *, job_id: str) -> None:
        row = self._require_job(job_id)
        self._move_job(row, OutboxJobStatus.COMPLETED)
        row.last_error = None

    async def fail_outbox_job(self, *, job_id: str, last_error: str, requeue: bool) -> None:
        row = self._require_job(job_id)
        if row.status not in job_failure_sources(requeue=requeue):
            raise DomainInvariantError(f"cannot record a failure on a {row.status} job")
        self._move_job(row, OutboxJobStatus.QUEUED if requeue else OutboxJobStatus.FAILED)
        row.attempts += 1
        row.last_error = last_error

    async def reset_outbox_job_for_retry(self, *, job_id: str, actor_user_id: str) -> OutboxJobSnapshot:
        row = self._require_job(job_id)
        if row.status == OutboxJobStatus.COMPLETED:
            raise InvalidTransitionError(
                current=row.status,
                requested=OutboxJobStatus.QUEUED,
                reason="completed jobs cannot be retried",
            )
        previous = row.status
        self._move_job(row, OutboxJobStatus.QUEUED)
        row.attempts += 1
        row.last_error = None
        row.submitted_at = None
        self._audit(
            tenant_id=row.tenant_id,
            action="outbox.retry",
            entity_type="outbox_job",
            entity_id=row.job_id,
            payload={"user_id": actor_user_id, "from": previous, "attempts": row.attempts},
        )
        return row.snapshot()

    def _insert_outbox(self, draft: OutboxJobDraft) -> _OutboxRow:
        row = _OutboxRow(
            job_id=new_outbox_job_id(),
            tenant_id=draft.tenant_id,
            job_type=draft.job_type,
            payload=dict(draft.payload),
        )
        self.outbox[row.job_id] = row
        return row

    def _require_job(self, job_id: str) -> _OutboxRow:
        row = self.outbox.get(job_id)
        if row is None:
            raise NotFoundError(f"outbox job not found: {job_id}")
        return row

    def _move_job(self, row: _OutboxRow, to_status: str) -> None:
        if not can_transition_job(row.status, to_status):
            raise DomainInvariantError(f"invalid job transition: {row.status} -> {to_status}")
        row.status = to_status
        row.updated_at = _utcnow()

    def _audit(
        self,
        *,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, object],
    ) -> None:
        self.audit.append(
            AuditEntrySnapshot(
                tenant_id=tenant_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                payload=dict(payload),
                created_at=_utcnow(),
            )
        )


@dataclass
class _QueueMessage:
    message_id: str
    queue: str
    outbox_job_id: str
    payload: dict[str, object]
    policy: RetryPolicy
    available_at: datetime
    attempt: int = 0
    state: str = "ready"
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None


@dataclass
class InMemoryJobQueue:
    """Deterministic queue with leases and per-message backoff.

    ``submit_failures`` makes the next N submissions raise, to exercise the
    unsubmitted-outbox path.
    """

    messages: dict[str, _QueueMessage] = field(default_factory=dict)
    clock: Callable[[], datetime] = field(default=_utcnow)
    submit_failures: int = 0

    async def submit(
        self,
        *,
        queue: str,
        outbox_job_id: str,
        payload: dict[str, object],
        policy: RetryPolicy,
    ) -> str:
        if self.submit_failures > 0:
            self.submit_failures -= 1
            raise ConnectionError("queue backend is unavailable")
        message = _QueueMessage(
            message_id=new_message_id(),
            queue=queue,
            outbox_job_id=outbox_job_id,
            payload=dict(payload),
            policy=policy,
            available_at=self.clock(),
        )
        self.messages[message.message_id] = message
        return message.message_id

    async def claim_next(self, *, queue: str, worker_id: str, lease_seconds: int = 30) -> JobClaim | None:
        now = self.clock()
        for message in self.messages.values():
            if message.queue != queue or message.state != "ready" or message.available_at > now:
                continue
            message.state = "leased"
            message.attempt += 1
            message.lease_owner = worker_id
            message.lease_expires_at = now + timedelta(seconds=lease_seconds)
            return JobClaim(
                message_id=message.message_id,
                queue=message.queue,
                outbox_job_id=message.outbox_job_id,
                payload=dict(message.payload),
                attempt=message.attempt,
                max_attempts=message.policy.max_attempts,
                lease_expires_at=message.lease_expires_at,
            )
        return None

    async def heartbeat(self, *, message_id: str, worker_id: str, lease_seconds: int = 30) -> bool:
        message = self.messages.get(message_id)
        now = self.clock()
        if message is None or not self._owned(message, worker_id, now):
            return False
        message.lease_expires_at = now + timedelta(seconds=lease_seconds)
        return True

    async def ack(self, *, message_id: str, worker_id: str) -> None:
        message = self._require_owned(message_id, worker_id)
        message.state = "done"
        message.lease_owner = None
        message.lease_expires_at = None

    async def nack(self, *, message_id: str, worker_id: str, retry: bool) -> bool:
        message = self._require_owned(message_id, worker_id)
        return self._release(message, retry=retry)

    async def reclaim_expired(self, *, queue: str) -> list[ReclaimedMessage]:
        now = self.clock()
        reclaimed: list[ReclaimedMessage] = []
        for message in self.messages.values():
            if (
                message.queue == queue
                and message.state == "leased"
                and message.lease_expires_at is not None
                and message.lease_expires_at <= now
            ):
                redelivered = self._release(message, retry=True)
                reclaimed.append(
                    ReclaimedMessage(
                        outbox_job_id=message.outbox_job_id,
                        attempt=message.attempt,
                        redelivered=redelivered,
                    )
                )
        return reclaimed

    def pending(self, queue: str) -> list[_QueueMessage]:
        return [message for message in self.messages.values() if message.queue == queue and message.state == "ready"]

    def _release(self, message: _QueueMessage, *, retry: bool) -> bool:
        message.lease_owner = None
        message.lease_expires_at = None
        if retry and message.attempt < message.policy.max_attempts:
            message.state = "ready"
            message.available_at = self.clock() + message.policy.delay_for(message.attempt)
            return True
        message.state = "dead"
        return False

    def _owned(self, message: _QueueMessage, worker_id: str, now: datetime) -> bool:
        return (
            message.state == "leased"
            and message.lease_owner == worker_id
            and message.lease_expires_at is not None
            and message.lease_expires_at > now
        )

    def _require_owned(self, message_id: str, worker_id: str) -> _QueueMessage:
        message = self.messages.get(message_id)
        if message is None or not self._owned(message, worker_id, self.clock()):
            raise DomainInvariantError("claim ownership is stale")
        return message
