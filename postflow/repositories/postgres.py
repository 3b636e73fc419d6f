from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import importlib
import json
from typing import Any

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
    RETRYABLE_JOB_STATUSES,
    can_transition,
    job_failure_sources,
)
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
    OutboxJobStatus,
    ReclaimedMessage,
    TenantSnapshot,
    TransitionCommand,
    TransitionRecord,
)
from postflow.domain.retry_policy import RetryPolicy
from postflow.repositories.sql_loader import load_sql

try:
    asyncpg_module = importlib.import_module("asyncpg")
except ModuleNotFoundError:  # pragma: no cover
    asyncpg_module = None  # type: ignore[assignment]


SQL_CREATE_TENANT = load_sql("create_tenant.sql")
SQL_GET_TENANT = load_sql("get_tenant.sql")
SQL_SET_TENANT_MODULES = load_sql("set_tenant_modules.sql")
SQL_HAS_MODULE = load_sql("has_module.sql")
SQL_CREATE_CONTENT = load_sql("create_content.sql")
SQL_GET_CONTENT = load_sql("get_content.sql")
SQL_GET_CONTENT_STATUS = load_sql("get_content_status.sql")
SQL_LIST_CONTENTS = load_sql("list_contents.sql")
SQL_UPDATE_CONTENT_STATUS = load_sql("update_content_status.sql")
SQL_UPDATE_CONTENT_FIELDS = load_sql("update_content_fields.sql")
SQL_INSERT_AUDIT = load_sql("insert_audit.sql")
SQL_LIST_AUDIT_ENTRIES = load_sql("list_audit_entries.sql")
SQL_GET_CHANNEL_BINDING = load_sql("get_channel_binding.sql")
SQL_FIND_CHANNEL_BINDING = load_sql("find_channel_binding.sql")
SQL_CREATE_CHANNEL_BINDING = load_sql("create_channel_binding.sql")
SQL_LIST_CHANNEL_BINDINGS = load_sql("list_channel_bindings.sql")
SQL_RECORD_PUBLISH_SUCCESS = load_sql("record_publish_success.sql")
SQL_RECORD_BINDING_ERROR = load_sql("record_binding_error.sql")
SQL_CLEAR_BINDING_REMOTE = load_sql("clear_binding_remote.sql")
SQL_INSERT_COMMENT = load_sql("insert_comment.sql")
SQL_LIST_COMMENTS = load_sql("list_comments.sql")
SQL_UPSERT_INBOX_ITEM = load_sql("upsert_inbox_item.sql")
SQL_LIST_INBOX_ITEMS = load_sql("list_inbox_items.sql")
SQL_GET_INBOX_ITEM = load_sql("get_inbox_item.sql")
SQL_SET_INBOX_STATUS = load_sql("set_inbox_status.sql")
SQL_INSERT_OUTBOX_JOB = load_sql("insert_outbox_job.sql")
SQL_GET_OUTBOX_JOB = load_sql("get_outbox_job.sql")
SQL_GET_OUTBOX_JOB_FOR_UPDATE = load_sql("get_outbox_job_for_update.sql")
SQL_LIST_OUTBOX_JOBS = load_sql("list_outbox_jobs.sql")
SQL_MARK_OUTBOX_SUBMITTED = load_sql("mark_outbox_submitted.sql")
SQL_START_OUTBOX_JOB = load_sql("start_outbox_job.sql")
SQL_COMPLETE_OUTBOX_JOB = load_sql("complete_outbox_job.sql")
SQL_FAIL_OUTBOX_JOB = load_sql("fail_outbox_job.sql")
SQL_RESET_OUTBOX_JOB_FOR_RETRY = load_sql("reset_outbox_job_for_retry.sql")
SQL_QUEUE_SUBMIT = load_sql("queue_submit.sql")
SQL_QUEUE_CLAIM_NEXT = load_sql("queue_claim_next.sql")
SQL_QUEUE_HEARTBEAT = load_sql("queue_heartbeat.sql")
SQL_QUEUE_GET_FOR_UPDATE = load_sql("queue_get_for_update.sql")
SQL_QUEUE_ACK = load_sql("queue_ack.sql")
SQL_QUEUE_RELEASE = load_sql("queue_release.sql")
SQL_QUEUE_LIST_EXPIRED = load_sql("queue_list_expired.sql")


@dataclass
class AsyncpgPoolManager:
    dsn: str
    pool: Any | None = None

    async def startup(self) -> None:
        if asyncpg_module is None:  # pragma: no cover
            raise RuntimeError("asyncpg is required for postgres repository mode")

        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "json",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=1,
            max_size=5,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None


@dataclass
class _PoolUser:
    pool_manager: AsyncpgPoolManager

    def _pool(self) -> Any:
        if self.pool_manager.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool_manager.pool


@dataclass
class PostgresWorkflowRepository(_PoolUser):
    """Content repository and outbox store on one Postgres database."""

    async def create_tenant(self, *, name: str, modules: Sequence[str] = ()) -> TenantSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_CREATE_TENANT, new_tenant_id(), name, list(modules))
        if row is None:
            raise DomainInvariantError("failed to create tenant")
        return _tenant_from_row(row)

    async def get_tenant(self, *, tenant_id: str) -> TenantSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_TENANT, tenant_id)
        return _tenant_from_row(row) if row is not None else None

    async def set_tenant_modules(self, *, tenant_id: str, modules: Sequence[str]) -> TenantSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_SET_TENANT_MODULES, tenant_id, list(modules))
        return _tenant_from_row(row) if row is not None else None

    async def has_module(self, *, space_id: str, module: str) -> bool:
        pool = self._pool()
        async with pool.acquire() as conn:
            enabled = await conn.fetchval(SQL_HAS_MODULE, space_id, module)
        return bool(enabled)

    async def create_content(
        self,
        *,
        tenant_id: str,
        title: str,
        body: str,
        created_by: str,
    ) -> ContentSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    SQL_CREATE_CONTENT,
                    new_content_id(),
                    tenant_id,
                    str(INITIAL_CONTENT_STATUS),
                    title,
                    body,
                    created_by,
                )
                if row is None:
                    raise DomainInvariantError("failed to create content")
                await conn.execute(
                    SQL_INSERT_AUDIT,
                    tenant_id,
                    "content.create",
                    "content",
                    row["id"],
                    {"user_id": created_by},
                )
        return _content_from_row(row)

    async def get_content(self, *, content_id: str) -> ContentSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_CONTENT, content_id)
        return _content_from_row(row) if row is not None else None

    async def list_contents(self, *, tenant_id: str) -> list[ContentSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_CONTENTS, tenant_id)
        return [_content_from_row(row) for row in rows]

    async def apply_transition(self, cmd: TransitionCommand) -> TransitionRecord:
        if not can_transition(cmd.from_status, cmd.to_status):
            raise DomainInvariantError(f"invalid transition: {cmd.from_status} -> {cmd.to_status}")

        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    SQL_UPDATE_CONTENT_STATUS,
                    cmd.content_id,
                    str(cmd.from_status),
                    str(cmd.to_status),
                    cmd.actor_user_id,
                    cmd.scheduled_at,
                )
                if row is None:
                    current = await conn.fetchval(SQL_GET_CONTENT_STATUS, cmd.content_id)
                    if current is None:
                        raise NotFoundError(f"content not found: {cmd.content_id}")
                    raise InvalidTransitionError(
                        current=current,
                        requested=cmd.to_status,
                        reason="content status changed concurrently",
                    )
                content = _content_from_row(row)

                await conn.execute(
                    SQL_INSERT_AUDIT,
                    content.tenant_id,
                    cmd.audit_action,
                    "content",
                    content.content_id,
                    dict(cmd.audit_payload),
                )
                jobs: list[OutboxJobSnapshot] = []
                for draft in cmd.outbox_jobs:
                    jobs.append(await _insert_outbox_job(conn, draft))

                comment = None
                if cmd.comment is not None:
                    comment_row = await conn.fetchrow(
                        SQL_INSERT_COMMENT,
                        new_comment_id(),
                        content.content_id,
                        cmd.comment.body,
                        str(cmd.comment.author_role),
                    )
                    comment = _comment_from_row(comment_row)
        return TransitionRecord(content=content, outbox_jobs=tuple(jobs), comment=comment)

    async def update_content(self, cmd: ContentEditCommand) -> ContentSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    SQL_UPDATE_CONTENT_FIELDS,
                    cmd.content_id,
                    str(cmd.expected_status),
                    cmd.title,
                    cmd.body,
                    cmd.actor_user_id,
                )
                if row is None:
                    current = await conn.fetchval(SQL_GET_CONTENT_STATUS, cmd.content_id)
                    if current is None:
                        raise NotFoundError(f"content not found: {cmd.content_id}")
                    raise DomainInvariantError(f"content status changed concurrently: {current}")
                content = _content_from_row(row)
                await conn.execute(
                    SQL_INSERT_AUDIT,
                    content.tenant_id,
                    "content.update",
                    "content",
                    content.content_id,
                    dict(cmd.audit_payload),
                )
        return content

    async def get_channel_binding(self, *, binding_id: str) -> ChannelBindingSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_CHANNEL_BINDING, binding_id)
        return _binding_from_row(row) if row is not None else None

    async def find_channel_binding(self, *, content_id: str, network: str) -> ChannelBindingSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_FIND_CHANNEL_BINDING, content_id, network)
        return _binding_from_row(row) if row is not None else None

    async def get_or_create_channel_binding(
        self,
        *,
        content_id: str,
        network: str,
        idempotency_key: str,
    ) -> ChannelBindingSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_CREATE_CHANNEL_BINDING,
                new_binding_id(),
                content_id,
                network,
                idempotency_key,
            )
            if row is None:
                # Lost the insert race (or the binding already existed).
                row = await conn.fetchrow(SQL_FIND_CHANNEL_BINDING, content_id, network)
        if row is None:
            raise DomainInvariantError("channel binding create conflict without row")
        return _binding_from_row(row)

    async def list_channel_bindings(self, *, content_id: str) -> list[ChannelBindingSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_CHANNEL_BINDINGS, content_id)
        return [_binding_from_row(row) for row in rows]

    async def record_publish_success(
        self,
        *,
        binding_id: str,
        idempotency_key: str,
        remote_id: str,
        remote_url: str,
    ) -> ChannelBindingSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_RECORD_PUBLISH_SUCCESS, binding_id, idempotency_key, remote_id, remote_url)
        return _binding_from_row(row) if row is not None else None

    async def record_binding_error(self, *, binding_id: str, error: str) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            await conn.execute(SQL_RECORD_BINDING_ERROR, binding_id, error)

    async def clear_binding_remote(self, *, binding_id: str) -> ChannelBindingSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_CLEAR_BINDING_REMOTE, binding_id)
        return _binding_from_row(row) if row is not None else None

    async def list_comments(self, *, content_id: str) -> list[CommentSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_COMMENTS, content_id)
        return [_comment_from_row(row) for row in rows]

    async def append_audit(
        self,
        *,
        tenant_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, object],
    ) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            await conn.execute(SQL_INSERT_AUDIT, tenant_id, action, entity_type, entity_id, dict(payload))

    async def list_audit_entries(self, *, tenant_id: str, entity_id: str | None = None) -> list[AuditEntrySnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_AUDIT_ENTRIES, tenant_id, entity_id)
        return [
            AuditEntrySnapshot(
                tenant_id=row["tenant_id"],
                action=row["action"],
                entity_type=row["entity_type"],
                entity_id=row["entity_id"],
                payload=_as_json_dict(row["payload"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def upsert_inbox_item(self, draft: InboxItemDraft) -> InboxItemSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_UPSERT_INBOX_ITEM,
                new_inbox_item_id(),
                draft.space_id,
                draft.entity_key,
                str(draft.item_type),
                draft.title,
                draft.description,
                draft.action_url,
                str(draft.actor_type),
                str(draft.status),
            )
        if row is None:
            raise DomainInvariantError("inbox upsert returned no row")
        return _inbox_from_row(row)

    async def list_inbox_items(self, *, space_id: str, exclude_done: bool = False) -> list[InboxItemSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_INBOX_ITEMS, space_id, exclude_done)
        return [_inbox_from_row(row) for row in rows]

    async def get_inbox_item(self, *, item_id: str) -> InboxItemSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_INBOX_ITEM, item_id)
        return _inbox_from_row(row) if row is not None else None

    async def set_inbox_status(self, *, item_id: str, status: str) -> InboxItemSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_SET_INBOX_STATUS, item_id, str(status))
        return _inbox_from_row(row) if row is not None else None

    async def create_outbox_job(self, draft: OutboxJobDraft) -> OutboxJobSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            return await _insert_outbox_job(conn, draft)

    async def get_outbox_job(self, *, job_id: str) -> OutboxJobSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_OUTBOX_JOB, job_id)
        return _job_from_row(row) if row is not None else None

    async def list_outbox_jobs(self, *, query: OutboxJobListQuery) -> list[OutboxJobSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                SQL_LIST_OUTBOX_JOBS,
                _text_array(query.tenant_ids),
                _text_array(query.statuses),
                _text_array(query.job_types),
                query.unsubmitted_only,
                query.limit,
                query.offset,
            )
        return [_job_from_row(row) for row in rows]

    async def mark_outbox_submitted(self, *, job_id: str) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            await conn.execute(SQL_MARK_OUTBOX_SUBMITTED, job_id)

    async def start_outbox_job(self, *, job_id: str) -> bool:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_START_OUTBOX_JOB, job_id)
        return row is not None

    async def complete_outbox_job(self, *, job_id: str) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_COMPLETE_OUTBOX_JOB, job_id)
        if row is None:
            raise DomainInvariantError(f"outbox job {job_id} is not processing")

    async def fail_outbox_job(self, *, job_id: str, last_error: str, requeue: bool) -> None:
        status = OutboxJobStatus.QUEUED if requeue else OutboxJobStatus.FAILED
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_FAIL_OUTBOX_JOB,
                job_id,
                str(status),
                last_error,
                list(job_failure_sources(requeue=requeue)),
            )
        if row is None:
            raise DomainInvariantError(f"cannot record a failure on outbox job {job_id}")

    async def reset_outbox_job_for_retry(self, *, job_id: str, actor_user_id: str) -> OutboxJobSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(SQL_GET_OUTBOX_JOB_FOR_UPDATE, job_id)
                if current is None:
                    raise NotFoundError(f"outbox job not found: {job_id}")
                if current["status"] == OutboxJobStatus.COMPLETED:
                    raise InvalidTransitionError(
                        current=current["status"],
                        requested=OutboxJobStatus.QUEUED,
                        reason="completed jobs cannot be retried",
                    )
                if current["status"] not in RETRYABLE_JOB_STATUSES:
                    raise DomainInvariantError(f"invalid job transition: {current['status']} -> queued")
                row = await conn.fetchrow(SQL_RESET_OUTBOX_JOB_FOR_RETRY, job_id)
                job = _job_from_row(row)
                await conn.execute(
                    SQL_INSERT_AUDIT,
                    job.tenant_id,
                    "outbox.retry",
                    "outbox_job",
                    job.job_id,
                    {"user_id": actor_user_id, "from": current["status"], "attempts": job.attempts},
                )
        return job


@dataclass
class PostgresJobQueue(_PoolUser):
    """job_queue table used as a named queue; claims use FOR UPDATE SKIP LOCKED."""

    async def submit(
        self,
        *,
        queue: str,
        outbox_job_id: str,
        payload: dict[str, object],
        policy: RetryPolicy,
    ) -> str:
        pool = self._pool()
        async with pool.acquire() as conn:
            message_id = await conn.fetchval(
                SQL_QUEUE_SUBMIT,
                new_message_id(),
                queue,
                outbox_job_id,
                dict(payload),
                policy.max_attempts,
                policy.backoff,
                policy.delay_ms,
            )
        return str(message_id)

    async def claim_next(self, *, queue: str, worker_id: str, lease_seconds: int = 30) -> JobClaim | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(SQL_QUEUE_CLAIM_NEXT, queue, worker_id, lease_seconds)
        if row is None:
            return None
        return JobClaim(
            message_id=row["id"],
            queue=row["queue"],
            outbox_job_id=row["outbox_job_id"],
            payload=_as_json_dict(row["payload"]),
            attempt=int(row["attempt"]),
            max_attempts=int(row["max_attempts"]),
            lease_expires_at=row["lease_expires_at"],
        )

    async def heartbeat(self, *, message_id: str, worker_id: str, lease_seconds: int = 30) -> bool:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_QUEUE_HEARTBEAT, message_id, worker_id, lease_seconds)
        return row is not None

    async def ack(self, *, message_id: str, worker_id: str) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_QUEUE_ACK, message_id, worker_id)
        if row is None:
            raise DomainInvariantError("claim ownership is stale")

    async def nack(self, *, message_id: str, worker_id: str, retry: bool) -> bool:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(SQL_QUEUE_GET_FOR_UPDATE, message_id)
                if row is None or not row["lease_valid"] or row["lease_owner"] != worker_id:
                    raise DomainInvariantError("claim ownership is stale")
                return await _release(conn, row, retry=retry)

    async def reclaim_expired(self, *, queue: str) -> list[ReclaimedMessage]:
        reclaimed: list[ReclaimedMessage] = []
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(SQL_QUEUE_LIST_EXPIRED, queue)
                for row in rows:
                    redelivered = await _release(conn, row, retry=True)
                    reclaimed.append(
                        ReclaimedMessage(
                            outbox_job_id=row["outbox_job_id"],
                            attempt=int(row["attempt"]),
                            redelivered=redelivered,
                        )
                    )
        return reclaimed


async def _release(conn: Any, row: Any, *, retry: bool) -> bool:
    attempt = int(row["attempt"])
    policy = RetryPolicy(
        max_attempts=int(row["max_attempts"]),
        backoff=row["backoff"],
        delay_ms=int(row["delay_ms"]),
    )
    if retry and attempt < policy.max_attempts:
        delay_ms = int(policy.delay_for(attempt).total_seconds() * 1000)
        await conn.execute(SQL_QUEUE_RELEASE, row["id"], "ready", delay_ms)
        return True
    await conn.execute(SQL_QUEUE_RELEASE, row["id"], "dead", 0)
    return False


async def _insert_outbox_job(conn: Any, draft: OutboxJobDraft) -> OutboxJobSnapshot:
    row = await conn.fetchrow(
        SQL_INSERT_OUTBOX_JOB,
        new_outbox_job_id(),
        draft.tenant_id,
        str(draft.job_type),
        dict(draft.payload),
    )
    if row is None:
        raise DomainInvariantError("failed to create outbox job")
    return _job_from_row(row)


def _text_array(values: Sequence[str] | None) -> list[str] | None:
    if values is None:
        return None
    return [str(value) for value in values]


def _as_json_dict(value: object) -> dict[str, object]:
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, dict):
        return {}
    return {str(key): val for key, val in value.items()}


def _tenant_from_row(row: Any) -> TenantSnapshot:
    return TenantSnapshot(tenant_id=row["id"], name=row["name"], modules=tuple(row["modules"] or ()))


def _content_from_row(row: Any) -> ContentSnapshot:
    return ContentSnapshot(
        content_id=row["id"],
        tenant_id=row["tenant_id"],
        status=row["status"],
        title=row["title"],
        body=row["body"],
        scheduled_at=row["scheduled_at"],
        updated_by=row["updated_by"],
        archived_at=row["archived_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _binding_from_row(row: Any) -> ChannelBindingSnapshot:
    return ChannelBindingSnapshot(
        binding_id=row["id"],
        content_id=row["content_id"],
        network=row["network"],
        idempotency_key=row["idempotency_key"],
        remote_id=row["remote_id"],
        remote_url=row["remote_url"],
        last_error=row["last_error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _job_from_row(row: Any) -> OutboxJobSnapshot:
    return OutboxJobSnapshot(
        job_id=row["id"],
        tenant_id=row["tenant_id"],
        job_type=row["type"],
        payload=_as_json_dict(row["payload"]),
        status=row["status"],
        attempts=int(row["attempts"]),
        last_error=row["last_error"],
        submitted_at=row["submitted_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _comment_from_row(row: Any) -> CommentSnapshot:
    return CommentSnapshot(
        comment_id=row["id"],
        content_id=row["content_id"],
        body=row["body"],
        author_role=row["author_role"],
        created_at=row["created_at"],
    )


def _inbox_from_row(row: Any) -> InboxItemSnapshot:
    return InboxItemSnapshot(
        item_id=row["id"],
        space_id=row["space_id"],
        entity_key=row["entity_key"],
        item_type=row["type"],
        title=row["title"],
        description=row["description"],
        action_url=row["action_url"],
        actor_type=row["actor_type"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
