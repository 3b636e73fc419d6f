from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from postflow.domain.errors import DomainInvariantError, InvalidTransitionError, NotFoundError
from postflow.domain.models import (
    AuthorRole,
    CommentDraft,
    ContentEditCommand,
    ContentStatus,
    InboxItemDraft,
    InboxItemType,
    InboxStatus,
    OutboxJobDraft,
    OutboxJobListQuery,
    OutboxJobStatus,
    OutboxJobType,
    TransitionCommand,
)
from postflow.domain.retry_policy import RetryPolicy
from postflow.domain.use_cases.dispatcher import JobDispatcher
from postflow.repositories.postgres import AsyncpgPoolManager, PostgresWorkflowRepository
from tests.integration.postgres_test_utils import apply_down, apply_up, fresh_store, require_postgres, reset_public_schema

FAST = RetryPolicy(max_attempts=2, backoff="fixed", delay_ms=0)


async def _seed_content(repo: PostgresWorkflowRepository) -> tuple[str, str]:
    tenant = await repo.create_tenant(name="Acme", modules=("social",))
    content = await repo.create_content(tenant_id=tenant.tenant_id, title="Post", body="Body", created_by="usr-1")
    return tenant.tenant_id, content.content_id


@pytest.mark.integration
def test_migration_up_down_up_contract() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        try:
            repo = PostgresWorkflowRepository(pool_manager=manager)
            assert await repo.get_content(content_id="cnt_missing") is None
            assert await repo.get_tenant(tenant_id="spc_missing") is None
        finally:
            await manager.shutdown()

        await apply_down(dsn=dsn)
        await apply_up(dsn=dsn)

    asyncio.run(_run())


@pytest.mark.integration
def test_transition_commits_status_audit_outbox_and_comment_together() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, _queue):
            tenant_id, content_id = await _seed_content(repo)
            assert await repo.has_module(space_id=tenant_id, module="social") is True

            await repo.apply_transition(
                TransitionCommand(
                    content_id=content_id,
                    from_status=ContentStatus.DRAFT,
                    to_status=ContentStatus.PENDING_CLIENT,
                    actor_user_id="usr-1",
                    audit_action="content.send_for_approval",
                )
            )
            record = await repo.apply_transition(
                TransitionCommand(
                    content_id=content_id,
                    from_status=ContentStatus.PENDING_CLIENT,
                    to_status=ContentStatus.CHANGES_REQUESTED,
                    actor_user_id="usr-2",
                    audit_action="content.request_changes",
                    comment=CommentDraft(body="Needs a new image", author_role=AuthorRole.CLIENT),
                )
            )
            assert record.content.status == ContentStatus.CHANGES_REQUESTED
            assert record.content.updated_by == "usr-2"
            assert record.comment is not None and record.comment.author_role == "client"

            with pytest.raises(InvalidTransitionError, match="changed concurrently"):
                await repo.apply_transition(
                    TransitionCommand(
                        content_id=content_id,
                        from_status=ContentStatus.DRAFT,
                        to_status=ContentStatus.ARCHIVED,
                        actor_user_id="usr-1",
                        audit_action="content.archive",
                        outbox_jobs=(
                            OutboxJobDraft(
                                tenant_id=tenant_id,
                                job_type=OutboxJobType.DELETE_REMOTE,
                                payload={"channel_id": "chb_1"},
                            ),
                        ),
                    )
                )

            # The rejected transition left no outbox row behind.
            assert await repo.list_outbox_jobs(query=OutboxJobListQuery(tenant_ids=(tenant_id,))) == []

            archived = await repo.apply_transition(
                TransitionCommand(
                    content_id=content_id,
                    from_status=ContentStatus.CHANGES_REQUESTED,
                    to_status=ContentStatus.ARCHIVED,
                    actor_user_id="usr-1",
                    audit_action="content.archive",
                    outbox_jobs=(
                        OutboxJobDraft(
                            tenant_id=tenant_id,
                            job_type=OutboxJobType.DELETE_REMOTE,
                            payload={"channel_id": "chb_1"},
                        ),
                    ),
                )
            )
            assert archived.content.archived_at is not None
            assert [job.payload for job in archived.outbox_jobs] == [{"channel_id": "chb_1"}]

            audit = await repo.list_audit_entries(tenant_id=tenant_id, entity_id=content_id)
            assert [entry.action for entry in audit] == [
                "content.create",
                "content.send_for_approval",
                "content.request_changes",
                "content.archive",
            ]
            assert [c.body for c in await repo.list_comments(content_id=content_id)] == ["Needs a new image"]

    asyncio.run(_run())


@pytest.mark.integration
def test_schedule_and_binding_round_trip() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, _queue):
            _tenant_id, content_id = await _seed_content(repo)
            when = datetime(2031, 5, 1, 9, 0, tzinfo=UTC)
            for from_status, to_status in (
                (ContentStatus.DRAFT, ContentStatus.PENDING_CLIENT),
                (ContentStatus.PENDING_CLIENT, ContentStatus.APPROVED),
            ):
                await repo.apply_transition(
                    TransitionCommand(
                        content_id=content_id,
                        from_status=from_status,
                        to_status=to_status,
                        actor_user_id="usr-1",
                        audit_action="content.status.update",
                    )
                )
            scheduled = await repo.apply_transition(
                TransitionCommand(
                    content_id=content_id,
                    from_status=ContentStatus.APPROVED,
                    to_status=ContentStatus.SCHEDULED,
                    actor_user_id="usr-1",
                    audit_action="content.schedule",
                    scheduled_at=when,
                )
            )
            assert scheduled.content.scheduled_at == when

            binding = await repo.get_or_create_channel_binding(content_id=content_id, network="linkedin", idempotency_key="k1")
            again = await repo.get_or_create_channel_binding(content_id=content_id, network="linkedin", idempotency_key="k1")
            assert again.binding_id == binding.binding_id

            await repo.record_binding_error(binding_id=binding.binding_id, error="remote_transport_failed: down")
            published = await repo.record_publish_success(
                binding_id=binding.binding_id,
                idempotency_key="k1",
                remote_id="r-1",
                remote_url="https://social.local/post/1",
            )
            assert published is not None
            assert (published.remote_id, published.last_error) == ("r-1", None)

            cleared = await repo.clear_binding_remote(binding_id=binding.binding_id)
            assert cleared is not None and cleared.remote_id is None

    asyncio.run(_run())


@pytest.mark.integration
def test_concurrent_claim_exclusivity_skip_locked() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, queue):
            tenant = await repo.create_tenant(name="Acme")
            dispatcher = JobDispatcher(outbox=repo, queue=queue, policies={"sync_comments": FAST})
            for _ in range(3):
                await dispatcher.enqueue_sync_comments(tenant_id=tenant.tenant_id)

            claims = await asyncio.gather(
                queue.claim_next(queue="sync_comments", worker_id="w-1"),
                queue.claim_next(queue="sync_comments", worker_id="w-2"),
                queue.claim_next(queue="sync_comments", worker_id="w-3"),
            )
            claim_ids = [claim.message_id for claim in claims if claim is not None]
            assert len(claim_ids) == len(set(claim_ids))
            assert len(claim_ids) == 3
            assert await queue.claim_next(queue="sync_comments", worker_id="w-4") is None

    asyncio.run(_run())


@pytest.mark.integration
def test_queue_redelivery_then_dead_letter() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, queue):
            tenant = await repo.create_tenant(name="Acme")
            dispatcher = JobDispatcher(outbox=repo, queue=queue, policies={"sync_comments": FAST})
            job = await dispatcher.enqueue_sync_comments(tenant_id=tenant.tenant_id)
            assert job.submitted_at is not None

            first = await queue.claim_next(queue="sync_comments", worker_id="w-1")
            assert first is not None and first.attempt == 1
            assert first.payload["outbox_job_id"] == job.job_id
            assert await queue.heartbeat(message_id=first.message_id, worker_id="w-1") is True
            with pytest.raises(DomainInvariantError, match="stale"):
                await queue.nack(message_id=first.message_id, worker_id="w-2", retry=True)
            assert await queue.nack(message_id=first.message_id, worker_id="w-1", retry=True) is True

            second = await queue.claim_next(queue="sync_comments", worker_id="w-1")
            assert second is not None and second.attempt == 2
            assert await queue.nack(message_id=second.message_id, worker_id="w-1", retry=True) is False
            assert await queue.claim_next(queue="sync_comments", worker_id="w-1") is None

    asyncio.run(_run())


@pytest.mark.integration
def test_expired_lease_is_reclaimed() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, queue):
            tenant = await repo.create_tenant(name="Acme")
            dispatcher = JobDispatcher(outbox=repo, queue=queue, policies={"sync_comments": FAST})
            job = await dispatcher.enqueue_sync_comments(tenant_id=tenant.tenant_id)

            claim = await queue.claim_next(queue="sync_comments", worker_id="w-dead", lease_seconds=0)
            assert claim is not None
            reclaimed = await queue.reclaim_expired(queue="sync_comments")
            assert [(item.outbox_job_id, item.redelivered) for item in reclaimed] == [(job.job_id, True)]

            with pytest.raises(DomainInvariantError, match="stale"):
                await queue.ack(message_id=claim.message_id, worker_id="w-dead")
            again = await queue.claim_next(queue="sync_comments", worker_id="w-live")
            assert again is not None and again.attempt == 2
            await queue.ack(message_id=again.message_id, worker_id="w-live")

    asyncio.run(_run())


@pytest.mark.integration
def test_outbox_lifecycle_and_retry_audit() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, _queue):
            tenant = await repo.create_tenant(name="Acme")
            job = await repo.create_outbox_job(
                OutboxJobDraft(tenant_id=tenant.tenant_id, job_type=OutboxJobType.SYNC_COMMENTS, payload={"tenant_id": tenant.tenant_id})
            )
            unsubmitted = await repo.list_outbox_jobs(
                query=OutboxJobListQuery(tenant_ids=(tenant.tenant_id,), unsubmitted_only=True)
            )
            assert [item.job_id for item in unsubmitted] == [job.job_id]

            assert await repo.start_outbox_job(job_id=job.job_id) is True
            assert await repo.start_outbox_job(job_id=job.job_id) is False
            await repo.fail_outbox_job(job_id=job.job_id, last_error="remote_transport_failed: x", requeue=True)
            requeued = await repo.get_outbox_job(job_id=job.job_id)
            assert requeued is not None
            assert (requeued.status, requeued.attempts) == (OutboxJobStatus.QUEUED, 1)

            await repo.start_outbox_job(job_id=job.job_id)
            await repo.fail_outbox_job(job_id=job.job_id, last_error="payload_invalid", requeue=False)
            with pytest.raises(DomainInvariantError):
                await repo.fail_outbox_job(job_id=job.job_id, last_error="payload_invalid", requeue=False)

            reset = await repo.reset_outbox_job_for_retry(job_id=job.job_id, actor_user_id="usr-ops")
            assert (reset.status, reset.attempts, reset.last_error, reset.submitted_at) == (
                OutboxJobStatus.QUEUED,
                3,
                None,
                None,
            )
            audit = await repo.list_audit_entries(tenant_id=tenant.tenant_id, entity_id=job.job_id)
            assert [(entry.action, entry.payload["from"]) for entry in audit] == [("outbox.retry", "failed")]

            await repo.start_outbox_job(job_id=job.job_id)
            await repo.complete_outbox_job(job_id=job.job_id)
            with pytest.raises(InvalidTransitionError):
                await repo.reset_outbox_job_for_retry(job_id=job.job_id, actor_user_id="usr-ops")

    asyncio.run(_run())


@pytest.mark.integration
def test_inbox_upsert_is_keyed_by_space_and_entity() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, _queue):
            tenant = await repo.create_tenant(name="Acme")

            def _draft(description: str) -> InboxItemDraft:
                return InboxItemDraft(
                    space_id=tenant.tenant_id,
                    entity_key=f"post_thread:{tenant.tenant_id}:cnt_1",
                    item_type=InboxItemType.MESSAGE,
                    title="Client comment on post",
                    description=description,
                    action_url=f"/spaces/{tenant.tenant_id}/social/posts/cnt_1",
                    actor_type=AuthorRole.CLIENT,
                )

            first = await repo.upsert_inbox_item(_draft("one"))
            second = await repo.upsert_inbox_item(_draft("two"))
            assert second.item_id == first.item_id
            assert second.description == "two"

            await repo.set_inbox_status(item_id=first.item_id, status=InboxStatus.DONE)
            third = await repo.upsert_inbox_item(_draft("three"))
            assert third.status == InboxStatus.UNREAD
            assert [item.description for item in await repo.list_inbox_items(space_id=tenant.tenant_id)] == ["three"]
            assert await repo.get_inbox_item(item_id=first.item_id) is None
            fetched = await repo.get_inbox_item(item_id=third.item_id)
            assert fetched is not None
            assert (fetched.description, fetched.status) == ("three", InboxStatus.UNREAD)

    asyncio.run(_run())


@pytest.mark.integration
def test_content_edit_checks_status_and_audits_in_one_transaction() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_store(dsn=dsn) as (repo, _queue):
            tenant_id, content_id = await _seed_content(repo)

            def _edit(expected: ContentStatus, **fields: str) -> ContentEditCommand:
                return ContentEditCommand(
                    content_id=content_id,
                    expected_status=expected,
                    actor_user_id="usr-2",
                    audit_payload={"changes": fields},
                    **fields,
                )

            edited = await repo.update_content(_edit(ContentStatus.DRAFT, body="New body"))
            assert (edited.title, edited.body, edited.updated_by) == ("Post", "New body", "usr-2")

            with pytest.raises(DomainInvariantError, match="concurrently"):
                await repo.update_content(_edit(ContentStatus.CHANGES_REQUESTED, title="Stale"))
            with pytest.raises(NotFoundError):
                await repo.update_content(
                    ContentEditCommand(content_id="cnt_missing", expected_status=ContentStatus.DRAFT, actor_user_id="u")
                )

            current = await repo.get_content(content_id=content_id)
            assert current is not None
            assert current.title == "Post"
            audit = await repo.list_audit_entries(tenant_id=tenant_id, entity_id=content_id)
            updates = [entry.payload["changes"] for entry in audit if entry.action == "content.update"]
            assert updates == [{"body": "New body"}]

    asyncio.run(_run())
