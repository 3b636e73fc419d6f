from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging

from postflow.domain.capabilities import Capability, require_capability, require_tenant_access
from postflow.domain.contracts import JobQueue, OutboxStore
from postflow.domain.dto import (
    DeleteRemoteJobPayload,
    PublishJobPayload,
    SyncCommentsJobPayload,
    queue_message_payload,
)
from postflow.domain.errors import InvalidTransitionError, NotFoundError
from postflow.domain.lifecycle import queue_for_job_type
from postflow.domain.models import (
    Actor,
    OutboxJobDraft,
    OutboxJobListQuery,
    OutboxJobSnapshot,
    OutboxJobStatus,
    OutboxJobType,
)
from postflow.domain.retry_policy import DEFAULT_RETRY_POLICIES, RetryPolicy

COMPONENT_ID = "domain.outbox.dispatch"
logger = logging.getLogger("dispatcher")


@dataclass
class JobDispatcher:
    """Writes outbox rows and hands them to the named queues.

    The outbox row always exists before the queue sees the message. A queue
    submission failure is logged and leaves the row queued with no
    submitted_at, which operators can find and re-submit.
    """

    outbox: OutboxStore
    queue: JobQueue
    policies: Mapping[str, RetryPolicy] = field(default_factory=lambda: dict(DEFAULT_RETRY_POLICIES))

    async def enqueue_publish(
        self,
        *,
        tenant_id: str,
        content_id: str,
        channel_id: str,
        idempotency_key: str,
    ) -> OutboxJobSnapshot:
        payload = PublishJobPayload(
            content_id=content_id,
            channel_id=channel_id,
            idempotency_key=idempotency_key,
        )
        return await self._enqueue(
            OutboxJobDraft(tenant_id=tenant_id, job_type=OutboxJobType.PUBLISH, payload=payload.to_payload())
        )

    async def enqueue_delete_remote(self, *, tenant_id: str, channel_id: str) -> OutboxJobSnapshot:
        payload = DeleteRemoteJobPayload(channel_id=channel_id)
        return await self._enqueue(
            OutboxJobDraft(tenant_id=tenant_id, job_type=OutboxJobType.DELETE_REMOTE, payload=payload.to_payload())
        )

    async def enqueue_sync_comments(self, *, tenant_id: str) -> OutboxJobSnapshot:
        payload = SyncCommentsJobPayload(tenant_id=tenant_id)
        return await self._enqueue(
            OutboxJobDraft(tenant_id=tenant_id, job_type=OutboxJobType.SYNC_COMMENTS, payload=payload.to_payload())
        )

    async def submit(self, job: OutboxJobSnapshot) -> bool:
        """Hand an existing outbox row to its queue; False when the queue refused it."""
        queue = queue_for_job_type(job.job_type)
        policy = self.policies[job.job_type]
        try:
            await self.queue.submit(
                queue=queue,
                outbox_job_id=job.job_id,
                payload=queue_message_payload(outbox_job_id=job.job_id, payload=job.payload),
                policy=policy,
            )
        except Exception:
            logger.warning(
                "outbox job submission failed",
                exc_info=True,
                extra={"tenant_id": job.tenant_id, "outbox_job_id": job.job_id, "job_type": job.job_type},
            )
            return False

        await self.outbox.mark_outbox_submitted(job_id=job.job_id)
        return True

    async def retry(self, actor: Actor, *, job_id: str) -> OutboxJobSnapshot:
        job = await self.outbox.get_outbox_job(job_id=job_id)
        if job is None:
            raise NotFoundError(f"outbox job not found: {job_id}")
        require_tenant_access(actor, job.tenant_id)
        require_capability(actor, Capability.OPERATE_JOBS)
        if job.status == OutboxJobStatus.COMPLETED:
            raise InvalidTransitionError(
                current=job.status,
                requested=OutboxJobStatus.QUEUED,
                reason="completed jobs cannot be retried",
            )

        reset = await self.outbox.reset_outbox_job_for_retry(job_id=job_id, actor_user_id=actor.user_id)
        logger.info(
            "outbox job retry requested",
            extra={"tenant_id": reset.tenant_id, "outbox_job_id": reset.job_id, "job_type": reset.job_type},
        )
        await self.submit(reset)
        return await self._refresh(reset)

    async def resubmit_unsubmitted(self, actor: Actor, *, tenant_id: str) -> list[OutboxJobSnapshot]:
        require_tenant_access(actor, tenant_id)
        require_capability(actor, Capability.OPERATE_JOBS)
        dangling = await self.outbox.list_outbox_jobs(
            query=OutboxJobListQuery(
                tenant_ids=(tenant_id,),
                statuses=(OutboxJobStatus.QUEUED,),
                unsubmitted_only=True,
                limit=500,
            )
        )
        resubmitted: list[OutboxJobSnapshot] = []
        for job in dangling:
            if await self.submit(job):
                resubmitted.append(await self._refresh(job))
        return resubmitted

    async def list_jobs(
        self,
        actor: Actor,
        *,
        tenant_id: str | None = None,
        statuses: tuple[OutboxJobStatus, ...] | None = None,
        unsubmitted_only: bool = False,
        limit: int = 50,
    ) -> list[OutboxJobSnapshot]:
        require_capability(actor, Capability.OPERATE_JOBS)
        if tenant_id is not None:
            require_tenant_access(actor, tenant_id)
            tenant_ids: tuple[str, ...] = (tenant_id,)
        else:
            tenant_ids = tuple(sorted(actor.tenant_ids))
        return await self.outbox.list_outbox_jobs(
            query=OutboxJobListQuery(
                tenant_ids=tenant_ids,
                statuses=statuses,
                unsubmitted_only=unsubmitted_only,
                limit=limit,
            )
        )

    async def _enqueue(self, draft: OutboxJobDraft) -> OutboxJobSnapshot:
        job = await self.outbox.create_outbox_job(draft)
        await self.submit(job)
        return await self._refresh(job)

    async def _refresh(self, job: OutboxJobSnapshot) -> OutboxJobSnapshot:
        current = await self.outbox.get_outbox_job(job_id=job.job_id)
        return current if current is not None else job
