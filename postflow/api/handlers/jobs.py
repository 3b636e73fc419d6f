from __future__ import annotations

from postflow.api.handlers.deps import ApiDeps
from postflow.api.schemas import ListJobsResponse, OutboxJobResponse
from postflow.domain.models import Actor, OutboxJobSnapshot, OutboxJobStatus

COMPONENT_ID_LIST = "api.list_jobs"
COMPONENT_ID_RETRY = "api.retry_job"
COMPONENT_ID_SYNC = "api.enqueue_sync_comments"
COMPONENT_ID_RESUBMIT = "api.resubmit_unsubmitted"


def job_response(job: OutboxJobSnapshot) -> OutboxJobResponse:
    return OutboxJobResponse(
        job_id=job.job_id,
        tenant_id=job.tenant_id,
        job_type=job.job_type,
        status=job.status,
        attempts=job.attempts,
        last_error=job.last_error,
        payload=dict(job.payload),
        submitted_at=job.submitted_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


async def list_jobs_handler(
    *,
    actor: Actor,
    tenant_id: str | None,
    statuses: list[OutboxJobStatus] | None,
    unsubmitted_only: bool,
    limit: int,
    api_deps: ApiDeps,
) -> ListJobsResponse:
    jobs = await api_deps.dispatcher.list_jobs(
        actor,
        tenant_id=tenant_id,
        statuses=tuple(statuses) if statuses else None,
        unsubmitted_only=unsubmitted_only,
        limit=limit,
    )
    return ListJobsResponse(items=[job_response(job) for job in jobs])


async def retry_job_handler(*, actor: Actor, job_id: str, api_deps: ApiDeps) -> OutboxJobResponse:
    return job_response(await api_deps.dispatcher.retry(actor, job_id=job_id))


async def enqueue_sync_comments_handler(*, actor: Actor, tenant_id: str, api_deps: ApiDeps) -> OutboxJobResponse:
    return job_response(await api_deps.workflow.request_sync_comments(actor, tenant_id=tenant_id))


async def resubmit_handler(*, actor: Actor, tenant_id: str, api_deps: ApiDeps) -> ListJobsResponse:
    jobs = await api_deps.dispatcher.resubmit_unsubmitted(actor, tenant_id=tenant_id)
    return ListJobsResponse(items=[job_response(job) for job in jobs])
