from __future__ import annotations

from postflow.domain.dto import SyncCommentsJobPayload
from postflow.domain.error_taxonomy import classify_error, resolve_job_error
from postflow.domain.errors import DomainValidationError
from postflow.domain.models import JobClaim, OutboxJobType, ProcessResult
from postflow.workers.handlers.deps import WorkerDeps

COMPONENT_ID = "worker.sync_comments.process_claim"


async def process_claim(deps: WorkerDeps, *, claim: JobClaim) -> ProcessResult:
    """Comment sync has no remote side yet; the job only walks its status contract."""
    del deps
    try:
        payload = SyncCommentsJobPayload.from_payload(claim.payload)
    except DomainValidationError as exc:
        error_code = resolve_job_error(job_type=OutboxJobType.SYNC_COMMENTS, code="payload_invalid")
        return ProcessResult(
            success=False,
            detail=str(exc),
            error_code=error_code,
            retry_classification=classify_error(error_code),
        )
    return ProcessResult(success=True, detail=f"comments synced for {payload.tenant_id}")
