from __future__ import annotations

from postflow.domain.dto import DeleteRemoteJobPayload
from postflow.domain.error_taxonomy import ErrorCode, classify_error, format_last_error, resolve_job_error
from postflow.domain.errors import DomainValidationError
from postflow.domain.models import JobClaim, OutboxJobType, ProcessResult
from postflow.workers.handlers.deps import WorkerDeps

COMPONENT_ID = "worker.delete_remote.process_claim"


def _failure(code: ErrorCode, detail: str) -> ProcessResult:
    error_code = resolve_job_error(job_type=OutboxJobType.DELETE_REMOTE, code=code)
    return ProcessResult(
        success=False,
        detail=detail,
        error_code=error_code,
        retry_classification=classify_error(error_code),
    )


async def process_claim(deps: WorkerDeps, *, claim: JobClaim) -> ProcessResult:
    try:
        payload = DeleteRemoteJobPayload.from_payload(claim.payload)
    except DomainValidationError as exc:
        return _failure("payload_invalid", str(exc))

    binding = await deps.repository.get_channel_binding(binding_id=payload.channel_id)
    if binding is None:
        return _failure("binding_missing", f"channel binding not found: {payload.channel_id}")

    if binding.remote_id is not None:
        try:
            deps.publishing.delete(network=binding.network, remote_id=binding.remote_id)
        except Exception as exc:  # concrete client behavior
            await deps.repository.record_binding_error(
                binding_id=binding.binding_id,
                error=format_last_error(code="remote_transport_failed", detail=str(exc)),
            )
            return _failure("remote_transport_failed", str(exc))

    await deps.repository.clear_binding_remote(binding_id=binding.binding_id)
    return ProcessResult(success=True, detail=f"remote post removed from {binding.network}")
