from __future__ import annotations

import logging

from postflow.domain.dto import PublishJobPayload
from postflow.domain.error_taxonomy import ErrorCode, classify_error, format_last_error, resolve_job_error
from postflow.domain.errors import DomainValidationError, InvalidTransitionError
from postflow.domain.models import ContentStatus, JobClaim, OutboxJobType, ProcessResult, TransitionCommand
from postflow.workers.handlers.deps import WorkerDeps

COMPONENT_ID = "worker.publish.process_claim"
SYSTEM_ACTOR = "system:worker-publish"

logger = logging.getLogger("runtime")


def _failure(code: ErrorCode, detail: str) -> ProcessResult:
    error_code = resolve_job_error(job_type=OutboxJobType.PUBLISH, code=code)
    return ProcessResult(
        success=False,
        detail=detail,
        error_code=error_code,
        retry_classification=classify_error(error_code),
    )


async def process_claim(deps: WorkerDeps, *, claim: JobClaim) -> ProcessResult:
    """Publish content on the binding's network and mark it published."""
    try:
        payload = PublishJobPayload.from_payload(claim.payload)
    except DomainValidationError as exc:
        return _failure("payload_invalid", str(exc))

    content = await deps.repository.get_content(content_id=payload.content_id)
    if content is None:
        return _failure("content_missing", f"content not found: {payload.content_id}")
    if content.status == ContentStatus.ARCHIVED:
        return _failure("content_missing", f"content is archived: {payload.content_id}")

    binding = await deps.repository.get_channel_binding(binding_id=payload.channel_id)
    if binding is None:
        return _failure("binding_missing", f"channel binding not found: {payload.channel_id}")

    if binding.remote_id is not None and binding.idempotency_key == payload.idempotency_key:
        detail = "already published"
    else:
        try:
            post = deps.publishing.publish(
                network=binding.network,
                binding_id=binding.binding_id,
                content_id=content.content_id,
                title=content.title,
                body=content.body,
                idempotency_key=payload.idempotency_key,
            )
        except Exception as exc:  # concrete client behavior
            await deps.repository.record_binding_error(
                binding_id=binding.binding_id,
                error=format_last_error(code="remote_transport_failed", detail=str(exc)),
            )
            return _failure("remote_transport_failed", str(exc))

        await deps.repository.record_publish_success(
            binding_id=binding.binding_id,
            idempotency_key=payload.idempotency_key,
            remote_id=post.remote_id,
            remote_url=post.remote_url,
        )
        detail = f"published on {binding.network}"

    if content.status == ContentStatus.SCHEDULED:
        try:
            await deps.repository.apply_transition(
                TransitionCommand(
                    content_id=content.content_id,
                    from_status=ContentStatus.SCHEDULED,
                    to_status=ContentStatus.PUBLISHED,
                    actor_user_id=SYSTEM_ACTOR,
                    audit_action="content.published",
                    audit_payload={"network": binding.network, "binding_id": binding.binding_id},
                )
            )
        except InvalidTransitionError:
            # Another channel flipped it first.
            logger.info(
                "content already moved on",
                extra={"content_id": content.content_id, "outbox_job_id": claim.outbox_job_id, "job_type": "publish"},
            )

    return ProcessResult(success=True, detail=detail)
