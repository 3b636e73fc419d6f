from __future__ import annotations

from postflow.domain.models import JobClaim, ProcessResult
from postflow.workers.handlers import delete_remote, publish, sync_comments
from postflow.workers.handlers.deps import WorkerDeps
from postflow.workers.loop import ProcessHandler


def build_process_handler(role: str, deps: WorkerDeps) -> ProcessHandler:
    async def _publish(claim: JobClaim) -> ProcessResult:
        return await publish.process_claim(deps, claim=claim)

    async def _delete_remote(claim: JobClaim) -> ProcessResult:
        return await delete_remote.process_claim(deps, claim=claim)

    async def _sync_comments(claim: JobClaim) -> ProcessResult:
        return await sync_comments.process_claim(deps, claim=claim)

    handlers: dict[str, ProcessHandler] = {
        "worker-publish": _publish,
        "worker-delete-remote": _delete_remote,
        "worker-sync-comments": _sync_comments,
    }
    handler = handlers.get(role)
    if handler is None:
        raise ValueError(f"No worker handler for role '{role}'")
    return handler
