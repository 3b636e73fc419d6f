import asyncio
from pathlib import Path

import pytest

from postflow.clients.stub import StubPublishingClient
from postflow.domain.contracts import ContentRepository, JobQueue, OutboxStore, PublishingClient
from postflow.repositories.stub import InMemoryJobQueue, InMemoryWorkflowRepository
from postflow.roles import validate_role
from postflow.services.bootstrap import build_runtime_container, retry_policies_from_env
from postflow.workers.loop import WorkerLoop


@pytest.mark.unit
def test_in_memory_adapters_satisfy_contracts() -> None:
    repository = InMemoryWorkflowRepository()
    assert isinstance(repository, ContentRepository)
    assert isinstance(repository, OutboxStore)
    assert isinstance(InMemoryJobQueue(), JobQueue)
    assert isinstance(StubPublishingClient(), PublishingClient)


@pytest.mark.unit
def test_runtime_container_wires_worker_for_its_job_type(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    container = build_runtime_container(validate_role("worker-delete-remote"))

    assert isinstance(container.worker_loop, WorkerLoop)
    assert container.worker_loop.job_type == "delete_remote"
    assert container.worker_loop.queue is container.queue
    assert container.on_startup is None
    assert build_runtime_container(validate_role("api")).worker_loop is None


@pytest.mark.unit
def test_retry_policies_follow_env_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "retry.yaml"
    path.write_text("queues:\n  publish: {max_attempts: 9}\n", encoding="utf-8")
    monkeypatch.setenv("QUEUE_RETRY_POLICY_PATH", str(path))

    assert retry_policies_from_env()["publish"].max_attempts == 9

    monkeypatch.delenv("QUEUE_RETRY_POLICY_PATH")
    assert retry_policies_from_env()["publish"].max_attempts == 5


@pytest.mark.unit
def test_worker_container_processes_sync_job_end_to_end(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    container = build_runtime_container(validate_role("worker-sync-comments"))
    assert container.worker_loop is not None

    async def _run() -> str | None:
        tenant = await container.repository.create_tenant(name="Acme")
        job = await container.dispatcher.enqueue_sync_comments(tenant_id=tenant.tenant_id)
        assert await container.worker_loop.run_once() is True
        current = await container.outbox.get_outbox_job(job_id=job.job_id)
        return current.status if current is not None else None

    assert asyncio.run(_run()) == "completed"
