from __future__ import annotations

import asyncio
from pathlib import Path

from fastapi.testclient import TestClient
import pytest

from postflow.api.http_app import build_app
from postflow.roles import validate_role
from postflow.services.bootstrap import RuntimeContainer, build_runtime_container
from postflow.workers.handlers.deps import WorkerDeps
from postflow.workers.handlers.factory import build_process_handler
from postflow.workers.loop import WorkerLoop
from tests.integration.api_seed import actor_headers, seed_scheduled_content, seed_tenant


def _worker(container: RuntimeContainer, *, role: str, job_type: str) -> WorkerLoop:
    deps = WorkerDeps(repository=container.repository, publishing=container.publishing)
    return WorkerLoop(
        role=role,
        job_type=job_type,
        queue=container.queue,
        outbox=container.outbox,
        process=build_process_handler(role, deps),
    )


def _container(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> RuntimeContainer:
    policy_path = tmp_path / "retry_policies.yaml"
    policy_path.write_text(
        "queues:\n"
        "  publish: {max_attempts: 2, backoff: fixed, delay_ms: 0}\n"
        "  delete_remote: {max_attempts: 2, backoff: fixed, delay_ms: 0}\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("QUEUE_RETRY_POLICY_PATH", str(policy_path))
    return build_runtime_container(validate_role("api"))


@pytest.mark.integration
def test_scheduled_post_is_published_and_retracted_on_archive(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    container = _container(monkeypatch, tmp_path)
    app = build_app(role="api", run_id="integration-e2e", api_deps=container.api_deps)
    publish_loop = _worker(container, role="worker-publish", job_type="publish")
    delete_loop = _worker(container, role="worker-delete-remote", job_type="delete_remote")

    with TestClient(app) as client:
        tenant_id = seed_tenant(client=client)
        content_id = seed_scheduled_content(client=client, tenant_id=tenant_id)
        agency = actor_headers(tenant_id)

        first = client.post(f"/contents/{content_id}/channels/linkedin/publish", headers=agency).json()
        second = client.post(f"/contents/{content_id}/channels/facebook/publish", headers=agency).json()
        assert first["duplicate"] is False and second["duplicate"] is False

        assert asyncio.run(publish_loop.run_once()) is True
        assert asyncio.run(publish_loop.run_once()) is True
        assert asyncio.run(publish_loop.run_once()) is False

        content = client.get(f"/contents/{content_id}", headers=agency).json()
        assert content["status"] == "published"

        duplicate = client.post(f"/contents/{content_id}/channels/linkedin/publish", headers=agency).json()
        assert duplicate == {"duplicate": True, "job": None}

        completed = client.get("/jobs", params={"tenant_id": tenant_id, "status": ["completed"]}, headers=agency)
        assert len(completed.json()["items"]) == 2

        archived = client.post(f"/contents/{content_id}/archive", headers=agency).json()
        assert archived["status"] == "archived"

        assert asyncio.run(delete_loop.run_once()) is True
        assert asyncio.run(delete_loop.run_once()) is True
        assert asyncio.run(delete_loop.run_once()) is False

        jobs = client.get("/jobs", params={"tenant_id": tenant_id}, headers=agency).json()["items"]
        assert sorted((job["job_type"], job["status"]) for job in jobs) == [
            ("delete_remote", "completed"),
            ("delete_remote", "completed"),
            ("publish", "completed"),
            ("publish", "completed"),
        ]

    bindings = asyncio.run(container.repository.list_channel_bindings(content_id=content_id))
    assert [binding.network for binding in bindings] == ["facebook", "linkedin"]
    assert all(binding.remote_id is None for binding in bindings)
    assert len(container.publishing.deleted) == 2


@pytest.mark.integration
def test_transport_failure_is_retried_then_exhausted(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    container = _container(monkeypatch, tmp_path)
    app = build_app(role="api", run_id="integration-e2e-retry", api_deps=container.api_deps)
    publish_loop = _worker(container, role="worker-publish", job_type="publish")

    with TestClient(app) as client:
        tenant_id = seed_tenant(client=client)
        content_id = seed_scheduled_content(client=client, tenant_id=tenant_id)
        agency = actor_headers(tenant_id)
        job_id = client.post(f"/contents/{content_id}/channels/linkedin/publish", headers=agency).json()["job"]["job_id"]

        container.publishing.fail_next = 2
        asyncio.run(publish_loop.run_once())
        requeued = client.get("/jobs", params={"tenant_id": tenant_id}, headers=agency).json()["items"][0]
        assert (requeued["status"], requeued["attempts"]) == ("queued", 1)
        assert requeued["last_error"].startswith("remote_transport_failed")

        asyncio.run(publish_loop.run_once())
        failed = client.get("/jobs", params={"tenant_id": tenant_id, "status": ["failed"]}, headers=agency)
        [failed_job] = failed.json()["items"]
        assert failed_job["attempts"] == 2
        assert client.get(f"/contents/{content_id}", headers=agency).json()["status"] == "scheduled"

        retried = client.post(f"/jobs/{job_id}/retry", headers=agency).json()
        assert (retried["status"], retried["attempts"], retried["last_error"]) == ("queued", 3, None)

        assert asyncio.run(publish_loop.run_once()) is True
        assert client.get(f"/contents/{content_id}", headers=agency).json()["status"] == "published"
