from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from postflow.clients.stub import StubPublishingClient
from postflow.domain.models import Actor, ContentSnapshot, Role
from postflow.domain.retry_policy import DEFAULT_RETRY_POLICIES, RetryPolicy
from postflow.domain.use_cases.dispatcher import JobDispatcher
from postflow.domain.use_cases.workflow import WorkflowService
from postflow.repositories.stub import InMemoryJobQueue, InMemoryWorkflowRepository

# Immediate redelivery keeps retry tests independent of wall-clock backoff.
FAST_POLICIES: dict[str, RetryPolicy] = {
    job_type: RetryPolicy(max_attempts=policy.max_attempts, backoff="fixed", delay_ms=0)
    for job_type, policy in DEFAULT_RETRY_POLICIES.items()
}


@dataclass
class FrozenClock:
    now: datetime = field(default_factory=lambda: datetime(2030, 1, 1, 12, 0, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, *, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class WorkflowHarness:
    repository: InMemoryWorkflowRepository
    queue: InMemoryJobQueue
    dispatcher: JobDispatcher
    workflow: WorkflowService
    publishing: StubPublishingClient
    clock: FrozenClock


def build_harness(*, policies: dict[str, RetryPolicy] | None = None) -> WorkflowHarness:
    clock = FrozenClock()
    repository = InMemoryWorkflowRepository()
    queue = InMemoryJobQueue(clock=clock)
    dispatcher = JobDispatcher(outbox=repository, queue=queue, policies=policies or dict(FAST_POLICIES))
    workflow = WorkflowService(repository=repository, dispatcher=dispatcher, clock=clock)
    return WorkflowHarness(
        repository=repository,
        queue=queue,
        dispatcher=dispatcher,
        workflow=workflow,
        publishing=StubPublishingClient(),
        clock=clock,
    )


def agency_actor(*tenant_ids: str, role: str = Role.AGENCY_MANAGER) -> Actor:
    return Actor(user_id="usr-agency", role=role, tenant_ids=frozenset(tenant_ids))


def client_actor(*tenant_ids: str) -> Actor:
    return Actor(user_id="usr-client", role=Role.CLIENT_USER, tenant_ids=frozenset(tenant_ids))


async def seed_tenant(harness: WorkflowHarness, *, modules: tuple[str, ...] = ("social",)) -> str:
    tenant = await harness.repository.create_tenant(name="Acme", modules=modules)
    return tenant.tenant_id


async def seed_content(harness: WorkflowHarness, *, tenant_id: str) -> ContentSnapshot:
    return await harness.workflow.create_content(
        agency_actor(tenant_id),
        tenant_id=tenant_id,
        title="Launch post",
        body="We are live.",
    )


async def seed_scheduled(harness: WorkflowHarness, *, tenant_id: str) -> ContentSnapshot:
    """Walk a fresh draft through approval and schedule it one day ahead of the clock."""
    content = await seed_content(harness, tenant_id=tenant_id)
    agency = agency_actor(tenant_id)
    await harness.workflow.send_for_approval(agency, content_id=content.content_id)
    await harness.workflow.approve(client_actor(tenant_id), content_id=content.content_id)
    return await harness.workflow.schedule(
        agency,
        content_id=content.content_id,
        scheduled_at=harness.clock() + timedelta(days=1),
    )
