from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import os

from postflow.api.handlers.deps import ApiDeps
from postflow.clients.stub import StubPublishingClient
from postflow.domain.contracts import ContentRepository, JobQueue, OutboxStore, PublishingClient
from postflow.domain.retry_policy import DEFAULT_RETRY_POLICIES, RetryPolicy, load_retry_policies
from postflow.domain.use_cases.dispatcher import JobDispatcher
from postflow.domain.use_cases.workflow import WorkflowService
from postflow.repositories.postgres import AsyncpgPoolManager, PostgresJobQueue, PostgresWorkflowRepository
from postflow.repositories.stub import InMemoryJobQueue, InMemoryWorkflowRepository
from postflow.roles import ROLE_TO_JOB_TYPE, RuntimeRole
from postflow.workers.handlers.deps import WorkerDeps
from postflow.workers.handlers.factory import build_process_handler
from postflow.workers.loop import WorkerLoop


@dataclass
class RuntimeContainer:
    repository: ContentRepository
    outbox: OutboxStore
    queue: JobQueue
    publishing: PublishingClient
    dispatcher: JobDispatcher
    workflow: WorkflowService
    api_deps: ApiDeps
    worker_loop: WorkerLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def retry_policies_from_env() -> dict[str, RetryPolicy]:
    path = os.getenv("QUEUE_RETRY_POLICY_PATH")
    if not path:
        return dict(DEFAULT_RETRY_POLICIES)
    return load_retry_policies(path)


def build_runtime_container(role: RuntimeRole) -> RuntimeContainer:
    database_url = os.getenv("DATABASE_URL")
    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None
    repository: PostgresWorkflowRepository | InMemoryWorkflowRepository
    queue: PostgresJobQueue | InMemoryJobQueue
    if database_url:
        pool_manager = AsyncpgPoolManager(dsn=database_url)
        repository = PostgresWorkflowRepository(pool_manager=pool_manager)
        queue = PostgresJobQueue(pool_manager=pool_manager)
        on_startup = pool_manager.startup
        on_shutdown = pool_manager.shutdown
    else:
        repository = InMemoryWorkflowRepository()
        queue = InMemoryJobQueue()
    publishing = StubPublishingClient()
    dispatcher = JobDispatcher(outbox=repository, queue=queue, policies=retry_policies_from_env())
    workflow = WorkflowService(repository=repository, dispatcher=dispatcher)
    api_deps = ApiDeps(repository=repository, dispatcher=dispatcher, workflow=workflow)

    worker_loop: WorkerLoop | None = None
    if role.name in ROLE_TO_JOB_TYPE:
        worker_deps = WorkerDeps(repository=repository, publishing=publishing)
        worker_loop = WorkerLoop(
            role=role.name,
            job_type=ROLE_TO_JOB_TYPE[role.name],
            queue=queue,
            outbox=repository,
            process=build_process_handler(role.name, worker_deps),
        )

    return RuntimeContainer(
        repository=repository,
        outbox=repository,
        queue=queue,
        publishing=publishing,
        dispatcher=dispatcher,
        workflow=workflow,
        api_deps=api_deps,
        worker_loop=worker_loop,
        on_startup=on_startup,
        on_shutdown=on_shutdown,
    )
