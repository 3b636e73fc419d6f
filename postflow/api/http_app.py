from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from postflow.api.handlers.contents import (
    approve_handler,
    archive_handler,
    create_content_handler,
    get_content_handler,
    list_comments_handler,
    list_contents_handler,
    publish_handler,
    request_changes_handler,
    request_transition_handler,
    schedule_handler,
    send_for_approval_handler,
    update_content_handler,
)
from postflow.api.handlers.deps import ApiDeps
from postflow.api.handlers.errors import error_body, http_status_for
from postflow.api.handlers.identity import actor_from_headers
from postflow.api.handlers.jobs import (
    enqueue_sync_comments_handler,
    list_jobs_handler,
    resubmit_handler,
    retry_job_handler,
)
from postflow.api.handlers.tenants import (
    create_tenant_handler,
    list_inbox_handler,
    set_inbox_status_handler,
    set_module_handler,
)
from postflow.api.schemas import (
    ContentResponse,
    CreateContentRequest,
    CreateTenantRequest,
    ErrorResponse,
    HealthResponse,
    InboxItemResponse,
    ListCommentsResponse,
    ListContentsResponse,
    ListInboxResponse,
    ListJobsResponse,
    OutboxJobResponse,
    PublishResponse,
    ReadyResponse,
    RequestChangesRequest,
    ResubmitRequest,
    ScheduleRequest,
    SetInboxStatusRequest,
    SetModuleRequest,
    SyncCommentsRequest,
    TenantResponse,
    TransitionRequest,
    UpdateContentRequest,
    WorkerMetrics,
)
from postflow.domain.errors import DomainError
from postflow.domain.models import Actor, OutboxJobStatus
from postflow.workers.loop import WorkerLoop
from postflow.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_app(
    role: str,
    run_id: str,
    worker_loop: WorkerLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None
    mode = "service" if api_deps is not None else "skeleton"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="postflow", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        del request
        logger.info(
            "request rejected",
            extra={"role": role, "service": role, "run_id": run_id, "last_error_code": exc.code},
        )
        return JSONResponse(status_code=http_status_for(exc), content=error_body(exc))

    def _deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=mode)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        worker_loop_ready = True
        metrics = WorkerMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            claims_total=0,
            idle_ticks_total=0,
            errors_total=0,
            reclaimed_total=0,
        )
        if worker_loop_enabled:
            worker_loop_ready = (
                worker_state is not None
                and worker_state.started
                and worker_task is not None
                and not worker_task.done()
            )
            if worker_state is not None:
                metrics = WorkerMetrics(
                    started=worker_state.started,
                    stopped=worker_state.stopped,
                    ticks_total=worker_state.ticks_total,
                    claims_total=worker_state.claims_total,
                    idle_ticks_total=worker_state.idle_ticks_total,
                    errors_total=worker_state.errors_total,
                    reclaimed_total=worker_state.reclaimed_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            mode=mode,
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=metrics,
        )

    @app.post("/tenants", response_model=TenantResponse, responses=ERROR_RESPONSES, tags=["Tenants"])
    async def create_tenant(request: CreateTenantRequest, actor: Actor = Depends(actor_from_headers)) -> TenantResponse:
        return await create_tenant_handler(actor=actor, name=request.name, modules=request.modules, api_deps=_deps())

    @app.put(
        "/tenants/{tenant_id}/modules/{module}",
        response_model=TenantResponse,
        responses=ERROR_RESPONSES,
        tags=["Tenants"],
    )
    async def set_tenant_module(
        tenant_id: str,
        module: str,
        request: SetModuleRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> TenantResponse:
        return await set_module_handler(
            actor=actor,
            tenant_id=tenant_id,
            module=module,
            enabled=request.enabled,
            api_deps=_deps(),
        )

    @app.post("/contents", response_model=ContentResponse, responses=ERROR_RESPONSES, tags=["Contents"])
    async def create_content(
        request: CreateContentRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> ContentResponse:
        return await create_content_handler(
            actor=actor,
            tenant_id=request.tenant_id,
            title=request.title,
            body=request.body,
            api_deps=_deps(),
        )

    @app.get("/contents", response_model=ListContentsResponse, responses=ERROR_RESPONSES, tags=["Contents"])
    async def list_contents(
        tenant_id: str = Query(min_length=1),
        actor: Actor = Depends(actor_from_headers),
    ) -> ListContentsResponse:
        return await list_contents_handler(actor=actor, tenant_id=tenant_id, api_deps=_deps())

    @app.get("/contents/{content_id}", response_model=ContentResponse, responses=ERROR_RESPONSES, tags=["Contents"])
    async def get_content(content_id: str, actor: Actor = Depends(actor_from_headers)) -> ContentResponse:
        return await get_content_handler(actor=actor, content_id=content_id, api_deps=_deps())

    @app.patch("/contents/{content_id}", response_model=ContentResponse, responses=ERROR_RESPONSES, tags=["Contents"])
    async def update_content(
        content_id: str,
        request: UpdateContentRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> ContentResponse:
        return await update_content_handler(
            actor=actor,
            content_id=content_id,
            title=request.title,
            body=request.body,
            api_deps=_deps(),
        )

    @app.post(
        "/contents/{content_id}/transitions",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def request_transition(
        content_id: str,
        request: TransitionRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> ContentResponse:
        return await request_transition_handler(
            actor=actor,
            content_id=content_id,
            target_status=request.target_status,
            api_deps=_deps(),
        )

    @app.post(
        "/contents/{content_id}/send-for-approval",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def send_for_approval(content_id: str, actor: Actor = Depends(actor_from_headers)) -> ContentResponse:
        return await send_for_approval_handler(actor=actor, content_id=content_id, api_deps=_deps())

    @app.post(
        "/contents/{content_id}/approve",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def approve(content_id: str, actor: Actor = Depends(actor_from_headers)) -> ContentResponse:
        return await approve_handler(actor=actor, content_id=content_id, api_deps=_deps())

    @app.post(
        "/contents/{content_id}/request-changes",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def request_changes(
        content_id: str,
        request: RequestChangesRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> ContentResponse:
        return await request_changes_handler(
            actor=actor,
            content_id=content_id,
            comment=request.comment,
            api_deps=_deps(),
        )

    @app.post(
        "/contents/{content_id}/schedule",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def schedule(
        content_id: str,
        request: ScheduleRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> ContentResponse:
        return await schedule_handler(
            actor=actor,
            content_id=content_id,
            scheduled_at=request.scheduled_at,
            api_deps=_deps(),
        )

    @app.post(
        "/contents/{content_id}/archive",
        response_model=ContentResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def archive(content_id: str, actor: Actor = Depends(actor_from_headers)) -> ContentResponse:
        return await archive_handler(actor=actor, content_id=content_id, api_deps=_deps())

    @app.post(
        "/contents/{content_id}/channels/{network}/publish",
        response_model=PublishResponse,
        responses=ERROR_RESPONSES,
        tags=["Workflow"],
    )
    async def publish(content_id: str, network: str, actor: Actor = Depends(actor_from_headers)) -> PublishResponse:
        return await publish_handler(actor=actor, content_id=content_id, network=network, api_deps=_deps())

    @app.get(
        "/contents/{content_id}/comments",
        response_model=ListCommentsResponse,
        responses=ERROR_RESPONSES,
        tags=["Contents"],
    )
    async def list_comments(content_id: str, actor: Actor = Depends(actor_from_headers)) -> ListCommentsResponse:
        return await list_comments_handler(actor=actor, content_id=content_id, api_deps=_deps())

    @app.get("/jobs", response_model=ListJobsResponse, responses=ERROR_RESPONSES, tags=["Jobs"])
    async def list_jobs(
        tenant_id: str | None = Query(default=None),
        status: list[OutboxJobStatus] | None = Query(default=None),
        unsubmitted_only: bool = Query(default=False),
        limit: int = Query(default=50, ge=1, le=500),
        actor: Actor = Depends(actor_from_headers),
    ) -> ListJobsResponse:
        return await list_jobs_handler(
            actor=actor,
            tenant_id=tenant_id,
            statuses=status,
            unsubmitted_only=unsubmitted_only,
            limit=limit,
            api_deps=_deps(),
        )

    @app.post("/jobs/{job_id}/retry", response_model=OutboxJobResponse, responses=ERROR_RESPONSES, tags=["Jobs"])
    async def retry_job(job_id: str, actor: Actor = Depends(actor_from_headers)) -> OutboxJobResponse:
        return await retry_job_handler(actor=actor, job_id=job_id, api_deps=_deps())

    @app.post("/jobs/sync-comments", response_model=OutboxJobResponse, responses=ERROR_RESPONSES, tags=["Jobs"])
    async def enqueue_sync_comments(
        request: SyncCommentsRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> OutboxJobResponse:
        return await enqueue_sync_comments_handler(actor=actor, tenant_id=request.tenant_id, api_deps=_deps())

    @app.post("/jobs/resubmit", response_model=ListJobsResponse, responses=ERROR_RESPONSES, tags=["Jobs"])
    async def resubmit_jobs(request: ResubmitRequest, actor: Actor = Depends(actor_from_headers)) -> ListJobsResponse:
        return await resubmit_handler(actor=actor, tenant_id=request.tenant_id, api_deps=_deps())

    @app.get("/inbox", response_model=ListInboxResponse, responses=ERROR_RESPONSES, tags=["Inbox"])
    async def list_inbox(
        space_id: str = Query(min_length=1),
        exclude_done: bool = Query(default=False),
        actor: Actor = Depends(actor_from_headers),
    ) -> ListInboxResponse:
        return await list_inbox_handler(
            actor=actor,
            space_id=space_id,
            exclude_done=exclude_done,
            api_deps=_deps(),
        )

    @app.post(
        "/inbox/{item_id}/status",
        response_model=InboxItemResponse,
        responses=ERROR_RESPONSES,
        tags=["Inbox"],
    )
    async def set_inbox_status(
        item_id: str,
        request: SetInboxStatusRequest,
        actor: Actor = Depends(actor_from_headers),
    ) -> InboxItemResponse:
        return await set_inbox_status_handler(
            actor=actor,
            item_id=item_id,
            status=request.status,
            api_deps=_deps(),
        )

    return app
