from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from postflow.domain.models import ContentStatus, OutboxJobStatus


ULID_BODY = r"[0-9A-HJKMNP-TV-Z]{26}"
TENANT_ID_PATTERN = rf"^spc_{ULID_BODY}$"
CONTENT_ID_PATTERN = rf"^cnt_{ULID_BODY}$"
JOB_ID_PATTERN = rf"^job_{ULID_BODY}$"


class ErrorResponse(BaseModel):
    code: str
    detail: str


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    claims_total: int
    idle_ticks_total: int
    errors_total: int
    reclaimed_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics


class CreateTenantRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    modules: list[str] = Field(default_factory=list)


class TenantResponse(BaseModel):
    tenant_id: str = Field(pattern=TENANT_ID_PATTERN)
    name: str
    modules: list[str]


class SetModuleRequest(BaseModel):
    enabled: bool


class CreateContentRequest(BaseModel):
    tenant_id: str = Field(pattern=TENANT_ID_PATTERN)
    title: str = Field(min_length=1, max_length=512)
    body: str = Field(min_length=1)


class ContentResponse(BaseModel):
    content_id: str = Field(pattern=CONTENT_ID_PATTERN)
    tenant_id: str
    status: ContentStatus
    title: str
    body: str
    scheduled_at: datetime | None = None
    updated_by: str | None = None
    archived_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UpdateContentRequest(BaseModel):
    title: str | None = Field(default=None, max_length=512)
    body: str | None = None


class ListContentsResponse(BaseModel):
    items: list[ContentResponse]


class TransitionRequest(BaseModel):
    # Plain string so unknown targets reach the workflow and fail as invalid transitions.
    target_status: str = Field(min_length=1, max_length=64)


class RequestChangesRequest(BaseModel):
    comment: str


class ScheduleRequest(BaseModel):
    scheduled_at: datetime


class CommentResponse(BaseModel):
    comment_id: str
    content_id: str
    body: str
    author_role: str
    created_at: datetime | None = None


class ListCommentsResponse(BaseModel):
    items: list[CommentResponse]


class OutboxJobResponse(BaseModel):
    job_id: str = Field(pattern=JOB_ID_PATTERN)
    tenant_id: str
    job_type: str
    status: OutboxJobStatus
    attempts: int = Field(ge=0)
    last_error: str | None = None
    payload: dict[str, object]
    submitted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PublishResponse(BaseModel):
    duplicate: bool
    job: OutboxJobResponse | None = None


class ListJobsResponse(BaseModel):
    items: list[OutboxJobResponse]


class SyncCommentsRequest(BaseModel):
    tenant_id: str = Field(pattern=TENANT_ID_PATTERN)


class ResubmitRequest(BaseModel):
    tenant_id: str = Field(pattern=TENANT_ID_PATTERN)


class InboxItemResponse(BaseModel):
    item_id: str
    space_id: str
    entity_key: str
    item_type: str
    title: str
    description: str | None = None
    action_url: str
    actor_type: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListInboxResponse(BaseModel):
    items: list[InboxItemResponse]


class SetInboxStatusRequest(BaseModel):
    status: str = Field(min_length=1, max_length=32)
