from __future__ import annotations

from datetime import datetime

from postflow.api.handlers.deps import ApiDeps
from postflow.api.handlers.jobs import job_response
from postflow.api.schemas import (
    CommentResponse,
    ContentResponse,
    ListCommentsResponse,
    ListContentsResponse,
    PublishResponse,
)
from postflow.domain.models import Actor, ContentSnapshot

COMPONENT_ID_CREATE = "api.create_content"
COMPONENT_ID_GET = "api.get_content"
COMPONENT_ID_LIST = "api.list_contents"
COMPONENT_ID_UPDATE = "api.update_content"
COMPONENT_ID_TRANSITION = "api.request_transition"
COMPONENT_ID_SEND = "api.send_for_approval"
COMPONENT_ID_APPROVE = "api.approve"
COMPONENT_ID_REQUEST_CHANGES = "api.request_changes"
COMPONENT_ID_SCHEDULE = "api.schedule"
COMPONENT_ID_ARCHIVE = "api.archive_and_retract"
COMPONENT_ID_PUBLISH = "api.publish_to_channel"
COMPONENT_ID_COMMENTS = "api.list_comments"


def content_response(content: ContentSnapshot) -> ContentResponse:
    return ContentResponse(
        content_id=content.content_id,
        tenant_id=content.tenant_id,
        status=content.status,
        title=content.title,
        body=content.body,
        scheduled_at=content.scheduled_at,
        updated_by=content.updated_by,
        archived_at=content.archived_at,
        created_at=content.created_at,
        updated_at=content.updated_at,
    )


async def create_content_handler(
    *,
    actor: Actor,
    tenant_id: str,
    title: str,
    body: str,
    api_deps: ApiDeps,
) -> ContentResponse:
    content = await api_deps.workflow.create_content(actor, tenant_id=tenant_id, title=title, body=body)
    return content_response(content)


async def get_content_handler(*, actor: Actor, content_id: str, api_deps: ApiDeps) -> ContentResponse:
    return content_response(await api_deps.workflow.get_content(actor, content_id=content_id))


async def list_contents_handler(*, actor: Actor, tenant_id: str, api_deps: ApiDeps) -> ListContentsResponse:
    contents = await api_deps.workflow.list_contents(actor, tenant_id=tenant_id)
    return ListContentsResponse(items=[content_response(content) for content in contents])


async def update_content_handler(
    *,
    actor: Actor,
    content_id: str,
    title: str | None,
    body: str | None,
    api_deps: ApiDeps,
) -> ContentResponse:
    content = await api_deps.workflow.update_content(actor, content_id=content_id, title=title, body=body)
    return content_response(content)


async def request_transition_handler(
    *,
    actor: Actor,
    content_id: str,
    target_status: str,
    api_deps: ApiDeps,
) -> ContentResponse:
    content = await api_deps.workflow.request_transition(actor, content_id=content_id, target_status=target_status)
    return content_response(content)


async def send_for_approval_handler(*, actor: Actor, content_id: str, api_deps: ApiDeps) -> ContentResponse:
    return content_response(await api_deps.workflow.send_for_approval(actor, content_id=content_id))


async def approve_handler(*, actor: Actor, content_id: str, api_deps: ApiDeps) -> ContentResponse:
    return content_response(await api_deps.workflow.approve(actor, content_id=content_id))


async def request_changes_handler(
    *,
    actor: Actor,
    content_id: str,
    comment: str,
    api_deps: ApiDeps,
) -> ContentResponse:
    content = await api_deps.workflow.request_changes(actor, content_id=content_id, comment=comment)
    return content_response(content)


async def schedule_handler(
    *,
    actor: Actor,
    content_id: str,
    scheduled_at: datetime,
    api_deps: ApiDeps,
) -> ContentResponse:
    content = await api_deps.workflow.schedule(actor, content_id=content_id, scheduled_at=scheduled_at)
    return content_response(content)


async def archive_handler(*, actor: Actor, content_id: str, api_deps: ApiDeps) -> ContentResponse:
    return content_response(await api_deps.workflow.archive_and_retract(actor, content_id=content_id))


async def publish_handler(*, actor: Actor, content_id: str, network: str, api_deps: ApiDeps) -> PublishResponse:
    job = await api_deps.workflow.publish_to_channel(content_id=content_id, network=network, actor=actor)
    if job is None:
        return PublishResponse(duplicate=True)
    return PublishResponse(duplicate=False, job=job_response(job))


async def list_comments_handler(*, actor: Actor, content_id: str, api_deps: ApiDeps) -> ListCommentsResponse:
    comments = await api_deps.workflow.list_comments(actor, content_id=content_id)
    return ListCommentsResponse(
        items=[
            CommentResponse(
                comment_id=comment.comment_id,
                content_id=comment.content_id,
                body=comment.body,
                author_role=comment.author_role,
                created_at=comment.created_at,
            )
            for comment in comments
        ]
    )
