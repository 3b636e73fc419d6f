from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging

from postflow.domain.capabilities import (
    AGENCY_APPROVAL_SOURCES,
    Capability,
    capabilities_for,
    check_role_gate,
    require_capability,
    require_tenant_access,
)
from postflow.domain.contracts import ContentRepository
from postflow.domain.dto import DeleteRemoteJobPayload
from postflow.domain.errors import (
    DomainInvariantError,
    DomainValidationError,
    InvalidTransitionError,
    ModuleDisabledError,
    NotFoundError,
)
from postflow.domain.lifecycle import can_transition
from postflow.domain.models import (
    Actor,
    AuthorRole,
    ChannelBindingSnapshot,
    CommentDraft,
    CommentSnapshot,
    ContentEditCommand,
    ContentSnapshot,
    ContentStatus,
    InboxItemDraft,
    InboxItemType,
    OutboxJobDraft,
    OutboxJobSnapshot,
    OutboxJobType,
    TenantSnapshot,
    TransitionCommand,
)
from postflow.domain.scheduling import build_idempotency_key, can_schedule, format_instant, to_utc
from postflow.domain.use_cases.dispatcher import JobDispatcher

COMPONENT_ID = "domain.content.workflow"
SOCIAL_MODULE = "social"
COMMENT_MIN_LENGTH = 5
COMMENT_MAX_LENGTH = 2000
TITLE_MIN_LENGTH = 2

PUBLISHABLE_STATUSES: frozenset[str] = frozenset({ContentStatus.SCHEDULED, ContentStatus.PUBLISHED})
EDITABLE_STATUSES = AGENCY_APPROVAL_SOURCES

logger = logging.getLogger("workflow")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _action_url(*, space_id: str, content_id: str) -> str:
    return f"/spaces/{space_id}/social/posts/{content_id}"


@dataclass
class WorkflowService:
    """Every content status change goes through here.

    Each operation re-reads the item, authorizes the actor, validates the edge
    and commits status + audit (+ write-ahead outbox rows) in one repository
    call. Queue submission and notifications happen after the commit.
    """

    repository: ContentRepository
    dispatcher: JobDispatcher
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def create_content(self, actor: Actor, *, tenant_id: str, title: str, body: str) -> ContentSnapshot:
        tenant = await self._load_tenant(tenant_id)
        require_tenant_access(actor, tenant.tenant_id)
        require_capability(actor, Capability.PRODUCE_CONTENT)
        title = title.strip()
        if len(title) < TITLE_MIN_LENGTH:
            raise DomainValidationError(f"title must have at least {TITLE_MIN_LENGTH} characters")
        if not body:
            raise DomainValidationError("body must not be empty")
        return await self.repository.create_content(
            tenant_id=tenant.tenant_id,
            title=title,
            body=body,
            created_by=actor.user_id,
        )

    async def update_content(
        self,
        actor: Actor,
        *,
        content_id: str,
        title: str | None = None,
        body: str | None = None,
    ) -> ContentSnapshot:
        """Edit title and/or body while the agency still owns the draft."""
        content, _tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.PRODUCE_CONTENT)
        if title is None and body is None:
            raise DomainValidationError("nothing to update: provide title or body")
        if title is not None:
            title = title.strip()
            if len(title) < TITLE_MIN_LENGTH:
                raise DomainValidationError(f"title must have at least {TITLE_MIN_LENGTH} characters")
        if body is not None and not body:
            raise DomainValidationError("body must not be empty")
        if content.status not in EDITABLE_STATUSES:
            raise DomainInvariantError(f"content in status '{content.status}' cannot be edited")

        changes: dict[str, object] = {}
        if title is not None:
            changes["title"] = title
        if body is not None:
            changes["body"] = body
        return await self.repository.update_content(
            ContentEditCommand(
                content_id=content.content_id,
                expected_status=ContentStatus(content.status),
                actor_user_id=actor.user_id,
                title=title,
                body=body,
                audit_payload={"changes": changes, "user_id": actor.user_id},
            )
        )

    async def get_content(self, actor: Actor, *, content_id: str) -> ContentSnapshot:
        content, _tenant = await self._load_for_actor(actor, content_id)
        return content

    async def list_contents(self, actor: Actor, *, tenant_id: str) -> list[ContentSnapshot]:
        tenant = await self._load_tenant(tenant_id)
        require_tenant_access(actor, tenant.tenant_id)
        return await self.repository.list_contents(tenant_id=tenant.tenant_id)

    async def list_comments(self, actor: Actor, *, content_id: str) -> list[CommentSnapshot]:
        content, _tenant = await self._load_for_actor(actor, content_id)
        return await self.repository.list_comments(content_id=content.content_id)

    async def request_transition(self, actor: Actor, *, content_id: str, target_status: str) -> ContentSnapshot:
        content, _tenant = await self._load_for_actor(actor, content_id)
        target = _parse_status(current=content.status, requested=target_status)
        check_role_gate(capabilities=capabilities_for(actor.role), current=content.status, target=target)
        _ensure_edge(current=content.status, target=target)

        if target == ContentStatus.ARCHIVED:
            return await self._archive(actor, content)
        if target == ContentStatus.SCHEDULED and not can_schedule(
            content.status, content.scheduled_at, now=self.clock()
        ):
            raise InvalidTransitionError(
                current=content.status,
                requested=target,
                reason="scheduled_at must be set in the future",
            )

        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus(content.status),
                to_status=target,
                actor_user_id=actor.user_id,
                audit_action="content.status.update",
                audit_payload={"from": content.status, "status": str(target), "user_id": actor.user_id},
            )
        )
        return record.content

    async def send_for_approval(self, actor: Actor, *, content_id: str) -> ContentSnapshot:
        content, tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.PRODUCE_CONTENT)
        await self._require_module(tenant)
        if content.status not in AGENCY_APPROVAL_SOURCES:
            raise InvalidTransitionError(
                current=content.status,
                requested=ContentStatus.PENDING_CLIENT,
                reason="content can only be sent for approval from draft or changes_requested",
            )

        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus(content.status),
                to_status=ContentStatus.PENDING_CLIENT,
                actor_user_id=actor.user_id,
                audit_action="content.send_for_approval",
                audit_payload={"from": content.status, "user_id": actor.user_id},
            )
        )
        await self.repository.upsert_inbox_item(
            InboxItemDraft(
                space_id=tenant.tenant_id,
                entity_key=f"post_validation:{tenant.tenant_id}:{content.content_id}",
                item_type=InboxItemType.VALIDATION,
                title="Post awaiting approval",
                description=content.title,
                action_url=_action_url(space_id=tenant.tenant_id, content_id=content.content_id),
                actor_type=AuthorRole.AGENCY,
            )
        )
        return record.content

    async def approve(self, actor: Actor, *, content_id: str) -> ContentSnapshot:
        content, tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.ACT_ON_BEHALF_OF_CLIENT)
        await self._require_module(tenant)
        _ensure_pending_client(content, requested=ContentStatus.APPROVED)

        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus.PENDING_CLIENT,
                to_status=ContentStatus.APPROVED,
                actor_user_id=actor.user_id,
                audit_action="content.approve",
                audit_payload={"user_id": actor.user_id},
            )
        )
        await self.repository.upsert_inbox_item(
            InboxItemDraft(
                space_id=tenant.tenant_id,
                entity_key=f"post_approved:{tenant.tenant_id}:{content.content_id}",
                item_type=InboxItemType.SIGNAL,
                title="Post approved",
                description=content.title,
                action_url=_action_url(space_id=tenant.tenant_id, content_id=content.content_id),
                actor_type=AuthorRole.CLIENT,
            )
        )
        return record.content

    async def request_changes(self, actor: Actor, *, content_id: str, comment: str) -> ContentSnapshot:
        content, tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.ACT_ON_BEHALF_OF_CLIENT)
        await self._require_module(tenant)
        body = comment.strip()
        if not COMMENT_MIN_LENGTH <= len(body) <= COMMENT_MAX_LENGTH:
            raise DomainValidationError(
                f"comment must have between {COMMENT_MIN_LENGTH} and {COMMENT_MAX_LENGTH} characters"
            )
        _ensure_pending_client(content, requested=ContentStatus.CHANGES_REQUESTED)

        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus.PENDING_CLIENT,
                to_status=ContentStatus.CHANGES_REQUESTED,
                actor_user_id=actor.user_id,
                audit_action="content.request_changes",
                audit_payload={"user_id": actor.user_id},
                comment=CommentDraft(body=body, author_role=AuthorRole.CLIENT),
            )
        )
        await self.repository.upsert_inbox_item(
            InboxItemDraft(
                space_id=tenant.tenant_id,
                entity_key=f"post_thread:{tenant.tenant_id}:{content.content_id}",
                item_type=InboxItemType.MESSAGE,
                title="Client comment on post",
                description=body,
                action_url=_action_url(space_id=tenant.tenant_id, content_id=content.content_id),
                actor_type=AuthorRole.CLIENT,
            )
        )
        return record.content

    async def schedule(self, actor: Actor, *, content_id: str, scheduled_at: datetime) -> ContentSnapshot:
        content, _tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.PRODUCE_CONTENT)
        # Naive input is UTC; persist it aware so the stored instant matches the idempotency key.
        scheduled_at = to_utc(scheduled_at)
        _ensure_edge(current=content.status, target=ContentStatus.SCHEDULED)
        if not can_schedule(content.status, scheduled_at, now=self.clock()):
            raise InvalidTransitionError(
                current=content.status,
                requested=ContentStatus.SCHEDULED,
                reason="scheduled_at must be in the future",
            )

        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus.APPROVED,
                to_status=ContentStatus.SCHEDULED,
                actor_user_id=actor.user_id,
                audit_action="content.schedule",
                audit_payload={"scheduled_at": format_instant(scheduled_at), "user_id": actor.user_id},
                scheduled_at=scheduled_at,
            )
        )
        return record.content

    async def archive_and_retract(self, actor: Actor, *, content_id: str) -> ContentSnapshot:
        content, _tenant = await self._load_for_actor(actor, content_id)
        require_capability(actor, Capability.PRODUCE_CONTENT)
        _ensure_edge(current=content.status, target=ContentStatus.ARCHIVED)
        return await self._archive(actor, content)

    async def publish_to_channel(
        self,
        *,
        content_id: str,
        network: str,
        actor: Actor | None = None,
    ) -> OutboxJobSnapshot | None:
        """Enqueue a publish of scheduled content on one network.

        Called by the time-based trigger once the schedule is due. Returns None
        when the same (content, channel, schedule) was already published.
        """
        if actor is not None:
            content, _tenant = await self._load_for_actor(actor, content_id)
            require_capability(actor, Capability.OPERATE_JOBS)
        else:
            content = await self._load_content(content_id)
        network = network.strip().lower()
        if not network:
            raise DomainValidationError("network must not be empty")
        if content.status not in PUBLISHABLE_STATUSES:
            raise InvalidTransitionError(
                current=content.status,
                requested=ContentStatus.PUBLISHED,
                reason="only scheduled content can be published",
            )

        idempotency_key = build_idempotency_key(content.content_id, network, content.scheduled_at)
        existing = await self.repository.find_channel_binding(content_id=content.content_id, network=network)
        if _already_published(existing, idempotency_key):
            logger.info(
                "duplicate publish skipped",
                extra={"tenant_id": content.tenant_id, "content_id": content.content_id, "job_type": "publish"},
            )
            return None

        binding = await self.repository.get_or_create_channel_binding(
            content_id=content.content_id,
            network=network,
            idempotency_key=idempotency_key,
        )
        return await self.dispatcher.enqueue_publish(
            tenant_id=content.tenant_id,
            content_id=content.content_id,
            channel_id=binding.binding_id,
            idempotency_key=idempotency_key,
        )

    async def request_sync_comments(self, actor: Actor, *, tenant_id: str) -> OutboxJobSnapshot:
        tenant = await self._load_tenant(tenant_id)
        require_tenant_access(actor, tenant.tenant_id)
        require_capability(actor, Capability.OPERATE_JOBS)
        return await self.dispatcher.enqueue_sync_comments(tenant_id=tenant.tenant_id)

    async def _archive(self, actor: Actor, content: ContentSnapshot) -> ContentSnapshot:
        # Retraction is always attempted; content without bindings simply has nothing to retract.
        bindings = await self.repository.list_channel_bindings(content_id=content.content_id)
        drafts = tuple(
            OutboxJobDraft(
                tenant_id=content.tenant_id,
                job_type=OutboxJobType.DELETE_REMOTE,
                payload=DeleteRemoteJobPayload(channel_id=binding.binding_id).to_payload(),
            )
            for binding in bindings
        )
        record = await self.repository.apply_transition(
            TransitionCommand(
                content_id=content.content_id,
                from_status=ContentStatus(content.status),
                to_status=ContentStatus.ARCHIVED,
                actor_user_id=actor.user_id,
                audit_action="content.archive",
                audit_payload={
                    "from": content.status,
                    "user_id": actor.user_id,
                    "retracted_bindings": [binding.binding_id for binding in bindings],
                },
                outbox_jobs=drafts,
            )
        )
        for job in record.outbox_jobs:
            await self.dispatcher.submit(job)
        return record.content

    async def _load_content(self, content_id: str) -> ContentSnapshot:
        content = await self.repository.get_content(content_id=content_id)
        if content is None:
            raise NotFoundError(f"content not found: {content_id}")
        return content

    async def _load_tenant(self, tenant_id: str) -> TenantSnapshot:
        tenant = await self.repository.get_tenant(tenant_id=tenant_id)
        if tenant is None:
            raise NotFoundError(f"tenant not found: {tenant_id}")
        return tenant

    async def _load_for_actor(self, actor: Actor, content_id: str) -> tuple[ContentSnapshot, TenantSnapshot]:
        content = await self._load_content(content_id)
        tenant = await self._load_tenant(content.tenant_id)
        require_tenant_access(actor, tenant.tenant_id)
        return content, tenant

    async def _require_module(self, tenant: TenantSnapshot) -> None:
        if not await self.repository.has_module(space_id=tenant.tenant_id, module=SOCIAL_MODULE):
            raise ModuleDisabledError(space_id=tenant.tenant_id, module=SOCIAL_MODULE)


def _parse_status(*, current: str, requested: str) -> ContentStatus:
    try:
        return ContentStatus(requested)
    except ValueError:
        raise InvalidTransitionError(current=current, requested=requested, reason="unknown status") from None


def _ensure_edge(*, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current=current, requested=target)


def _ensure_pending_client(content: ContentSnapshot, *, requested: ContentStatus) -> None:
    if content.status != ContentStatus.PENDING_CLIENT:
        raise InvalidTransitionError(
            current=content.status,
            requested=requested,
            reason="content is not pending client approval",
        )


def _already_published(binding: ChannelBindingSnapshot | None, idempotency_key: str) -> bool:
    return binding is not None and binding.remote_id is not None and binding.idempotency_key == idempotency_key
