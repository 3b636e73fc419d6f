from __future__ import annotations

from collections.abc import Sequence

from postflow.domain.capabilities import Capability, is_agency, is_client, require_capability, require_tenant_access
from postflow.domain.contracts import ContentRepository
from postflow.domain.errors import DomainValidationError, ForbiddenError, NotFoundError
from postflow.domain.models import AVAILABLE_SPACE_MODULES, Actor, InboxItemSnapshot, InboxStatus, TenantSnapshot

# unread is only ever set by the upsert.
AGENCY_INBOX_STATUSES: frozenset[str] = frozenset({InboxStatus.OPEN, InboxStatus.DONE, InboxStatus.BLOCKED})
CLIENT_INBOX_STATUSES: frozenset[str] = frozenset({InboxStatus.OPEN, InboxStatus.DONE})


def _validate_modules(modules: Sequence[str]) -> tuple[str, ...]:
    unknown = sorted(set(modules) - set(AVAILABLE_SPACE_MODULES))
    if unknown:
        raise DomainValidationError(f"unknown modules: {', '.join(unknown)}")
    # Keep the canonical module order regardless of request order.
    return tuple(module for module in AVAILABLE_SPACE_MODULES if module in set(modules))


async def create_tenant(
    repository: ContentRepository,
    actor: Actor,
    *,
    name: str,
    modules: Sequence[str] = (),
) -> TenantSnapshot:
    require_capability(actor, Capability.MANAGE_TENANT)
    name = name.strip()
    if not name:
        raise DomainValidationError("tenant name must not be empty")
    return await repository.create_tenant(name=name, modules=_validate_modules(modules))


async def set_module_enabled(
    repository: ContentRepository,
    actor: Actor,
    *,
    tenant_id: str,
    module: str,
    enabled: bool,
) -> TenantSnapshot:
    require_capability(actor, Capability.MANAGE_TENANT)
    require_tenant_access(actor, tenant_id)
    if module not in AVAILABLE_SPACE_MODULES:
        raise DomainValidationError(f"unknown module: {module}")
    tenant = await repository.get_tenant(tenant_id=tenant_id)
    if tenant is None:
        raise NotFoundError(f"tenant not found: {tenant_id}")

    current = set(tenant.modules)
    if enabled:
        current.add(module)
    else:
        current.discard(module)
    updated = await repository.set_tenant_modules(tenant_id=tenant_id, modules=_validate_modules(sorted(current)))
    if updated is None:
        raise NotFoundError(f"tenant not found: {tenant_id}")
    return updated


async def list_inbox(
    repository: ContentRepository,
    actor: Actor,
    *,
    space_id: str,
    exclude_done: bool = False,
) -> list[InboxItemSnapshot]:
    require_tenant_access(actor, space_id)
    if await repository.get_tenant(tenant_id=space_id) is None:
        raise NotFoundError(f"tenant not found: {space_id}")
    return await repository.list_inbox_items(space_id=space_id, exclude_done=exclude_done)


async def set_inbox_status(
    repository: ContentRepository,
    actor: Actor,
    *,
    item_id: str,
    status: str,
) -> InboxItemSnapshot:
    """Change the triage status of an inbox item.

    A done item is replaced by a fresh unread one on the next upsert for the
    same entity key.
    """
    if status not in AGENCY_INBOX_STATUSES:
        raise DomainValidationError(f"invalid inbox status: {status}")
    item = await repository.get_inbox_item(item_id=item_id)
    if item is None:
        raise NotFoundError(f"inbox item not found: {item_id}")
    require_tenant_access(actor, item.space_id)
    if is_client(actor):
        if status not in CLIENT_INBOX_STATUSES:
            raise ForbiddenError(f"clients may not set inbox status '{status}'")
    elif not is_agency(actor):
        raise ForbiddenError(f"role '{actor.role}' may not change inbox items")

    updated = await repository.set_inbox_status(item_id=item.item_id, status=InboxStatus(status))
    if updated is None:
        raise NotFoundError(f"inbox item not found: {item_id}")
    return updated
