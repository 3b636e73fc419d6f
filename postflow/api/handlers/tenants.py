from __future__ import annotations

from postflow.api.handlers.deps import ApiDeps
from postflow.api.schemas import InboxItemResponse, ListInboxResponse, TenantResponse
from postflow.domain.models import Actor, InboxItemSnapshot, TenantSnapshot
from postflow.domain.use_cases import tenants

COMPONENT_ID_CREATE = "api.create_tenant"
COMPONENT_ID_MODULE = "api.set_tenant_module"
COMPONENT_ID_INBOX = "api.list_inbox"
COMPONENT_ID_INBOX_STATUS = "api.set_inbox_status"


def tenant_response(tenant: TenantSnapshot) -> TenantResponse:
    return TenantResponse(tenant_id=tenant.tenant_id, name=tenant.name, modules=list(tenant.modules))


def inbox_item_response(item: InboxItemSnapshot) -> InboxItemResponse:
    return InboxItemResponse(
        item_id=item.item_id,
        space_id=item.space_id,
        entity_key=item.entity_key,
        item_type=item.item_type,
        title=item.title,
        description=item.description,
        action_url=item.action_url,
        actor_type=item.actor_type,
        status=item.status,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


async def create_tenant_handler(
    *,
    actor: Actor,
    name: str,
    modules: list[str],
    api_deps: ApiDeps,
) -> TenantResponse:
    tenant = await tenants.create_tenant(api_deps.repository, actor, name=name, modules=modules)
    return tenant_response(tenant)


async def set_module_handler(
    *,
    actor: Actor,
    tenant_id: str,
    module: str,
    enabled: bool,
    api_deps: ApiDeps,
) -> TenantResponse:
    tenant = await tenants.set_module_enabled(
        api_deps.repository,
        actor,
        tenant_id=tenant_id,
        module=module,
        enabled=enabled,
    )
    return tenant_response(tenant)


async def list_inbox_handler(
    *,
    actor: Actor,
    space_id: str,
    exclude_done: bool,
    api_deps: ApiDeps,
) -> ListInboxResponse:
    items = await tenants.list_inbox(api_deps.repository, actor, space_id=space_id, exclude_done=exclude_done)
    return ListInboxResponse(items=[inbox_item_response(item) for item in items])


async def set_inbox_status_handler(
    *,
    actor: Actor,
    item_id: str,
    status: str,
    api_deps: ApiDeps,
) -> InboxItemResponse:
    item = await tenants.set_inbox_status(api_deps.repository, actor, item_id=item_id, status=status)
    return inbox_item_response(item)
