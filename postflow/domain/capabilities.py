from __future__ import annotations

from enum import StrEnum

from postflow.domain.errors import ForbiddenError, InvalidTransitionError
from postflow.domain.models import Actor, ContentStatus, Role


class Capability(StrEnum):
    MANAGE_TENANT = "manage_tenant"
    PRODUCE_CONTENT = "produce_content"
    OPERATE_JOBS = "operate_jobs"
    ACT_ON_BEHALF_OF_CLIENT = "act_on_behalf_of_client"


ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    Role.AGENCY_ADMIN: frozenset(
        {Capability.MANAGE_TENANT, Capability.PRODUCE_CONTENT, Capability.OPERATE_JOBS}
    ),
    Role.AGENCY_MANAGER: frozenset({Capability.PRODUCE_CONTENT, Capability.OPERATE_JOBS}),
    Role.AGENCY_PRODUCTION: frozenset({Capability.PRODUCE_CONTENT, Capability.OPERATE_JOBS}),
    Role.CLIENT_ADMIN: frozenset({Capability.ACT_ON_BEHALF_OF_CLIENT}),
    Role.CLIENT_USER: frozenset({Capability.ACT_ON_BEHALF_OF_CLIENT}),
}

# Targets a client may request, and only out of pending_client.
CLIENT_TARGETS: frozenset[str] = frozenset({ContentStatus.APPROVED, ContentStatus.CHANGES_REQUESTED})
CLIENT_SOURCE = ContentStatus.PENDING_CLIENT

# Sources from which an agency may send content to the client.
AGENCY_APPROVAL_SOURCES: frozenset[str] = frozenset({ContentStatus.DRAFT, ContentStatus.CHANGES_REQUESTED})


def capabilities_for(role: str) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def is_agency(actor: Actor) -> bool:
    return Capability.PRODUCE_CONTENT in capabilities_for(actor.role)


def is_client(actor: Actor) -> bool:
    return Capability.ACT_ON_BEHALF_OF_CLIENT in capabilities_for(actor.role)


def require_tenant_access(actor: Actor, tenant_id: str) -> None:
    if tenant_id not in actor.tenant_ids:
        raise ForbiddenError(f"actor {actor.user_id} has no access to tenant {tenant_id}")


def require_capability(actor: Actor, capability: Capability) -> None:
    if capability not in capabilities_for(actor.role):
        raise ForbiddenError(f"role '{actor.role}' lacks capability '{capability}'")


def check_role_gate(*, capabilities: frozenset[Capability], current: str, target: str) -> None:
    """Reject legal edges that the caller's role may not invoke.

    Roles without any workflow capability are forbidden outright; role gate
    rejections for workflow roles surface as invalid transitions.
    """
    if Capability.ACT_ON_BEHALF_OF_CLIENT in capabilities:
        if target not in CLIENT_TARGETS:
            raise InvalidTransitionError(
                current=current,
                requested=target,
                reason="clients may only approve or request changes",
            )
        if current != CLIENT_SOURCE:
            raise InvalidTransitionError(
                current=current,
                requested=target,
                reason="clients may only act on content pending their approval",
            )
        return

    if Capability.PRODUCE_CONTENT in capabilities:
        if target == ContentStatus.PENDING_CLIENT and current not in AGENCY_APPROVAL_SOURCES:
            raise InvalidTransitionError(
                current=current,
                requested=target,
                reason="content can only be sent for approval from draft or changes_requested",
            )
        return

    raise ForbiddenError("role has no workflow capability")
