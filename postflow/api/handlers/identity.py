from __future__ import annotations

from fastapi import Header

from postflow.domain.models import Actor

COMPONENT_ID = "api.actor_from_headers"


def parse_tenant_ids(raw: str) -> frozenset[str]:
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


async def actor_from_headers(
    x_actor_id: str = Header(min_length=1),
    x_actor_role: str = Header(min_length=1),
    x_actor_tenants: str = Header(default=""),
) -> Actor:
    """Identity is resolved upstream; the headers are trusted as-is."""
    return Actor(user_id=x_actor_id, role=x_actor_role, tenant_ids=parse_tenant_ids(x_actor_tenants))
