import pytest

from postflow.domain.capabilities import (
    Capability,
    capabilities_for,
    check_role_gate,
    is_agency,
    is_client,
    require_capability,
    require_tenant_access,
)
from postflow.domain.errors import ForbiddenError, InvalidTransitionError
from postflow.domain.models import Actor, Role


@pytest.mark.unit
def test_agency_and_client_roles_map_to_disjoint_capabilities() -> None:
    for role in (Role.AGENCY_ADMIN, Role.AGENCY_MANAGER, Role.AGENCY_PRODUCTION):
        assert is_agency(Actor(user_id="u", role=role)) is True
        assert is_client(Actor(user_id="u", role=role)) is False
    for role in (Role.CLIENT_ADMIN, Role.CLIENT_USER):
        assert is_client(Actor(user_id="u", role=role)) is True
        assert is_agency(Actor(user_id="u", role=role)) is False

    assert Capability.MANAGE_TENANT in capabilities_for(Role.AGENCY_ADMIN)
    assert Capability.MANAGE_TENANT not in capabilities_for(Role.AGENCY_MANAGER)
    assert capabilities_for("auditor") == frozenset()


@pytest.mark.unit
def test_tenant_access_and_capability_checks_raise_forbidden() -> None:
    actor = Actor(user_id="u-1", role=Role.CLIENT_USER, tenant_ids=frozenset({"spc_a"}))

    require_tenant_access(actor, "spc_a")
    with pytest.raises(ForbiddenError, match="no access to tenant spc_b"):
        require_tenant_access(actor, "spc_b")
    with pytest.raises(ForbiddenError, match="operate_jobs"):
        require_capability(actor, Capability.OPERATE_JOBS)


@pytest.mark.unit
def test_client_gate_allows_only_decisions_on_pending_content() -> None:
    client = capabilities_for(Role.CLIENT_ADMIN)

    check_role_gate(capabilities=client, current="pending_client", target="approved")
    check_role_gate(capabilities=client, current="pending_client", target="changes_requested")

    with pytest.raises(InvalidTransitionError, match="only approve or request changes"):
        check_role_gate(capabilities=client, current="pending_client", target="archived")
    with pytest.raises(InvalidTransitionError, match="pending their approval"):
        check_role_gate(capabilities=client, current="draft", target="approved")


@pytest.mark.unit
def test_agency_gate_restricts_sending_for_approval() -> None:
    agency = capabilities_for(Role.AGENCY_PRODUCTION)

    check_role_gate(capabilities=agency, current="draft", target="pending_client")
    check_role_gate(capabilities=agency, current="changes_requested", target="pending_client")
    check_role_gate(capabilities=agency, current="approved", target="scheduled")

    with pytest.raises(InvalidTransitionError) as excinfo:
        check_role_gate(capabilities=agency, current="approved", target="pending_client")
    assert excinfo.value.current == "approved"
    assert excinfo.value.requested == "pending_client"


@pytest.mark.unit
def test_roles_without_workflow_capability_are_forbidden() -> None:
    with pytest.raises(ForbiddenError, match="no workflow capability"):
        check_role_gate(capabilities=frozenset(), current="draft", target="pending_client")
