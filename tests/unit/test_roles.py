import pytest

from postflow.roles import ROLE_TO_JOB_TYPE, SUPPORTED_ROLES, validate_role


@pytest.mark.unit
@pytest.mark.parametrize("role", SUPPORTED_ROLES)
def test_supported_role_is_accepted(role: str) -> None:
    validated = validate_role(role)
    assert validated.name == role
    assert validated.is_worker is (role != "api")


@pytest.mark.unit
def test_every_worker_role_owns_one_job_type() -> None:
    worker_roles = [role for role in SUPPORTED_ROLES if role != "api"]
    assert sorted(ROLE_TO_JOB_TYPE) == sorted(worker_roles)
    assert len(set(ROLE_TO_JOB_TYPE.values())) == len(worker_roles)


@pytest.mark.unit
def test_invalid_role_rejected_with_actionable_message() -> None:
    with pytest.raises(ValueError) as exc_info:
        validate_role("worker-unknown")

    message = str(exc_info.value)
    assert "Unsupported role 'worker-unknown'" in message
    assert "Supported roles:" in message
    assert "schema migrations are applied externally" in message
