from __future__ import annotations

from dataclasses import dataclass

from postflow.domain.models import OutboxJobType

SUPPORTED_ROLES = (
    "api",
    "worker-publish",
    "worker-delete-remote",
    "worker-sync-comments",
)

ROLE_TO_JOB_TYPE: dict[str, OutboxJobType] = {
    "worker-publish": OutboxJobType.PUBLISH,
    "worker-delete-remote": OutboxJobType.DELETE_REMOTE,
    "worker-sync-comments": OutboxJobType.SYNC_COMMENTS,
}


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def is_worker(self) -> bool:
        return self.name in ROLE_TO_JOB_TYPE


def validate_role(role: str) -> RuntimeRole:
    if role in SUPPORTED_ROLES:
        return RuntimeRole(name=role)

    supported = ", ".join(SUPPORTED_ROLES)
    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {supported}. "
        "Note: schema migrations are applied externally, not by an app role."
    )
