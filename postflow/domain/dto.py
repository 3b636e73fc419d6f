from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from postflow.domain.errors import DomainValidationError


def _require_str(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise DomainValidationError(f"job payload is missing '{key}'")
    return value


@dataclass(frozen=True)
class PublishJobPayload:
    content_id: str
    channel_id: str
    idempotency_key: str

    def to_payload(self) -> dict[str, object]:
        return {
            "content_id": self.content_id,
            "channel_id": self.channel_id,
            "idempotency_key": self.idempotency_key,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> PublishJobPayload:
        return cls(
            content_id=_require_str(payload, "content_id"),
            channel_id=_require_str(payload, "channel_id"),
            idempotency_key=_require_str(payload, "idempotency_key"),
        )


@dataclass(frozen=True)
class DeleteRemoteJobPayload:
    channel_id: str

    def to_payload(self) -> dict[str, object]:
        return {"channel_id": self.channel_id}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> DeleteRemoteJobPayload:
        return cls(channel_id=_require_str(payload, "channel_id"))


@dataclass(frozen=True)
class SyncCommentsJobPayload:
    tenant_id: str

    def to_payload(self) -> dict[str, object]:
        return {"tenant_id": self.tenant_id}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> SyncCommentsJobPayload:
        return cls(tenant_id=_require_str(payload, "tenant_id"))


def queue_message_payload(*, outbox_job_id: str, payload: Mapping[str, object]) -> dict[str, object]:
    """Queue messages carry the outbox payload plus the correlating outbox id."""
    message = dict(payload)
    message["outbox_job_id"] = outbox_job_id
    return message
