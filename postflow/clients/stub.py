from __future__ import annotations

from dataclasses import dataclass, field

from postflow.domain.models import RemotePost


class PublishingTransportError(RuntimeError):
    """Raised by publishing clients when the social network call fails."""


@dataclass
class StubPublishingClient:
    """Deterministic social network stand-in.

    Publishes are idempotent by key: repeating a key returns the post created
    the first time. ``fail_next`` makes the next N calls raise a transport error.
    """

    published: dict[str, RemotePost] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    calls: list[tuple[str, str]] = field(default_factory=list)
    fail_next: int = 0

    def publish(
        self,
        *,
        network: str,
        binding_id: str,
        content_id: str,
        title: str,
        body: str,
        idempotency_key: str,
    ) -> RemotePost:
        del title, body
        self.calls.append(("publish", network))
        self._maybe_fail(network)
        existing = self.published.get(idempotency_key)
        if existing is not None:
            return existing
        post = RemotePost(
            remote_id=f"remote-{binding_id}",
            remote_url=f"https://social.local/post/{content_id}",
        )
        self.published[idempotency_key] = post
        return post

    def delete(self, *, network: str, remote_id: str) -> None:
        self.calls.append(("delete", network))
        self._maybe_fail(network)
        # Deleting twice is a no-op.
        if remote_id not in self.deleted:
            self.deleted.append(remote_id)

    def _maybe_fail(self, network: str) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise PublishingTransportError(f"{network} is unreachable")
