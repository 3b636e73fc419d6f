from __future__ import annotations

from dataclasses import dataclass

from postflow.domain.contracts import ContentRepository, PublishingClient


@dataclass(frozen=True)
class WorkerDeps:
    repository: ContentRepository
    publishing: PublishingClient
