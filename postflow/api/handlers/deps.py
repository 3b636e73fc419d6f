from __future__ import annotations

from dataclasses import dataclass

from postflow.domain.contracts import ContentRepository
from postflow.domain.use_cases.dispatcher import JobDispatcher
from postflow.domain.use_cases.workflow import WorkflowService


@dataclass(frozen=True)
class ApiDeps:
    repository: ContentRepository
    dispatcher: JobDispatcher
    workflow: WorkflowService
