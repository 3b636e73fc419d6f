from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Literal

import yaml

from postflow.domain.models import OutboxJobType

BackoffKind = Literal["exponential", "fixed"]
BACKOFF_KINDS: tuple[BackoffKind, ...] = ("exponential", "fixed")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff: BackoffKind
    delay_ms: int

    def delay_for(self, attempt: int) -> timedelta:
        """Wait before redelivering after the given (1-based) failed attempt."""
        if self.backoff == "fixed":
            return timedelta(milliseconds=self.delay_ms)
        return timedelta(milliseconds=self.delay_ms * (2 ** max(attempt - 1, 0)))


DEFAULT_RETRY_POLICIES: dict[str, RetryPolicy] = {
    OutboxJobType.PUBLISH: RetryPolicy(max_attempts=5, backoff="exponential", delay_ms=5000),
    OutboxJobType.DELETE_REMOTE: RetryPolicy(max_attempts=5, backoff="exponential", delay_ms=5000),
    OutboxJobType.SYNC_COMMENTS: RetryPolicy(max_attempts=3, backoff="fixed", delay_ms=60000),
}


def load_retry_policies(file_path: str | Path) -> dict[str, RetryPolicy]:
    """Load queue retry policies from YAML, on top of the defaults.

    Expected layout::

        queues:
          publish: {max_attempts: 5, backoff: exponential, delay_ms: 5000}
    """
    data = yaml.safe_load(Path(file_path).read_text(encoding="utf-8"))
    if data is None:
        return dict(DEFAULT_RETRY_POLICIES)
    if not isinstance(data, Mapping):
        raise ValueError("retry policy file must contain a mapping")
    queues = data.get("queues", {})
    if not isinstance(queues, Mapping):
        raise ValueError("'queues' must be a mapping of job type to policy")

    policies = dict(DEFAULT_RETRY_POLICIES)
    for job_type, raw in queues.items():
        if job_type not in DEFAULT_RETRY_POLICIES:
            raise ValueError(f"unsupported job type in retry policy: {job_type}")
        policies[str(job_type)] = _parse_policy(str(job_type), raw, base=DEFAULT_RETRY_POLICIES[job_type])
    return policies


def _parse_policy(job_type: str, raw: object, *, base: RetryPolicy) -> RetryPolicy:
    if not isinstance(raw, Mapping):
        raise ValueError(f"retry policy for {job_type} must be a mapping")
    max_attempts = int(raw.get("max_attempts", base.max_attempts))
    delay_ms = int(raw.get("delay_ms", base.delay_ms))
    backoff = str(raw.get("backoff", base.backoff))
    if max_attempts < 1:
        raise ValueError(f"max_attempts for {job_type} must be >= 1")
    if delay_ms < 0:
        raise ValueError(f"delay_ms for {job_type} must be >= 0")
    if backoff not in BACKOFF_KINDS:
        raise ValueError(f"unsupported backoff for {job_type}: {backoff}")
    return RetryPolicy(max_attempts=max_attempts, backoff=backoff, delay_ms=delay_ms)  # type: ignore[arg-type]
