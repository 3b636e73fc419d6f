"""Background driver for one outbox worker role.

Each tick reclaims expired leases on the role's queue, then processes at most
one message. The pause before the next tick depends on how the tick went.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

from postflow.workers.loop import WorkerLoop


@dataclass(frozen=True)
class WorkerRuntimeSettings:
    poll_interval_ms: int = 200  # after a processed message
    idle_backoff_ms: int = 1000  # after an empty queue
    error_backoff_ms: int = 2000  # after a tick raised
    claim_lease_seconds: int = 30
    heartbeat_interval_ms: int = 10000

    def pause_seconds(self, *, did_work: bool | None) -> float:
        """None means the tick failed."""
        if did_work is None:
            delay_ms = self.error_backoff_ms
        elif did_work:
            delay_ms = self.poll_interval_ms
        else:
            delay_ms = self.idle_backoff_ms
        return delay_ms / 1000


@dataclass
class WorkerRuntimeState:
    """Counters reported under ``worker_metrics`` by ``/ready``."""

    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    claims_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0
    reclaimed_total: int = 0

    def record_tick(self, *, did_work: bool, reclaimed: int) -> None:
        self.ticks_total += 1
        self.reclaimed_total += reclaimed
        if did_work:
            self.claims_total += 1
        else:
            self.idle_ticks_total += 1

    def record_error(self) -> None:
        self.ticks_total += 1
        self.errors_total += 1


def worker_runtime_settings_from_env() -> WorkerRuntimeSettings:
    defaults = WorkerRuntimeSettings()
    return WorkerRuntimeSettings(
        poll_interval_ms=_positive_env_int("WORKER_POLL_INTERVAL_MS", defaults.poll_interval_ms),
        idle_backoff_ms=_positive_env_int("WORKER_IDLE_BACKOFF_MS", defaults.idle_backoff_ms),
        error_backoff_ms=_positive_env_int("WORKER_ERROR_BACKOFF_MS", defaults.error_backoff_ms),
        claim_lease_seconds=_positive_env_int("WORKER_CLAIM_LEASE_SECONDS", defaults.claim_lease_seconds),
        heartbeat_interval_ms=_positive_env_int("WORKER_HEARTBEAT_INTERVAL_MS", defaults.heartbeat_interval_ms),
    )


def _positive_env_int(name: str, default: int) -> int:
    # Unparsable, zero and negative values keep the default.
    try:
        parsed = int(os.environ[name])
    except (KeyError, ValueError):
        return default
    return parsed if parsed > 0 else default


async def run_worker_until_stopped(
    *,
    worker_loop: WorkerLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
) -> None:
    state = state if state is not None else WorkerRuntimeState()
    worker_loop.claim_lease_seconds = settings.claim_lease_seconds
    worker_loop.heartbeat_interval_ms = settings.heartbeat_interval_ms
    context = {"role": role, "service": role, "run_id": run_id, "job_type": worker_loop.job_type}

    state.started = True
    logger.info(
        "outbox worker started",
        extra={**context, "claim_lease_seconds": settings.claim_lease_seconds},
    )

    while not stop_event.is_set():
        did_work: bool | None = None
        try:
            reclaimed = await worker_loop.reclaim_expired()
            did_work = await worker_loop.run_once()
        except Exception:
            state.record_error()
            logger.exception("outbox worker tick failed", extra=context)
        else:
            state.record_tick(did_work=did_work, reclaimed=reclaimed)
            if did_work or reclaimed:
                logger.info(
                    "outbox worker tick",
                    extra={**context, "did_work": str(did_work).lower(), "reclaimed": reclaimed},
                )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=settings.pause_seconds(did_work=did_work))
        except TimeoutError:
            continue

    state.stopped = True
    logger.info(
        "outbox worker stopped",
        extra={**context, "claims_total": state.claims_total, "errors_total": state.errors_total},
    )
