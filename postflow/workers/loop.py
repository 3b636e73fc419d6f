from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging

from postflow.domain.contracts import JobQueue, OutboxStore
from postflow.domain.error_taxonomy import classify_error, format_last_error, resolve_job_error
from postflow.domain.errors import DomainInvariantError
from postflow.domain.lifecycle import queue_for_job_type
from postflow.domain.models import JobClaim, ProcessResult

ProcessHandler = Callable[[JobClaim], Awaitable[ProcessResult]]
logger = logging.getLogger("runtime")

LEASE_EXPIRED_DETAIL = "claim lease expired and was reclaimed"


@dataclass
class WorkerLoop:
    role: str
    job_type: str
    queue: JobQueue
    outbox: OutboxStore
    process: ProcessHandler
    worker_id: str | None = None
    claim_lease_seconds: int = 30
    heartbeat_interval_ms: int = 10000

    @property
    def queue_name(self) -> str:
        return queue_for_job_type(self.job_type)

    @property
    def owner(self) -> str:
        return self.worker_id or self.role

    async def run_once(self) -> bool:
        claim = await self.queue.claim_next(
            queue=self.queue_name,
            worker_id=self.owner,
            lease_seconds=self.claim_lease_seconds,
        )
        if claim is None:
            return False

        if not await self.outbox.start_outbox_job(job_id=claim.outbox_job_id):
            # Redelivery of a row that is already done or being retried elsewhere.
            logger.info(
                "stale delivery dropped",
                extra={"role": self.role, "outbox_job_id": claim.outbox_job_id, "job_type": self.job_type},
            )
            await self.queue.ack(message_id=claim.message_id, worker_id=self.owner)
            return True

        lease_lost = False
        stop_heartbeat = asyncio.Event()

        async def _heartbeat_loop() -> None:
            nonlocal lease_lost
            interval_seconds = max(self.heartbeat_interval_ms, 1) / 1000
            while not stop_heartbeat.is_set():
                try:
                    await asyncio.wait_for(stop_heartbeat.wait(), timeout=interval_seconds)
                    break
                except TimeoutError:
                    pass

                heartbeat_ok = await self.queue.heartbeat(
                    message_id=claim.message_id,
                    worker_id=self.owner,
                    lease_seconds=self.claim_lease_seconds,
                )
                if not heartbeat_ok:
                    lease_lost = True
                    stop_heartbeat.set()
                    break

        heartbeat_task = asyncio.create_task(_heartbeat_loop())
        try:
            result = await self.process(claim)
        except Exception as exc:
            logger.exception(
                "worker handler crashed",
                extra={"role": self.role, "outbox_job_id": claim.outbox_job_id, "job_type": self.job_type},
            )
            result = ProcessResult(success=False, detail=str(exc) or type(exc).__name__, error_code="internal_error")
        finally:
            stop_heartbeat.set()
            await heartbeat_task

        if lease_lost:
            # The reclaim pass owns the outbox row from here on.
            raise DomainInvariantError("claim ownership is stale")

        if result.success:
            try:
                await self.outbox.complete_outbox_job(job_id=claim.outbox_job_id)
            except DomainInvariantError:
                return await self._drop_moved_row(claim)
            await self.queue.ack(message_id=claim.message_id, worker_id=self.owner)
            return True

        error_code = resolve_job_error(job_type=self.job_type, code=result.error_code or "internal_error")
        retry_classification = result.retry_classification or classify_error(error_code)
        retry = retry_classification == "recoverable" and claim.redelivery_left
        logger.warning(
            "worker stage failed",
            extra={
                "role": self.role,
                "outbox_job_id": claim.outbox_job_id,
                "job_type": self.job_type,
                "last_error_code": error_code,
                "retry_classification": retry_classification,
                "attempt": claim.attempt,
            },
        )
        try:
            await self.outbox.fail_outbox_job(
                job_id=claim.outbox_job_id,
                last_error=format_last_error(code=error_code, detail=result.detail),
                requeue=retry,
            )
        except DomainInvariantError:
            return await self._drop_moved_row(claim)
        await self.queue.nack(message_id=claim.message_id, worker_id=self.owner, retry=retry)
        return True

    async def _drop_moved_row(self, claim: JobClaim) -> bool:
        # An operator retry moved the row while the handler ran; its fresh message owns the row now.
        logger.warning(
            "outbox row moved during processing",
            extra={"role": self.role, "outbox_job_id": claim.outbox_job_id, "job_type": self.job_type},
        )
        await self.queue.ack(message_id=claim.message_id, worker_id=self.owner)
        return True

    async def reclaim_expired(self) -> int:
        reclaimed = await self.queue.reclaim_expired(queue=self.queue_name)
        for message in reclaimed:
            try:
                await self.outbox.fail_outbox_job(
                    job_id=message.outbox_job_id,
                    last_error=format_last_error(code="lease_expired", detail=LEASE_EXPIRED_DETAIL),
                    requeue=message.redelivered,
                )
            except DomainInvariantError:
                # Worker died before it marked the row processing, or an operator already retried it.
                logger.warning(
                    "reclaimed message left outbox row untouched",
                    extra={"role": self.role, "outbox_job_id": message.outbox_job_id, "job_type": self.job_type},
                )
        return len(reclaimed)
