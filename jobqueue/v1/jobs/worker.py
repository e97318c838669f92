"""
Database-backed job worker with heartbeats and lease recovery.
"""

import asyncio
import os
import random
import socket
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.config.logging import get_logger
from jobqueue.config.settings import Settings
from jobqueue.infra.database import Database
from jobqueue.v1.core.exceptions import NonRetryableJobError
from jobqueue.v1.core.registries import JobRegistry, job_registry
from jobqueue.v1.jobs.models import Job, JobStatus
from jobqueue.v1.jobs.service import QueueManager

logger = get_logger(__name__)


class JobWorker:
    """
    Long-lived worker loop.

    Features:
    - Atomic claims through QueueManager.claim_next (safe across processes)
    - Immediate first tick, then one tick per poll interval
    - Exponential backoff with jitter for retries
    - Heartbeats plus a lease sweep that requeues jobs of crashed workers
    - Graceful shutdown that lets the in-flight tick finish
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        registry: JobRegistry = job_registry,
        queue: QueueManager | None = None,
    ):
        self.settings = settings
        self.database = database
        self.registry = registry
        self.queue = queue or QueueManager(settings)
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self.active_jobs: set[UUID] = set()

        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._drained = asyncio.Event()
        self._started = False

        # Counters for get_stats()
        self.processed = 0
        self.succeeded = 0
        self.retried = 0
        self.failed = 0
        self.last_tick_at: datetime | None = None
        self.last_error: str | None = None

    async def start(self) -> None:
        """Start the worker loops; returns once the worker has stopped."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        self._started = True
        self._wakeup.clear()
        self._stopped.clear()
        self._drained.clear()
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            batch_size=self.settings.job_batch_size,
            poll_interval_s=self.settings.job_poll_interval_s,
            handlers=self.registry.list(),
        )

        try:
            await asyncio.gather(
                self._worker_loop(),
                self._heartbeat_loop(),
                self._lease_recovery_loop(),
            )
        finally:
            self.running = False
            self._stopped.set()
            logger.info("Job worker stopped", worker_id=self.worker_id)

    async def stop(self) -> None:
        """Stop the worker gracefully, waiting for in-flight jobs."""
        if not self._started:
            return

        logger.info(
            "Stopping job worker",
            worker_id=self.worker_id,
            active_jobs=len(self.active_jobs),
        )
        self.running = False
        self._wakeup.set()
        await self._stopped.wait()

    async def _sleep(self, seconds: float) -> None:
        """Sleep until the next interval or until stop() is called."""
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _worker_loop(self) -> None:
        """Main worker loop that claims and processes jobs."""
        try:
            while self.running:
                try:
                    await self.tick()
                except Exception as e:
                    self.last_error = str(e)
                    logger.exception("Error in worker loop", worker_id=self.worker_id)

                if self.running:
                    await self._sleep(self.settings.job_poll_interval_s)
        finally:
            self._drained.set()

    async def tick(self, now: datetime | None = None) -> int:
        """
        Claim up to ``job_batch_size`` jobs and run them to completion.

        Returns the number of jobs processed in this tick.
        """
        self.last_tick_at = datetime.now(UTC)
        jobs: list[Job] = []

        async with self.database.SessionLocal() as session:
            for _ in range(self.settings.job_batch_size):
                try:
                    job = await self.queue.claim_next(session, self.worker_id, now)
                except SQLAlchemyError as e:
                    if not jobs:
                        raise
                    # Already-claimed jobs still get processed.
                    self.last_error = str(e)
                    logger.exception("Claim failed mid-batch", worker_id=self.worker_id)
                    break
                if job is None:
                    break
                jobs.append(job)

        if not jobs:
            return 0

        self.active_jobs.update(job.id for job in jobs)
        await asyncio.gather(*(self._process_job(job) for job in jobs))
        return len(jobs)

    async def _process_job(self, job: Job) -> None:
        """Dispatch a single job and report its outcome. Never raises."""
        job_logger = logger.bind(
            job_id=str(job.id), job_type=job.type, attempt=job.attempts
        )
        self.processed += 1

        try:
            try:
                handler = self.registry.get(job.type)
            except KeyError:
                job_logger.error("Unknown job type")
                await self._record(
                    job_logger,
                    self.queue.fail_permanently,
                    job.id,
                    f"Unknown job type: {job.type}",
                    worker_id=self.worker_id,
                )
                self.failed += 1
                return

            job_logger.info("Processing job started")

            try:
                result = await handler.handle(job.payload)
            except NonRetryableJobError as e:
                job_logger.error("Job failed with non-retryable error", error=str(e))
                await self._record(
                    job_logger,
                    self.queue.fail_permanently,
                    job.id,
                    str(e),
                    worker_id=self.worker_id,
                )
                self.failed += 1
            except Exception as e:
                error = str(e) or e.__class__.__name__
                job_logger.exception("Job processing failed", error=error)

                retry_delay = None
                if job.can_retry():
                    retry_delay = self._calculate_retry_delay(job.attempts)

                status = await self._record(
                    job_logger,
                    self.queue.fail_retryable,
                    job.id,
                    error,
                    retry_delay,
                    worker_id=self.worker_id,
                )
                if status == JobStatus.PENDING:
                    self.retried += 1
                    job_logger.info("Job scheduled for retry", delay_s=retry_delay)
                elif status == JobStatus.FAILED:
                    self.failed += 1
                    job_logger.error("Job moved to failed after final attempt")
            else:
                await self._record(
                    job_logger,
                    self.queue.complete,
                    job.id,
                    result if isinstance(result, dict) else None,
                    worker_id=self.worker_id,
                )
                self.succeeded += 1
                job_logger.info("Processing job completed successfully")

        finally:
            self.active_jobs.discard(job.id)

    async def _record(
        self,
        job_logger: Any,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run a queue transition in its own session.

        Storage errors are logged, not raised; the job stays processing and
        the lease sweep returns it to the queue.
        """
        try:
            async with self.database.SessionLocal() as session:
                return await operation(session, *args, **kwargs)
        except SQLAlchemyError as e:
            self.last_error = str(e)
            job_logger.exception("Failed to record job outcome")
            return None

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate retry delay in seconds with exponential backoff and jitter."""
        base_delay = self.settings.job_backoff_base_ms / 1000  # Convert to seconds
        max_delay = self.settings.job_max_backoff_s

        # Exponential backoff: base * 2^(attempt-1)
        delay = min(max_delay, base_delay * (2 ** (attempt - 1)))

        # Add jitter (±25% random variation)
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return max(1.0, delay + jitter)

    async def _heartbeat_loop(self) -> None:
        """Refresh leases for in-flight jobs.

        Keeps running after stop() until the worker loop has finished its
        last tick, so draining jobs do not lose their lease.
        """
        while not self._drained.is_set():
            try:
                await asyncio.wait_for(
                    self._drained.wait(),
                    timeout=self.settings.job_heartbeat_interval_s,
                )
            except asyncio.TimeoutError:
                pass
            if self._drained.is_set() or not self.active_jobs:
                continue

            try:
                async with self.database.SessionLocal() as session:
                    await self.queue.heartbeat(
                        session, list(self.active_jobs), self.worker_id
                    )
            except Exception:
                logger.exception("Error updating heartbeats", worker_id=self.worker_id)

    async def _lease_recovery_loop(self) -> None:
        """Requeue jobs whose worker stopped heartbeating."""
        while self.running:
            try:
                await self.sweep_expired_leases()
            except Exception:
                logger.exception("Error in lease recovery", worker_id=self.worker_id)

            await self._sleep(self.settings.job_lease_sweep_interval_s)

    async def sweep_expired_leases(self, now: datetime | None = None) -> int:
        session: AsyncSession
        async with self.database.SessionLocal() as session:
            return await self.queue.release_expired_leases(
                session, self.settings.job_visibility_timeout_s, now
            )

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of this worker's activity."""
        return {
            "worker_id": self.worker_id,
            "is_running": self.running,
            "active_jobs": len(self.active_jobs),
            "processed": self.processed,
            "succeeded": self.succeeded,
            "retried": self.retried,
            "failed": self.failed,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
        }
