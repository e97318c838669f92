"""Tests for the job worker: dispatch, retries, concurrency and lifecycle."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from jobqueue.v1.core.exceptions import NonRetryableJobError
from jobqueue.v1.jobs.models import JobStatus
from jobqueue.v1.jobs.worker import JobWorker


@pytest.fixture
def make_worker(test_settings, database, registry, queue):
    def _make(settings=None) -> JobWorker:
        return JobWorker(settings or test_settings, database, registry, queue)

    return _make


async def wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.02)


class TestDispatch:
    async def test_successful_job_is_completed_with_result(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory(result={"sent": 1})
        registry.register("send_email", handler)
        job_id = await enqueue("send_email", {"to": "a@example.com"})

        worker = make_worker()
        assert await worker.tick() == 1

        job = await fetch_job(job_id)
        assert job.status == JobStatus.COMPLETED.value
        assert job.result == {"sent": 1}
        assert job.attempts == 1
        assert handler.calls == [{"to": "a@example.com"}]

    async def test_non_dict_result_is_not_stored(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        registry.register("job", recording_handler_factory(result="done"))
        job_id = await enqueue("job")

        await make_worker().tick()

        job = await fetch_job(job_id)
        assert job.status == JobStatus.COMPLETED.value
        assert job.result is None

    async def test_empty_queue_tick_processes_nothing(self, make_worker):
        worker = make_worker()

        assert await worker.tick() == 0
        assert worker.last_tick_at is not None

    async def test_failing_job_retries_then_succeeds(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory(failures=2)
        registry.register("flaky", handler)
        job_id = await enqueue("flaky", {"n": 1})
        worker = make_worker()

        assert await worker.tick() == 1
        job = await fetch_job(job_id)
        assert job.status == JobStatus.PENDING.value
        assert job.error == "temporary failure"

        # Retries are delayed by the backoff
        assert await worker.tick() == 0

        later = datetime.now(UTC) + timedelta(hours=1)
        assert await worker.tick(now=later) == 1
        assert await worker.tick(now=later + timedelta(hours=1)) == 1

        job = await fetch_job(job_id)
        assert job.status == JobStatus.COMPLETED.value
        assert job.attempts == 3
        assert job.error is None
        assert len(handler.calls) == 3
        assert worker.retried == 2
        assert worker.succeeded == 1

    async def test_always_failing_job_ends_failed(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory(failures=99, error=RuntimeError("boom"))
        registry.register("broken", handler)
        job_id = await enqueue("broken", max_attempts=3)
        worker = make_worker()

        now = datetime.now(UTC)
        for hours in range(3):
            assert await worker.tick(now=now + timedelta(hours=hours)) == 1

        job = await fetch_job(job_id)
        assert job.status == JobStatus.FAILED.value
        assert job.attempts == 3
        assert job.error == "boom"
        assert worker.failed == 1

        # Terminal failures are never claimed again
        assert await worker.tick(now=now + timedelta(days=1)) == 0
        assert len(handler.calls) == 3

    async def test_unknown_job_type_fails_permanently(
        self, make_worker, enqueue, fetch_job
    ):
        job_id = await enqueue("nobody_handles_this", max_attempts=5)

        await make_worker().tick()

        job = await fetch_job(job_id)
        assert job.status == JobStatus.FAILED.value
        assert job.error == "Unknown job type: nobody_handles_this"
        assert job.attempts == 1

    async def test_non_retryable_error_fails_permanently(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory(
            failures=1, error=NonRetryableJobError("payload missing 'to'")
        )
        registry.register("send_email", handler)
        job_id = await enqueue("send_email", max_attempts=5)

        await make_worker().tick()

        job = await fetch_job(job_id)
        assert job.status == JobStatus.FAILED.value
        assert job.error == "payload missing 'to'"
        assert job.attempts == 1

    async def test_error_without_message_uses_class_name(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        registry.register("job", recording_handler_factory(failures=1, error=ValueError()))
        job_id = await enqueue("job")

        await make_worker().tick()

        assert (await fetch_job(job_id)).error == "ValueError"


class TestConcurrency:
    async def test_batch_claims_several_jobs_per_tick(
        self, test_settings, make_worker, registry, enqueue, fetch_job
    ):
        running = 0
        peak = 0

        class SlowHandler:
            async def handle(self, payload):
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.05)
                running -= 1
                return None

        registry.register("slow", SlowHandler())
        job_ids = [await enqueue("slow", {"n": n}) for n in range(4)]
        worker = make_worker(test_settings.model_copy(update={"job_batch_size": 3}))

        assert await worker.tick() == 3
        assert peak == 3
        assert await worker.tick() == 1

        for job_id in job_ids:
            assert (await fetch_job(job_id)).status == JobStatus.COMPLETED.value

    async def test_two_workers_never_run_the_same_job(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory()
        registry.register("job", handler)
        job_id = await enqueue("job")

        first, second = make_worker(), make_worker()
        processed = await asyncio.gather(first.tick(), second.tick())

        assert sum(processed) == 1
        assert len(handler.calls) == 1
        assert (await fetch_job(job_id)).status == JobStatus.COMPLETED.value


class TestLifecycle:
    async def test_start_processes_jobs_until_stopped(
        self, make_worker, registry, enqueue, fetch_job, recording_handler_factory
    ):
        handler = recording_handler_factory()
        registry.register("job", handler)
        job_id = await enqueue("job")
        worker = make_worker()

        task = asyncio.create_task(worker.start())
        await wait_for(lambda: worker.succeeded == 1)
        assert worker.running is True

        await worker.stop()
        await task

        assert worker.running is False
        assert (await fetch_job(job_id)).status == JobStatus.COMPLETED.value

    async def test_start_twice_is_rejected(self, make_worker):
        worker = make_worker()
        task = asyncio.create_task(worker.start())
        await wait_for(lambda: worker.last_tick_at is not None)

        with pytest.raises(RuntimeError, match="already running"):
            await worker.start()

        await worker.stop()
        await task

    async def test_stop_before_start_is_noop(self, make_worker):
        await make_worker().stop()

    async def test_sweep_requeues_abandoned_job(
        self, database, queue, make_worker, enqueue, fetch_job
    ):
        job_id = await enqueue("job")
        async with database.SessionLocal() as session:
            await queue.claim_next(session, "crashed-worker")

        worker = make_worker()
        later = datetime.now(UTC) + timedelta(hours=1)
        assert await worker.sweep_expired_leases(now=later) == 1

        job = await fetch_job(job_id)
        assert job.status == JobStatus.PENDING.value
        assert job.locked_by is None

    async def test_get_stats_reports_counters(
        self, make_worker, registry, enqueue, recording_handler_factory
    ):
        registry.register("job", recording_handler_factory())
        await enqueue("job")
        await enqueue("missing")
        worker = make_worker()

        await worker.tick()
        await worker.tick()
        stats = worker.get_stats()

        assert stats["worker_id"] == worker.worker_id
        assert stats["is_running"] is False
        assert stats["active_jobs"] == 0
        assert stats["processed"] == 2
        assert stats["succeeded"] == 1
        assert stats["failed"] == 1
        assert stats["last_tick_at"] is not None


class TestRetryDelay:
    def test_delay_grows_exponentially_within_jitter(self, test_settings, make_worker):
        worker = make_worker(test_settings.model_copy(update={"job_backoff_base_ms": 4000}))

        first = worker._calculate_retry_delay(1)
        third = worker._calculate_retry_delay(3)

        assert 3.0 <= first <= 5.0
        assert 12.0 <= third <= 20.0

    def test_delay_is_capped(self, test_settings, make_worker):
        worker = make_worker(
            test_settings.model_copy(
                update={"job_backoff_base_ms": 4000, "job_max_backoff_s": 10}
            )
        )

        assert worker._calculate_retry_delay(10) <= 12.5

    def test_delay_has_one_second_floor(self, make_worker):
        assert make_worker()._calculate_retry_delay(1) == 1.0


class GatedHandler:
    """Handler that blocks until the test releases it."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def handle(self, payload):
        self.started.set()
        await self.release.wait()
        return {"done": True}


class TestGracefulShutdown:
    async def test_stop_waits_for_in_flight_job(
        self, make_worker, registry, enqueue, fetch_job
    ):
        handler = GatedHandler()
        registry.register("slow", handler)
        job_id = await enqueue("slow")
        worker = make_worker()

        task = asyncio.create_task(worker.start())
        await asyncio.wait_for(handler.started.wait(), timeout=5)

        stopping = asyncio.create_task(worker.stop())
        await asyncio.sleep(0.2)
        assert not stopping.done()
        assert worker.running is False
        assert (await fetch_job(job_id)).status == JobStatus.PROCESSING.value

        handler.release.set()
        await asyncio.wait_for(stopping, timeout=5)
        await task

        job = await fetch_job(job_id)
        assert job.status == JobStatus.COMPLETED.value
        assert job.result == {"done": True}

    async def test_heartbeats_continue_while_draining(
        self, make_worker, registry, enqueue, fetch_job
    ):
        handler = GatedHandler()
        registry.register("slow", handler)
        job_id = await enqueue("slow")
        worker = make_worker()

        task = asyncio.create_task(worker.start())
        await asyncio.wait_for(handler.started.wait(), timeout=5)
        stopping = asyncio.create_task(worker.stop())
        await asyncio.sleep(0.05)

        first = (await fetch_job(job_id)).heartbeat_at
        await asyncio.sleep(0.35)
        second = (await fetch_job(job_id)).heartbeat_at

        assert second > first

        handler.release.set()
        await asyncio.wait_for(stopping, timeout=5)
        await task

    async def test_worker_loop_survives_storage_error(
        self,
        make_worker,
        registry,
        queue,
        enqueue,
        fetch_job,
        recording_handler_factory,
        monkeypatch,
    ):
        registry.register("job", recording_handler_factory())
        job_id = await enqueue("job")

        original_claim = queue.claim_next
        calls = []

        async def flaky_claim(session, worker_id=None, now=None):
            calls.append(worker_id)
            if len(calls) == 1:
                raise SQLAlchemyError("database unavailable")
            return await original_claim(session, worker_id, now)

        monkeypatch.setattr(queue, "claim_next", flaky_claim)
        worker = make_worker()

        task = asyncio.create_task(worker.start())
        await wait_for(lambda: worker.succeeded == 1)

        assert worker.running is True
        assert "database unavailable" in worker.last_error

        await worker.stop()
        await task

        assert (await fetch_job(job_id)).status == JobStatus.COMPLETED.value


class TestLeaseOwnership:
    async def test_outcome_is_dropped_after_lease_was_reclaimed(
        self, database, queue, make_worker, registry, enqueue, fetch_job
    ):
        later = datetime.now(UTC) + timedelta(hours=1)

        class ReclaimedMidRun:
            async def handle(self, payload):
                # Another worker's sweep and claim happen while this one runs
                async with database.SessionLocal() as session:
                    await queue.release_expired_leases(session, 60, now=later)
                async with database.SessionLocal() as session:
                    await queue.claim_next(session, "worker-b", later)
                raise RuntimeError("late failure")

        registry.register("job", ReclaimedMidRun())
        job_id = await enqueue("job")

        assert await make_worker().tick() == 1

        job = await fetch_job(job_id)
        assert job.status == JobStatus.PROCESSING.value
        assert job.locked_by == "worker-b"
        assert job.attempts == 2
