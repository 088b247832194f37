"""Tests for the RQ-backed JobQueue."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from redis import Redis
from rq import SimpleWorker
from rq.job import JobStatus

from preview_orchestrator.core.errors import BackingStoreUnavailable
from preview_orchestrator.schemas.preview import PreviewStatus
from preview_orchestrator.services.status import StatusProjector
from preview_orchestrator.workers.base import Backoff, RetryPolicy
from preview_orchestrator.workers.maintenance import start_cleanup_thread
from preview_orchestrator.workers.queue import (
    HARD_TIMEOUT_GRACE,
    TASK_PATH,
    CancelResult,
    EnqueueResult,
    JobQueue,
)
from preview_orchestrator.workers.tasks import install_pipeline

PAYLOAD = {"prompt": "A todo app", "owner": "user-1"}


def test_enqueue_accepts_new_id(job_queue):
    assert job_queue.enqueue("p1", PAYLOAD) == EnqueueResult.ACCEPTED

    job = job_queue.get_entry("p1")
    assert job.func_name == TASK_PATH
    assert job.kwargs == {"preview_id": "p1", "prompt": "A todo app", "owner": "user-1"}
    assert job.timeout == 120 + HARD_TIMEOUT_GRACE
    assert job.result_ttl == 0
    assert job.retries_left == 2
    assert job.meta["max_attempts"] == 3
    assert job.meta["owner"] == "user-1"
    assert job_queue.counts()["waiting"] == 1


def test_enqueue_duplicate_live_entry(job_queue):
    assert job_queue.enqueue("p1", PAYLOAD) == EnqueueResult.ACCEPTED
    assert job_queue.enqueue("p1", PAYLOAD) == EnqueueResult.DUPLICATE
    assert job_queue.queue.count == 1


def test_enqueue_duplicate_while_claim_held(job_queue, redis_conn):
    redis_conn.set(f"{job_queue.queue.key}:claim:p1", b"1")

    assert job_queue.enqueue("p1", PAYLOAD) == EnqueueResult.DUPLICATE
    assert job_queue.get_entry("p1") is None


def test_enqueue_replaces_failed_leftover(job_queue):
    job_queue.enqueue("p1", PAYLOAD)
    leftover = job_queue.get_entry("p1")
    job_queue.queue.remove(leftover)
    leftover.set_status(JobStatus.FAILED)

    assert job_queue.enqueue("p1", PAYLOAD) == EnqueueResult.ACCEPTED
    assert job_queue.get_entry("p1").get_status() == JobStatus.QUEUED


def test_unreachable_redis_raises_backing_store_unavailable():
    queue = JobQueue(connection=Redis(host="127.0.0.1", port=1, socket_connect_timeout=1))

    with pytest.raises(BackingStoreUnavailable):
        queue.enqueue("p1", PAYLOAD)
    assert queue.connection_status().startswith("error")


def test_cancel_waiting_entry(job_queue):
    job_queue.enqueue("p1", PAYLOAD)

    assert job_queue.cancel("p1") == CancelResult.REMOVED
    assert job_queue.get_entry("p1") is None
    assert job_queue.queue.count == 0


def test_cancel_unknown_entry(job_queue):
    assert job_queue.cancel("p-unknown") == CancelResult.NOT_FOUND


def test_cancel_running_entry_is_left_alone(job_queue):
    job_queue.enqueue("p1", PAYLOAD)
    job_queue.get_entry("p1").set_status(JobStatus.STARTED)

    assert job_queue.cancel("p1") == CancelResult.RUNNING
    assert job_queue.get_entry("p1") is not None


def test_counts_keys(job_queue):
    assert set(job_queue.counts()) == {"waiting", "active", "completed", "failed", "delayed"}


def test_pause_and_resume(job_queue):
    assert not job_queue.is_paused()
    job_queue.pause()
    assert job_queue.is_paused()
    job_queue.resume()
    assert not job_queue.is_paused()


def test_position_of_unknown_entry(job_queue):
    assert job_queue.position("p-unknown") is None


def test_fifo_position_and_eta(service, job_queue, store, drain):
    """Five submissions: the fifth sits at position 5, then 4 after one completes."""
    projector = StatusProjector(store, job_queue, average_seconds_per_job=30)
    job_ids = [service.submit(f"App {i}", "user-1").job_id for i in range(5)]

    view = projector.project(job_ids[4])
    assert view.queue_position == 5
    assert view.estimated_time == 150
    assert projector.project(job_ids[0]).queue_position == 1

    drain(max_jobs=1)

    assert store.get(job_ids[0]).status == "live"
    view = projector.project(job_ids[4])
    assert view.queue_position == 4
    assert view.estimated_time == 120


def test_successful_entries_are_not_retained(service, job_queue, drain):
    job_id = service.submit("A todo app", "user-1").job_id

    drain()

    assert job_queue.get_entry(job_id) is None
    assert job_queue.position(job_id) is None


def test_duplicate_submission_runs_once(store, job_queue, generator, drain):
    store.insert("p1", "A todo app", "user-1")
    job_queue.enqueue("p1", PAYLOAD)
    job_queue.enqueue("p1", PAYLOAD)

    drain()

    assert generator.calls == 1
    assert store.get("p1").status == "live"


def test_sweep_purges_old_failed_entries(redis_conn, store, pipeline, generator):
    generator.always_fail = True
    queue = JobQueue(
        connection=redis_conn,
        name="sweep-test",
        retry_policy=RetryPolicy(name="queue", max_attempts=1, base_delay=0, backoff=Backoff.EXPONENTIAL),
        completed_threshold=0,
        failed_threshold=0,
    )
    store.insert("p1", "A todo app", "user-1")
    queue.enqueue("p1", PAYLOAD)

    install_pipeline(pipeline)
    try:
        SimpleWorker([queue.queue], connection=redis_conn).work(burst=True)
    finally:
        install_pipeline(None)

    assert store.get("p1").status == "failed"
    assert queue.counts()["failed"] == 1

    now = datetime.now(timezone.utc)
    assert queue.sweep(now=now) == 0
    assert queue.counts()["failed"] == 1

    assert queue.sweep(now=now + timedelta(days=2)) == 1
    assert queue.counts()["failed"] == 0
    assert queue.get_entry("p1") is None


def test_sweep_below_thresholds_is_noop(job_queue):
    assert job_queue.sweep(now=datetime.now(timezone.utc) + timedelta(days=30)) == 0


class CountingQueue:
    def __init__(self):
        self.sweeps = 0
        self.swept = threading.Event()

    def sweep(self):
        self.sweeps += 1
        self.swept.set()
        return 0


def test_cleanup_thread_sweeps_until_stopped():
    queue = CountingQueue()
    thread, stop = start_cleanup_thread(queue, interval=0.01)

    assert queue.swept.wait(timeout=5)
    stop.set()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert queue.sweeps >= 1


def test_cancelled_entry_is_never_run(service, store, job_queue, generator, drain):
    job_id = service.submit("A todo app", "user-1").job_id
    service.cancel(job_id)

    drain()

    assert generator.calls == 0
    record = store.get(job_id)
    assert record.status == PreviewStatus.FAILED.value
    assert record.error == "Cancelled by user"


def test_introspection_with_unreachable_redis_raises_backing_store_unavailable():
    queue = JobQueue(connection=Redis(host="127.0.0.1", port=1, socket_connect_timeout=1))

    for call in (
        lambda: queue.get_entry("p1"),
        lambda: queue.position("p1"),
        lambda: queue.is_paused(),
        lambda: queue.worker_count(),
        lambda: queue.cancel("p1"),
    ):
        with pytest.raises(BackingStoreUnavailable):
            call()
