"""
Preview Job Queue
Wraps an RQ queue with the lifecycle rules preview jobs need:
deduplication by job id, a fixed retry schedule, per-entry timeouts,
retention of failures only, and a periodic cleanup sweep.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus
from rq.suspension import is_suspended, resume, suspend

from preview_orchestrator.core.errors import BackingStoreUnavailable
from preview_orchestrator.core.redis import RedisManager
from preview_orchestrator.workers.base import Backoff, RetryPolicy

logger = logging.getLogger(__name__)

TASK_PATH = "preview_orchestrator.workers.tasks.run_preview_task"

# Entry states that still hold (or will hold) a worker slot
LIVE_STATUSES = (JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED)
WAITING_STATUSES = (JobStatus.QUEUED, JobStatus.DEFERRED, JobStatus.SCHEDULED)

CLAIM_SECONDS = 5

# The pipeline enforces the entry timeout itself; RQ kills the work horse only
# after this extra grace period, so the pipeline can still record the failure.
HARD_TIMEOUT_GRACE = 15


class EnqueueResult(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"


class CancelResult(str, Enum):
    REMOVED = "removed"      # Waiting entry deleted
    RUNNING = "running"      # Executing; left to finish
    NOT_FOUND = "not-found"


class JobQueue:
    """
    Durable, at-least-once work queue keyed by preview id.

    Features:
    - At most one live entry per id (dedup on enqueue)
    - FIFO dispatch to a fixed pool of RQ workers
    - Exponential retry schedule, failures retained, successes dropped
    - Cleanup sweep for old finished/failed entries
    """

    def __init__(
        self,
        connection: Redis,
        name: str = "preview-generation",
        concurrency: int = 2,
        timeout: int = 120,
        retry_policy: Optional[RetryPolicy] = None,
        retention_seconds: int = 60 * 60 * 24,
        completed_threshold: int = 100,
        failed_threshold: int = 50,
        redis_manager: Optional[RedisManager] = None
    ):
        self.connection = connection
        self.name = name
        self.concurrency = concurrency
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(
            name="queue", max_attempts=3, base_delay=2.0, backoff=Backoff.EXPONENTIAL
        )
        self.retention = timedelta(seconds=retention_seconds)
        self.completed_threshold = completed_threshold
        self.failed_threshold = failed_threshold
        self._redis_manager = redis_manager
        self.queue = Queue(name=name, connection=connection, default_timeout=timeout + HARD_TIMEOUT_GRACE)

    @classmethod
    def from_settings(cls, settings, connection: Optional[Redis] = None) -> "JobQueue":
        """Build a queue from Settings, opening a pooled connection unless one is given."""
        manager = None
        if connection is None:
            manager = RedisManager(settings.REDIS_URL)
            connection = manager.get_connection()

        return cls(
            connection=connection,
            name=settings.QUEUE_NAME,
            concurrency=settings.QUEUE_CONCURRENCY,
            timeout=settings.JOB_TIMEOUT,
            retry_policy=RetryPolicy(
                name="queue",
                max_attempts=settings.JOB_MAX_ATTEMPTS,
                base_delay=settings.JOB_BACKOFF_DELAY,
                backoff=Backoff.EXPONENTIAL,
            ),
            retention_seconds=settings.CLEANUP_RETENTION,
            completed_threshold=settings.CLEANUP_COMPLETED_THRESHOLD,
            failed_threshold=settings.CLEANUP_FAILED_THRESHOLD,
            redis_manager=manager,
        )

    # ------------------------------------------------------------------
    # Submission side
    # ------------------------------------------------------------------

    def enqueue(self, job_id: str, payload: Dict[str, Any]) -> EnqueueResult:
        """
        Add a preview job unless a live entry with this id already exists.

        Args:
            job_id: Preview id, doubles as the RQ job id
            payload: Keyword arguments for the task (prompt, owner)

        Returns:
            ACCEPTED or DUPLICATE

        Raises:
            BackingStoreUnavailable: Redis could not be reached
        """
        claim_key = f"{self.queue.key}:claim:{job_id}"

        try:
            # Serialize concurrent submissions of the same id
            if not self.connection.set(claim_key, b"1", nx=True, ex=CLAIM_SECONDS):
                logger.info(f"[Queue] Duplicate submission (claim held): {job_id}")
                return EnqueueResult.DUPLICATE

            try:
                existing = self.get_entry(job_id)
                if existing is not None:
                    if existing.get_status(refresh=False) in LIVE_STATUSES:
                        logger.info(f"[Queue] Duplicate submission: {job_id}")
                        return EnqueueResult.DUPLICATE
                    # Finished or failed leftover from an earlier run
                    existing.delete()

                self.queue.enqueue_call(
                    func=TASK_PATH,
                    kwargs={"preview_id": job_id, **payload},
                    job_id=job_id,
                    timeout=self.timeout + HARD_TIMEOUT_GRACE,
                    result_ttl=0,  # Successful entries are not retained
                    retry=self.retry_policy.to_rq_retry(),
                    description=f"preview {job_id}",
                    meta={
                        "max_attempts": self.retry_policy.max_attempts,
                        "owner": payload.get("owner"),
                        "enqueued_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
            finally:
                self.connection.delete(claim_key)

        except RedisError as e:
            logger.error(f"[Queue] Failed to enqueue {job_id}: {e}")
            raise BackingStoreUnavailable("Job queue is unavailable") from e

        logger.info(f"[Queue] Enqueued {job_id} (timeout: {self.timeout}s, attempts: {self.retry_policy.max_attempts})")
        return EnqueueResult.ACCEPTED

    def cancel(self, job_id: str) -> CancelResult:
        """
        Remove a waiting entry. Executing entries are not interrupted.
        """
        try:
            job = self.get_entry(job_id)
            if job is None:
                return CancelResult.NOT_FOUND

            status = job.get_status(refresh=False)
            if status == JobStatus.STARTED:
                logger.warning(f"[Queue] {job_id} is running; it will finish in the background")
                return CancelResult.RUNNING

            if status in WAITING_STATUSES:
                # delete() also pulls it out of the queue list or the retry schedule
                job.delete()
                logger.info(f"[Queue] Removed {job_id} from queue")
                return CancelResult.REMOVED

        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

        return CancelResult.NOT_FOUND

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_entry(self, job_id: str) -> Optional[Job]:
        """Fetch the RQ job for an id, or None."""
        try:
            return Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None
        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

    def counts(self) -> Dict[str, int]:
        """Entry counts by state."""
        try:
            return {
                "waiting": self.queue.count,
                "active": self.queue.started_job_registry.count,
                "completed": self.queue.finished_job_registry.count,
                "failed": self.queue.failed_job_registry.count,
                "delayed": self.queue.scheduled_job_registry.count,
            }
        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

    def position(self, job_id: str) -> Optional[int]:
        """
        Estimated 1-based position of a live entry.

        A queued entry gets its exact FIFO rank behind the active entries.
        Other live entries (running, waiting out a retry delay) fall back to
        the aggregate upper bound waiting + active + 1.

        Returns:
            Position, or None if the id has no live entry
        """
        job = self.get_entry(job_id)
        if job is None:
            return None

        status = job.get_status(refresh=False)
        if status not in LIVE_STATUSES:
            return None

        counts = self.counts()
        if status == JobStatus.QUEUED:
            try:
                rank = self.queue.get_job_position(job_id)
            except RedisError as e:
                raise BackingStoreUnavailable("Job queue is unavailable") from e
            if rank is not None:
                return counts["active"] + rank + 1

        return counts["waiting"] + counts["active"] + 1

    def is_paused(self) -> bool:
        try:
            return bool(is_suspended(self.connection))
        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

    def pause(self) -> None:
        """Stop workers from picking up new entries."""
        suspend(self.connection)
        logger.info("[Queue] Workers suspended")

    def resume(self) -> None:
        resume(self.connection)
        logger.info("[Queue] Workers resumed")

    def worker_count(self) -> int:
        """Workers currently registered on this queue."""
        try:
            return Worker.count(connection=self.connection, queue=self.queue)
        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

    def ping(self) -> bool:
        try:
            return bool(self.connection.ping())
        except RedisError as e:
            raise BackingStoreUnavailable("Job queue is unavailable") from e

    def connection_status(self) -> str:
        """'ready' if Redis answers, otherwise the error text."""
        try:
            self.connection.ping()
            return "ready"
        except RedisError as e:
            return f"error: {e}"

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Purge finished and failed entries older than the retention horizon,
        once either count exceeds its threshold.

        Returns:
            Number of entries removed
        """
        counts = self.counts()
        if counts["completed"] <= self.completed_threshold and counts["failed"] <= self.failed_threshold:
            return 0

        cutoff = _as_utc(now or datetime.now(timezone.utc)) - self.retention
        removed = 0

        for registry in (self.queue.finished_job_registry, self.queue.failed_job_registry):
            for job_id in registry.get_job_ids():
                job = self.get_entry(job_id)
                if job is None:
                    registry.remove(job_id)
                    continue

                ended_at = job.ended_at or job.enqueued_at
                if ended_at is not None and _as_utc(ended_at) < cutoff:
                    registry.remove(job, delete_job=True)
                    removed += 1

        logger.info(f"[Queue] Cleaned {removed} old queue entries")
        return removed

    def close(self) -> None:
        """Release the pooled connection if this queue opened it."""
        if self._redis_manager is not None:
            self._redis_manager.close()


def _as_utc(value: datetime) -> datetime:
    # RQ stores naive UTC timestamps in some versions
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


__all__ = [
    "EnqueueResult",
    "CancelResult",
    "JobQueue",
    "TASK_PATH",
    "HARD_TIMEOUT_GRACE",
]
