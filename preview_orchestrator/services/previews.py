"""
Preview Service
Submission, cancellation and listing of preview jobs.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from preview_orchestrator.core.errors import BackingStoreUnavailable, NotFoundError, ValidationError
from preview_orchestrator.models.preview import Preview
from preview_orchestrator.schemas.preview import ANONYMOUS_USER, PreviewStatus
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.workers.queue import CancelResult, EnqueueResult, JobQueue

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Cancelled by user"
ENQUEUE_FAILED_ERROR = "Failed to queue preview job"


def new_preview_id() -> str:
    """preview_<epoch-ms>_<9 alnum>"""
    return f"preview_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class SubmitResult:
    job_id: str
    status_url: str
    enqueue_result: EnqueueResult


@dataclass
class CancelOutcome:
    record: Preview
    cancelled: bool
    queue_result: CancelResult


class PreviewService:
    """Coordinates the PreviewStore and the JobQueue for API requests."""

    def __init__(self, store: PreviewStore, queue: JobQueue):
        self.store = store
        self.queue = queue

    def submit(self, prompt: Optional[str], user_id: Optional[str] = None) -> SubmitResult:
        """
        Create a `building` record and queue it. Never waits for the pipeline.

        Raises:
            ValidationError: prompt missing or blank
            BackingStoreUnavailable: store or queue unreachable
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Missing required field: prompt")

        owner = (user_id or "").strip() or ANONYMOUS_USER
        job_id = new_preview_id()

        self.store.insert(job_id, prompt, owner)

        try:
            result = self.queue.enqueue(job_id, {"prompt": prompt, "owner": owner})
        except BackingStoreUnavailable:
            # Do not leave a record that no worker will ever pick up
            self.store.transition(job_id, PreviewStatus.FAILED, error=ENQUEUE_FAILED_ERROR)
            raise

        logger.info(f"[Submit] Job {job_id} queued successfully ({result.value})")
        return SubmitResult(
            job_id=job_id,
            status_url=f"/api/preview/{job_id}/status",
            enqueue_result=result,
        )

    def cancel(self, preview_id: str) -> CancelOutcome:
        """
        Mark a preview failed and drop its waiting queue entry.

        The record is updated first so a worker that dequeues the entry in
        between sees a terminal status and skips it.
        """
        record = self.store.get(preview_id)
        if record is None:
            raise NotFoundError("Preview not found")

        cancelled = self.store.transition(preview_id, PreviewStatus.FAILED, error=CANCELLED_ERROR)
        queue_result = self.queue.cancel(preview_id)

        logger.info(f"[Cancel] {preview_id}: record {'cancelled' if cancelled else 'already ' + record.status}, queue {queue_result.value}")
        return CancelOutcome(
            record=self.store.get(preview_id) or record,
            cancelled=cancelled,
            queue_result=queue_result,
        )

    def list_for_owner(self, user_id: str) -> List[Preview]:
        return self.store.list_by_owner(user_id)
