"""
Status Projector
Builds the client-visible view of a preview by merging the stored record
with queue introspection.
"""

from typing import Optional

from preview_orchestrator.core.errors import NotFoundError
from preview_orchestrator.schemas.preview import PreviewStatus, PreviewStatusResponse
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.workers.queue import JobQueue


class StatusProjector:
    """Answers status polls without touching the pipeline."""

    def __init__(self, store: PreviewStore, queue: JobQueue, average_seconds_per_job: int = 30):
        self.store = store
        self.queue = queue
        self.average_seconds_per_job = average_seconds_per_job

    def project(self, preview_id: str) -> PreviewStatusResponse:
        record = self.store.get(preview_id)
        if record is None:
            raise NotFoundError("Preview not found")

        queue_position: Optional[int] = None
        estimated_time: Optional[int] = None

        # Position and ETA only mean something before a terminal state
        if not PreviewStatus(record.status).is_terminal:
            queue_position = self.queue.position(preview_id)
            if queue_position is not None:
                estimated_time = queue_position * self.average_seconds_per_job

        view = PreviewStatusResponse.model_validate(record)
        view.queue_position = queue_position
        view.estimated_time = estimated_time
        return view
