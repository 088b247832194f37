"""
Queue API Routes
Operational introspection of the job queue.
"""

from fastapi import APIRouter, Depends

from preview_orchestrator.api.deps import get_queue
from preview_orchestrator.schemas.preview import QueueStatsResponse
from preview_orchestrator.workers.queue import JobQueue

router = APIRouter()


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(queue: JobQueue = Depends(get_queue)):
    """Queue counts, pause state and worker pool size."""
    return QueueStatsResponse(
        counts=queue.counts(),
        is_paused=queue.is_paused(),
        redis_status=queue.connection_status(),
        workers=queue.concurrency,
        active_workers=queue.worker_count(),
    )
