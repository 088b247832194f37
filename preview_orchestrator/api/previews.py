"""
Preview API Routes
Submission, status polling, cancellation and listing of previews.
"""

import logging

from fastapi import APIRouter, Depends

from preview_orchestrator.api.deps import get_preview_service, get_status_projector
from preview_orchestrator.schemas.preview import (
    CancelResponse,
    PreviewCreate,
    PreviewListResponse,
    PreviewResponse,
    PreviewStatusResponse,
    SubmitResponse,
)
from preview_orchestrator.services.previews import PreviewService
from preview_orchestrator.services.status import StatusProjector

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/preview", response_model=SubmitResponse)
async def create_preview(
    request: PreviewCreate,
    service: PreviewService = Depends(get_preview_service),
):
    """
    Create a preview job.
    Returns immediately; the pipeline runs on the worker pool.
    """
    result = service.submit(request.prompt, request.user_id)

    return SubmitResponse(
        message="Preview generation started in background",
        job_id=result.job_id,
        status_url=result.status_url,
    )


@router.get("/preview/health")
async def legacy_health():
    """Kept for clients polling the old health path."""
    return {"status": "ok", "message": "Preview Orchestrator API is running"}


@router.get("/preview/{job_id}/status", response_model=PreviewStatusResponse)
async def get_preview_status(
    job_id: str,
    projector: StatusProjector = Depends(get_status_projector),
):
    """Get preview status with queue position and estimated wait."""
    return projector.project(job_id)


@router.delete("/preview/{job_id}", response_model=CancelResponse)
async def cancel_preview(
    job_id: str,
    service: PreviewService = Depends(get_preview_service),
):
    """Cancel a preview. Waiting entries are removed; running ones finish unobserved."""
    outcome = service.cancel(job_id)

    message = "Preview cancelled" if outcome.cancelled else f"Preview already {outcome.record.status}"
    return CancelResponse(message=message, queue=outcome.queue_result.value)


@router.get("/previews/{user_id}", response_model=PreviewListResponse)
async def list_previews(
    user_id: str,
    service: PreviewService = Depends(get_preview_service),
):
    """List a user's previews, newest first."""
    previews = service.list_for_owner(user_id)
    return PreviewListResponse(
        previews=[PreviewResponse.model_validate(p) for p in previews]
    )
