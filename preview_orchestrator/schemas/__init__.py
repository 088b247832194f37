# Pydantic schemas package
from preview_orchestrator.schemas.preview import (
    ANONYMOUS_USER, PreviewStatus, PreviewCreate, SubmitResponse, PreviewResponse,
    PreviewStatusResponse, PreviewListResponse, CancelResponse, QueueStatsResponse
)

__all__ = [
    "ANONYMOUS_USER", "PreviewStatus",
    "PreviewCreate", "SubmitResponse",
    "PreviewResponse", "PreviewStatusResponse", "PreviewListResponse",
    "CancelResponse", "QueueStatsResponse",
]
