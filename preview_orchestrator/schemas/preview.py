"""
Preview Schemas
Pydantic models for preview API requests and responses.
"""

from datetime import datetime
from typing import Optional, Dict, List
from enum import Enum
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


ANONYMOUS_USER = "anonymous"


class PreviewStatus(str, Enum):
    """Preview lifecycle status. Moves forward only."""
    BUILDING = "building"
    GENERATING = "generating"
    DEPLOYING = "deploying"
    LIVE = "live"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PreviewStatus.LIVE, PreviewStatus.FAILED)


class CamelModel(BaseModel):
    """Serializes snake_case fields as camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class PreviewCreate(CamelModel):
    """Schema for a preview submission. Required fields are checked by the service."""
    prompt: Optional[str] = None
    user_id: Optional[str] = None


class SubmitResponse(CamelModel):
    """Schema for the submission response."""
    success: bool = True
    message: str
    job_id: str
    status_url: str


class PreviewResponse(CamelModel):
    """Schema for a stored preview record."""
    id: str
    prompt: str
    user_id: str
    status: PreviewStatus
    live_url: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime


class PreviewStatusResponse(PreviewResponse):
    """Preview record merged with queue introspection."""
    success: bool = True
    queue_position: Optional[int] = None
    estimated_time: Optional[int] = None  # Seconds


class PreviewListResponse(CamelModel):
    """Schema for a user's previews, newest first."""
    success: bool = True
    previews: List[PreviewResponse]


class CancelResponse(CamelModel):
    """Schema for the cancellation response."""
    success: bool = True
    message: str
    queue: str


class QueueStatsResponse(CamelModel):
    """Schema for queue introspection."""
    success: bool = True
    counts: Dict[str, int]
    is_paused: bool
    redis_status: str
    workers: int
    active_workers: int
