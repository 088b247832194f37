"""
API Dependencies
Common dependencies for FastAPI routes. Components are wired onto app.state
by create_app(), so routes never reach for process-wide singletons.
"""

from fastapi import Request

from preview_orchestrator.services.previews import PreviewService
from preview_orchestrator.services.status import StatusProjector
from preview_orchestrator.workers.queue import JobQueue


def get_preview_service(request: Request) -> PreviewService:
    return request.app.state.preview_service


def get_status_projector(request: Request) -> StatusProjector:
    return request.app.state.status_projector


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue
