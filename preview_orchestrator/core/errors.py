"""
API Errors
Exceptions surfaced synchronously to HTTP callers.
Capability failures inside the pipeline live in preview_orchestrator.workers.base.
"""


class PreviewError(Exception):
    """Base exception for errors returned to the caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PreviewError):
    """Submission is missing required fields. Raised before any state is created."""

    status_code = 400


class NotFoundError(PreviewError):
    """Unknown preview id."""

    status_code = 404


class BackingStoreUnavailable(PreviewError):
    """Redis or the database could not be reached."""

    status_code = 500


__all__ = [
    "PreviewError",
    "ValidationError",
    "NotFoundError",
    "BackingStoreUnavailable",
]
