# Workers package - async job processing with RQ
# Pipeline and tasks are imported from their modules directly; they depend on services.

from preview_orchestrator.workers.base import (
    WorkerException,
    NonRetryableError,
    CapabilityError,
    GenerationError,
    DeploymentError,
    ConfigurationError,
    JobTimeoutError,
    Backoff,
    RetryPolicy
)
from preview_orchestrator.workers.queue import (
    EnqueueResult,
    CancelResult,
    JobQueue
)

__all__ = [
    # Base
    "WorkerException",
    "NonRetryableError",
    "CapabilityError",
    "GenerationError",
    "DeploymentError",
    "ConfigurationError",
    "JobTimeoutError",
    "Backoff",
    "RetryPolicy",
    # Queue
    "EnqueueResult",
    "CancelResult",
    "JobQueue"
]
