"""
RQ Task Definitions
Defines the task function executed by workers for each queue entry.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from rq import get_current_job
from rq.job import Job

from preview_orchestrator.workers.base import WorkerException
from preview_orchestrator.workers.pipeline import Pipeline

logger = logging.getLogger(__name__)

# Installed by the worker process at startup (see scripts/run_workers.py)
_pipeline: Optional[Pipeline] = None


def install_pipeline(pipeline: Optional[Pipeline]) -> None:
    """Set the pipeline this worker process runs entries through."""
    global _pipeline
    _pipeline = pipeline


def get_pipeline() -> Pipeline:
    if _pipeline is None:
        raise RuntimeError("No pipeline installed in this worker; start workers with scripts/run_workers.py")
    return _pipeline


def _run_async(coro):
    """Helper to run async code in sync context (for RQ)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def attempt_info(job: Optional[Job]) -> Tuple[int, bool]:
    """
    Current attempt number and whether it is the last one.

    RQ decrements retries_left only after a failed attempt, so while an
    attempt runs, retries_left counts the attempts still to come.
    """
    if job is None:
        return 1, True
    max_attempts = int(job.meta.get("max_attempts", 1))
    retries_left = job.retries_left or 0
    attempt = max(1, max_attempts - retries_left)
    return attempt, retries_left <= 0


def run_preview_task(preview_id: str, prompt: str, owner: str, **kwargs) -> Dict[str, Any]:
    """
    RQ task for the preview pipeline.

    Args:
        preview_id: Preview id (same as the RQ job id)
        prompt: User prompt
        owner: Submitting user

    Returns:
        Dict with the attempt outcome
    """
    job = get_current_job()
    attempt, final_attempt = attempt_info(job)
    logger.info(f"[Task] Processing preview job: {preview_id} (attempt {attempt})")

    try:
        return _run_async(
            get_pipeline().run(
                preview_id, prompt, owner,
                attempt=attempt,
                final_attempt=final_attempt,
            )
        )
    except WorkerException as e:
        if not e.retryable and job is not None:
            # Stop RQ from scheduling further attempts
            job.retries_left = 0
        logger.error(f"[Task] Job {preview_id} failed: {e}")
        raise


__all__ = [
    "install_pipeline",
    "get_pipeline",
    "attempt_info",
    "run_preview_task",
]
