"""
Preview Pipeline
The body of one preview job attempt: generate the app, deploy it, and record
every phase transition in the PreviewStore.

    building   -> generating
    generating -> deploying | failed
    deploying  -> live | failed
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from preview_orchestrator.schemas.preview import PreviewStatus
from preview_orchestrator.services.generator import CodeGenerator, TemplateCodeGenerator, release_artifact
from preview_orchestrator.services.netlify import DeploymentTarget, NetlifyDeploymentTarget
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.workers.base import (
    Backoff,
    DeploymentError,
    JobTimeoutError,
    RetryPolicy,
    WorkerException,
)

logger = logging.getLogger(__name__)


def site_name_for(job_id: str) -> str:
    """Deployment names allow letters, digits and hyphens."""
    return job_id.lower().replace("_", "-")


class Pipeline:
    """
    Runs generate -> deploy for a preview job.

    The generation step has its own retry policy, nested inside the queue's
    retries of the whole pipeline.
    """

    TASK_NAME = "preview_pipeline"

    def __init__(
        self,
        store: PreviewStore,
        generator: CodeGenerator,
        deployer: DeploymentTarget,
        generation_policy: Optional[RetryPolicy] = None,
        timeout: float = 120
    ):
        self.store = store
        self.generator = generator
        self.deployer = deployer
        self.generation_policy = generation_policy or RetryPolicy(
            name="generation", max_attempts=3, base_delay=1.0, backoff=Backoff.LINEAR
        )
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, store: Optional[PreviewStore] = None) -> "Pipeline":
        return cls(
            store=store or PreviewStore.from_url(settings.DATABASE_URL),
            generator=TemplateCodeGenerator(
                template_dir=Path(settings.TEMPLATE_DIR),
                output_root=Path(settings.PREVIEW_OUTPUT_DIR),
            ),
            deployer=NetlifyDeploymentTarget(
                token=settings.NETLIFY_TOKEN,
                api_url=settings.NETLIFY_API_URL,
            ),
            generation_policy=RetryPolicy(
                name="generation",
                max_attempts=settings.GENERATION_MAX_ATTEMPTS,
                base_delay=settings.GENERATION_RETRY_DELAY,
                backoff=Backoff.LINEAR,
            ),
            timeout=settings.JOB_TIMEOUT,
        )

    async def run(
        self,
        job_id: str,
        prompt: str,
        owner: str,
        attempt: int = 1,
        final_attempt: bool = True
    ) -> Dict[str, Any]:
        """
        Execute one attempt.

        The timeout is a per-attempt deadline counted from the start of this
        attempt, not from enqueue time; each retry gets the full budget again.

        Args:
            job_id: Preview id
            prompt: User prompt
            owner: Submitting user
            attempt: 1-based attempt number (outer retries)
            final_attempt: Whether a failure now is terminal

        Returns:
            Dict summarizing the outcome

        Raises:
            WorkerException: The attempt failed; the queue decides whether to retry
        """
        record = self.store.get(job_id)
        if record is None:
            logger.warning(f"[{self.TASK_NAME}] {job_id} not found in store, skipping")
            return {"job_id": job_id, "status": "missing"}

        if PreviewStatus(record.status).is_terminal:
            logger.info(f"[{self.TASK_NAME}] {job_id} already {record.status}, skipping")
            return {"job_id": job_id, "status": record.status}

        start_time = datetime.utcnow()
        logger.info(f"[START] {self.TASK_NAME} | job_id={job_id} owner={owner} attempt={attempt}")
        artifacts = []

        try:
            result = await asyncio.wait_for(
                self._execute(job_id, prompt, attempt, artifacts),
                timeout=self.timeout,
            )

        except asyncio.TimeoutError as e:
            error = JobTimeoutError(f"Preview job timed out after {self.timeout}s")
            self._record_failure(job_id, error, final_attempt)
            raise error from e

        except Exception as e:
            self._record_failure(job_id, e, final_attempt)
            raise

        finally:
            for artifact in artifacts:
                release_artifact(artifact)

        duration = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"[COMPLETE] {self.TASK_NAME} | job_id={job_id} | Duration: {duration:.2f}s | {result['status']}")
        return result

    async def _execute(self, job_id: str, prompt: str, attempt: int, artifacts: list) -> Dict[str, Any]:
        # 1. generating
        if not self.store.transition(job_id, PreviewStatus.GENERATING, attempts=attempt):
            current = self.store.get(job_id)
            if current is None or PreviewStatus(current.status).is_terminal:
                logger.info(f"[{self.TASK_NAME}] {job_id} left the pipeline before generation")
                return {"job_id": job_id, "status": current.status if current else "missing"}
            # Earlier attempt reached deploying; regenerate without moving the status back
            logger.info(f"[{self.TASK_NAME}] {job_id} retrying from {current.status}")

        # 2. generate (inner retries)
        artifact = await self.generation_policy.call(self.generator.generate, prompt)
        artifacts.append(artifact)

        # 3. deploying
        if not self.store.transition(job_id, PreviewStatus.DEPLOYING):
            logger.info(f"[{self.TASK_NAME}] {job_id} cancelled during generation")
            return {"job_id": job_id, "status": PreviewStatus.FAILED.value}

        live_url = await self.deployer.deploy(artifact, site_name_for(job_id))
        if not live_url:
            raise DeploymentError("Failed to get deployment URL from deployment target")

        # 4. live, only if nobody cancelled meanwhile
        if not self.store.transition(job_id, PreviewStatus.LIVE, live_url=live_url):
            logger.warning(f"[{self.TASK_NAME}] {job_id} was cancelled; discarding late deploy {live_url}")
            return {"job_id": job_id, "status": PreviewStatus.FAILED.value, "discarded_url": live_url}

        return {"job_id": job_id, "status": PreviewStatus.LIVE.value, "live_url": live_url}

    def _record_failure(self, job_id: str, error: Exception, final_attempt: bool) -> None:
        message = str(error) or error.__class__.__name__
        retryable = not isinstance(error, WorkerException) or error.retryable

        if final_attempt or not retryable:
            logger.error(f"[ERROR] {self.TASK_NAME} | job_id={job_id} | Error: {message}")
            self.store.transition(job_id, PreviewStatus.FAILED, error=message)
        else:
            logger.warning(f"[RETRY] {self.TASK_NAME} | job_id={job_id} | Error: {message}")
            self.store.record_attempt_failure(job_id, message)


__all__ = ["Pipeline", "site_name_for"]
