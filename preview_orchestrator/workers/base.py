"""
Base Worker Primitives
Capability errors and the retry policies used by the queue and the pipeline.

Two policies are composed at runtime:
- the outer policy is handed to RQ and re-runs the whole pipeline,
- the inner policy wraps the generation step inside a single attempt.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from rq import Retry

logger = logging.getLogger(__name__)

T = TypeVar('T')


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., missing credentials)."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class CapabilityError(WorkerException):
    """A CodeGenerator or DeploymentTarget call failed."""


class GenerationError(CapabilityError):
    """Code generation failed."""


class DeploymentError(CapabilityError):
    """Deployment failed or produced no usable URL."""


class ConfigurationError(NonRetryableError):
    """A credential or setting is missing at the moment it is needed."""


class JobTimeoutError(CapabilityError):
    """An attempt ran past the entry deadline."""


class Backoff(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """
    A fixed attempt cap with linear or exponential backoff.

    Args:
        name: Label used in log lines so it is clear which layer retried
        max_attempts: Total attempts, including the first
        base_delay: Delay before the first retry (seconds)
        backoff: LINEAR -> base * n, EXPONENTIAL -> base * 2^(n-1)
        retry_on: Exception types that trigger another attempt
    """
    name: str
    max_attempts: int
    base_delay: float
    backoff: Backoff = Backoff.EXPONENTIAL
    retry_on: Tuple[type, ...] = (CapabilityError, OSError)

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry number `retry_number` (1-based)."""
        if self.backoff == Backoff.LINEAR:
            return self.base_delay * retry_number
        return self.base_delay * (2 ** (retry_number - 1))

    def delays(self) -> List[float]:
        """Delays between consecutive attempts."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    def to_rq_retry(self) -> Optional[Retry]:
        """Express this policy as an RQ retry schedule (None when there is nothing to retry)."""
        if self.max_attempts <= 1:
            return None
        return Retry(max=self.max_attempts - 1, interval=[int(d) for d in self.delays()])

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **kwargs: Any
    ) -> T:
        """
        Await `func` until it succeeds or the attempt cap is reached.

        Non-retryable WorkerExceptions and exception types outside `retry_on`
        propagate immediately. The last error is re-raised once attempts run out.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func(*args, **kwargs)

            except NonRetryableError as e:
                logger.error(f"[{self.name}] Non-retryable failure in {func.__name__}: {e}")
                raise

            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"[{self.name}] {func.__name__} exhausted all {self.max_attempts} attempts: {e}"
                    )
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"[{self.name} {attempt}/{self.max_attempts}] {func.__name__} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover


__all__ = [
    "WorkerException",
    "NonRetryableError",
    "CapabilityError",
    "GenerationError",
    "DeploymentError",
    "ConfigurationError",
    "JobTimeoutError",
    "Backoff",
    "RetryPolicy",
]
