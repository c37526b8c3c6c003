"""
Job Task Base

Every scheduled or queued job (sync, data quality, alerts) runs through the
``JobTask`` Celery base, which logs each job's lifecycle together with the
summary the job returns, and through ``background_task``, which applies the
retry policy of a ``RetryConfig``.
"""

import logging
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from celery import Task, shared_task

from workforce_sync.utils.errors import SchedulingAuthError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Retry Policy
# =============================================================================

@dataclass
class RetryConfig:
    """How a job reacts to an exception: retry later or fail right away."""

    max_retries: int = 3
    default_retry_delay: int = 60  # seconds
    exponential_backoff: bool = True
    max_backoff_delay: int = 1800
    backoff_factor: float = 2.0
    retry_on_exceptions: Tuple[Type[Exception], ...] = (Exception,)
    # Bad configuration and rejected credentials fail on every attempt
    dont_retry_on: List[Type[Exception]] = field(
        default_factory=lambda: [ValidationError, SchedulingAuthError]
    )

    def get_retry_delay(self, retry_count: int) -> int:
        """Seconds to wait before attempt ``retry_count + 1``."""
        if not self.exponential_backoff:
            return self.default_retry_delay
        return min(
            int(self.default_retry_delay * self.backoff_factor ** retry_count),
            self.max_backoff_delay,
        )

    def should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, tuple(self.dont_retry_on)):
            return False
        return isinstance(exc, self.retry_on_exceptions)


# =============================================================================
# Celery Base Task
# =============================================================================

class JobTask(Task):
    """
    Celery base for workforce jobs.

    Messages are acknowledged after the job finishes so a lost worker
    hands the job to another one.
    """

    acks_late = True
    reject_on_worker_lost = True
    track_started = True

    def __init__(self):
        super().__init__()
        self._started_at: Dict[str, float] = {}

    def _elapsed_ms(self, task_id: str) -> Optional[int]:
        started = self._started_at.pop(task_id, None)
        if started is None:
            return None
        return int((time.monotonic() - started) * 1000)

    def before_start(self, task_id: str, args: tuple, kwargs: dict) -> None:
        self._started_at[task_id] = time.monotonic()
        logger.info(
            f"Job {self.name}[{task_id}] started",
            extra={"task_id": task_id, "job": self.name, "job_kwargs": str(kwargs)[:200]},
        )

    def on_success(self, retval: Any, task_id: str, args: tuple, kwargs: dict) -> None:
        # Job functions return a summary dict; sync jobs carry their final status
        outcome = retval.get("status", "done") if isinstance(retval, dict) else "done"
        elapsed = self._elapsed_ms(task_id)
        logger.info(
            f"Job {self.name}[{task_id}] finished ({outcome}) in {elapsed}ms",
            extra={"task_id": task_id, "job": self.name, "outcome": outcome, "elapsed_ms": elapsed},
        )

    def on_failure(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        logger.error(
            f"Job {self.name}[{task_id}] failed: {exc}",
            extra={"task_id": task_id, "job": self.name, "elapsed_ms": self._elapsed_ms(task_id)},
            exc_info=True,
        )

    def on_retry(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        attempt = self.request.retries + 1
        logger.warning(
            f"Job {self.name}[{task_id}] will retry (attempt {attempt}/{self.max_retries}): {exc}",
            extra={"task_id": task_id, "job": self.name, "attempt": attempt},
        )


# =============================================================================
# Decorator
# =============================================================================

F = TypeVar("F", bound=Callable[..., Any])


def background_task(
    name: str,
    queue: str = "default",
    retry_config: Optional[RetryConfig] = None,
    soft_time_limit: int = 1800,
    time_limit: int = 3600,
) -> Callable[[F], F]:
    """
    Register a plain job function as a Celery task on ``queue``.

    The wrapped function stays importable and callable on its own; only
    the returned task object goes through the worker.
    """
    policy = retry_config or RetryConfig()

    def decorator(func: F) -> F:
        @shared_task(
            name=name,
            bind=True,
            base=JobTask,
            queue=queue,
            max_retries=policy.max_retries,
            soft_time_limit=soft_time_limit,
            time_limit=time_limit,
        )
        @wraps(func)
        def job(self, *args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                if policy.should_retry(exc) and self.request.retries < policy.max_retries:
                    raise self.retry(exc=exc, countdown=policy.get_retry_delay(self.request.retries))
                raise

        return job  # type: ignore[return-value]

    return decorator
