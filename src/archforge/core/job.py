"""
ArchForge Job Runner.

Every installer step runs as a job: synchronously, in order, with its
outcome, warnings and timing captured in a JobResult.
"""

from __future__ import annotations

import traceback
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Generic, TypeVar

from archforge.core.logging import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class JobStatus(Enum):
    """Lifecycle of an installer step."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class JobResult(Generic[T]):
    """Outcome of one step."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_traceback: str | None = None
    warnings: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class JobContext:
    """Handed to a running step so it can report advisory problems."""

    def __init__(self) -> None:
        self._warnings: list[str] = []

    def add_warning(self, warning: str) -> None:
        logger.warning(warning)
        self._warnings.append(warning)

    def get_warnings(self) -> list[str]:
        return list(self._warnings)


class Job(ABC, Generic[T]):
    """Base class for installer steps."""

    def __init__(self, name: str, description: str) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.description = description
        self.status = JobStatus.PENDING
        self.context = JobContext()
        self.result: JobResult[T] | None = None
        self.started_at: datetime | None = None

    @abstractmethod
    def execute(self, context: JobContext) -> T:
        """Do the work; raising marks the job failed."""

    @abstractmethod
    def get_plan(self) -> str:
        """Return a human-readable execution plan."""

    def validate(self) -> list[str]:
        """
        Check parameters before anything is touched.
        Returns a list of validation errors (empty if valid).
        """
        return []


class FunctionJob(Job[T]):
    """A job whose body is a plain callable taking the job context."""

    def __init__(
        self,
        name: str,
        description: str,
        action: Callable[[JobContext], T],
        plan: str | None = None,
        fatal: bool = True,
    ) -> None:
        super().__init__(name=name, description=description)
        self.action = action
        self.plan = plan or description
        self.fatal = fatal

    def execute(self, context: JobContext) -> T:
        return self.action(context)

    def get_plan(self) -> str:
        return self.plan


class JobRunner:
    """Runs one job at a time on the calling thread."""

    def run_sync(self, job: Job[T]) -> JobResult[T]:
        logger.debug("Job submitted", job_id=job.id, job_name=job.name)

        errors = job.validate()
        if errors:
            now = datetime.now()
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error="Validation failed: " + "; ".join(errors),
                start_time=now,
                end_time=now,
            )
            logger.error("Job rejected", job_name=job.name, errors=errors)
            return job.result

        return self._execute(job)

    def _execute(self, job: Job[T]) -> JobResult[T]:
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        logger.info("Job started", job_id=job.id, job_name=job.name)

        try:
            data = job.execute(job.context)
        except Exception as e:
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error=str(e),
                error_traceback=traceback.format_exc(),
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.error(
                "Job failed",
                job_id=job.id,
                job_name=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return job.result

        job.status = JobStatus.COMPLETED
        job.result = JobResult(
            success=True,
            data=data,
            warnings=job.context.get_warnings(),
            start_time=job.started_at,
            end_time=datetime.now(),
        )
        logger.info(
            "Job completed",
            job_id=job.id,
            job_name=job.name,
            duration_seconds=job.result.duration_seconds,
        )
        return job.result
