"""
ArchForge Session Management.

A session ties together configuration, safety, the platform backend and
the report of every step executed during one installer run.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from archforge.core.config import ArchForgeConfig, load_config
from archforge.core.job import Job, JobResult, JobRunner
from archforge.core.logging import SessionLogger, get_logger, setup_logging
from archforge.core.safety import SafetyManager

if TYPE_CHECKING:
    from archforge.platform.base import PlatformBackend

logger = get_logger(__name__)


@dataclass
class SessionReport:
    """Complete session report for audit and review."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    target_device: str | None = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    artifacts: dict[str, Any] = field(default_factory=dict)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": (
                (self.ended_at - self.started_at).total_seconds()
                if self.ended_at
                else None
            ),
            "target_device": self.target_device,
            "operations": self.operations,
            "errors": self.errors,
            "warnings": self.warnings,
            "artifacts": self.artifacts,
            "config_snapshot": self.config_snapshot,
            "summary": {
                "total_operations": len(self.operations),
                "successful_operations": sum(
                    1 for op in self.operations if op.get("success", False)
                ),
                "failed_operations": sum(
                    1 for op in self.operations if not op.get("success", True)
                ),
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings),
            },
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class Session:
    """
    Manages an ArchForge session with configuration, safety, and step execution.

    This is the main entry point for all ArchForge operations.
    """

    def __init__(
        self,
        config: ArchForgeConfig | None = None,
        session_id: str | None = None,
        backend: PlatformBackend | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        self.safety = SafetyManager(self.config.safety)
        self.job_runner = JobRunner()
        self.session_logger = SessionLogger(
            self.config.get_session_file(),
            get_logger(f"session.{self.id[:8]}"),
        )

        self._report = SessionReport(
            session_id=self.id,
            started_at=self.started_at,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        self._platform_backend = backend

        logger.info("Session started", session_id=self.id)
        self.session_logger.info("Session started", session_id=self.id)

    @property
    def platform(self) -> PlatformBackend:
        """Get the platform-specific backend."""
        if self._platform_backend is None:
            from archforge.platform import get_platform_backend

            self._platform_backend = get_platform_backend()
        return self._platform_backend

    def set_target(self, device_path: str) -> None:
        self._report.target_device = device_path

    def record_artifact(self, key: str, value: Any) -> None:
        """Attach a step output (plan, swap spec, cleanup result) to the report."""
        self._report.artifacts[key] = value

    def run_job(self, job: Job[Any]) -> JobResult[Any]:
        """Run a job synchronously and track it in the session."""
        self.session_logger.info(
            "Executing job",
            job_id=job.id,
            job_name=job.name,
            plan=job.get_plan(),
        )

        result = self.job_runner.run_sync(job)
        self._track_operation(job, result)
        return result

    def _track_operation(self, job: Job[Any], result: JobResult[Any]) -> None:
        operation_record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "job_id": job.id,
            "job_name": job.name,
            "job_description": job.description,
            "success": result.success,
            "duration_seconds": result.duration_seconds,
        }

        if result.error:
            operation_record["error"] = result.error
            self._report.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "job_id": job.id,
                    "job_name": job.name,
                    "error": result.error,
                }
            )

        if result.warnings:
            operation_record["warnings"] = result.warnings
            self._report.warnings.extend(result.warnings)

        self._report.operations.append(operation_record)

        if result.success:
            self.session_logger.info("Operation completed", job_id=job.id, job_name=job.name)
        else:
            self.session_logger.error(
                "Operation failed",
                job_id=job.id,
                job_name=job.name,
                error=result.error,
            )

    def close(self) -> Path:
        """Close the session and save reports."""
        self._report.ended_at = datetime.now()

        self.session_logger.save()

        report_path = self.config.session_directory / f"report_{self.id[:8]}.json"
        self._report.save(report_path)

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(self._report.ended_at - self.started_at).total_seconds(),
            report_path=str(report_path),
        )

        return report_path

    def get_report(self) -> SessionReport:
        """Get the current session report."""
        return self._report

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
