"""
ArchForge Core - Backend service layer.

Contains configuration, logging, job execution, safety and session
management shared by every installer step.
"""

from archforge.core.config import ArchForgeConfig
from archforge.core.errors import ArchForgeError, InstallAborted
from archforge.core.job import FunctionJob, Job, JobResult, JobRunner, JobStatus
from archforge.core.logging import get_logger, setup_logging
from archforge.core.safety import SafetyManager
from archforge.core.session import Session

__all__ = [
    "ArchForgeConfig",
    "ArchForgeError",
    "InstallAborted",
    "FunctionJob",
    "Job",
    "JobResult",
    "JobRunner",
    "JobStatus",
    "Session",
    "get_logger",
    "setup_logging",
    "SafetyManager",
]
