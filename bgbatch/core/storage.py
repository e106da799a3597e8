"""
Job Workspace - filesystem layout for batch jobs

Every job owns exactly two directories, both derived from the job id alone:

    <upload_root>/<job_id>   staged input files
    <output_root>/<job_id>   files written by the external processor

The job id is the only path component, so jobs never share a directory.
"""

import os
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from bgbatch.core.config import settings
from bgbatch.core.logging import get_logger

logger = get_logger(__name__)


def is_valid_job_id(job_id: str) -> bool:
    """Job ids are canonical UUID strings; anything else never maps to a directory."""
    try:
        return str(uuid.UUID(job_id)) == job_id
    except (ValueError, TypeError, AttributeError):
        return False


@dataclass(frozen=True)
class JobDirs:
    """The input/output directory pair of one job."""
    job_id: str
    input_dir: Path
    output_dir: Path


class JobWorkspace:
    """Creates, lists and removes job directories under the two storage roots."""

    def __init__(self, upload_root: str, output_root: str):
        self.upload_root = Path(upload_root)
        self.output_root = Path(output_root)
        self.upload_root.mkdir(parents=True, exist_ok=True)
        self.output_root.mkdir(parents=True, exist_ok=True)

    def dirs_for(self, job_id: str) -> JobDirs:
        if not is_valid_job_id(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return JobDirs(
            job_id=job_id,
            input_dir=self.upload_root / job_id,
            output_dir=self.output_root / job_id,
        )

    def create(self, job_id: str) -> JobDirs:
        """
        Create both job directories.

        Raises FileExistsError if either already exists; a job id is never
        reused. If the second directory cannot be created the first one is
        removed again before the error propagates.
        """
        dirs = self.dirs_for(job_id)
        dirs.input_dir.mkdir(parents=False, exist_ok=False)
        try:
            dirs.output_dir.mkdir(parents=False, exist_ok=False)
        except OSError:
            shutil.rmtree(dirs.input_dir, ignore_errors=True)
            raise
        return dirs

    def discard(self, job_id: str) -> None:
        """Remove both directories of a job (compensation for a failed submission)."""
        dirs = self.dirs_for(job_id)
        for path in (dirs.input_dir, dirs.output_dir):
            shutil.rmtree(path, ignore_errors=True)
        logger.info("job_dirs_discarded", job_id=job_id)

    def list_outputs(self, job_id: str) -> Optional[List[str]]:
        """
        Names of the entries in a job's output directory.

        Returns None when the directory is missing or unreadable, and for
        ids that are not valid job ids.
        """
        if not is_valid_job_id(job_id):
            return None
        try:
            return os.listdir(self.output_root / job_id)
        except OSError:
            return None

    def cleanup_expired(self, ttl_hours: int) -> int:
        """Remove job directories older than the TTL. Returns count of removed dirs."""
        if ttl_hours <= 0:
            return 0
        cutoff = time.time() - ttl_hours * 3600
        removed = 0
        for root in (self.upload_root, self.output_root):
            if not root.exists():
                continue
            for entry in root.iterdir():
                if not entry.is_dir() or not is_valid_job_id(entry.name):
                    continue
                if entry.stat().st_mtime < cutoff:
                    shutil.rmtree(entry, ignore_errors=True)
                    removed += 1
        if removed:
            logger.info("expired_job_dirs_removed", removed=removed, ttl_hours=ttl_hours)
        return removed


class WorkspaceFactory:
    """Process-wide JobWorkspace built from settings."""

    _instance: Optional[JobWorkspace] = None

    @classmethod
    def get_workspace(cls) -> JobWorkspace:
        if cls._instance is None:
            cls._instance = JobWorkspace(settings.UPLOAD_ROOT, settings.OUTPUT_ROOT)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None


# Convenience function for dependency injection
def get_workspace() -> JobWorkspace:
    """Get the workspace instance - ready for FastAPI Depends()."""
    return WorkspaceFactory.get_workspace()
