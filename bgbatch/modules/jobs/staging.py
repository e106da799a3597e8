"""
Job Staging Service

Creates a job identity, materializes its isolated directories and copies
each uploaded blob into the input directory under a collision-safe name.
"""

import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence

from bgbatch.core.exceptions import PayloadTooLargeError, StagingError, ValidationError
from bgbatch.core.logging import get_logger
from bgbatch.core.metrics import staged_files_total
from bgbatch.core.storage import JobDirs, JobWorkspace
from bgbatch.modules.jobs.schemas import StagedFile

logger = get_logger(__name__)

# Only a short alphanumeric extension survives from the client-supplied name
_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")

CHUNK_SIZE = 1024 * 1024  # 1 MB


@dataclass
class IncomingFile:
    """An uploaded blob: the client's file name and a readable stream."""
    filename: str
    stream: BinaryIO


@dataclass
class StagedBatch:
    """Result of staging one batch."""
    dirs: JobDirs
    files: List[StagedFile]

    @property
    def job_id(self) -> str:
        return self.dirs.job_id

    @property
    def stored_names(self) -> List[str]:
        return [f.stored_name for f in self.files]


def safe_extension(filename: Optional[str]) -> str:
    """Extension of the original name, or '' if it is missing or unusual."""
    suffix = Path(filename or "").suffix
    return suffix.lower() if _SAFE_EXTENSION.match(suffix) else ""


def new_stored_name(filename: Optional[str]) -> str:
    return f"{uuid.uuid4()}{safe_extension(filename)}"


class JobStager:
    """Stages upload batches into a JobWorkspace."""

    def __init__(
        self,
        workspace: JobWorkspace,
        max_files: int = 10,
        max_file_bytes: Optional[int] = None,
    ):
        self.workspace = workspace
        self.max_files = max_files
        self.max_file_bytes = max_file_bytes

    def validate(self, files: Sequence[IncomingFile]) -> None:
        """Reject a batch before anything touches the filesystem."""
        if not files:
            raise ValidationError("No files uploaded; send 1 or more files in the 'images' field")
        if len(files) > self.max_files:
            raise ValidationError(
                f"Too many files: {len(files)} (max {self.max_files} per batch)",
                details={"max_files": self.max_files, "received": len(files)}
            )

    def stage(self, files: Sequence[IncomingFile], job_id: Optional[str] = None) -> StagedBatch:
        """
        Stage a batch under a fresh job id.

        Any failure after the directories were created removes them again
        before the error propagates.
        """
        self.validate(files)
        job_id = job_id or str(uuid.uuid4())

        try:
            dirs = self.workspace.create(job_id)
        except OSError as e:
            raise StagingError(f"Failed to create job directories: {e}", job_id=job_id)

        try:
            staged = [self._store(dirs, incoming) for incoming in files]
        except PayloadTooLargeError:
            self.workspace.discard(job_id)
            raise
        except OSError as e:
            self.workspace.discard(job_id)
            raise StagingError(f"Failed to store uploaded file: {e}", job_id=job_id)

        staged_files_total.inc(len(staged))
        logger.info(
            "job_staged",
            job_id=job_id,
            file_count=len(staged),
            input_dir=str(dirs.input_dir)
        )
        return StagedBatch(dirs=dirs, files=staged)

    def _store(self, dirs: JobDirs, incoming: IncomingFile) -> StagedFile:
        stored_name = new_stored_name(incoming.filename)
        target = dirs.input_dir / stored_name

        total = 0
        with open(target, "xb") as dst:
            while True:
                chunk = incoming.stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if self.max_file_bytes is not None and total > self.max_file_bytes:
                    raise PayloadTooLargeError(
                        f"File '{incoming.filename}' exceeds the maximum size",
                        limit_bytes=self.max_file_bytes,
                        job_id=dirs.job_id
                    )
                dst.write(chunk)

        return StagedFile(original_name=incoming.filename or "", stored_name=stored_name)
