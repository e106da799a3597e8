"""
BatchJob Ledger Model

Server-side record of every submitted batch:
- Input/output directories and the staged file mapping
- Lifecycle status with an explicit terminal failure state
- Processor exit information and timing
"""

import uuid
from enum import Enum
from sqlmodel import SQLModel, Field, Column, JSON
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Ledger job status states."""
    PENDING = "PENDING"           # Files staged, waiting for a processor slot
    PROCESSING = "PROCESSING"     # Processor launched; output not seen yet
    COMPLETED = "COMPLETED"       # Output directory has at least one entry
    FAILED = "FAILED"             # Admission or processor failure


class BatchJob(SQLModel, table=True):
    """One upload batch and its processing lifecycle."""
    __tablename__ = "batch_jobs"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )

    status: str = Field(default=JobStatus.PENDING.value, index=True)

    # Directories (absolute or relative to the service working dir)
    input_dir: str
    output_dir: str

    # [{original_name, stored_name}, ...] in submission order
    staged_files: List[Dict[str, str]] = Field(default_factory=list, sa_column=Column(JSON))

    # Output directory entries, filled when completion is first observed
    result_files: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Processor outcome
    exit_code: Optional[int] = None
    error_message: Optional[str] = None
    error_stage: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    processor_finished_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def stored_names(self) -> List[str]:
        return [entry["stored_name"] for entry in self.staged_files or []]

    def mark_started(self):
        """Mark the processor as launched."""
        self.status = JobStatus.PROCESSING.value
        self.started_at = utc_now()

    def mark_processor_finished(self, exit_code: int):
        """Record a clean processor exit; completion is decided by the output directory."""
        self.exit_code = exit_code
        self.processor_finished_at = utc_now()

    def mark_completed(self, files: List[str]):
        """Mark job as completed with the observed output files."""
        self.status = JobStatus.COMPLETED.value
        self.result_files = list(files)
        self.completed_at = utc_now()

    def mark_failed(self, error_message: str, error_stage: str, exit_code: Optional[int] = None):
        """Mark job as failed."""
        self.status = JobStatus.FAILED.value
        self.error_message = error_message
        self.error_stage = error_stage
        if exit_code is not None:
            self.exit_code = exit_code
        self.completed_at = utc_now()

    def to_response_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        return {
            "id": self.id,
            "status": self.status,
            "staged_files": self.staged_files or [],
            "result_files": self.result_files or [],
            "exit_code": self.exit_code,
            "error": {
                "message": self.error_message,
                "stage": self.error_stage
            } if self.error_message else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "processor_finished_at": (
                self.processor_finished_at.isoformat() if self.processor_finished_at else None
            ),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None
        }
