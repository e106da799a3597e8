"""Request/response schemas for the batch job API."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ReportedStatus(str, Enum):
    """Status values returned by GET /status/{id}."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


class StagedFile(BaseModel):
    """Mapping of one uploaded file to its collision-safe stored name."""
    original_name: str
    stored_name: str


class UploadResponse(BaseModel):
    """Response from POST /upload."""
    id: str
    files: List[str] = Field(..., description="Stored file names in submission order")


class StatusResponse(BaseModel):
    """Response from GET /status/{id}."""
    status: ReportedStatus
    files: Optional[List[str]] = None
    message: Optional[str] = None
    error: Optional[str] = None
