"""
Status Oracle

Infers whether a job is done from its output directory alone: one or more
entries means completed, anything else (empty, missing, unreadable, unknown
or malformed id) reads as processing. Read-only and safe to call
concurrently; a partially written directory is indistinguishable from one
still being processed.
"""

from dataclasses import dataclass, field
from typing import List

from bgbatch.core.storage import JobWorkspace
from bgbatch.modules.jobs.schemas import ReportedStatus


@dataclass(frozen=True)
class OracleReading:
    status: ReportedStatus
    files: List[str] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == ReportedStatus.COMPLETED


class StatusOracle:
    def __init__(self, workspace: JobWorkspace):
        self.workspace = workspace

    def inspect(self, job_id: str) -> OracleReading:
        entries = self.workspace.list_outputs(job_id)
        if not entries:
            return OracleReading(status=ReportedStatus.PROCESSING)
        return OracleReading(status=ReportedStatus.COMPLETED, files=sorted(entries))
