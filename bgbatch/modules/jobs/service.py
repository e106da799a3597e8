"""
Job Service

Ties the job lifecycle together for the API layer:
staging -> ledger record -> admission -> processor run, and the status
query that combines the ledger with the Status Oracle.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from bgbatch.core.exceptions import BgBatchException
from bgbatch.core.logging import get_logger, LogContext, stage_var
from bgbatch.core.metrics import record_job_submission, record_status_query
from bgbatch.core.storage import is_valid_job_id
from bgbatch.modules.jobs.invocation import ProcessorInvoker, ProcessorPool, ProcessorResult
from bgbatch.modules.jobs.models import BatchJob, JobStatus
from bgbatch.modules.jobs.schemas import ReportedStatus, StatusResponse, UploadResponse
from bgbatch.modules.jobs.staging import IncomingFile, JobStager
from bgbatch.modules.jobs.status import StatusOracle

logger = get_logger(__name__)


class JobService:
    """Per-request facade over staging, invocation and status."""

    def __init__(
        self,
        session: AsyncSession,
        stager: JobStager,
        invoker: ProcessorInvoker,
        pool: ProcessorPool,
        oracle: StatusOracle,
    ):
        self.session = session
        self.stager = stager
        self.invoker = invoker
        self.pool = pool
        self.oracle = oracle

    async def submit(self, files: Sequence[IncomingFile]) -> UploadResponse:
        """
        Stage a batch and run the processor on it.

        Returns only after the processor exited cleanly. On any failure the
        job's directories are removed, the ledger keeps a FAILED record and
        the error propagates to the request boundary.
        """
        try:
            self.stager.validate(files)
        except BgBatchException:
            record_job_submission("rejected")
            raise

        job_id = str(uuid.uuid4())

        with LogContext(job_id=job_id, stage="staging") as ctx:
            logger.info("upload_received", file_count=len(files))

            try:
                batch = await run_in_threadpool(self.stager.stage, files, job_id)
            except BgBatchException as e:
                record_job_submission("rejected" if e.code < 500 else "failed")
                raise

            job: Optional[BatchJob] = None

            async def launch() -> ProcessorResult:
                job.mark_started()
                await self.session.commit()
                return await self.invoker.run(batch.dirs.input_dir, batch.dirs.output_dir)

            try:
                job = BatchJob(
                    id=job_id,
                    input_dir=str(batch.dirs.input_dir),
                    output_dir=str(batch.dirs.output_dir),
                    staged_files=[f.model_dump() for f in batch.files],
                )
                self.session.add(job)
                await self.session.commit()

                ctx.set_stage("invocation")
                result = await self.pool.run(job_id, launch)

                job.mark_processor_finished(result.exit_code)
                await self.session.commit()
            except BaseException as e:
                await self._abandon(job_id, job, e)
                raise

            record_job_submission("accepted")
            logger.info(
                "job_submitted",
                file_count=len(batch.files),
                processor_duration_ms=int(result.duration_seconds * 1000)
            )
            return UploadResponse(id=job_id, files=batch.stored_names)

    async def _abandon(self, job_id: str, job: Optional[BatchJob], error: BaseException) -> None:
        """Remove a failed submission's directories and record it FAILED in the ledger."""
        self.stager.workspace.discard(job_id)
        record_job_submission("failed")

        if isinstance(error, BgBatchException):
            message, stage = error.message, error.stage
        else:
            message = f"Submission interrupted: {type(error).__name__}"
            stage = stage_var.get()

        if job is None:
            return
        try:
            await self.session.rollback()
            job.mark_failed(message, stage, exit_code=getattr(error, "exit_code", None))
            self.session.add(job)
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("job_failure_not_recorded", error=str(e), original_error=message)

    async def get_job(self, job_id: str) -> Optional[BatchJob]:
        if not is_valid_job_id(job_id):
            return None
        return await self.session.get(BatchJob, job_id)

    async def get_status(self, job_id: str) -> StatusResponse:
        """
        Tagged status of a job.

        unknown   - no ledger record for this id
        failed    - admission or processor failure recorded in the ledger
        completed - output directory has entries (recorded on first sight)
        processing- everything else
        """
        job = await self.get_job(job_id)

        if job is None:
            response = StatusResponse(status=ReportedStatus.UNKNOWN, message="No job with this id")
        elif job.status == JobStatus.FAILED.value:
            response = StatusResponse(
                status=ReportedStatus.FAILED,
                error=job.error_message or "Processing failed"
            )
        else:
            reading = self.oracle.inspect(job_id)
            if reading.is_completed:
                if job.status != JobStatus.COMPLETED.value:
                    job.mark_completed(reading.files)
                    await self.session.commit()
                    logger.info("job_completed", job_id=job_id, file_count=len(reading.files))
                response = StatusResponse(status=ReportedStatus.COMPLETED, files=reading.files)
            elif job.status == JobStatus.COMPLETED.value:
                # Output directory swept after completion; the ledger still knows the files
                response = StatusResponse(status=ReportedStatus.COMPLETED, files=job.result_files)
            else:
                response = StatusResponse(
                    status=ReportedStatus.PROCESSING,
                    message=f"Processing {len(job.staged_files or [])} image(s)"
                )

        record_status_query(response.status.value)
        logger.debug("status_checked", job_id=job_id, status=response.status.value)
        return response
