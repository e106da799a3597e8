"""
FastAPI Dependencies for the Batch Job Service

Provides dependency injection for:
- Job workspace (process-wide singleton)
- Processor pool (one per application lifespan, on app.state)
- Processor invoker (built from settings, overridable in tests)
- Job service (per-request, bound to a ledger session)
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bgbatch.core.config import settings
from bgbatch.core.database import get_session
from bgbatch.core.storage import JobWorkspace, get_workspace
from bgbatch.modules.jobs.invocation import ProcessorInvoker, ProcessorPool
from bgbatch.modules.jobs.service import JobService
from bgbatch.modules.jobs.staging import JobStager
from bgbatch.modules.jobs.status import StatusOracle


def get_processor_pool(request: Request) -> ProcessorPool:
    return request.app.state.processor_pool


def get_invoker() -> ProcessorInvoker:
    return ProcessorInvoker(
        command=settings.processor_argv,
        timeout=settings.PROCESSOR_TIMEOUT_SECONDS,
    )


def get_stager(workspace: JobWorkspace = Depends(get_workspace)) -> JobStager:
    return JobStager(
        workspace,
        max_files=settings.MAX_FILES_PER_BATCH,
        max_file_bytes=settings.MAX_IMAGE_SIZE_BYTES,
    )


def get_oracle(workspace: JobWorkspace = Depends(get_workspace)) -> StatusOracle:
    return StatusOracle(workspace)


def get_job_service(
    session: AsyncSession = Depends(get_session),
    stager: JobStager = Depends(get_stager),
    invoker: ProcessorInvoker = Depends(get_invoker),
    pool: ProcessorPool = Depends(get_processor_pool),
    oracle: StatusOracle = Depends(get_oracle),
) -> JobService:
    return JobService(session, stager, invoker, pool, oracle)
