"""
Background Removal Batch Service - Main Application

FastAPI application with:
- Batch upload, staging and external processor invocation
- Job status polling backed by a job ledger
- Static serving of processed results
- Structured logging with structlog
- Prometheus metrics
- Global exception handling
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from bgbatch.core.config import settings
from bgbatch.core.database import create_db_and_tables, check_database
from bgbatch.core.logging import setup_logging, get_logger
from bgbatch.core.exceptions import register_exception_handlers
from bgbatch.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from bgbatch.core.storage import get_workspace
from bgbatch.api.v1 import api_v1_router
from bgbatch.api.v1.jobs import router as jobs_router
from bgbatch.modules.jobs.invocation import ProcessorPool


# =============================================================================
# Initialize Logging
# =============================================================================
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT_JSON
)
logger = get_logger(__name__)


# =============================================================================
# Lifespan Handler
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - startup and shutdown."""
    startup_start = time.time()

    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    await create_db_and_tables()
    logger.info("database_initialized")

    app.state.processor_pool = ProcessorPool(
        max_concurrent=settings.MAX_CONCURRENT_PROCESSORS,
        max_queued=settings.MAX_QUEUED_PROCESSORS
    )
    logger.info(
        "processor_pool_ready",
        command=settings.PROCESSOR_COMMAND,
        max_concurrent=settings.MAX_CONCURRENT_PROCESSORS,
        max_queued=settings.MAX_QUEUED_PROCESSORS
    )

    removed = get_workspace().cleanup_expired(settings.JOB_TTL_HOURS)
    if removed:
        logger.info("startup_sweep_completed", removed=removed)

    set_app_info(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT
    )

    logger.info("application_ready", startup_time_seconds=time.time() - startup_start)

    yield

    logger.info("application_shutting_down")
    pool = app.state.processor_pool
    if pool.running or pool.waiting:
        logger.warning("processor_runs_abandoned", running=pool.running, waiting=pool.waiting)
    logger.info("application_shutdown_complete")


# =============================================================================
# Create FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Batch background removal service.

    1. **POST /upload** - send 1..10 images in the `images` field; the
       request returns once the external processor has run.
    2. **GET /status/{id}** - poll until `completed` (or `failed`).
    3. **GET /results/{id}/{file}** - download processed files.

    All endpoints are also versioned under `/api/v1/`.
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware
# =============================================================================

# CORS
cors_origins = settings.CORS_ORIGINS.split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    """Track request timing for metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template keeps job ids out of the label values
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(duration)

    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()

    response.headers["X-Process-Time"] = str(duration)

    return response


# =============================================================================
# Register Exception Handlers
# =============================================================================
register_exception_handlers(app)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_v1_router)

# Unversioned job routes used by the polling client
app.include_router(jobs_router, tags=["jobs"])


# =============================================================================
# Static Files
# =============================================================================

# Processed results: <RESULTS_MOUNT_PATH>/<job_id>/<file>
app.mount(
    settings.RESULTS_MOUNT_PATH,
    StaticFiles(directory=settings.OUTPUT_ROOT),
    name="results"
)


# =============================================================================
# Root Endpoints
# =============================================================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "results": settings.RESULTS_MOUNT_PATH,
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/ready", tags=["health"])
async def ready(request: Request):
    """Readiness check - verifies the job ledger and processor pool are available."""
    checks = {
        "database": False,
        "processor_pool": hasattr(request.app.state, "processor_pool")
    }

    try:
        checks["database"] = await check_database()
    except Exception as e:
        logger.warning("readiness_database_failed", error=str(e))

    all_ready = all(checks.values())

    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "ready": all_ready,
            "checks": checks
        }
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bgbatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
