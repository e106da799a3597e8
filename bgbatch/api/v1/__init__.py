"""
API v1 Router Module - Batch Background Removal

All v1 endpoints are prefixed with /api/v1/

- POST /api/v1/upload        - submit a batch
- GET  /api/v1/status/{id}   - poll a job
- GET  /api/v1/jobs/{id}     - job ledger record
- GET  /api/v1/metrics       - Prometheus metrics

The job endpoints are also mounted at the root (/upload, /status/{id}) for
existing clients.
"""

from fastapi import APIRouter

from bgbatch.api.v1.jobs import router as jobs_router
from bgbatch.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(jobs_router, tags=["jobs"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
