"""Batch job lifecycle: staging, invocation, status and the job ledger."""
