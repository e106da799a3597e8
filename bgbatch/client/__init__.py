"""Polling client: batch submission, status polling and the local result cache."""

from bgbatch.client.cache import ResultCache, ResultEntry
from bgbatch.client.config import ClientSettings
from bgbatch.client.poller import (
    BatchFile,
    BatchPoller,
    EmptyBatchError,
    JobFailedError,
    PollerBusyError,
    PollerError,
    PollerState,
    PollTimeoutError,
    TransportError,
    result_url,
)

__all__ = [
    "BatchFile",
    "BatchPoller",
    "ClientSettings",
    "EmptyBatchError",
    "JobFailedError",
    "PollerBusyError",
    "PollerError",
    "PollerState",
    "PollTimeoutError",
    "ResultCache",
    "ResultEntry",
    "TransportError",
    "result_url",
]
