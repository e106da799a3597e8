"""
Batch Poller - client side of the job lifecycle

Submits a batch to POST /upload, then polls GET /status/{id} until the job
completes, fails or the poll budget runs out:

    idle -> submitting -> polling -> completed | errored | cancelled

The first status query waits one interval after a successful upload. Every
"processing" answer appends a note to status_log. Any transport failure
ends the loop immediately without retry. On completion the result files
become ResultEntry records appended to the ResultCache and the pending
batch is cleared.
"""

import asyncio
import mimetypes
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Union
from urllib.parse import quote

import httpx

from bgbatch.client.cache import ResultCache, ResultEntry
from bgbatch.client.config import ClientSettings
from bgbatch.core.logging import get_logger

logger = get_logger(__name__)


class PollerState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class PollerError(Exception):
    """Base class for errors surfaced by the poller."""


class EmptyBatchError(PollerError):
    """Submit was called with no files; the server is not contacted."""


class PollerBusyError(PollerError):
    """A batch is already being submitted or polled."""


class TransportError(PollerError):
    """The server could not be reached or answered with an error status."""


class JobFailedError(PollerError):
    """The server reported the job as failed or unknown."""


class PollTimeoutError(PollerError):
    """The attempt or elapsed-time budget ran out while still processing."""


@dataclass
class BatchFile:
    """One file of a batch to upload."""
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "BatchFile":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content=path.read_bytes(), content_type=content_type)


def result_url(static_origin: str, job_id: str, name: str) -> str:
    """URL of one processed file: <static_origin>/<job_id>/<name>."""
    return f"{static_origin.rstrip('/')}/{quote(job_id, safe='')}/{quote(name, safe='')}"


def _describe(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    return f"{type(error).__name__}: {error}"


class BatchPoller:
    """Drives one batch at a time through upload and status polling."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        cache: ResultCache,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_progress: Optional[Callable[[str], None]] = None,
    ):
        self.http = http
        self.cache = cache
        self.settings = settings or ClientSettings()
        self._sleep = sleep
        self._clock = clock
        self._on_progress = on_progress

        self.state = PollerState.IDLE
        self.job_id: Optional[str] = None
        self.pending: List[BatchFile] = []
        self.status_log: List[str] = []
        self.results: List[ResultEntry] = []
        self.error: Optional[PollerError] = None

    @property
    def busy(self) -> bool:
        return self.state in (PollerState.SUBMITTING, PollerState.POLLING)

    def add_files(self, files: Iterable[BatchFile]) -> None:
        if self.busy:
            raise PollerBusyError("Cannot change the batch while it is being processed")
        self.pending.extend(files)

    async def run(self, cancel: Optional[asyncio.Event] = None) -> List[ResultEntry]:
        """Submit the pending batch and poll it to the end."""
        job_id = await self.submit()
        return await self.poll(job_id, cancel)

    async def submit(self) -> str:
        if self.busy:
            raise PollerBusyError(f"Job {self.job_id or '(submitting)'} is still in flight")
        if not self.pending:
            raise EmptyBatchError("Please select files to upload.")

        self._transition(PollerState.SUBMITTING)
        self.job_id = None
        self.error = None
        self.status_log = []
        self.results = []

        files = [("images", (f.name, f.content, f.content_type)) for f in self.pending]
        try:
            response = await self.http.post("/upload", files=files)
            response.raise_for_status()
            job_id = response.json()["id"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise self._fail(TransportError(f"Error uploading images: {_describe(e)}")) from e

        self.job_id = job_id
        logger.info("batch_submitted", job_id=job_id, file_count=len(files))
        self._transition(PollerState.POLLING)
        return job_id

    async def poll(self, job_id: str, cancel: Optional[asyncio.Event] = None) -> List[ResultEntry]:
        """
        Poll a submitted job until it is no longer processing.

        Returns the new result entries, or [] when cancelled.
        Raises a PollerError subclass when the loop ends in errored.
        """
        s = self.settings
        self.job_id = job_id
        if self.state != PollerState.POLLING:
            self._transition(PollerState.POLLING)

        started = self._clock()
        delay = s.POLL_INTERVAL_SECONDS
        attempts = 0

        while True:
            if cancel is not None and cancel.is_set():
                return self._cancelled()
            if s.POLL_MAX_ATTEMPTS is not None and attempts >= s.POLL_MAX_ATTEMPTS:
                raise self._fail(PollTimeoutError(
                    f"Job {job_id} still processing after {attempts} status checks"
                ))
            if s.POLL_TIMEOUT_SECONDS is not None and self._clock() - started >= s.POLL_TIMEOUT_SECONDS:
                raise self._fail(PollTimeoutError(
                    f"Job {job_id} still processing after {s.POLL_TIMEOUT_SECONDS:.0f}s"
                ))

            if await self._pause(delay, cancel):
                return self._cancelled()

            attempts += 1
            try:
                response = await self.http.get(f"/status/{quote(job_id, safe='')}")
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise self._fail(TransportError(f"Error checking image status: {_describe(e)}")) from e

            status = body.get("status")
            if status == "completed":
                return self._completed(job_id, body.get("files") or [])
            if status == "processing":
                note = body.get("message") or "Still processing"
                self.status_log.append(f"Check {attempts}: {note}")
                if self._on_progress is not None:
                    self._on_progress(self.status_log[-1])
                delay = min(delay * s.POLL_BACKOFF_FACTOR, s.POLL_MAX_INTERVAL_SECONDS)
                logger.debug("poll_processing", job_id=job_id, attempt=attempts, next_delay=delay)
                continue
            if status == "failed":
                raise self._fail(JobFailedError(body.get("error") or f"Job {job_id} failed"))
            raise self._fail(JobFailedError(f"Server reported status {status!r} for job {job_id}"))

    async def _pause(self, delay: float, cancel: Optional[asyncio.Event]) -> bool:
        """Wait one interval. Returns True if cancel was set meanwhile."""
        if cancel is None:
            await self._sleep(delay)
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return cancel.is_set()

    def _completed(self, job_id: str, files: List[str]) -> List[ResultEntry]:
        entries = [
            ResultEntry(url=result_url(self.settings.STATIC_ORIGIN, job_id, name), name=name)
            for name in files
        ]
        self.cache.append(entries)
        self.results = entries
        self.pending = []
        logger.info("poll_completed", job_id=job_id, file_count=len(entries))
        self._transition(PollerState.COMPLETED)
        return entries

    def _cancelled(self) -> List[ResultEntry]:
        logger.info("poll_cancelled", job_id=self.job_id, checks=len(self.status_log))
        self._transition(PollerState.CANCELLED)
        return []

    def _fail(self, error: PollerError) -> PollerError:
        self.error = error
        logger.error(
            "poll_errored",
            job_id=self.job_id,
            error=str(error),
            error_type=type(error).__name__
        )
        self._transition(PollerState.ERRORED)
        return error

    def _transition(self, new_state: PollerState) -> None:
        logger.debug("poller_state_changed", job_id=self.job_id, old=self.state.value, new=new_state.value)
        self.state = new_state
