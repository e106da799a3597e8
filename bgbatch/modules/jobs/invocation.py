"""
Job Invocation Adapter

Runs the external processor for one job as a child process:

    <command...> <input_dir> <output_dir>

The caller awaits the process until it exits. A zero exit code only means
the run finished without error; completion is still decided by the output
directory. stdout is logged, stderr and the exit code are the only signals
read.

ProcessorPool sits in front of the adapter and bounds how many processors
run at once, with a short wait queue and rejection beyond it.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Sequence, TypeVar

from bgbatch.core.exceptions import CapacityExceededError, ProcessorError
from bgbatch.core.logging import get_logger
from bgbatch.core.metrics import track_processor_run, waiting_processors_gauge

logger = get_logger(__name__)

T = TypeVar("T")

# Keep log entries and error details bounded
OUTPUT_TAIL_CHARS = 4000


def _tail(text: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    text = text.strip()
    return text if len(text) <= limit else "..." + text[-limit:]


async def _reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


@dataclass(frozen=True)
class ProcessorResult:
    """Outcome of a successful processor run."""
    exit_code: int
    duration_seconds: float
    stdout: str
    stderr: str


class ProcessorInvoker:
    """Launches the external processor and waits for it to exit."""

    def __init__(
        self,
        command: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.command = list(command)
        self.timeout = timeout
        self.env = env

    def build_argv(self, input_dir: Path, output_dir: Path) -> list:
        return [*self.command, str(input_dir), str(output_dir)]

    async def run(self, input_dir: Path, output_dir: Path) -> ProcessorResult:
        """
        Run the processor on one job's directories.

        Raises:
            ProcessorError: launch failure, timeout or non-zero exit
        """
        if not self.command:
            raise ProcessorError("No processor command configured")

        argv = self.build_argv(input_dir, output_dir)
        start = time.monotonic()
        logger.info("processor_started", argv=argv, timeout=self.timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            logger.error("processor_launch_failed", error=str(e), error_type=type(e).__name__)
            raise ProcessorError(f"Failed to launch processor: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _reap(process)
            logger.error("processor_timed_out", timeout=self.timeout, pid=process.pid)
            raise ProcessorError(
                f"Processor timed out after {self.timeout}s",
                exit_code=process.returncode
            )
        except BaseException:
            # Cancelled while waiting; the child must not outlive its caller
            await _reap(process)
            logger.warning("processor_abandoned", pid=process.pid, exit_code=process.returncode)
            raise

        duration = time.monotonic() - start
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")

        if out.strip():
            logger.debug("processor_stdout", output=_tail(out))

        if process.returncode != 0:
            logger.error(
                "processor_failed",
                exit_code=process.returncode,
                duration_ms=int(duration * 1000),
                stderr=_tail(err)
            )
            raise ProcessorError(
                f"Processor exited with code {process.returncode}",
                exit_code=process.returncode,
                stderr=_tail(err)
            )

        if err.strip():
            logger.warning("processor_stderr", output=_tail(err))

        logger.info("processor_finished", exit_code=0, duration_ms=int(duration * 1000))
        return ProcessorResult(
            exit_code=0,
            duration_seconds=duration,
            stdout=out,
            stderr=err,
        )


class ProcessorPool:
    """
    Admission control for processor runs.

    At most max_concurrent runs execute at once and at most max_queued
    further submissions wait for a slot; anything beyond that is rejected
    with CapacityExceededError without waiting.
    Must be created inside the event loop that uses it.
    """

    def __init__(self, max_concurrent: int, max_queued: int = 0):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.max_queued = max(0, max_queued)
        self._slots = asyncio.Semaphore(max_concurrent)
        self._running = 0
        self._waiting = 0

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return self._waiting

    async def run(self, job_id: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run func once a slot is free, or reject when the queue is full."""
        if self._running >= self.max_concurrent and self._waiting >= self.max_queued:
            logger.warning(
                "processor_pool_full",
                job_id=job_id,
                running=self._running,
                waiting=self._waiting
            )
            raise CapacityExceededError(running=self._running, waiting=self._waiting, job_id=job_id)

        self._waiting += 1
        waiting_processors_gauge.inc()
        try:
            await self._slots.acquire()
        finally:
            self._waiting -= 1
            waiting_processors_gauge.dec()

        self._running += 1
        try:
            with track_processor_run():
                return await func()
        finally:
            self._running -= 1
            self._slots.release()
