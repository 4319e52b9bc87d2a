"""
Status Poller - Tracks a translation job until it reaches a terminal state.
Polls at a fixed interval within a wall-clock budget. At most one status
request is in flight per job.
"""

import asyncio
import inspect
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ..exceptions import PollBudgetExceededError, PollTransportError
from ..schemas.job import JobDescription, JobStatus
from ..translation.job_service import JobService

logger = logging.getLogger(__name__)


REMOTE_STATUSES = {
    "SUBMITTED": JobStatus.SUBMITTED,
    "IN_PROGRESS": JobStatus.PROCESSING,
    "STOP_REQUESTED": JobStatus.PROCESSING,
    "COMPLETED": JobStatus.SUCCEEDED,
    "COMPLETED_WITH_ERROR": JobStatus.FAILED,
    "FAILED": JobStatus.FAILED,
    "STOPPED": JobStatus.FAILED,
}


def map_remote_status(raw_status: Optional[str]) -> JobStatus:
    """Map a raw service status; anything unrecognised is still processing."""
    key = (raw_status or "").strip().upper()
    return REMOTE_STATUSES.get(key, JobStatus.PROCESSING)


class CancelHandle:
    """
    Stops a running watch. Safe to call repeatedly and after the watch ended.
    """

    def __init__(self, task: asyncio.Task):
        self._task = task
        self._cancelled = False

    def cancel(self) -> bool:
        """
        Returns:
            True if this call stopped a running watch
        """
        if self._cancelled or self._task.done():
            return False
        self._cancelled = True
        self._task.cancel()
        return True

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self):
        """Wait for the watch to finish, whether it ended or was cancelled."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


async def _invoke(callback, *args):
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class _JobLock:
    """Lock for one job plus the number of callers holding or waiting on it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class StatusPoller:
    """
    Polls the translation service for job status.
    """

    def __init__(self, job_service: JobService, interval: float = 5.0,
                 budget: float = 900.0, sleep=asyncio.sleep, clock=time.monotonic):
        self.job_service = job_service
        self.interval = interval
        self.budget = budget
        self._sleep = sleep
        self._clock = clock
        self._locks: Dict[str, _JobLock] = {}

    async def describe(self, job_id: str) -> Tuple[JobStatus, JobDescription]:
        """
        Issue one status request.

        Returns:
            Mapped status and the raw description

        Raises:
            PollTransportError: if the request failed
        """
        entry = self._locks.get(job_id)
        if entry is None:
            entry = self._locks[job_id] = _JobLock()
        entry.users += 1
        try:
            async with entry.lock:
                description = await self.job_service.describe_job(job_id)
        finally:
            entry.users -= 1
            if not entry.users and self._locks.get(job_id) is entry:
                del self._locks[job_id]
        return map_remote_status(description.status), description

    async def poll(self, job_id: str) -> JobStatus:
        status, _ = await self.describe(job_id)
        return status

    async def wait_for_terminal(self, job_id: str, interval: Optional[float] = None,
                                budget: Optional[float] = None,
                                on_status: Optional[Callable] = None) -> JobDescription:
        """
        Poll until the job succeeds or fails.

        Args:
            job_id: Job identifier
            interval: Seconds between polls
            budget: Maximum seconds spent polling
            on_status: Called with (status, description) after every successful poll

        Returns:
            The terminal description

        Raises:
            PollBudgetExceededError: if no terminal state was seen within the budget
        """
        interval = self.interval if interval is None else interval
        budget = self.budget if budget is None else budget
        started = self._clock()
        polls = 0
        transport_failures = 0

        while True:
            polls += 1
            try:
                status, description = await self.describe(job_id)
            except PollTransportError as e:
                transport_failures += 1
                logger.warning(
                    f"Status request {polls} for job {job_id} failed, retrying: {e.message}"
                )
            else:
                if on_status:
                    await _invoke(on_status, status, description)
                if status.is_terminal:
                    logger.info(f"Job {job_id} reached {status.value} after {polls} poll(s)")
                    return description

            if self._clock() - started >= budget:
                raise PollBudgetExceededError(
                    f"Job {job_id} did not finish within {budget:.0f}s "
                    f"({polls} polls, {transport_failures} failed)"
                )
            await self._sleep(interval)

    def watch(self, job_id: str, interval: float, on_terminal: Callable,
              on_error: Callable, budget: Optional[float] = None,
              on_status: Optional[Callable] = None) -> CancelHandle:
        """
        Poll in a background task.

        Args:
            job_id: Job identifier
            interval: Seconds between polls
            on_terminal: Called with the terminal JobDescription
            on_error: Called with the exception that ended polling
            budget: Maximum seconds spent polling
            on_status: Called with (status, description) after every successful poll

        Returns:
            Handle that stops future polls
        """
        async def run():
            try:
                description = await self.wait_for_terminal(job_id, interval, budget, on_status)
            except asyncio.CancelledError:
                logger.info(f"Stopped polling job {job_id}")
                raise
            except Exception as e:
                await _invoke(on_error, e)
            else:
                await _invoke(on_terminal, description)

        return CancelHandle(asyncio.create_task(run()))
