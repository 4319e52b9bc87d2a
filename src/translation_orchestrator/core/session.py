"""
Orchestration Session - Drives one translation workflow from preflight to a
located result, exposing a single observable phase.

Every workflow run is tagged with a generation number. Starting a new run or
cancelling bumps the generation, and any late result carrying an older
generation is discarded.
"""

import asyncio
import logging
import time
from functools import partial
from typing import Dict, List, Optional, Set

from .config import Settings
from .exceptions import (
    InvalidTransitionError, JobFailedError, OrchestrationError, PollBudgetExceededError,
    PreflightTimeoutError, ResolutionNotFoundError, ResultFinalizingError
)
from .languages import LANGUAGE_CODES, normalize_language
from .polling import CancelHandle, StatusPoller, map_remote_status
from .preflight import AvailabilityProber
from .resolution import ResultLocator
from .schemas.job import (
    JobDescription, JobStatus, PHASE_PROGRESS, ResultDescriptor,
    SessionPhase, SessionSnapshot, TranslationJob
)
from .submission import JobSubmitter, infer_content_kind

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[SessionPhase, Set[SessionPhase]] = {
    SessionPhase.IDLE: {SessionPhase.PREFLIGHTING},
    SessionPhase.PREFLIGHTING: {SessionPhase.SUBMITTING, SessionPhase.FAILED},
    SessionPhase.SUBMITTING: {SessionPhase.POLLING, SessionPhase.FAILED},
    SessionPhase.POLLING: {SessionPhase.RESOLVING, SessionPhase.FAILED},
    SessionPhase.RESOLVING: {SessionPhase.DONE, SessionPhase.POLLING, SessionPhase.FAILED},
    SessionPhase.DONE: set(),
    SessionPhase.FAILED: set(),
}

STAGE_LABELS = {
    "preflight": "Upload check failed",
    "submission": "Submission failed",
    "processing": "Translation failed",
    "resolution": "Result lookup failed",
}


class StaleGenerationError(Exception):
    """Raised inside a workflow run that has been superseded."""


def _settle(future: asyncio.Future, value=None, error: Optional[BaseException] = None):
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)


class OrchestrationSession:
    """
    One client-visible translation workflow.
    """

    def __init__(self, session_id: str, settings: Settings, prober: AvailabilityProber,
                 submitter: JobSubmitter, poller: StatusPoller, locator: ResultLocator,
                 sleep=asyncio.sleep, clock=time.monotonic):
        self.session_id = session_id
        self.settings = settings
        self.prober = prober
        self.submitter = submitter
        self.poller = poller
        self.locator = locator
        self._sleep = sleep
        self._clock = clock

        self.generation = 0
        self.phase = SessionPhase.IDLE
        self.job: Optional[TranslationJob] = None
        self.target_language: Optional[str] = None
        self.result: Optional[ResultDescriptor] = None
        self.last_error: Optional[str] = None
        self.error_stage: Optional[str] = None
        self.message: Optional[str] = None

        self._task: Optional[asyncio.Task] = None
        self._poll_handle: Optional[CancelHandle] = None
        self._submitted_generation: Optional[int] = None
        self._observers: List[asyncio.Queue] = []
        self._control_lock: Optional[asyncio.Lock] = None

    # Public API

    async def start(self, input_key: str, target_language: str) -> SessionSnapshot:
        """
        Start translating `input_key` into `target_language`.

        Any workflow already running in this session is cancelled first.

        Raises:
            ValueError: if the input is missing or outside the upload prefix,
                or the language is not supported
        """
        target_language = normalize_language(target_language)
        if not input_key:
            raise ValueError("An input document is required")
        if not input_key.startswith(self.settings.input_prefix):
            raise ValueError(
                f"Input document must be uploaded under {self.settings.input_prefix}"
            )
        if target_language not in LANGUAGE_CODES:
            raise ValueError(f"Unsupported target language: {target_language}")

        # start and cancel are serialized per session
        async with self._lock():
            if self.phase != SessionPhase.IDLE:
                await self._reset()

            self.generation += 1
            generation = self.generation
            self.target_language = target_language
            logger.info(
                f"Session {self.session_id} starting generation {generation}: "
                f"{input_key} -> {target_language}"
            )

            self._transition(generation, SessionPhase.PREFLIGHTING, "Checking upload")
            self._task = asyncio.create_task(self._run(generation, input_key, target_language))
            return self.snapshot()

    async def cancel(self) -> SessionSnapshot:
        """
        Abandon the current workflow and return to Idle.
        Safe to call repeatedly and after the workflow has finished.
        """
        async with self._lock():
            return await self._reset()

    async def _reset(self) -> SessionSnapshot:
        self.generation += 1

        handle, self._poll_handle = self._poll_handle, None
        if handle:
            handle.cancel()

        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if handle:
            await handle.wait()

        was_idle = self.phase == SessionPhase.IDLE
        self.phase = SessionPhase.IDLE
        self.job = None
        self.target_language = None
        self.result = None
        self.last_error = None
        self.error_stage = None
        self.message = None
        if not was_idle:
            logger.info(f"Session {self.session_id} reset to idle")
            self._publish()
        return self.snapshot()

    async def observe(self):
        """
        Stream state snapshots, starting with the current one.

        Ends after a Done or Failed snapshot, or when an observed workflow is
        reset to Idle. Each call starts a fresh stream.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._observers.append(queue)
        try:
            snapshot = self.snapshot()
            yield snapshot
            if snapshot.phase.is_terminal:
                return
            seen_active = snapshot.phase != SessionPhase.IDLE

            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.phase.is_terminal:
                    return
                if snapshot.phase == SessionPhase.IDLE:
                    if seen_active:
                        return
                else:
                    seen_active = True
        finally:
            self._observers.remove(queue)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            generation=self.generation,
            phase=self.phase,
            progress_hint=PHASE_PROGRESS[self.phase],
            message=self.message,
            job_id=self.job.job_id if self.job else None,
            target_language=self.target_language,
            result=self.result,
            error=self.last_error,
            error_stage=self.error_stage,
        )

    async def wait(self):
        """Wait for the running workflow, if any, to finish."""
        task = self._task
        if task:
            await asyncio.gather(task, return_exceptions=True)

    # Workflow

    async def _run(self, generation: int, input_key: str, target_language: str):
        try:
            await self._preflight(generation, input_key)
            job = await self._submit(generation, input_key, target_language)
            await self._track(generation, job)
        except StaleGenerationError:
            logger.info(f"Session {self.session_id} discarded stale generation {generation}")
        except asyncio.CancelledError:
            logger.info(f"Session {self.session_id} generation {generation} cancelled")
            raise
        except OrchestrationError as e:
            self._fail(generation, e)
        except Exception as e:
            logger.exception(f"Session {self.session_id} failed unexpectedly")
            self._fail(generation, OrchestrationError(str(e)))

    async def _preflight(self, generation: int, input_key: str):
        visible = await self.prober.wait_until_visible(
            input_key,
            max_attempts=self.settings.preflight_max_attempts,
            base_delay=self.settings.preflight_base_delay,
        )
        self._check(generation)
        if not visible:
            raise PreflightTimeoutError(
                f"Uploaded document {input_key} did not become available after "
                f"{self.settings.preflight_max_attempts} attempts"
            )
        self._transition(generation, SessionPhase.SUBMITTING, "Submitting translation job")

    async def _submit(self, generation: int, input_key: str,
                      target_language: str) -> TranslationJob:
        if self._submitted_generation == generation:
            raise InvalidTransitionError(
                f"Session {self.session_id} already submitted a job for generation {generation}"
            )
        self._submitted_generation = generation

        job_id = await self.submitter.submit(input_key, target_language)
        self._check(generation)

        self.job = TranslationJob(
            job_id=job_id,
            source_key=input_key,
            target_language=target_language,
            content_kind=infer_content_kind(input_key),
        )
        self._transition(generation, SessionPhase.POLLING, "Translating")
        return self.job

    async def _track(self, generation: int, job: TranslationJob):
        finalizing_attempts = 0
        # One polling budget covers every re-poll of this job
        deadline = self._clock() + self.settings.poll_budget

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise PollBudgetExceededError(
                    f"Job {job.job_id} did not finish within {self.settings.poll_budget:.0f}s "
                    f"({finalizing_attempts} finalizing attempt(s))"
                )
            description = await self._poll_until_terminal(generation, job, remaining)
            self._check(generation)

            status = map_remote_status(description.status)
            job.update_status(status, description.failure_message)
            if description.output_location:
                job.reported_output_location = description.output_location

            if status == JobStatus.FAILED:
                raise JobFailedError(description.failure_message or "Translation failed")

            self._transition(generation, SessionPhase.RESOLVING, "Locating translated document")
            try:
                result = await self.locator.resolve(job)
            except ResultFinalizingError as e:
                self._check(generation)
                finalizing_attempts += 1
                if finalizing_attempts >= self.settings.max_finalizing_attempts:
                    raise ResolutionNotFoundError(
                        f"Translation succeeded but the translated document could not be "
                        f"located after {finalizing_attempts} attempts"
                    ) from e
                logger.warning(
                    f"Session {self.session_id}: {e.message} "
                    f"(attempt {finalizing_attempts}/{self.settings.max_finalizing_attempts})"
                )
                self._transition(generation, SessionPhase.POLLING, "Finalizing translated document")
                await self._sleep(self.settings.poll_interval)
                self._check(generation)
                continue

            self._check(generation)
            self.result = result
            self._transition(generation, SessionPhase.DONE, "Translation complete")
            logger.info(f"Session {self.session_id} done: {result.output_key}")
            return

    async def _poll_until_terminal(self, generation: int, job: TranslationJob,
                                   budget: float) -> JobDescription:
        self._check(generation)
        terminal = asyncio.get_event_loop().create_future()
        handle = self.poller.watch(
            job.job_id,
            interval=self.settings.poll_interval,
            budget=budget,
            on_terminal=partial(_settle, terminal),
            on_error=lambda e: _settle(terminal, error=e),
            on_status=partial(self._on_status, generation, job),
        )
        self._poll_handle = handle
        try:
            return await terminal
        finally:
            handle.cancel()
            if self._poll_handle is handle:
                self._poll_handle = None

    def _on_status(self, generation: int, job: TranslationJob, status: JobStatus,
                   description: JobDescription):
        # Raising here ends a watch that outlived its generation
        self._check(generation)
        if status.is_terminal:
            return
        if job.update_status(status):
            logger.debug(f"Job {job.job_id} is {status.value}")
            self._publish()

    # State handling

    def _lock(self) -> asyncio.Lock:
        if self._control_lock is None:
            self._control_lock = asyncio.Lock()
        return self._control_lock

    def _check(self, generation: int):
        if generation != self.generation:
            raise StaleGenerationError(generation)

    def _transition(self, generation: int, phase: SessionPhase, message: Optional[str] = None):
        self._check(generation)
        if phase not in TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"Session {self.session_id} cannot move from {self.phase.value} to {phase.value}"
            )
        logger.debug(f"Session {self.session_id}: {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.message = message
        self._publish()

    def _fail(self, generation: int, error: OrchestrationError):
        if generation != self.generation or self.phase.is_terminal:
            return
        logger.error(f"Session {self.session_id} failed during {error.stage}: {error.message}")
        self.last_error = error.message
        self.error_stage = error.stage
        self._transition(generation, SessionPhase.FAILED, STAGE_LABELS.get(error.stage, "Failed"))

    def _publish(self):
        snapshot = self.snapshot()
        for queue in self._observers:
            queue.put_nowait(snapshot)
