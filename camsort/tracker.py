"""
Job tracker: polls asynchronous move-batch jobs until none is pending.

Every registered job starts PENDING and leaves the live set as soon as it
reaches a terminal state. Polling happens in rounds: one status call per
pending job, all results folded into the live set before the tracker either
waits out the poll interval or stops.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Tuple

from .constants import (DEFAULT_MAX_POLL_ERRORS, DEFAULT_POLL_INTERVAL, TAG_COMPLETE,
                        TAG_FAILED, TAG_IN_PROGRESS, get_logger)
from .errors import RemoteError
from .events import EventBus, JobPolled
from .models import GroupKey, Job, JobState, JobStatus

if TYPE_CHECKING:
    from .client import DropboxClient


@dataclass
class TrackerResult:
    """Outcome of one wait, job ids in the order they resolved."""
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)
    moved: int = 0
    rounds: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def unresolved(self) -> List[str]:
        return self.cancelled + self.timed_out


def classify_status(tag: str) -> JobState:
    """Map a remote status tag to a job state; unknown tags count as still pending."""
    if tag == TAG_COMPLETE:
        return JobState.COMPLETE
    if tag == TAG_FAILED:
        return JobState.FAILED
    return JobState.PENDING


class JobTracker:
    """Owns the live set of asynchronous jobs for one run."""

    def __init__(self, client: "DropboxClient", poll_interval: float = DEFAULT_POLL_INTERVAL,
                 max_rounds: Optional[int] = None, timeout: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None, max_workers: int = 1,
                 max_poll_errors: int = DEFAULT_MAX_POLL_ERRORS,
                 events: Optional[EventBus] = None,
                 clock: Callable[[], float] = time.monotonic):
        if poll_interval < 0:
            raise ValueError(f"poll_interval must not be negative: {poll_interval}")
        if max_rounds is not None and max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1: {max_rounds}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1: {max_workers}")
        self.client = client
        self.poll_interval = poll_interval
        self.max_rounds = max_rounds
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.max_workers = max_workers
        self.max_poll_errors = max_poll_errors
        self.events = events or EventBus()
        self.clock = clock
        self.logger = get_logger("camsort.tracker")
        self._jobs: Dict[str, Job] = {}

    @property
    def active(self) -> Tuple[str, ...]:
        """Ids of the jobs still pending, in registration order."""
        return tuple(self._jobs)

    def register(self, job_id: str, group: Optional[GroupKey] = None) -> Job:
        """Start tracking a job; registering a pending job again is a no-op."""
        job = self._jobs.get(job_id)
        if job is None:
            job = Job(id=job_id, group=group)
            self._jobs[job_id] = job
            self.logger.debug(f"Tracking job {job_id} for group '{group}'")
        return job

    def wait_for(self, job_ids: Iterable[str]) -> TrackerResult:
        """Register the given jobs and poll until they all leave PENDING."""
        jobs = [self.register(job_id) for job_id in dict.fromkeys(job_ids)]
        return self._wait(jobs)

    def wait_all(self) -> TrackerResult:
        """Poll every registered job until none is pending."""
        return self._wait(list(self._jobs.values()))

    def _wait(self, jobs: List[Job]) -> TrackerResult:
        result = TrackerResult()
        pending = [job for job in jobs if not job.state.is_terminal]
        if not pending:
            return result

        started = self.clock()
        while pending:
            if self.cancel_event.is_set():
                self._abandon(pending, JobState.CANCELLED, result)
                break

            result.rounds += 1
            self.logger.debug(f"Poll round {result.rounds}: {len(pending)} pending jobs")
            outcomes = self._poll_round(pending)
            pending = [job for job, status, error in outcomes
                       if not self._fold(job, status, error, result)]
            if not pending:
                break

            if self.max_rounds is not None and result.rounds >= self.max_rounds:
                self.logger.warning(f"Giving up on {len(pending)} jobs after {result.rounds} rounds")
                self._abandon(pending, JobState.TIMED_OUT, result)
                break

            delay = self.poll_interval
            if self.timeout is not None:
                remaining = self.timeout - (self.clock() - started)
                if remaining <= 0:
                    self.logger.warning(f"Giving up on {len(pending)} jobs after {self.timeout}s")
                    self._abandon(pending, JobState.TIMED_OUT, result)
                    break
                delay = min(delay, remaining)

            if self.cancel_event.wait(delay):
                self._abandon(pending, JobState.CANCELLED, result)
                break

        return result

    def _poll_round(self, pending: List[Job]) -> List[Tuple[Job, Optional[JobStatus], Optional[str]]]:
        """One status call per pending job; results keep the order of pending."""
        if self.max_workers == 1 or len(pending) == 1:
            return [self._check(job) for job in pending]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
            return list(executor.map(self._check, pending))

    def _check(self, job: Job) -> Tuple[Job, Optional[JobStatus], Optional[str]]:
        try:
            return job, self.client.check_move_batch(job.id), None
        except RemoteError as e:
            return job, None, str(e)

    def _fold(self, job: Job, status: Optional[JobStatus], error: Optional[str],
              result: TrackerResult) -> bool:
        """Apply one status check to a job. Returns True once the job is terminal."""
        job.rounds += 1

        if status is None:
            job.poll_errors += 1
            result.errors.append((job.id, error or "unknown error"))
            self.logger.warning(f"Status check for job {job.id} failed "
                                f"({job.poll_errors}/{self.max_poll_errors}): {error}")
            if job.poll_errors >= self.max_poll_errors:
                job.error = error
                self._resolve(job, JobState.FAILED)
                result.failed.append(job.id)
            self.events.emit(JobPolled(job_id=job.id, round=job.rounds, state=job.state,
                                       error=error))
            return job.state.is_terminal

        job.poll_errors = 0
        state = classify_status(status.tag)
        if state is JobState.COMPLETE:
            self._resolve(job, state)
            result.completed.append(job.id)
            result.moved += status.moved_count
            self.logger.info(f"Job {job.id} complete: {status.moved_count} files moved")
        elif state is JobState.FAILED:
            job.error = status.error
            self._resolve(job, state)
            result.failed.append(job.id)
            self.logger.error(f"Job {job.id} failed: {status.error}")
        elif status.tag != TAG_IN_PROGRESS:
            self.logger.debug(f"Job {job.id} reported unknown status {status.tag!r}, still pending")

        self.events.emit(JobPolled(job_id=job.id, round=job.rounds, state=job.state,
                                   tag=status.tag))
        return job.state.is_terminal

    def _resolve(self, job: Job, state: JobState) -> None:
        job.resolve(state)
        self._jobs.pop(job.id, None)

    def _abandon(self, pending: List[Job], state: JobState, result: TrackerResult) -> None:
        for job in pending:
            self._resolve(job, state)
            if state is JobState.CANCELLED:
                result.cancelled.append(job.id)
            else:
                result.timed_out.append(job.id)
        self.logger.info(f"{len(pending)} jobs left {state.value}")
