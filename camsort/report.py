"""
Run report accumulation for organize runs.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from .models import JobState


@dataclass(frozen=True)
class RunSummary:
    """Final, immutable view of a run report."""
    folders_created: int
    files_moved: int
    jobs_submitted: int
    jobs_failed: Tuple[str, ...]
    jobs_unresolved: Tuple[Tuple[str, str], ...]
    errors: Tuple[Tuple[str, str], ...]
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        """True when no job failed, none were left unresolved and no errors occurred."""
        return not (self.jobs_failed or self.jobs_unresolved or self.errors)


class RunReport:
    """Encapsulates counters for one organize run."""

    def __init__(self):
        self._stats = {
            'folders_created': 0,
            'files_moved': 0,
            'jobs_submitted': 0,
        }
        # dicts keep insertion order and double as ordered sets
        self._submitted: Dict[str, None] = {}
        self._failed: Dict[str, None] = {}
        self._unresolved: Dict[str, JobState] = {}
        self._errors: List[Tuple[str, str]] = []
        self._cancelled = False

    def record_folder_created(self) -> None:
        self._stats['folders_created'] += 1

    def record_files_moved(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Moved file count cannot be negative: {count}")
        self._stats['files_moved'] += count

    def record_job_submitted(self, job_id: str) -> None:
        if job_id not in self._submitted:
            self._submitted[job_id] = None
            self._stats['jobs_submitted'] += 1

    def record_job_failed(self, job_id: str) -> None:
        self._failed[job_id] = None

    def record_job_unresolved(self, job_id: str, state: JobState) -> None:
        """Record a job that left polling cancelled or timed out."""
        self._unresolved[job_id] = state

    def record_error(self, scope: str, message: str) -> None:
        """Record an error that did not abort the run (e.g. one group's transport failure)."""
        self._errors.append((scope, message))

    def record_cancelled(self) -> None:
        self._cancelled = True

    def finalize(self) -> RunSummary:
        return RunSummary(
            folders_created=self._stats['folders_created'],
            files_moved=self._stats['files_moved'],
            jobs_submitted=self._stats['jobs_submitted'],
            jobs_failed=tuple(self._failed),
            jobs_unresolved=tuple((job_id, state.value)
                                  for job_id, state in self._unresolved.items()),
            errors=tuple(self._errors),
            cancelled=self._cancelled,
        )
