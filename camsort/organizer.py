"""
Core organize runs: list, plan, create folders, submit move batches and
wait for the resulting jobs.
"""

import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .classifiers import DeviceClassifier, ProcessedLog, date_classifier
from .client import FolderResult
from .constants import get_logger
from .errors import RemoteError
from .events import BatchSubmitted, EventBus, FolderCreated, GroupFailed, RunFinished
from .models import Entry, GroupKey, Immediate, JobState, Plan, Queued, SubmitResult
from .planner import SKIP, Classifier, existing_folder_names, plan
from .report import RunReport, RunSummary
from .submitter import BatchSubmitter
from .tracker import JobTracker

if TYPE_CHECKING:
    from .client import DropboxClient
    from .config import Settings
    from .history import RunHistory


class Organizer:
    """Main class for organizing a remote Camera Uploads directory."""

    def __init__(self, client: "DropboxClient", settings: "Settings",
                 events: Optional[EventBus] = None,
                 cancel_event: Optional[threading.Event] = None,
                 history: Optional["RunHistory"] = None, dry_run: bool = False):
        self.client = client
        self.settings = settings
        self.events = events or EventBus()
        self.cancel_event = cancel_event or threading.Event()
        self.history = history
        self.dry_run = dry_run
        self.logger = get_logger("camsort.organizer")

    # Planning

    def plan_by_date(self, root: Optional[str] = None) -> Plan:
        """Plan moving every dated file in root into a YYYY-MM subfolder."""
        root = root or self.settings.root
        entries = self._list(root)
        return plan(entries, existing_folder_names(entries), date_classifier, root)

    def plan_by_device(self, root: Optional[str] = None, latest_only: bool = False,
                       classifier: Optional[Classifier] = None) -> List[Plan]:
        """Plan routing files of each month folder into device subfolders."""
        root = root or self.settings.root
        classifier = classifier or self.device_classifier()
        folders = sorted(entry.path for entry in self._list(root) if entry.is_folder)
        if latest_only:
            folders = folders[-1:]

        def classify(entry: Entry) -> Optional[GroupKey]:
            # Once cancelled, remaining entries are left alone without a download
            if self.cancel_event.is_set():
                return SKIP
            return classifier(entry)

        plans = []
        for folder_path in folders:
            if self.cancel_event.is_set():
                self.logger.info(f"Cancelled before classifying '{folder_path}'")
                break
            entries = self._list(folder_path)
            plans.append(plan(entries, existing_folder_names(entries), classify, folder_path,
                              default_group=self.settings.other_folder))
        return plans

    def device_classifier(self) -> DeviceClassifier:
        processed_log = None
        if self.settings.processed_log is not None:
            processed_log = ProcessedLog(self.settings.processed_log)
        return DeviceClassifier(
            self.client,
            processed_log=processed_log,
            phone_models=self.settings.phone_models,
            other_folder=self.settings.other_folder,
            video_folder=self.settings.video_folder,
            record=not self.dry_run,
        )

    # Runs

    def organize_by_date(self, root: Optional[str] = None) -> RunSummary:
        root = root or self.settings.root
        self.logger.info(f"Organizing '{root}' by capture month")
        return self.execute([self.plan_by_date(root)], mode="dates", root=root)

    def organize_by_device(self, root: Optional[str] = None, latest_only: bool = False,
                           classifier: Optional[Classifier] = None) -> RunSummary:
        root = root or self.settings.root
        self.logger.info(f"Organizing '{root}' by capture device")
        classifier = classifier or self.device_classifier()
        plans = self.plan_by_device(root, latest_only=latest_only, classifier=classifier)
        on_moved = classifier.mark_moved if isinstance(classifier, DeviceClassifier) else None
        return self.execute(plans, mode="devices", root=root, on_moved=on_moved)

    def execute(self, plans: List[Plan], mode: str = "custom", root: Optional[str] = None,
                on_moved: Optional[Callable[[List[str]], None]] = None) -> RunSummary:
        """Create folders, submit one batch per group and wait for queued jobs.

        ``on_moved`` receives the source paths of every batch that went through
        without entry failures, either immediately or once its job completed.
        """
        report = RunReport()
        tracker = JobTracker(
            self.client,
            poll_interval=self.settings.poll_interval,
            max_rounds=self.settings.max_poll_rounds,
            timeout=self.settings.poll_timeout,
            cancel_event=self.cancel_event,
            max_workers=self.settings.workers,
            max_poll_errors=self.settings.max_poll_errors,
            events=self.events,
        )
        submitter = BatchSubmitter(self.client, tracker)
        job_sources: Dict[str, List[str]] = {}

        for current in plans:
            for path, message in current.errors:
                report.record_error(path, message)
            if current.is_empty:
                self.logger.info(f"Nothing to move in '{current.destination_root}'")
                continue
            for group, moves in current.moves.items():
                if not moves:
                    continue
                if self.cancel_event.is_set():
                    break
                result = self._submit_group(current, group, submitter, report)
                sources = [move.from_path for move in moves]
                if isinstance(result, Queued):
                    job_sources[result.job_id] = sources
                elif isinstance(result, Immediate) and not result.failed_count and on_moved:
                    on_moved(sources)

        if self.cancel_event.is_set():
            report.record_cancelled()

        if tracker.active:
            completed = self._fold_tracker(tracker, report)
            if on_moved:
                for job_id in completed:
                    on_moved(job_sources.get(job_id, []))

        summary = report.finalize()
        if self.history is not None:
            self.history.log_run_summary(mode, root or self.settings.root, summary)
        self.events.emit(RunFinished(summary=summary))
        return summary

    def _submit_group(self, current: Plan, group: str, submitter: BatchSubmitter,
                      report: RunReport) -> Optional[SubmitResult]:
        destination = current.destination_for(group)
        moves = current.moves[group]

        # The folder must exist before its batch goes out
        if group in current.folders_to_create:
            try:
                created = self.client.create_folder(destination)
            except RemoteError as e:
                self._group_failed(destination, f"Could not create folder: {e}", report)
                return None
            if created is FolderResult.CREATED:
                report.record_folder_created()
            self.events.emit(FolderCreated(path=destination,
                                           already_existed=created is FolderResult.ALREADY_EXISTS))

        try:
            result = submitter.submit(group, moves, destination)
        except RemoteError as e:
            self._group_failed(destination, f"Move batch failed: {e}", report)
            return None

        if isinstance(result, Queued):
            report.record_job_submitted(result.job_id)
            self.events.emit(BatchSubmitted(group=group, destination=destination,
                                            entry_count=len(moves), job_id=result.job_id))
        elif isinstance(result, Immediate):
            report.record_files_moved(result.moved_count)
            if result.failed_count:
                report.record_error(destination, f"{result.failed_count} entries failed to move")
            self.events.emit(BatchSubmitted(group=group, destination=destination,
                                            entry_count=len(moves),
                                            moved_count=result.moved_count))
        return result

    def _group_failed(self, destination: str, message: str, report: RunReport) -> None:
        self.logger.error(f"{destination}: {message}")
        report.record_error(destination, message)
        self.events.emit(GroupFailed(group=destination, error=message))

    def _fold_tracker(self, tracker: JobTracker, report: RunReport) -> List[str]:
        """Wait for the queued jobs and fold their outcomes; returns the completed job ids."""
        self.logger.info(f"Waiting for {len(tracker.active)} move jobs")
        result = tracker.wait_all()
        report.record_files_moved(result.moved)
        for job_id in result.failed:
            report.record_job_failed(job_id)
        for job_id in result.cancelled:
            report.record_job_unresolved(job_id, JobState.CANCELLED)
        for job_id in result.timed_out:
            report.record_job_unresolved(job_id, JobState.TIMED_OUT)
        for job_id, message in result.errors:
            report.record_error(f"job {job_id}", message)
        if result.cancelled:
            report.record_cancelled()
        return result.completed

    def _list(self, path: str) -> List[Entry]:
        self.logger.debug(f"Listing '{path}'")
        return list(self.client.list_folder(path))
