"""
Batch move submission: one remote move-batch call per group.
"""

from typing import TYPE_CHECKING, List

from .constants import get_logger
from .models import GroupKey, Immediate, MoveRequest, Queued, SubmitResult

if TYPE_CHECKING:
    from .client import DropboxClient
    from .tracker import JobTracker


class BatchSubmitter:
    """Submits move batches and hands asynchronous jobs to the tracker."""

    def __init__(self, client: "DropboxClient", tracker: "JobTracker"):
        self.client = client
        self.tracker = tracker
        self.logger = get_logger("camsort.submitter")

    def submit(self, group: GroupKey, moves: List[MoveRequest],
               destination_folder: str) -> SubmitResult:
        """Issue exactly one move-batch call for a group.

        Transport errors are not retried here; they propagate to the caller,
        which decides how the rest of the run proceeds. Destination uniqueness
        is the planner's responsibility.
        """
        self.logger.info(f"Moving {len(moves)} files into '{destination_folder}'")
        result = self.client.submit_move_batch(moves)

        if isinstance(result, Queued):
            self.tracker.register(result.job_id, group=group)
            self.logger.info(f"Group '{group}' queued as job {result.job_id}")
        elif isinstance(result, Immediate):
            self.logger.info(f"Group '{group}' moved {result.moved_count} files immediately")
            if result.failed_count:
                self.logger.warning(f"Group '{group}': {result.failed_count} entries failed to move")
        return result
