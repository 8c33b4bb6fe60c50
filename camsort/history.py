"""
Run history: per-run log files and the global runs.log audit trail.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from .report import RunSummary


class RunHistory:
    """Manages run logging under the program directory."""

    def __init__(self, root_dir: Path, dry_run: bool = False):
        self.root_dir = Path(root_dir)
        self.dry_run = dry_run
        self.logs_dir = self.root_dir / "logs"
        self.runs_audit_log = self.root_dir / "runs.log"
        self.run_log: Optional[Path] = None

    def setup_run_logger(self, logger: logging.Logger) -> Optional[Path]:
        """Attach a DEBUG file handler writing to a per-run log file."""
        if self.dry_run:
            return None

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        run_log = self.logs_dir / f"{timestamp}.log"
        counter = 1
        while run_log.exists():
            run_log = self.logs_dir / f"{timestamp}-{counter:02d}.log"
            counter += 1

        file_handler = logging.FileHandler(run_log, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
        ))
        logger.addHandler(file_handler)

        # Ensure logger level allows DEBUG messages to reach the file handler
        logger.setLevel(logging.DEBUG)
        self.run_log = run_log
        return run_log

    def log_run_summary(self, mode: str, root: str, summary: RunSummary) -> None:
        """Append a one-line summary of the run to runs.log."""
        if self.dry_run:
            return

        self.root_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        if summary.cancelled:
            status = "CANCELLED"
        elif summary.ok:
            status = "SUCCESS"
        else:
            status = "PARTIAL"

        record = (
            f"{timestamp} | {status} | Mode: {mode} | Root: {root} | "
            f"Folders: {summary.folders_created} | Moved: {summary.files_moved} | "
            f"Jobs: {summary.jobs_submitted} | Failed: {len(summary.jobs_failed)} | "
            f"Unresolved: {len(summary.jobs_unresolved)} | Errors: {len(summary.errors)}"
        )
        if self.run_log:
            record += f" | Log: {self.run_log.name}"

        with open(self.runs_audit_log, 'a', encoding='utf-8') as f:
            f.write(record + "\n")
