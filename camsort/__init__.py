"""
camsort - Organize a cloud Camera Uploads folder by month and capture device.

Groups uploaded photos and videos into YYYY-MM folders, routes each month's
files into device subfolders from their embedded metadata, and mirrors the
remote tree to local disk. Moves are submitted as server-side batch jobs and
polled to completion.
"""

__version__ = "1.0.0"


# Public API
from .cli import main
from .client import DropboxClient
from .config import Config, Settings
from .organizer import Organizer
from .planner import plan
from .report import RunReport, RunSummary
from .submitter import BatchSubmitter
from .tracker import JobTracker

__all__ = [ "main", "DropboxClient", "Config", "Settings", "Organizer", "plan", "RunReport",
            "RunSummary", "BatchSubmitter", "JobTracker" ]
