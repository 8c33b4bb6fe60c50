"""
Shared constants, logger and console accessors for camsort.
"""

import logging
import shutil
from typing import Optional

from rich.console import Console

PROGRAM = "camsort"

# Remote directory API hosts
API_HOST = "api.dropboxapi.com"
CONTENT_HOST = "content.dropboxapi.com"

# Remote directory layout
DEFAULT_ROOT = "/Camera Uploads"
DEFAULT_OTHER_FOLDER = "Other"
DEFAULT_VIDEO_FOLDER = "Videos"
DEFAULT_PHONE_MODELS = ("iPhone 5c",)

# Job polling
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLL_ERRORS = 3

# ".tag" discriminator values
TAG_FILE = "file"
TAG_FOLDER = "folder"
TAG_ASYNC_JOB_ID = "async_job_id"
TAG_IN_PROGRESS = "in_progress"
TAG_COMPLETE = "complete"
TAG_FAILED = "failed"

# Filenames like "2012-11-18 05.36.26.jpg"
DATE_GROUP_PATTERN = r"^(\d{4}-\d{2})-\d{2}"

MOVIE_EXTENSIONS = (
    ".3g2", ".3gp", ".avi", ".flv", ".m4v", ".mkv", ".mov", ".mp4", ".mpeg",
    ".mpg", ".mts", ".webm", ".wmv",
)

_console: Optional[Console] = None


def get_console() -> Console:
    """Shared rich console for all terminal output."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the program namespace."""
    if name is None or name == PROGRAM:
        return logging.getLogger(PROGRAM)
    if not name.startswith(f"{PROGRAM}."):
        name = f"{PROGRAM}.{name}"
    return logging.getLogger(name)


def check_tool_availability(cmd: str) -> bool:
    """Check whether an external command is on the PATH."""
    return shutil.which(cmd) is not None
