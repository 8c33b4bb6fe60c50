"""
Entry classifiers: decide which group (destination subfolder) an entry belongs to.

A classifier is any callable ``Entry -> Optional[GroupKey]``; returning
``SKIP`` (None) leaves the entry where it is.
"""

import json
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Set

from .constants import (DATE_GROUP_PATTERN, DEFAULT_OTHER_FOLDER, DEFAULT_PHONE_MODELS,
                        MOVIE_EXTENSIONS, check_tool_availability, get_logger)
from .errors import ClassificationError, EntryUnavailableError, RemoteError
from .models import Entry, GroupKey
from .planner import SKIP

if TYPE_CHECKING:
    from .client import DropboxClient

logger = get_logger("camsort.classifiers")

_DATE_GROUP = re.compile(DATE_GROUP_PATTERN)


def date_classifier(entry: Entry) -> Optional[GroupKey]:
    """Group by capture month parsed from names like '2012-11-18 05.36.26.jpg'."""
    match = _DATE_GROUP.match(entry.name)
    if not match:
        return SKIP
    return match.group(1)


class ProcessedLog:
    """Append-only, newline-delimited record of remote paths already handled."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        with open(self.path, 'r', encoding='utf-8') as f:
            self._paths: Set[str] = {line.strip() for line in f if line.strip()}

    def __contains__(self, remote_path: object) -> bool:
        return remote_path in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def add(self, remote_path: str) -> None:
        """Record a path and flush it to disk before returning."""
        if remote_path in self._paths:
            return
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(remote_path + "\n")
            f.flush()
            os.fsync(f.fileno())
        self._paths.add(remote_path)


def read_camera_model(image_path: Path) -> Optional[str]:
    """Read the camera Model tag with exiftool."""
    result = subprocess.run(
        ["exiftool", "-q", "-json", "-Model", str(image_path)],
        capture_output=True, text=True, check=True
    )
    try:
        tags = json.loads(result.stdout)[0]
    except (IndexError, json.JSONDecodeError):
        return None
    return tags.get("Model")


class DeviceClassifier:
    """Routes camera uploads by the device that captured them.

    Phone shots stay in place, movies go to the video folder (or are left alone
    when no video folder is configured) and everything else, including files
    whose metadata cannot be read, goes to the "other camera" folder.
    """

    def __init__(self, client: "DropboxClient", processed_log: Optional[ProcessedLog] = None,
                 phone_models: Iterable[str] = DEFAULT_PHONE_MODELS,
                 other_folder: str = DEFAULT_OTHER_FOLDER,
                 video_folder: Optional[str] = None,
                 model_reader: Optional[Callable[[Path], Optional[str]]] = None,
                 record: bool = True):
        self.client = client
        self.processed_log = processed_log
        self.record = record
        self.phone_models = set(phone_models)
        self.other_folder = other_folder
        self.video_folder = video_folder
        if model_reader is None:
            if not check_tool_availability("exiftool"):
                logger.warning("exiftool unavailable: all photos will be treated as other cameras")
            model_reader = read_camera_model
        self.model_reader = model_reader

    def __call__(self, entry: Entry) -> Optional[GroupKey]:
        if self.processed_log is not None and entry.path in self.processed_log:
            return SKIP

        # Movies are not downloaded; they are routed by extension alone
        if entry.extension in MOVIE_EXTENSIONS:
            return self.video_folder if self.video_folder else SKIP

        logger.info(f"Processing {entry.name}")
        group = self._classify_by_model(entry)

        # Files routed elsewhere are recorded once their move went through
        if group is SKIP:
            self.mark_moved([entry.path])
        return group

    def mark_moved(self, remote_paths: Iterable[str]) -> None:
        """Record paths that need no further processing."""
        if not self.record or self.processed_log is None:
            return
        for remote_path in remote_paths:
            self.processed_log.add(remote_path)

    def _classify_by_model(self, entry: Entry) -> Optional[GroupKey]:
        try:
            content = self.client.download(entry.path)
        except RemoteError as e:
            raise EntryUnavailableError(f"Could not download: {e}") from e
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_file = Path(temp_dir) / f"download{entry.extension}"
            temp_file.write_bytes(content)
            try:
                model = self.model_reader(temp_file)
            except (OSError, subprocess.CalledProcessError, ClassificationError) as e:
                # Unreadable metadata is unlikely to come from the phone
                logger.debug(f"Could not read metadata of {entry.path}: {e}")
                model = None

        if model in self.phone_models:
            logger.debug(f"{entry.name} taken on {model}, leaving in place")
            return SKIP
        logger.debug(f"{entry.name} taken on {model or 'unknown device'}")
        return self.other_folder
