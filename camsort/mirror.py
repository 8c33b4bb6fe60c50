"""
Mirror a remote folder tree onto local disk.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .constants import get_logger
from .errors import RemoteError
from .models import Entry

if TYPE_CHECKING:
    from .client import DropboxClient
    from .progress import ProgressContext


@dataclass
class MirrorStats:
    folders: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    total_bytes: int = 0


class LocalMirror:
    """Downloads every file under a remote path into the same layout locally."""

    def __init__(self, client: "DropboxClient", local_root: Path, dry_run: bool = False):
        self.client = client
        self.local_root = Path(local_root)
        self.dry_run = dry_run
        self.logger = get_logger("camsort.mirror")

    def local_path(self, remote_path: str) -> Path:
        """Map a remote path onto the local root."""
        return self.local_root.joinpath(*[part for part in remote_path.split("/") if part])

    def mirror(self, remote_path: str,
               progress_ctx: Optional["ProgressContext"] = None) -> MirrorStats:
        stats = MirrorStats()
        self.logger.info(f"Mirroring '{remote_path}' into {self.local_root}")

        for entry in self.client.list_folder(remote_path, recursive=True):
            if entry.is_folder:
                self.ensure_directory(self.local_path(entry.path))
                stats.folders += 1
                continue
            if not entry.is_file:
                continue

            try:
                self._mirror_file(entry, stats)
            except (RemoteError, OSError) as e:
                self.logger.error(f"Could not mirror {entry.path}: {e}")
                stats.failed += 1

            if progress_ctx:
                progress_ctx.update(f"Mirrored: {entry.name}")
                progress_ctx.advance()

        return stats

    def _mirror_file(self, entry: Entry, stats: MirrorStats) -> None:
        target = self.local_path(entry.path)
        if target.exists() and entry.size is not None and target.stat().st_size == entry.size:
            self.logger.debug(f"Up to date: {target}")
            stats.skipped += 1
            return

        if self.dry_run:
            stats.downloaded += 1
            return

        content = self.client.download(entry.path)
        self.write_file(target, content)
        stats.downloaded += 1
        stats.total_bytes += len(content)
        self.logger.debug(f"Downloaded {entry.path} -> {target}")

    def ensure_directory(self, directory: Path) -> None:
        """Create directory and parents if needed, with dry-run support."""
        if not self.dry_run and not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)

    def write_file(self, target: Path, content: bytes) -> None:
        """Write content through a temporary file so a partial download never lands."""
        self.ensure_directory(target.parent)
        fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=".camsort-", suffix=".part")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
