"""
pytest configuration and fixtures for camsort tests.
"""

import io
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional

import pytest

from camsort.client import FolderResult
from camsort.config import Settings
from camsort.errors import TransportError
from camsort.models import Entry, Immediate, JobStatus, Queued


@dataclass
class CliResult:
    """Result from running CLI command."""
    exit_code: int
    output: str
    error: str


def file_entry(path: str, size: Optional[int] = None) -> Entry:
    return Entry(path=path, name=path.rsplit("/", 1)[-1], tag="file", size=size)


def folder_entry(path: str) -> Entry:
    return Entry(path=path, name=path.rsplit("/", 1)[-1], tag="folder")


class FakeDropbox:
    """Scripted stand-in for DropboxClient.

    Listings come from ``tree`` (path -> entries). Move batches return the
    scripted ``submit_results`` in order (exceptions are raised), falling back to
    an immediate move of the whole batch. Status checks return the scripted tags
    per job in order; the last tag repeats once the script runs out.
    """

    def __init__(self, tree: Optional[Dict[str, List[Entry]]] = None):
        self.tree = tree or {}
        self.existing_folders = set()
        self.submit_results: List = []
        self.job_scripts: Dict[str, List] = {}
        self.job_moved: Dict[str, int] = {}
        self.downloads: Dict[str, bytes] = {}
        self.create_errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    def list_folder(self, path: str, recursive: bool = False):
        self.calls.append(("list_folder", path, recursive))
        if path not in self.tree:
            raise TransportError("path/not_found", endpoint="list_folder", status=409)
        entries = list(self.tree[path])
        if recursive:
            for entry in list(entries):
                if entry.is_folder and entry.path in self.tree:
                    entries.extend(self._walk(entry.path))
        return iter(entries)

    def _walk(self, path: str) -> List[Entry]:
        found = []
        for entry in self.tree.get(path, []):
            found.append(entry)
            if entry.is_folder:
                found.extend(self._walk(entry.path))
        return found

    def create_folder(self, path: str) -> FolderResult:
        self.calls.append(("create_folder", path))
        if path in self.create_errors:
            raise self.create_errors[path]
        if path.lower() in self.existing_folders:
            return FolderResult.ALREADY_EXISTS
        self.existing_folders.add(path.lower())
        return FolderResult.CREATED

    def submit_move_batch(self, moves):
        self.calls.append(("submit_move_batch", [move.to_path for move in moves]))
        if self.submit_results:
            result = self.submit_results.pop(0)
        else:
            result = Immediate(moved_count=len(moves))
        if isinstance(result, Exception):
            raise result
        if isinstance(result, Queued):
            self.job_moved.setdefault(result.job_id, len(moves))
        return result

    def check_move_batch(self, job_id: str) -> JobStatus:
        self.calls.append(("check_move_batch", job_id))
        script = self.job_scripts.get(job_id, ["complete"])
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        moved = self.job_moved.get(job_id, 0) if item == "complete" else 0
        return JobStatus(job_id=job_id, tag=item, moved_count=moved)

    def download(self, path: str) -> bytes:
        self.calls.append(("download", path))
        if path not in self.downloads:
            raise TransportError("path/not_found", endpoint="download", status=409)
        return self.downloads[path]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def fake_dropbox():
    return FakeDropbox()


@pytest.fixture
def settings(tmp_path):
    """Run settings that never sleep between polling rounds."""
    return Settings(
        access_token="test-token",
        root="/Camera Uploads",
        poll_interval=0,
        processed_log=tmp_path / "processed",
        program_root=tmp_path / ".camsort",
    )


@pytest.fixture
def test_config_path(tmp_path):
    """Test-specific config path with clean state guarantee."""
    return tmp_path / "config" / "config.yml"


@pytest.fixture
def cli_runner(monkeypatch, fake_dropbox):
    """Create a CLI runner that captures output and talks to the fake remote."""

    def run_cli(*args, config_path=None, env=None):
        """Run camsort CLI with given arguments.

        Args:
            *args: Command line arguments (subcommand, --flags, etc)
            config_path: Optional config path for test isolation
            env: Environment overrides (defaults to a test access token)

        Returns:
            CliResult with exit_code, output, and error
        """
        from rich.console import Console

        from camsort import cli

        stdout = io.StringIO()
        stderr = io.StringIO()
        console = Console(file=stdout, width=200, force_terminal=False)

        monkeypatch.setattr(cli, "get_console", lambda: console)
        monkeypatch.setattr(cli, "DropboxClient", lambda token: fake_dropbox)
        monkeypatch.delenv("AUTH_TOKEN", raising=False)
        monkeypatch.delenv("CAMSORT_AUTH_TOKEN", raising=False)
        for name, value in (env if env is not None else {"CAMSORT_AUTH_TOKEN": "test"}).items():
            monkeypatch.setenv(name, value)
        monkeypatch.setattr(sys, "stdout", stdout)
        monkeypatch.setattr(sys, "stderr", stderr)

        try:
            exit_code = cli.main([str(a) for a in args], config_path=config_path)
        except SystemExit as e:
            exit_code = e.code if e.code is not None else 0

        return CliResult(exit_code=exit_code, output=stdout.getvalue(), error=stderr.getvalue())

    return run_cli
