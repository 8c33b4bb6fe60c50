"""
HTTP client for the remote file directory (Dropbox API v2).
"""

import json
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from .constants import (API_HOST, CONTENT_HOST, TAG_ASYNC_JOB_ID, TAG_COMPLETE, TAG_FAILED,
                        get_logger)
from .errors import RemoteError, TransportError
from .models import Entry, Immediate, JobStatus, ListPage, MoveRequest, Queued, SubmitResult


class FolderResult(Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class DropboxClient:
    """Thin wrapper over the files endpoints used by camsort."""

    def __init__(self, access_token: str, session: Optional[requests.Session] = None,
                 timeout: float = 30.0):
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = get_logger("camsort.client")

    # Transport

    def _post(self, endpoint: str, data: Dict[str, Any]) -> requests.Response:
        url = f"https://{API_HOST}/2/files/{endpoint}"
        headers = {"Authorization": f"Bearer {self.access_token}"}
        self.logger.debug(f"POST {endpoint}")
        try:
            return self.session.post(url, json=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(str(e), endpoint=endpoint) from e

    def _call(self, endpoint: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON request and return the decoded JSON body."""
        response = self._post(endpoint, data)
        self._raise_for_status(endpoint, response)
        return self._decode(endpoint, response)

    @staticmethod
    def _raise_for_status(endpoint: str, response: requests.Response) -> None:
        if response.status_code >= 400:
            raise TransportError(_error_summary(response), endpoint=endpoint,
                                 status=response.status_code)

    @staticmethod
    def _decode(endpoint: str, response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON response: {e}", endpoint=endpoint) from e

    # Listing

    def list_folder_page(self, path: str, recursive: bool = False) -> ListPage:
        data = self._call("list_folder", {
            "path": path,
            "recursive": recursive,
            "include_media_info": False,
            "include_deleted": False,
            "include_has_explicit_shared_members": False,
        })
        return _parse_page("list_folder", data)

    def list_folder_continue(self, cursor: str) -> ListPage:
        data = self._call("list_folder/continue", {"cursor": cursor})
        return _parse_page("list_folder/continue", data)

    def list_folder(self, path: str, recursive: bool = False) -> Iterator[Entry]:
        """Yield every entry under path, following the cursor until has_more is false."""
        page = self.list_folder_page(path, recursive=recursive)
        yield from page.entries
        while page.has_more:
            if not page.cursor:
                raise RemoteError("Listing reports more entries but no cursor",
                                  endpoint="list_folder/continue")
            page = self.list_folder_continue(page.cursor)
            yield from page.entries

    # Mutation

    def create_folder(self, path: str) -> FolderResult:
        """Create a folder; an existing folder at path counts as success."""
        endpoint = "create_folder_v2"
        response = self._post(endpoint, {"path": path, "autorename": False})
        if response.status_code == 409 and _error_summary(response).startswith("path/conflict"):
            self.logger.debug(f"Folder already exists: {path}")
            return FolderResult.ALREADY_EXISTS
        self._raise_for_status(endpoint, response)
        return FolderResult.CREATED

    def submit_move_batch(self, moves: List[MoveRequest]) -> SubmitResult:
        endpoint = "move_batch_v2"
        data = self._call(endpoint, {
            "entries": [move.to_api() for move in moves],
            "autorename": False,
        })
        tag = data.get(".tag")
        if tag == TAG_ASYNC_JOB_ID:
            return Queued(job_id=data[TAG_ASYNC_JOB_ID])
        if tag == TAG_COMPLETE:
            moved, failed = _count_results(data.get("entries", []))
            return Immediate(moved_count=moved, failed_count=failed)
        raise RemoteError(f"Unexpected move batch response tag: {tag!r}", endpoint=endpoint)

    def check_move_batch(self, job_id: str) -> JobStatus:
        data = self._call("move_batch/check_v2", {"async_job_id": job_id})
        tag = data.get(".tag", "")
        if tag == TAG_COMPLETE:
            moved, _ = _count_results(data.get("entries", []))
            return JobStatus(job_id=job_id, tag=tag, moved_count=moved)
        if tag == TAG_FAILED:
            return JobStatus(job_id=job_id, tag=tag, error=json.dumps(data.get(TAG_FAILED)))
        return JobStatus(job_id=job_id, tag=tag)

    # Content

    def download(self, path: str) -> bytes:
        endpoint = "download"
        url = f"https://{CONTENT_HOST}/2/files/{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Dropbox-API-Arg": json.dumps({"path": path}),
        }
        try:
            response = self.session.post(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(str(e), endpoint=endpoint) from e
        self._raise_for_status(endpoint, response)
        return response.content


def _parse_page(endpoint: str, data: Dict[str, Any]) -> ListPage:
    try:
        entries = [Entry.from_api(item) for item in data["entries"]]
    except (KeyError, TypeError) as e:
        raise RemoteError(f"Malformed listing: missing {e}", endpoint=endpoint) from e
    return ListPage(entries=entries, has_more=bool(data.get("has_more")),
                    cursor=data.get("cursor"))


def _count_results(entries: List[Dict[str, Any]]) -> Tuple[int, int]:
    """Count (moved, failed) relocation results; untagged entries are successes."""
    failed = sum(1 for item in entries if item.get(".tag") == "failure")
    return len(entries) - failed, failed


def _error_summary(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "error_summary" in body:
        return str(body["error_summary"])
    return str(body)[:200]
