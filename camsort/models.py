"""
Data model shared by the planner, submitter and job tracker.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .constants import TAG_FILE, TAG_FOLDER

GroupKey = str


@dataclass(frozen=True)
class Entry:
    """A file or folder reference from a remote listing."""
    path: str
    name: str
    tag: str = TAG_FILE
    size: Optional[int] = None
    path_lower: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.tag == TAG_FILE

    @property
    def is_folder(self) -> bool:
        return self.tag == TAG_FOLDER

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return "." + self.name.rsplit(".", 1)[1].lower()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Entry":
        """Build an entry from a remote listing record."""
        return cls(
            path=data.get("path_display") or data.get("path_lower") or "",
            name=data["name"],
            tag=data.get(".tag", TAG_FILE),
            size=data.get("size"),
            path_lower=data.get("path_lower"),
        )


@dataclass(frozen=True)
class MoveRequest:
    from_path: str
    to_path: str

    def to_api(self) -> Dict[str, str]:
        return {"from_path": self.from_path, "to_path": self.to_path}


class JobState(Enum):
    """Lifecycle of an asynchronous move job. Only PENDING is non-terminal."""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not JobState.PENDING


@dataclass
class Job:
    id: str
    group: Optional[GroupKey] = None
    state: JobState = JobState.PENDING
    rounds: int = 0
    poll_errors: int = 0
    error: Optional[str] = None

    def resolve(self, state: JobState) -> None:
        """Move the job to a terminal state."""
        if self.state.is_terminal:
            raise ValueError(f"Job {self.id} already resolved as {self.state.value}")
        if not state.is_terminal:
            raise ValueError(f"Cannot resolve job {self.id} to {state.value}")
        self.state = state


@dataclass(frozen=True)
class Immediate:
    """The move batch completed synchronously."""
    moved_count: int
    failed_count: int = 0


@dataclass(frozen=True)
class Queued:
    """The move batch was accepted as an asynchronous job."""
    job_id: str


SubmitResult = Union[Immediate, Queued]


@dataclass(frozen=True)
class JobStatus:
    """Parsed response of a move-batch status check."""
    job_id: str
    tag: str
    moved_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class ListPage:
    entries: List[Entry]
    has_more: bool
    cursor: Optional[str] = None


@dataclass
class Plan:
    """Groups, folders and move requests computed for one destination root."""
    destination_root: str
    groups: Dict[GroupKey, List[Entry]] = field(default_factory=dict)
    folders_to_create: Set[GroupKey] = field(default_factory=set)
    moves: Dict[GroupKey, List[MoveRequest]] = field(default_factory=dict)
    skipped: List[Entry] = field(default_factory=list)
    # (path, message) for entries left in place because they could not be read
    errors: List[Tuple[str, str]] = field(default_factory=list)

    def destination_for(self, group: GroupKey) -> str:
        return f"{self.destination_root.rstrip('/')}/{group}"

    @property
    def is_empty(self) -> bool:
        return not any(self.moves.values())

    @property
    def total_moves(self) -> int:
        return sum(len(moves) for moves in self.moves.values())
