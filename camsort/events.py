"""
Structured run events, emitted by the engine and rendered by reporters.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional

from .models import JobState

if TYPE_CHECKING:
    from .report import RunSummary


@dataclass(frozen=True)
class FolderCreated:
    path: str
    already_existed: bool = False


@dataclass(frozen=True)
class BatchSubmitted:
    group: str
    destination: str
    entry_count: int
    job_id: Optional[str] = None
    moved_count: int = 0


@dataclass(frozen=True)
class JobPolled:
    job_id: str
    round: int
    state: JobState
    tag: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class GroupFailed:
    group: str
    error: str


@dataclass(frozen=True)
class RunFinished:
    summary: "RunSummary"


Listener = Callable[[object], None]


class EventBus:
    """Fans events out to subscribed listeners in subscription order."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, event: object) -> None:
        for listener in self._listeners:
            listener(event)
