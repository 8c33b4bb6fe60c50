"""
Exception hierarchy for camsort.
"""

from typing import Iterable, Optional, Tuple


class CamsortError(Exception):
    """Base error for the project."""


class ConfigError(CamsortError):
    pass


class RemoteError(CamsortError):
    """The remote directory returned something we cannot interpret."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


class TransportError(RemoteError):
    """Network or HTTP failure on a remote call."""

    def __init__(self, message: str, endpoint: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message, endpoint)
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{self.endpoint}: HTTP {self.status}: {base}"
        if self.endpoint:
            return f"{self.endpoint}: {base}"
        return base


class PlannerError(CamsortError):
    pass


class DuplicateDestinationError(PlannerError):
    """Two or more entries would be moved onto the same destination path."""

    def __init__(self, collisions: Iterable[Tuple[str, Tuple[str, ...]]]):
        self.collisions = list(collisions)
        lines = [f"{dest} <- {', '.join(sources)}" for dest, sources in self.collisions]
        super().__init__("Duplicate destination paths in move plan: " + "; ".join(lines))


class ClassificationError(CamsortError):
    """A classifier could not decide a group for an entry."""


class EntryUnavailableError(ClassificationError):
    """The entry could not be fetched for classification and is left in place."""
