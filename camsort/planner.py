"""
Grouping planner: partitions listed entries into destination groups and
computes the folders to create and the moves to submit.
"""

from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Set

from .constants import get_logger
from .errors import ClassificationError, DuplicateDestinationError, EntryUnavailableError
from .models import Entry, GroupKey, MoveRequest, Plan

# Classifier result meaning "leave this entry where it is"
SKIP = None

Classifier = Callable[[Entry], Optional[GroupKey]]

logger = get_logger("camsort.planner")


def plan(entries: Iterable[Entry], existing_folders: Iterable[str], classifier: Classifier,
         destination_root: str, default_group: Optional[GroupKey] = None) -> Plan:
    """Partition file entries by classifier result and compute the move plan.

    Entries the classifier cannot fetch are left in place and listed in the
    plan errors. Raises DuplicateDestinationError when two entries map onto one
    destination, before anything is sent to the remote directory.
    """
    result = Plan(destination_root=destination_root)

    for entry in entries:
        if not entry.is_file:
            continue

        try:
            group = classifier(entry)
        except EntryUnavailableError as e:
            logger.warning(f"Leaving {entry.path} in place: {e}")
            result.skipped.append(entry)
            result.errors.append((entry.path, str(e)))
            continue
        except ClassificationError as e:
            if default_group is None:
                raise
            logger.warning(f"Could not classify {entry.path}, using '{default_group}': {e}")
            group = default_group

        if group is SKIP:
            logger.debug(f"Skipping {entry.path}")
            result.skipped.append(entry)
            continue

        result.groups.setdefault(group, []).append(entry)

    for group, members in result.groups.items():
        destination = result.destination_for(group)
        moves = []
        for entry in members:
            request = build_move_request(entry, destination)
            if request.from_path.lower() == request.to_path.lower():
                logger.debug(f"{entry.path} is already in '{group}'")
                continue
            moves.append(request)
        result.moves[group] = moves

    validate_unique_destinations(
        request for moves in result.moves.values() for request in moves
    )

    existing = set(existing_folders)
    result.folders_to_create = {group for group, moves in result.moves.items()
                                if moves and group not in existing}
    return result


def build_move_request(entry: Entry, destination_folder: str) -> MoveRequest:
    return MoveRequest(from_path=entry.path,
                       to_path=f"{destination_folder.rstrip('/')}/{entry.name}")


def validate_unique_destinations(requests: Iterable[MoveRequest]) -> None:
    """Fail loudly if two move requests share a destination path."""
    # Remote paths compare case-insensitively
    sources: Dict[str, List[str]] = defaultdict(list)
    display: Dict[str, str] = {}
    for request in requests:
        key = request.to_path.lower()
        sources[key].append(request.from_path)
        display.setdefault(key, request.to_path)

    collisions = [(display[key], tuple(paths)) for key, paths in sources.items()
                  if len(paths) > 1]
    if collisions:
        raise DuplicateDestinationError(collisions)


def existing_folder_names(entries: Iterable[Entry]) -> Set[str]:
    """Names of the folder entries in a listing."""
    return {entry.name for entry in entries if entry.is_folder}
