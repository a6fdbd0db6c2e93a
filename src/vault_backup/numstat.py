from dataclasses import dataclass
from typing import ClassVar

from .errors import InternalConsistencyError

BINARY_MARKER = "-"


@dataclass(frozen=True)
class ChangeSet:
    """Summary of the difference between two tree states.

    Attributes:
        files_changed (int): Number of paths that differ. The only emptiness signal.
        insertions (int): Lines added across text files.
        deletions (int): Lines removed across text files.
    """

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0

    EMPTY: ClassVar["ChangeSet"]

    @property
    def is_empty(self) -> bool:
        """True when no file differs. Renames with no line edits are not empty."""
        return self.files_changed == 0


ChangeSet.EMPTY = ChangeSet()


def _count(field: str, line: str) -> int:
    if field == BINARY_MARKER:
        return 0
    try:
        return int(field)
    except ValueError as e:
        raise InternalConsistencyError(f"Unexpected numstat line: {line!r}") from e


def parse_numstat(output: str) -> ChangeSet:
    """Parses ``git diff --numstat`` output into a ChangeSet.

    Each non-blank line has the shape ``<insertions>\\t<deletions>\\t<path>``.
    Binary files report ``-`` for both counts; they add a file but no lines.

    Args:
        output (str): Raw tool output. Blank lines (including a trailing one)
                      are ignored.

    Returns:
        ChangeSet: The summed counts.

    Raises:
        InternalConsistencyError: If a non-blank line is not numstat-shaped.
    """
    files = insertions = deletions = 0
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t", 2)
        if len(parts) != 3:
            raise InternalConsistencyError(f"Unexpected numstat line: {line!r}")
        insertions += _count(parts[0], line)
        deletions += _count(parts[1], line)
        files += 1

    return ChangeSet(files, insertions, deletions)
