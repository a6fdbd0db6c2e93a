"""One-line status text for the host's status surface."""

from .engine import NoChanges, Pushed, SyncResult
from .numstat import ChangeSet


def _files(n: int) -> str:
    return f"{n} file" if n == 1 else f"{n} files"


def describe_changes(change_set: ChangeSet | None) -> str:
    """Renders a dry-run change count, e.g. '3 files changed' or 'No changes.'."""
    if change_set is None:
        return "Status unavailable."
    if change_set.is_empty:
        return "No changes."
    return f"{_files(change_set.files_changed)} changed"


def describe_result(result: SyncResult | None) -> str:
    """Renders the outcome of a sync cycle."""
    if result is None:
        return "Backup already in progress"
    if isinstance(result, NoChanges):
        return "No changes"
    if isinstance(result, Pushed):
        return f"Pushed {_files(result.change_set.files_changed)}"
    raise TypeError(f"Unknown sync result: {result!r}")


def describe_stats(change_set: ChangeSet) -> str:
    """Renders line statistics, e.g. '+12 -3'."""
    return f"+{change_set.insertions} -{change_set.deletions}"
