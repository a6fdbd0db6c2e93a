"""Tests for the one-line status text."""

import pytest

from vault_backup.engine import NoChanges, Pushed
from vault_backup.numstat import ChangeSet
from vault_backup.report import describe_changes, describe_result, describe_stats


@pytest.mark.parametrize(
    "change_set, expected",
    [
        (None, "Status unavailable."),
        (ChangeSet.EMPTY, "No changes."),
        (ChangeSet(1, 0, 0), "1 file changed"),
        (ChangeSet(3, 10, 2), "3 files changed"),
    ],
)
def test_describe_changes(change_set: ChangeSet | None, expected: str) -> None:
    assert describe_changes(change_set) == expected


def test_describe_result() -> None:
    """Verifies the text for each cycle outcome, including a skipped cycle."""
    assert describe_result(None) == "Backup already in progress"
    assert describe_result(NoChanges()) == "No changes"
    assert describe_result(Pushed("a" * 40, ChangeSet(1, 0, 0))) == "Pushed 1 file"
    assert describe_result(Pushed("a" * 40, ChangeSet(7, 1, 1))) == "Pushed 7 files"


def test_describe_result_rejects_unknown() -> None:
    with pytest.raises(TypeError):
        describe_result("pushed")  # type: ignore[arg-type]


def test_describe_stats() -> None:
    assert describe_stats(ChangeSet(2, 12, 3)) == "+12 -3"
