"""Vault Backup: one-way snapshots of a directory into a detached git repository.

This package provides the synchronization engine that stages a working
directory into a git repository kept outside of it, commits only when content
changed, and pushes the result to a single remote branch, along with a small
command-line host around it.
"""

from . import (
    cli,
    config,
    constants,
    engine,
    errors,
    git_wrapper,
    numstat,
    report,
    runner,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "engine",
    "errors",
    "git_wrapper",
    "numstat",
    "report",
    "runner",
    "system",
]
