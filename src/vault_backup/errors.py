"""Error taxonomy for Vault Backup.

Every failure a sync cycle can surface to the host derives from
``VaultBackupError`` so callers can report it with a single handler.
"""

from typing import Any


class VaultBackupError(Exception):
    """Base class for all errors raised by the package."""


class ConfigurationError(VaultBackupError):
    """A required setting is missing or contradicts the repository on disk.

    Raised before any repository mutation; never retried.
    """


class ToolExecutionError(VaultBackupError):
    """An external tool invocation exited with a non-zero status.

    Attributes:
        exit_code (int): The process exit status.
        stderr (str): The tool's own diagnostic output.
        argv (list[str]): The argument vector passed to the tool.
    """

    def __init__(self, exit_code: int, stderr: str, args: list[str] | None = None):
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        self.argv = list(args or [])
        command = " ".join(self.argv[:2]) or "tool"
        detail = self.stderr or "no diagnostic output"
        super().__init__(f"{command} failed (exit {exit_code}): {detail}")


class InternalConsistencyError(VaultBackupError):
    """The tool produced output of an unexpected shape.

    Indicates a bug or an incompatible tool version.
    """


class CleanupError(VaultBackupError):
    """Transient scratch files could not be removed after a cycle.

    This is not a ``ToolExecutionError``: removal is a filesystem call, not a
    git invocation, so hosts that only catch ``ToolExecutionError`` will not
    see it. Catch ``VaultBackupError`` to handle every cycle failure. It is
    raised only after an otherwise complete cycle; when the cycle itself
    failed, the removal problem is logged and the original error propagates.

    Attributes:
        result (Any): The result of the primary operation, if it completed.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result
