"""Asynchronous execution of the external version-control tool.

The runner is a thin primitive: it never retries and never inherits the
ambient process environment. Whatever environment the caller hands in is
exactly what the child process sees.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import ToolExecutionError

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class ToolOutput:
    """Captured output of a successful invocation."""

    stdout: str
    stderr: str


async def run_tool(
    tool: str | Path,
    args: list[str],
    env: Mapping[str, str],
    cwd: Path | None = None,
) -> ToolOutput:
    """Runs ``tool`` with ``args`` and waits for it without blocking the loop.

    Args:
        tool (str | Path): Path to the executable.
        args (list[str]): Argument vector, excluding the executable itself.
        env (Mapping[str, str]): The complete environment for the child.
        cwd (Path | None, optional): Working directory. Defaults to None.

    Returns:
        ToolOutput: Decoded stdout and stderr.

    Raises:
        ToolExecutionError: If the tool exits non-zero or cannot be started.
    """
    logger.debug(f"Running: {tool} {' '.join(args)}")
    try:
        process = await asyncio.create_subprocess_exec(
            str(tool),
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env),
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise ToolExecutionError(127, f"{tool}: {e.strerror}", args) from e
    except PermissionError as e:
        raise ToolExecutionError(126, f"{tool}: {e.strerror}", args) from e

    stdout_bytes, stderr_bytes = await process.communicate()
    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")

    if process.returncode != 0:
        raise ToolExecutionError(process.returncode or -1, stderr, args)

    return ToolOutput(stdout=stdout, stderr=stderr)
