import argparse
import asyncio
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import Config, SyncTarget, resolve_target
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE
from .engine import Pushed, SyncEngine
from .errors import CleanupError, VaultBackupError
from .report import describe_changes, describe_result, describe_stats

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, DEBUG records (git invocations) also go to stderr.
        max_log_size (int): Bytes before the log file is rotated.
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE, maxBytes=max_log_size, backupCount=5
        )
    except OSError as e:
        logger.warning(f"Could not open log file {LOG_FILE}: {e}")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _fail(message: str) -> None:
    err_console.print(f"[bold red]ERROR:[/bold red] {message}")
    sys.exit(1)


def run_now(config: Config) -> None:
    """Runs one backup cycle and reports its result and duration."""
    try:
        target = resolve_target(config)
    except VaultBackupError as e:
        _fail(str(e))
        return

    engine = SyncEngine()
    started = time.monotonic()
    try:
        with console.status(
            f"[bold blue]Backing up {target.handle.work_tree.name}...[/bold blue]",
            spinner="dots",
        ):
            result = asyncio.run(engine.sync(target))
    except CleanupError as e:
        logger.error(f"CLEANUP ERROR {target.handle.work_tree.name}: {e}")
        if e.result is not None:
            console.print(describe_result(e.result))
        _fail(str(e))
        return
    except VaultBackupError as e:
        logger.error(f"FAILED {target.handle.work_tree.name}: {e}")
        _fail(str(e))
        return
    elapsed = time.monotonic() - started

    line = describe_result(result)
    if isinstance(result, Pushed):
        line += (
            f" ({describe_stats(result.change_set)}, "
            f"commit {result.commit_id[:8]})"
        )
    console.print(
        f"[bold green]SUCCESS:[/bold green] {line} [dim]in {elapsed:.1f}s[/dim]"
    )


def show_status(config: Config) -> None:
    """Displays the pending change count for the configured vault."""
    try:
        target = resolve_target(config, require_remote=False)
    except VaultBackupError as e:
        _fail(str(e))
        return

    try:
        change_set = asyncio.run(SyncEngine().status(target))
    except VaultBackupError as e:
        _fail(str(e))
        return

    content = Text()
    content.append("Vault:      ", style="bold")
    content.append(f"{target.handle.work_tree}\n")
    content.append("Repository: ", style="bold")
    content.append(f"{target.handle.metadata_dir}\n", style="dim")
    content.append("Remote:     ", style="bold")
    if target.remote.url:
        content.append(f"{target.remote.url} ({target.remote.branch})\n")
    else:
        content.append("not configured\n", style="bold yellow")

    content.append("Pending:    ", style="bold")
    if not target.handle.metadata_dir.exists():
        content.append("No backup yet. Run 'vault-backup now'.", style="yellow")
    elif change_set is not None and not change_set.is_empty:
        content.append(
            f"{describe_changes(change_set)} ({describe_stats(change_set)})",
            style="yellow",
        )
    else:
        content.append(describe_changes(change_set), style="green")

    console.print(Panel(content, title="Vault Backup", expand=False))


def show_where(config: Config) -> None:
    """Prints the resolved repository directory."""
    try:
        target: SyncTarget = resolve_target(config, require_remote=False)
    except VaultBackupError as e:
        _fail(str(e))
        return
    console.print(str(target.handle.metadata_dir), highlight=False)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Vault Backup Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("vault", "path", "str", '""', "The directory to back up.")
    table.add_row(
        "", "identifier", "str", "vault dir name", "Name of the cache repository."
    )
    table.add_row("remote", "url", "str", '""', "Remote to push backups to.")
    table.add_row("", "name", "str", '"origin"', "Remote name in the repository.")
    table.add_row("", "branch", "str", '"main"', "The single tracked branch.")
    table.add_row("identity", "name", "str", '""', "Author and committer name.")
    table.add_row("", "email", "str", '""', "Author and committer email.")
    table.add_row(
        "repository",
        "path",
        "str",
        "cache dir",
        "Repository location. Relative paths are anchored to the vault.",
    )
    table.add_row(
        "files",
        "ignore",
        "list | str",
        "[]",
        "Patterns for the repository's local exclude file.",
    )
    table.add_row(
        "commit",
        "timestamp_format",
        "str",
        '"%Y-%m-%d %H:%M:%S"',
        "strftime format embedded in commit messages.",
    )
    table.add_row(
        "", "message_prefix", "str", '"vault backup"', "Commit message prefix."
    )
    table.add_row("git", "binary", "str", '"git"', "Git executable name or path.")
    table.add_row(
        "",
        "inherit_env",
        "bool",
        "true",
        "Pass the process environment to git (PATH and HOME are always kept).",
    )
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)
    console.print(f"[dim]Global config file: {CONFIG_FILE}[/dim]")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Vault Backup CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Snapshot a directory into a detached git repository and push it.",
    )
    parser.add_argument(
        "--config", type=Path, help=f"Extra config file layered over {CONFIG_FILE}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log git invocations"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("now", help="Run one backup cycle")
    subparsers.add_parser("status", help="Show pending changes (read-only)")
    subparsers.add_parser("where", help="Print the backup repository path")
    config_parser = subparsers.add_parser("config", help="View configuration options")
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return
    if args.command == "config":
        if args.list:
            show_config_reference()
        else:
            state = ""
            if not CONFIG_FILE.exists():
                state = " [yellow](not created yet)[/yellow]"
            console.print(f"Config file: [cyan]{CONFIG_FILE}[/cyan]{state}")
        return

    try:
        config = Config.load(args.config)
    except VaultBackupError as e:
        _fail(str(e))
        return

    setup_logging(args.verbose, config.limits.max_log_size)

    if args.command == "now":
        run_now(config)
    elif args.command == "status":
        show_status(config)
    elif args.command == "where":
        show_where(config)


if __name__ == "__main__":
    main()
