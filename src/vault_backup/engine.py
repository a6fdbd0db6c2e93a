"""The synchronization engine.

One sync cycle snapshots the vault into its detached repository and publishes
it: ensure the repository exists (clone or verify-and-fetch), stage the vault
into a scratch index, commit only if something changed, then push. Cycles on
the same repository never overlap.
"""

import asyncio
import datetime
import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from .config import SyncTarget
from .constants import (
    APP_NAME,
    EMPTY_TREES,
    OID_LENGTHS,
    SCRATCH_INDEX,
    SCRATCH_MESSAGE,
    STATUS_INDEX,
)
from .errors import CleanupError, ConfigurationError, InternalConsistencyError
from .git_wrapper import DetachedRepo, RemoteTarget, RepositoryHandle
from .numstat import ChangeSet, parse_numstat

logger = logging.getLogger(APP_NAME)

OID_PATTERN = re.compile("|".join(f"[0-9a-f]{{{n}}}" for n in OID_LENGTHS))


@dataclass(frozen=True)
class NoChanges:
    """The vault matched the last backup; nothing was committed or pushed."""


@dataclass(frozen=True)
class Pushed:
    """A commit was published.

    Attributes:
        commit_id (str): Full id of the pushed commit.
        change_set (ChangeSet): What the commit changed relative to the remote.
    """

    commit_id: str
    change_set: ChangeSet


SyncResult = NoChanges | Pushed


@dataclass
class Scratch:
    """Transient files owned by a single cycle."""

    index: Path
    message: Path | None = None

    def remove(self) -> list[OSError]:
        """Deletes the scratch files, returning failures other than 'not found'."""
        errors = []
        for path in (self.index, self.message):
            if path is None:
                continue
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                errors.append(e)
        return errors


@contextmanager
def temporary_index(
    metadata_dir: Path, index_name: str, message_name: str | None = None
) -> Iterator[Scratch]:
    """Context manager for an isolated index (and optional message buffer).

    The files are removed on exit whether or not the body succeeded. A removal
    failure never masks an error raised by the body; it is logged instead. If
    the body succeeded, the failure is raised as ``CleanupError``.

    Args:
        metadata_dir (Path): The repository directory that holds the files.
        index_name (str): File name of the scratch index.
        message_name (str | None): File name of the commit message buffer.

    Yields:
        Scratch: The paths of the scratch files.
    """
    scratch = Scratch(
        index=metadata_dir / index_name,
        message=metadata_dir / message_name if message_name else None,
    )
    try:
        yield scratch
    except BaseException:
        for e in scratch.remove():
            logger.error(f"CLEANUP ERROR {metadata_dir.name}: {e}")
        raise

    if errors := scratch.remove():
        raise CleanupError(
            "Could not remove scratch files: "
            + "; ".join(str(e) for e in errors)
        )


@dataclass
class _RepoGuard:
    """Per-repository mutual exclusion state."""

    index_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    syncing: bool = False
    refreshing: bool = False


class SyncEngine:
    """Runs sync cycles and read-only status checks.

    One engine can serve many repositories. Work on the same repository is
    serialized: a sync requested while another is running is skipped, and a
    status refresh is skipped while a sync or another refresh is in flight.
    Different repositories proceed independently.

    Attributes:
        clock (Callable[[], datetime.datetime]): Source of commit timestamps.
    """

    def __init__(
        self, clock: Callable[[], datetime.datetime] = datetime.datetime.now
    ):
        self.clock = clock
        self._guards: dict[Path, _RepoGuard] = {}

    def _guard(self, handle: RepositoryHandle) -> _RepoGuard:
        key = handle.metadata_dir.resolve()
        if key not in self._guards:
            self._guards[key] = _RepoGuard()
        return self._guards[key]

    def is_syncing(self, handle: RepositoryHandle) -> bool:
        """Whether a sync cycle is currently running for ``handle``."""
        return self._guard(handle).syncing

    async def sync(self, target: SyncTarget) -> SyncResult | None:
        """Runs one full cycle: ensure, stage, decide, commit, push.

        Args:
            target (SyncTarget): The resolved cycle inputs.

        Returns:
            SyncResult | None: The outcome, or None if a cycle for the same
            repository was already running and this request was skipped.

        Raises:
            ConfigurationError: Missing remote URL or a recorded URL mismatch.
            ToolExecutionError: Any failing git invocation.
            InternalConsistencyError: Malformed git output.
            CleanupError: Scratch files survived an otherwise complete cycle.
        """
        guard = self._guard(target.handle)
        if guard.syncing:
            logger.info(
                f"SKIPPED {target.handle.work_tree.name}: backup already in progress"
            )
            return None

        guard.syncing = True
        try:
            async with guard.index_lock:
                return await self._run_cycle(target)
        finally:
            guard.syncing = False

    async def status(self, target: SyncTarget) -> ChangeSet | None:
        """Counts pending changes without touching repository state.

        Args:
            target (SyncTarget): The resolved inputs. The remote URL may be empty.

        Returns:
            ChangeSet | None: Changes between the vault and the last backup, or
            None if no repository exists yet or the repository is busy.
        """
        guard = self._guard(target.handle)
        if guard.refreshing or guard.syncing or guard.index_lock.locked():
            return None

        repo = DetachedRepo(target.handle, target.git_binary, target.base_env)
        if not repo.exists():
            return None

        guard.refreshing = True
        try:
            async with guard.index_lock:
                with temporary_index(target.handle.metadata_dir, STATUS_INDEX) as s:
                    tip = await repo.rev_parse(target.remote.local_ref)
                    await repo.read_tree(s.index, tip)
                    await repo.add_intent(s.index)
                    output = await repo.diff_worktree_numstat(s.index)
            return parse_numstat(output)
        finally:
            guard.refreshing = False

    async def _run_cycle(self, target: SyncTarget) -> SyncResult:
        if not target.remote.url:
            raise ConfigurationError("No remote configured: set [remote] url")

        name = target.handle.work_tree.name
        logger.info(f"SYNC {name}: starting cycle")

        repo = DetachedRepo(target.handle, target.git_binary, target.base_env)
        remote_tip = await self._ensure_repository(repo, target.remote)

        result: SyncResult | None = None
        try:
            with temporary_index(
                target.handle.metadata_dir, SCRATCH_INDEX, SCRATCH_MESSAGE
            ) as scratch:
                result = await self._stage_and_publish(
                    repo, target, scratch, remote_tip
                )
        except CleanupError as e:
            e.result = result
            raise
        return result

    async def _ensure_repository(
        self, repo: DetachedRepo, remote: RemoteTarget
    ) -> str | None:
        """Clones or verifies the repository and brings it up to date.

        Returns:
            str | None: The remote branch tip as last seen, or None if the
            remote does not have the branch.
        """
        metadata_dir = repo.handle.metadata_dir

        if not repo.exists():
            logger.info(f"CLONE {remote.url} -> {metadata_dir}")
            await repo.clone_bare(remote.url, remote.name)
            await repo.set_head(remote.local_ref)
            tip = await repo.rev_parse(remote.local_ref)
            if tip:
                await repo.update_ref(remote.tracking_ref, tip)
            return tip

        # Never repoint an existing repository at another remote.
        recorded = await repo.remote_url(remote.name)
        if recorded is None:
            raise ConfigurationError(
                f"Repository {metadata_dir} has no remote named '{remote.name}'"
            )
        if recorded != remote.url:
            raise ConfigurationError(
                f"Remote URL mismatch for {metadata_dir}: repository has "
                f"'{recorded}', configuration has '{remote.url}'"
            )

        if not await repo.remote_has_branch(remote.name, remote.branch):
            # Nothing published yet; any local commits are pushed by this cycle.
            logger.info(f"EMPTY REMOTE {remote.name}: no branch '{remote.branch}' yet")
            return None

        await repo.fetch(remote.name, remote.branch, remote.tracking_ref)
        remote_tip = await repo.rev_parse(remote.tracking_ref)
        local_tip = await repo.rev_parse(remote.local_ref)

        if remote_tip and remote_tip != local_tip:
            if local_tip is None or await repo.is_ancestor(local_tip, remote_tip):
                await repo.update_ref(remote.local_ref, remote_tip, local_tip)
                logger.info(f"FAST-FORWARD {remote.branch} -> {remote_tip[:8]}")
            elif not await repo.is_ancestor(remote_tip, local_tip):
                logger.warning(
                    f"DIVERGED {remote.branch}: remote has commits that are not "
                    "in the backup; push will be rejected."
                )

        return remote_tip

    async def _stage_and_publish(
        self,
        repo: DetachedRepo,
        target: SyncTarget,
        scratch: Scratch,
        remote_tip: str | None,
    ) -> SyncResult:
        remote = target.remote
        name = target.handle.work_tree.name

        # 1. Stage the vault into the scratch index.
        repo.write_exclude(list(target.ignore_patterns))
        tip = await repo.rev_parse(remote.local_ref)
        await repo.read_tree(scratch.index, tip)
        base = tip or await repo.write_tree(scratch.index)
        await repo.add_all(scratch.index)
        change_set = parse_numstat(
            await repo.diff_cached_numstat(scratch.index, base)
        )

        # 2. Decide.
        if change_set.is_empty:
            if tip and tip != remote_tip:
                # A previous cycle committed but failed to push.
                old = remote_tip or EMPTY_TREES[len(tip)]
                pending = parse_numstat(await repo.diff_numstat(old, tip))
                logger.info(f"RETRY {name}: pushing unpublished {tip[:8]}")
                await repo.push(remote.name, remote.local_ref)
                logger.info(f"SUCCESS {name}: Pushed.")
                return Pushed(tip, pending)

            logger.info(f"NO CHANGES {name}")
            return NoChanges()

        # 3. Commit.
        timestamp = self.clock().strftime(target.timestamp_format)
        scratch.message.write_text(f"{target.message_prefix}: {timestamp}\n")

        tree = await repo.write_tree(scratch.index)
        commit_id = await repo.commit_tree(
            tree, [tip] if tip else [], scratch.message, target.identity
        )
        if not OID_PATTERN.fullmatch(commit_id):
            raise InternalConsistencyError(
                f"Unexpected commit id from git: {commit_id!r}"
            )
        await repo.update_ref(remote.local_ref, commit_id, tip)
        logger.info(
            f"COMMITTED {name}: {commit_id[:8]} "
            f"({change_set.files_changed} files, +{change_set.insertions} "
            f"-{change_set.deletions})"
        )

        # 4. Push.
        await repo.push(remote.name, remote.local_ref)
        logger.info(f"SUCCESS {name}: Pushed.")
        return Pushed(commit_id, change_set)
