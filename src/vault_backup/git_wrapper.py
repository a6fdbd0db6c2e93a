import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, GIT_LOCATION_VARS, NETWORK_ENV_DEFAULTS
from .errors import ToolExecutionError
from .runner import run_tool

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class RepositoryHandle:
    """Identifies a detached repository.

    Attributes:
        metadata_dir (Path): The git database (a bare repository).
        work_tree (Path): The live content directory being snapshotted.
    """

    metadata_dir: Path
    work_tree: Path

    def nested_exclude(self) -> str | None:
        """Exclude pattern for ``metadata_dir`` when it sits inside the vault."""
        try:
            rel = self.metadata_dir.resolve().relative_to(self.work_tree.resolve())
        except ValueError:
            return None
        return f"/{rel.as_posix()}/"


@dataclass(frozen=True)
class RemoteTarget:
    """The remote and branch a repository publishes to."""

    name: str
    url: str
    branch: str

    @property
    def local_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def tracking_ref(self) -> str:
        return f"refs/remotes/{self.name}/{self.branch}"


@dataclass(frozen=True)
class Identity:
    """Author and committer identity for generated commits. May be empty."""

    author_name: str = ""
    author_email: str = ""

    def as_env(self) -> dict[str, str]:
        return {
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_COMMITTER_NAME": self.author_name,
            "GIT_COMMITTER_EMAIL": self.author_email,
        }


class DetachedRepo:
    """A wrapper around the Git command-line interface for a detached repository.

    The git database lives in ``handle.metadata_dir`` and the files being backed
    up live in ``handle.work_tree``. Every command receives an explicit
    environment built from ``base_env`` with all repository-locating variables
    replaced, so the ambient environment of the host can never redirect git to
    another repository.

    Attributes:
        handle (RepositoryHandle): The repository being operated on.
        git_binary (str): Path to the git executable.
        base_env (dict[str, str]): Environment the caller chose to pass through.
    """

    def __init__(
        self,
        handle: RepositoryHandle,
        git_binary: str = "git",
        base_env: Mapping[str, str] | None = None,
    ):
        self.handle = handle
        self.git_binary = git_binary
        self.base_env = dict(base_env or {})

    def exists(self) -> bool:
        """Whether the metadata directory is already present on disk."""
        return self.handle.metadata_dir.exists()

    def _env(
        self,
        *,
        git_dir: bool = True,
        work_tree: bool = False,
        index: Path | None = None,
        identity: Identity | None = None,
        network: bool = False,
    ) -> dict[str, str]:
        env = {k: v for k, v in self.base_env.items() if k not in GIT_LOCATION_VARS}
        if git_dir:
            env["GIT_DIR"] = str(self.handle.metadata_dir)
        if work_tree:
            env["GIT_WORK_TREE"] = str(self.handle.work_tree)
        if index is not None:
            env["GIT_INDEX_FILE"] = str(index)
        if identity is not None:
            env.update(identity.as_env())
        if network:
            for key, value in NETWORK_ENV_DEFAULTS.items():
                env.setdefault(key, value)
        return env

    async def _run(
        self, args: list[str], env: dict[str, str], cwd: Path | None = None
    ) -> str:
        """Executes a git command and returns its stripped stdout.

        Raises:
            ToolExecutionError: If the git command returns a non-zero exit code.
        """
        result = await run_tool(self.git_binary, args, env, cwd=cwd)
        return result.stdout.strip()

    # --- Repository lifecycle ---

    async def clone_bare(self, url: str, remote: str = "origin") -> None:
        """Creates the metadata directory as a bare clone of ``url``.

        The vault is not touched. Git always records the clone source as
        ``origin``; any other ``remote`` name is applied by renaming that
        config section afterwards.
        """
        self.handle.metadata_dir.parent.mkdir(parents=True, exist_ok=True)
        await self._run(
            ["clone", "--bare", "--quiet", url, str(self.handle.metadata_dir)],
            self._env(git_dir=False, network=True),
        )
        if remote != "origin":
            await self._run(
                ["config", "--rename-section", "remote.origin", f"remote.{remote}"],
                self._env(),
            )

    async def set_head(self, ref: str) -> None:
        """Points HEAD at ``ref`` (which may not exist yet)."""
        await self._run(["symbolic-ref", "HEAD", ref], self._env())

    async def remote_url(self, remote: str) -> str | None:
        """Returns the URL recorded for ``remote``, or None if there is none."""
        try:
            return await self._run(
                ["config", "--get", f"remote.{remote}.url"], self._env()
            )
        except ToolExecutionError as e:
            if e.exit_code == 1:
                return None
            raise

    async def remote_has_branch(self, remote: str, branch: str) -> bool:
        """Whether ``remote`` currently has ``refs/heads/<branch>``.

        An empty remote, or one whose branch has never been pushed, reads as
        False. Other failures (unreachable host, bad credentials) propagate.
        """
        try:
            await self._run(
                ["ls-remote", "--exit-code", remote, f"refs/heads/{branch}"],
                self._env(network=True),
            )
            return True
        except ToolExecutionError as e:
            if e.exit_code == 2:
                return False
            raise

    async def fetch(self, remote: str, branch: str, tracking_ref: str) -> None:
        """Fetches ``branch`` from ``remote`` into ``tracking_ref``.

        Only the tracking ref is moved; local branches are never rewritten here.
        """
        await self._run(
            ["fetch", "--quiet", remote, f"+refs/heads/{branch}:{tracking_ref}"],
            self._env(network=True),
        )

    async def push(self, remote: str, ref: str) -> None:
        """Pushes ``ref`` to the same name on ``remote``. Never forces."""
        await self._run(
            ["push", "--quiet", remote, f"{ref}:{ref}"], self._env(network=True)
        )

    # --- Refs ---

    async def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full commit id.

        Returns:
            str | None: The commit id, or None if the revision does not exist.
        """
        try:
            oid = await self._run(
                ["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], self._env()
            )
            return oid or None
        except ToolExecutionError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is reachable from ``descendant``."""
        try:
            await self._run(
                ["merge-base", "--is-ancestor", ancestor, descendant], self._env()
            )
            return True
        except ToolExecutionError as e:
            if e.exit_code == 1:
                return False
            raise

    async def update_ref(
        self, ref: str, new_oid: str, old_oid: str | None = None
    ) -> None:
        """Safely updates a reference to a new object id.

        Args:
            ref (str): The reference to update (e.g., 'refs/heads/main').
            new_oid (str): The new commit id.
            old_oid (str | None, optional): The expected current value. If given,
                                            the update fails when the ref has moved.
        """
        cmd = ["update-ref", "-m", "vault backup", ref, new_oid]
        if old_oid:
            cmd.append(old_oid)
        await self._run(cmd, self._env())

    # --- Index and tree ---

    def write_exclude(self, patterns: list[str]) -> Path:
        """Replaces the repository-local exclude file with ``patterns``.

        The file lives inside the metadata directory, so the vault never gains
        an ignore file of its own.
        """
        exclude = self.handle.metadata_dir / "info" / "exclude"
        exclude.parent.mkdir(parents=True, exist_ok=True)
        lines = [p for p in patterns if p.strip()]
        nested = self.handle.nested_exclude()
        if nested and nested not in lines:
            lines.append(nested)
        exclude.write_text("".join(f"{line}\n" for line in lines))
        return exclude

    async def read_tree(self, index: Path, tip: str | None) -> None:
        """Loads ``tip``'s tree into ``index`` without touching any files."""
        args = ["read-tree", tip] if tip else ["read-tree", "--empty"]
        await self._run(args, self._env(index=index))

    async def add_all(self, index: Path) -> None:
        """Stages every change in the vault (respecting excludes) into ``index``."""
        await self._run(
            ["add", "--all", "--", "."],
            self._env(work_tree=True, index=index),
            cwd=self.handle.work_tree,
        )

    async def add_intent(self, index: Path) -> None:
        """Records untracked vault files in ``index`` without storing their content."""
        await self._run(
            ["add", "--intent-to-add", "--", "."],
            self._env(work_tree=True, index=index),
            cwd=self.handle.work_tree,
        )

    async def write_tree(self, index: Path) -> str:
        """Creates a tree object from ``index`` and returns its id."""
        return await self._run(["write-tree"], self._env(index=index))

    async def commit_tree(
        self,
        tree: str,
        parents: list[str],
        message_file: Path,
        identity: Identity,
    ) -> str:
        """Creates a commit object from a tree object.

        Args:
            tree (str): The tree id to commit.
            parents (list[str]): Parent commit ids.
            message_file (Path): File holding the commit message.
            identity (Identity): Author and committer.

        Returns:
            str: The id of the new commit.
        """
        cmd = ["commit-tree", tree, "-F", str(message_file)]
        for p in parents:
            cmd.extend(["-p", p])
        return await self._run(cmd, self._env(identity=identity))

    # --- Diffs ---

    async def diff_cached_numstat(self, index: Path, base: str) -> str:
        """Numstat of ``index`` against ``base`` (a commit or tree), with renames."""
        return await self._run(
            ["diff", "--cached", "--numstat", "-M", base, "--"],
            self._env(work_tree=True, index=index),
            cwd=self.handle.work_tree,
        )

    async def diff_worktree_numstat(self, index: Path) -> str:
        """Numstat of the vault against ``index``."""
        return await self._run(
            ["diff", "--numstat", "--"],
            self._env(work_tree=True, index=index),
            cwd=self.handle.work_tree,
        )

    async def diff_numstat(self, old: str, new: str) -> str:
        """Numstat between two commits, with renames."""
        return await self._run(["diff", "--numstat", "-M", old, new, "--"], self._env())
