import logging
import os
import re
import shutil
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, is_dataclass, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_MESSAGE_PREFIX,
    DEFAULT_REMOTE,
    DEFAULT_TIMESTAMP_FORMAT,
)
from .errors import ConfigurationError
from .git_wrapper import Identity, RemoteTarget, RepositoryHandle
from .system import resolve_repo_dir

logger = logging.getLogger(APP_NAME)

MINIMAL_ENV_KEYS = ("PATH", "HOME", "USERPROFILE", "SYSTEMROOT", "SSH_AUTH_SOCK")
"""Variables still passed to git when ``git.inherit_env`` is disabled."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_patterns(value: list[str] | str) -> list[str]:
    """Normalizes ignore patterns given as a list or a newline-separated string."""
    if isinstance(value, str):
        items = value.splitlines()
    elif isinstance(value, list):
        items = value
    else:
        raise ValueError(f"Invalid pattern list '{value}'")
    return [str(p).strip() for p in items if str(p).strip()]


@dataclass
class VaultConfig:
    """The directory being backed up.

    Attributes:
        path (str): The vault (work tree) directory.
        identifier (str): Name of the default repository directory.
                          Defaults to the vault directory's name.
    """

    path: str = ""
    identifier: str = ""


@dataclass
class RemoteConfig:
    """Where backups are pushed.

    Attributes:
        url (str): The remote URL. Required for a sync cycle.
        name (str): The remote name recorded in the repository.
        branch (str): The single branch that is tracked.
    """

    url: str = ""
    name: str = DEFAULT_REMOTE
    branch: str = DEFAULT_BRANCH


@dataclass
class IdentityConfig:
    """Author and committer of backup commits."""

    name: str = ""
    email: str = ""


@dataclass
class RepositoryConfig:
    """Repository location.

    Attributes:
        path (str): Overrides the cache-directory default. Relative paths are
                    anchored to the vault.
    """

    path: str = ""


@dataclass
class FilesConfig:
    """File selection settings.

    Attributes:
        ignore (list[str]): Patterns written to the repository's local exclude file.
    """

    ignore: list[str] = field(default_factory=list)


@dataclass
class CommitConfig:
    """Commit message settings.

    Attributes:
        timestamp_format (str): ``strftime`` format embedded in the message.
        message_prefix (str): Text preceding the timestamp.
    """

    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    message_prefix: str = DEFAULT_MESSAGE_PREFIX


@dataclass
class GitConfig:
    """Git executable settings.

    Attributes:
        binary (str): Name or path of the git executable.
        inherit_env (bool): Pass the process environment through to git.
                            When false only a minimal set of variables is kept.
    """

    binary: str = "git"
    inherit_env: bool = True


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator."""

    vault: VaultConfig = field(default_factory=VaultConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    git: GitConfig = field(default_factory=GitConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and explicit sources.

        Args:
            path (Path | None): An additional config file layered over the global one.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        if CONFIG_FILE.exists():
            instance._merge_from_file(CONFIG_FILE)
        if path is not None:
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            instance._merge_from_file(path)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return

        for section, updates in data.items():
            current = getattr(self, section, None)
            if not is_dataclass(current) or not isinstance(updates, dict):
                logger.warning(f"Unknown config section [{section}] in {path}.")
                continue

            if section == "files" and "ignore" in updates:
                # Extend rather than replace so layered files accumulate patterns.
                updates = dict(updates)
                try:
                    new_ignores = parse_patterns(updates.pop("ignore"))
                except ValueError as e:
                    logger.warning(f"Config error in [files].ignore: {e}. Ignoring.")
                    new_ignores = []
                current = self._update_dataclass(section, current, updates)
                current.ignore = list(dict.fromkeys([*current.ignore, *new_ignores]))
                setattr(self, section, current)
                continue

            setattr(self, section, self._update_dataclass(section, current, updates))

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "inherit_env":
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected true or false, got '{v}'")
                    filtered_updates[k] = v
                elif not isinstance(v, str):
                    raise ValueError(f"Expected a string, got '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


@dataclass(frozen=True)
class SyncTarget:
    """Everything one sync cycle needs, resolved and validated up front.

    Attributes:
        handle (RepositoryHandle): Repository and vault locations.
        remote (RemoteTarget): Remote name, URL and branch. The URL is empty
                               for status-only targets.
        identity (Identity): Commit author and committer.
        ignore_patterns (tuple[str, ...]): Local exclude patterns.
        timestamp_format (str): ``strftime`` format for the commit message.
        message_prefix (str): Commit message text before the timestamp.
        git_binary (str): Resolved path of the git executable.
        base_env (dict[str, str]): Environment explicitly passed through to git.
    """

    handle: RepositoryHandle
    remote: RemoteTarget
    identity: Identity
    ignore_patterns: tuple[str, ...] = ()
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    message_prefix: str = DEFAULT_MESSAGE_PREFIX
    git_binary: str = "git"
    base_env: Mapping[str, str] = field(default_factory=dict)


def resolve_target(
    config: Config,
    require_remote: bool = True,
    environ: Mapping[str, str] | None = None,
) -> SyncTarget:
    """Validates the configuration and freezes it for one cycle.

    Args:
        config (Config): The loaded configuration.
        require_remote (bool): Whether a remote URL is mandatory. Read-only
                               status checks pass False.
        environ (Mapping[str, str] | None): Process environment. Defaults to
                                            ``os.environ``.

    Returns:
        SyncTarget: The immutable cycle inputs.

    Raises:
        ConfigurationError: If the vault path or remote URL is unset, the vault
                            does not exist, or git cannot be found.
    """
    environ = os.environ if environ is None else environ

    if not config.vault.path:
        raise ConfigurationError("No vault configured: set [vault] path")
    work_tree = Path(config.vault.path).expanduser()
    if not work_tree.is_dir():
        raise ConfigurationError(f"Vault directory does not exist: {work_tree}")
    work_tree = work_tree.resolve()

    if require_remote and not config.remote.url:
        raise ConfigurationError("No remote configured: set [remote] url")
    if not config.remote.name or not config.remote.branch:
        raise ConfigurationError("Remote name and branch must not be empty")

    override: Path | None = None
    if config.repository.path:
        override = Path(config.repository.path).expanduser()
        if not override.is_absolute():
            override = work_tree / override

    identifier = config.vault.identifier or work_tree.name
    metadata_dir = resolve_repo_dir(identifier, override, environ=environ)

    git_binary = shutil.which(config.git.binary, path=environ.get("PATH"))
    if not git_binary:
        raise ConfigurationError(f"Git executable not found: {config.git.binary}")

    if config.git.inherit_env:
        base_env = dict(environ)
    else:
        base_env = {k: environ[k] for k in MINIMAL_ENV_KEYS if k in environ}

    return SyncTarget(
        handle=RepositoryHandle(metadata_dir=metadata_dir, work_tree=work_tree),
        remote=RemoteTarget(
            name=config.remote.name,
            url=config.remote.url,
            branch=config.remote.branch,
        ),
        identity=Identity(config.identity.name, config.identity.email),
        ignore_patterns=tuple(config.files.ignore),
        timestamp_format=config.commit.timestamp_format,
        message_prefix=config.commit.message_prefix,
        git_binary=git_binary,
        base_env=base_env,
    )
