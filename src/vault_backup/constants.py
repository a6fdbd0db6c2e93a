import os
from pathlib import Path

"""Global constants and configuration path definitions for Vault Backup.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and default Git values used across the application.
"""

# --- Identity ---
APP_NAME = "vault-backup"
"""str: The human-readable application name, also used as the cache directory name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / APP_NAME
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / f"{APP_NAME}.log"
"""Path: The file path for the rotating log."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
CONFIG_DIR: Path = (
    Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"
) / APP_NAME
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Git / Logic Constants ---
DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"
DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MESSAGE_PREFIX = "vault backup"

SCRATCH_INDEX = "vault_backup_index"
"""str: Transient index used by a sync cycle, created inside the metadata dir."""

STATUS_INDEX = "vault_backup_status_index"
"""str: Transient index used by read-only status checks."""

SCRATCH_MESSAGE = "VAULT_BACKUP_MSG"
"""str: Transient commit message buffer, created inside the metadata dir."""

OID_LENGTHS = (40, 64)
"""tuple[int, ...]: Valid full object id lengths (SHA-1 and SHA-256 repositories)."""

GIT_LOCATION_VARS = [
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_COMMON_DIR",
    "GIT_NAMESPACE",
    "GIT_PREFIX",
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_AUTHOR_DATE",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
    "GIT_COMMITTER_DATE",
]
"""
list[str]: Variables that redirect git to another repository or identity.
They are never taken from the ambient environment.
"""

NETWORK_ENV_DEFAULTS = {
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
    "GIT_TERMINAL_PROMPT": "0",
}
"""dict[str, str]: Applied to fetch/clone/push unless the base env sets them."""

EMPTY_TREES = {
    40: "4b825dc642cb6eb9a060e54bf8d69288fbee4904",
    64: "6ef19b41225c5369f1c104d45d8d85efa9b057b53b14b4b9b939dd74decc5321",
}
"""dict[int, str]: The empty tree id keyed by object id length."""
