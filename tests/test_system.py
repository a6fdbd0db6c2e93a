"""Tests for repository location and platform strategies."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from vault_backup import system
from vault_backup.errors import ConfigurationError


def test_resolve_repo_dir_override_returned_verbatim() -> None:
    """Verifies that a configured path wins over the cache default unchanged."""
    result = system.resolve_repo_dir(
        "notes", "relative/backup.git", platform="linux", environ={}
    )

    assert result == Path("relative/backup.git")


def test_resolve_repo_dir_linux_home_cache() -> None:
    """Verifies the ~/.cache default on Linux without XDG_CACHE_HOME."""
    result = system.resolve_repo_dir(
        "notes", platform="linux", environ={"HOME": "/home/ada"}
    )

    assert result == Path("/home/ada/.cache/vault-backup/notes.git")


def test_resolve_repo_dir_linux_xdg_cache() -> None:
    """Verifies that XDG_CACHE_HOME takes precedence on Linux."""
    result = system.resolve_repo_dir(
        "notes",
        platform="linux",
        environ={"HOME": "/home/ada", "XDG_CACHE_HOME": "/var/cache/ada"},
    )

    assert result == Path("/var/cache/ada/vault-backup/notes.git")


def test_resolve_repo_dir_linux_xdg_without_home() -> None:
    """Verifies that XDG_CACHE_HOME alone is enough to locate the cache."""
    result = system.resolve_repo_dir(
        "notes", platform="linux", environ={"XDG_CACHE_HOME": "/cache"}
    )

    assert result == Path("/cache/vault-backup/notes.git")


def test_resolve_repo_dir_macos() -> None:
    """Verifies the ~/Library/Caches default on macOS."""
    result = system.resolve_repo_dir(
        "notes",
        platform="darwin",
        environ={"HOME": "/Users/ada", "XDG_CACHE_HOME": "/ignored"},
    )

    assert result == Path("/Users/ada/Library/Caches/vault-backup/notes.git")


def test_resolve_repo_dir_windows() -> None:
    """Verifies the %LOCALAPPDATA% default on Windows, with profile fallback."""
    local = system.resolve_repo_dir(
        "notes", platform="win32", environ={"LOCALAPPDATA": "/appdata/local"}
    )
    profile = system.resolve_repo_dir(
        "notes", platform="win32", environ={"USERPROFILE": "/users/ada"}
    )

    assert local == Path("/appdata/local/vault-backup/Cache/notes.git")
    assert profile == Path("/users/ada/AppData/Local/vault-backup/Cache/notes.git")


@pytest.mark.parametrize("platform", ["linux", "darwin", "win32"])
def test_resolve_repo_dir_without_home_fails(platform: str) -> None:
    """Verifies that an undeterminable home directory is a configuration error."""
    with pytest.raises(ConfigurationError, match="Cannot determine home directory"):
        system.resolve_repo_dir("notes", platform=platform, environ={})


def test_resolve_repo_dir_empty_identifier_fails() -> None:
    """Verifies that the default path needs an identifier."""
    with pytest.raises(ConfigurationError, match="empty identifier"):
        system.resolve_repo_dir("", platform="linux", environ={"HOME": "/home/ada"})


def test_get_system_dispatch(mocker: MagicMock) -> None:
    """Verifies the platform factory, including the interpreter default.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    assert isinstance(system.get_system("darwin"), system.MacOSStrategy)
    assert isinstance(system.get_system("win32"), system.WindowsStrategy)
    assert type(system.get_system("freebsd13")) is system.SystemStrategy

    mocker.patch("sys.platform", "darwin")
    assert isinstance(system.get_system(), system.MacOSStrategy)
