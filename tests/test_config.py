"""Tests for the configuration management subsystem."""

import logging
import stat
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from vault_backup.config import Config, parse_patterns, parse_size, resolve_target
from vault_backup.errors import ConfigurationError


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path, mocker: MagicMock) -> Path:
    """Points the global config file at a path that does not exist yet."""
    path = tmp_path / "global" / "config.toml"
    mocker.patch("vault_backup.config.CONFIG_FILE", path)
    return path


@pytest.fixture
def fake_git(tmp_path: Path) -> Path:
    """Creates an executable named ``git`` in its own directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    git = bin_dir / "git"
    git.write_text("#!/bin/sh\nexit 0\n")
    git.chmod(git.stat().st_mode | stat.S_IEXEC)
    return git


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    vault = tmp_path / "Notes"
    vault.mkdir()
    return vault


def make_config(vault: Path, url: str = "git@example.com:me/notes.git") -> Config:
    conf = Config()
    conf.vault.path = str(vault)
    conf.remote.url = url
    return conf


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.remote.name == "origin"
    assert conf.remote.branch == "main"
    assert conf.remote.url == ""
    assert conf.commit.timestamp_format == "%Y-%m-%d %H:%M:%S"
    assert conf.commit.message_prefix == "vault backup"
    assert conf.git.binary == "git"
    assert conf.git.inherit_env is True
    assert conf.files.ignore == []
    assert conf.limits.max_log_size == 5 * 1024 * 1024


def test_config_load_merges_layers(tmp_path: Path, no_global_config: Path) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Explicit).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        no_global_config (Path): The patched global config location.
    """
    no_global_config.parent.mkdir()
    no_global_config.write_text(
        '[remote]\nurl = "git@example.com:me/notes.git"\nbranch = "backup"\n'
        '[identity]\nname = "Ada"\n'
        '[files]\nignore = ["*.tmp"]\n'
    )
    local = tmp_path / "notes.toml"
    local.write_text(
        '[remote]\nbranch = "snapshots"\n'
        '[identity]\nemail = "ada@example.com"\n'
        '[files]\nignore = ".trash/\\n*.tmp\\n"\n'
    )

    conf = Config.load(local)

    assert conf.remote.url == "git@example.com:me/notes.git"  # From global
    assert conf.remote.branch == "snapshots"  # Explicit overrides global
    assert conf.identity.name == "Ada"
    assert conf.identity.email == "ada@example.com"
    assert conf.files.ignore == ["*.tmp", ".trash/"]  # Appended, deduplicated


def test_config_load_missing_explicit_file(tmp_path: Path) -> None:
    """Verifies that a named config file must exist."""
    with pytest.raises(ConfigurationError, match="Config file not found"):
        Config.load(tmp_path / "missing.toml")


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a broken file is reported and skipped, leaving defaults."""
    broken = tmp_path / "broken.toml"
    broken.write_text("[remote\nurl = ")

    conf = Config.load(broken)

    assert conf.remote.url == ""
    assert "Config syntax error" in caplog.text


def test_config_warns_on_unknown_keys_and_bad_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that typos and invalid values are reported without aborting."""
    caplog.set_level(logging.WARNING, logger="vault-backup")
    path = tmp_path / "conf.toml"
    path.write_text(
        '[remote]\nurll = "x"\nbranch = 5\n'
        '[git]\ninherit_env = "no"\n'
        '[limits]\nmax_log_size = "lots"\n'
        "[scheduler]\ninterval = 10\n"
        "[load]\nx = 1\n"
    )

    conf = Config.load(path)

    assert conf.remote.branch == "main"
    assert conf.git.inherit_env is True
    assert conf.limits.max_log_size == 5 * 1024 * 1024
    assert "Unknown config keys in [remote]: urll" in caplog.text
    assert "Config error in [remote].branch" in caplog.text
    assert "Config error in [git].inherit_env" in caplog.text
    assert "Config error in [limits].max_log_size" in caplog.text
    assert "Unknown config section [scheduler]" in caplog.text
    assert "Unknown config section [load]" in caplog.text


@pytest.mark.parametrize(
    "value, expected",
    [
        (1024, 1024),
        ("10kb", 10 * 1024),
        ("1.5 MB", int(1.5 * 1024**2)),
        ("2g", 2 * 1024**3),
    ],
)
def test_parse_size(value: int | str, expected: int) -> None:
    """Verifies human-readable size parsing."""
    assert parse_size(value) == expected


def test_parse_size_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="Invalid size format"):
        parse_size("big")


def test_parse_patterns() -> None:
    """Verifies that lists and multi-line strings normalize the same way."""
    assert parse_patterns(["*.tmp", " ", " .trash/ "]) == ["*.tmp", ".trash/"]
    assert parse_patterns("*.tmp\n\n.trash/\n") == ["*.tmp", ".trash/"]
    with pytest.raises(ValueError):
        parse_patterns(3)  # type: ignore[arg-type]


def test_resolve_target_defaults(vault: Path, fake_git: Path, tmp_path: Path) -> None:
    """Verifies the default repository path, identity and environment."""
    environ = {
        "PATH": str(fake_git.parent),
        "HOME": str(tmp_path / "home"),
        "XDG_CACHE_HOME": str(tmp_path / "cache"),
        "EDITOR": "vim",
    }

    target = resolve_target(make_config(vault), environ=environ)

    assert target.handle.work_tree == vault.resolve()
    expected = tmp_path / "cache" / "vault-backup" / "Notes.git"
    assert target.handle.metadata_dir == expected
    assert target.remote.local_ref == "refs/heads/main"
    assert target.remote.tracking_ref == "refs/remotes/origin/main"
    assert target.git_binary == str(fake_git)
    assert target.base_env == environ


def test_resolve_target_minimal_env(vault: Path, fake_git: Path) -> None:
    """Verifies that disabling inheritance keeps only the essential variables."""
    conf = make_config(vault)
    conf.git.inherit_env = False
    conf.vault.identifier = "work-notes"
    environ = {"PATH": str(fake_git.parent), "HOME": "/home/ada", "EDITOR": "vim"}

    target = resolve_target(conf, environ=environ)

    assert target.base_env == {"PATH": str(fake_git.parent), "HOME": "/home/ada"}
    assert target.handle.metadata_dir.name == "work-notes.git"


def test_resolve_target_relative_override(vault: Path, fake_git: Path) -> None:
    """Verifies that a relative repository path is anchored to the vault."""
    conf = make_config(vault)
    conf.repository.path = ".backup/notes.git"

    target = resolve_target(conf, environ={"PATH": str(fake_git.parent)})

    assert target.handle.metadata_dir == vault.resolve() / ".backup" / "notes.git"
    assert target.handle.nested_exclude() == "/.backup/notes.git/"


def test_resolve_target_carries_commit_settings(vault: Path, fake_git: Path) -> None:
    conf = make_config(vault)
    conf.files.ignore = ["*.tmp"]
    conf.commit.message_prefix = "notes"
    conf.identity.name = "Ada"

    target = resolve_target(
        conf, environ={"PATH": str(fake_git.parent), "HOME": "/home/ada"}
    )

    assert target.ignore_patterns == ("*.tmp",)
    assert target.message_prefix == "notes"
    assert target.identity.author_name == "Ada"
    assert target.identity.author_email == ""


def test_resolve_target_without_remote(vault: Path, fake_git: Path) -> None:
    """Verifies that a remote URL is required for syncing but not for status."""
    conf = make_config(vault, url="")
    environ = {"PATH": str(fake_git.parent), "HOME": "/home/ada"}

    with pytest.raises(ConfigurationError, match="No remote configured"):
        resolve_target(conf, environ=environ)

    target = resolve_target(conf, require_remote=False, environ=environ)
    assert target.remote.url == ""


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda c: setattr(c.vault, "path", ""), "No vault configured"),
        (lambda c: setattr(c.vault, "path", "/no/such/vault"), "does not exist"),
        (lambda c: setattr(c.remote, "branch", ""), "must not be empty"),
        (lambda c: setattr(c.git, "binary", "no-such-git"), "Git executable not found"),
    ],
)
def test_resolve_target_errors(
    vault: Path, fake_git: Path, mutate, message: str
) -> None:
    """Verifies that invalid configuration is rejected before any git call."""
    conf = make_config(vault)
    mutate(conf)

    with pytest.raises(ConfigurationError, match=message):
        resolve_target(
            conf, environ={"PATH": str(fake_git.parent), "HOME": "/home/ada"}
        )
