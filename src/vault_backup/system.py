import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

from .constants import APP_NAME
from .errors import ConfigurationError

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining where a platform keeps per-user cache data.

    The default implementation follows the XDG convention used by Linux and
    most other POSIX systems.
    """

    home_var = "HOME"

    def home(self, environ: Mapping[str, str]) -> Path:
        """Returns the user's home or profile directory.

        Args:
            environ (Mapping[str, str]): The environment to read from.

        Raises:
            ConfigurationError: If the variable is unset or empty.
        """
        value = environ.get(self.home_var)
        if not value:
            raise ConfigurationError(
                f"Cannot determine home directory: ${self.home_var} is not set"
            )
        return Path(value)

    def cache_root(self, environ: Mapping[str, str]) -> Path:
        """Returns the application cache directory.

        Uses ``$XDG_CACHE_HOME`` when set, otherwise ``~/.cache``.
        """
        xdg = environ.get("XDG_CACHE_HOME")
        base = Path(xdg) if xdg else self.home(environ) / ".cache"
        return base / APP_NAME


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def cache_root(self, environ: Mapping[str, str]) -> Path:
        """Returns ``~/Library/Caches/<app>``."""
        return self.home(environ) / "Library" / "Caches" / APP_NAME


class WindowsStrategy(SystemStrategy):
    """System strategy implementation for Windows."""

    home_var = "USERPROFILE"

    def cache_root(self, environ: Mapping[str, str]) -> Path:
        """Returns ``%LOCALAPPDATA%\\<app>\\Cache``."""
        local = environ.get("LOCALAPPDATA")
        base = Path(local) if local else self.home(environ) / "AppData" / "Local"
        return base / APP_NAME / "Cache"


def get_system(platform: str | None = None) -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Args:
        platform (str | None): A ``sys.platform`` value. Defaults to the
                               running interpreter's platform.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, WindowsStrategy, or the
        base SystemStrategy depending on the operating system.
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return MacOSStrategy()
    elif platform.startswith("win"):
        return WindowsStrategy()
    else:
        return SystemStrategy()


def resolve_repo_dir(
    identifier: str,
    override: str | Path | None = None,
    platform: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Computes the location of the detached repository directory.

    The location is independent of the vault path, so the vault never has to
    be a git checkout.

    Args:
        identifier (str): A stable name for the vault (e.g. its directory name).
        override (str | Path | None): A user-configured path. When non-empty it
                                      is returned verbatim.
        platform (str | None): A ``sys.platform`` value. Defaults to the
                               current platform.
        environ (Mapping[str, str] | None): Environment to read cache and
                                            home variables from. Defaults to
                                            ``os.environ``.

    Returns:
        Path: The repository directory, e.g. ``~/.cache/vault-backup/notes.git``.

    Raises:
        ConfigurationError: If no override is given and the identifier is empty
                            or the home directory cannot be determined.
    """
    if override:
        return Path(override)

    if not identifier:
        raise ConfigurationError("Cannot derive repository path: empty identifier")

    environ = os.environ if environ is None else environ
    root = get_system(platform).cache_root(environ)
    return root / f"{identifier}.git"
