"""Path constants and directory utilities for brouillon config.

Follows the XDG Base Directory specification:
- Config: ~/.config/brouillon/config.toml
"""

from pathlib import Path


# XDG-compliant config directory
CONFIG_DIR = Path.home() / ".config" / "brouillon"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def ensure_config_dir() -> Path:
    """Create config directory if it doesn't exist.

    Returns the config directory path.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def pretty_path(path: str) -> str:
    """Abbreviate the home directory in a path to "~".

    Used for mailbox paths shown on the compose screen (e.g. the Fcc field).
    """
    home = str(Path.home())
    if path == home:
        return "~"
    if path.startswith(home + "/"):
        return "~" + path[len(home):]
    return path


def expand_path(path: str) -> Path:
    """Expand "~" in a user-supplied path."""
    return Path(path).expanduser()
