"""brouillon configuration.

Options live in ~/.config/brouillon/config.toml under a [compose] table.
ComposeOptions is what the compose screen reads them through.

Usage:
    from brouillon.config import load_config, ComposeOptions

    options = ComposeOptions()
    if options.get_bool("autocrypt"):
        ...
"""

import tomllib

import tomli_w

from .options import DEFAULTS, ComposeOptions, QuadOption, query_quadoption
from .paths import CONFIG_FILE, ensure_config_dir
from .schema import BrouillonConfig, ComposeConfig
from .template import CONFIG_TEMPLATE

__all__ = [
    "load_config",
    "save_config",
    "init_config",
    "set_config_value",
    "ComposeOptions",
    "QuadOption",
    "query_quadoption",
    "DEFAULTS",
    "CONFIG_FILE",
    "BrouillonConfig",
    "ComposeConfig",
]

# Loaded once per process; save_config and force_reload refresh it.
_cached_config: BrouillonConfig | None = None


def load_config(*, force_reload: bool = False) -> BrouillonConfig:
    """Read config.toml, or return the cached copy.

    A missing file is an empty configuration, so every option falls back
    to its default.

    Args:
        force_reload: Re-read the file even when a cached copy exists.

    Returns:
        The parsed TOML document.
    """
    global _cached_config

    if _cached_config is None or force_reload:
        if CONFIG_FILE.exists():
            with open(CONFIG_FILE, "rb") as f:
                _cached_config = tomllib.load(f)
        else:
            _cached_config = {}

    return _cached_config


def save_config(config: BrouillonConfig) -> None:
    """Write the whole document back to config.toml and cache it."""
    global _cached_config

    ensure_config_dir()
    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(config, f)
    _cached_config = config


def init_config(*, overwrite: bool = False) -> bool:
    """Write the commented template to config.toml.

    Args:
        overwrite: Replace a config file that is already there.

    Returns:
        Whether the template was written.
    """
    ensure_config_dir()

    if CONFIG_FILE.exists() and not overwrite:
        return False

    CONFIG_FILE.write_text(CONFIG_TEMPLATE)
    return True


def set_config_value(key: str, value: str) -> None:
    """Store one option given as a dotted path.

    Examples:
        set_config_value("compose.postpone", "ask-no")
        set_config_value("compose.autocrypt", "true")

    Args:
        key: Section and option joined with dots (e.g., "compose.copy").
        value: Text as typed; converted according to the option's default.

    Raises:
        ValueError: If the text is not valid for the option.
    """
    config = load_config(force_reload=True)

    *sections, option = key.split(".")
    table: dict = config
    for section in sections:
        table = table.setdefault(section, {})

    table[option] = _convert_value(option, value)
    save_config(config)


def _convert_value(key: str, value: str) -> str | bool:
    """Turn typed text into the type the option's default has.

    Boolean options accept true/false, yes/no, on/off and 1/0. Quad options
    are checked against the accepted spellings. Everything else stays str.

    Raises:
        ValueError: If the text does not fit the option.
    """
    default = DEFAULTS.get(key)

    if isinstance(default, bool):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on", "1"):
            return True
        if lowered in ("false", "no", "off", "0"):
            return False
        raise ValueError(f"{key} expects a boolean, got {value!r}")

    if isinstance(default, QuadOption):
        return QuadOption.parse(value).value

    return value
