"""Option store for the compose screen.

ComposeOptions answers named boolean, string and quad-option lookups.
Values are read from the configuration on every call so a change made
while the compose screen is open is seen on the next operation.
"""

import os
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from .schema import BrouillonConfig

if TYPE_CHECKING:
    from brouillon.compose.collaborators import Prompter


class QuadOption(str, Enum):
    """Four-valued answer for confirmation options.

    ABORT is never stored in the configuration; it is what a prompt returns
    when the user cancels it.
    """

    YES = "yes"
    NO = "no"
    ASK_YES = "ask-yes"
    ASK_NO = "ask-no"
    ABORT = "abort"

    @classmethod
    def parse(cls, value: str) -> "QuadOption":
        """Parse a configured quad option.

        Raises:
            ValueError: If the value is not yes, no, ask-yes or ask-no.
        """
        lowered = value.strip().lower()
        for option in (cls.YES, cls.NO, cls.ASK_YES, cls.ASK_NO):
            if option.value == lowered:
                return option
        raise ValueError(f"Invalid quad option: {value!r}")


DEFAULTS: dict[str, bool | str | QuadOption] = {
    "autocrypt": False,
    "crypt_opportunistic_encrypt": False,
    "compose_show_user_headers": True,
    "x_comment_to": False,
    "edit_headers": False,
    "editor": "",
    "ispell": "ispell",
    "copy": QuadOption.YES,
    "postpone": QuadOption.ASK_YES,
    "pgp_sign_as": "",
    "smime_sign_as": "",
    "smime_encrypt_with": "",
    "compose_format": "-- Brouillon: Compose  [Approx. msg size: %l   Atts: %a]",
    "folder": "~/Mail",
    "postponed": "~/Mail/Drafts",
}


class ComposeOptions:
    """Read compose options from the configuration.

    Example:
        options = ComposeOptions({"compose": {"autocrypt": True}})
        options.get_bool("autocrypt")  # True
        options.get_quad("postpone")   # QuadOption.ASK_YES (default)
    """

    def __init__(
        self,
        config: BrouillonConfig | Callable[[], BrouillonConfig] | None = None,
    ):
        """Initialize the option store.

        Args:
            config: A configuration dict, a loader returning one, or None to
                use load_config() from the config module.
        """
        if config is None:
            from brouillon.config import load_config

            self._loader: Callable[[], BrouillonConfig] = load_config
        elif callable(config):
            self._loader = config
        else:
            self._loader = lambda: config

    def _lookup(self, name: str):
        section = self._loader().get("compose", {})
        if name in section:
            return section[name]
        if name not in DEFAULTS:
            raise KeyError(f"Unknown compose option: {name}")
        return DEFAULTS[name]

    def get_bool(self, name: str) -> bool:
        return bool(self._lookup(name))

    def get_str(self, name: str) -> str:
        value = self._lookup(name)
        if isinstance(value, QuadOption):
            return value.value
        return str(value)

    def get_quad(self, name: str) -> QuadOption:
        value = self._lookup(name)
        if isinstance(value, QuadOption):
            return value
        return QuadOption.parse(str(value))

    def editor(self) -> str:
        """Editor command: the editor option, then $VISUAL, $EDITOR, vi."""
        return (
            self.get_str("editor")
            or os.environ.get("VISUAL")
            or os.environ.get("EDITOR")
            or "vi"
        )


def query_quadoption(
    option: QuadOption, prompt: str, prompter: "Prompter"
) -> QuadOption:
    """Resolve a quad option to YES, NO or ABORT.

    yes/no are answered without asking. ask-yes/ask-no ask the user with
    the corresponding default.
    """
    if option in (QuadOption.YES, QuadOption.NO):
        return option

    default = QuadOption.YES if option == QuadOption.ASK_YES else QuadOption.NO
    return prompter.yes_or_no(prompt, default)
