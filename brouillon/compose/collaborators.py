"""Interfaces the compose screen uses to talk to the rest of the client.

The controller never draws, reads keys, runs programs or touches crypto
itself. Everything outside the message model goes through one of these
protocols, so tests can drive a whole session with simple fakes.
"""

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from .models import BodyPart, Email, MessageSummary, Recommendation, SecurityFlags

if TYPE_CHECKING:
    from brouillon.config import QuadOption

    from .controller import ComposeView, Op, Redraw


# Called with the message after every user-visible change
Hook = Callable[[Email], None]


class Presentation(Protocol):
    """Screen and key input."""

    def read_op(self) -> "tuple[Op, bool]":
        """Block until the user picks an operation.

        Returns:
            The operation and whether the tag prefix was given.
        """
        ...

    def render(self, view: "ComposeView", redraw: "Redraw") -> None:
        """Repaint the regions flagged in `redraw`."""
        ...

    def message(self, text: str) -> None: ...

    def error(self, text: str) -> None: ...

    def view_attachment(self, body: BodyPart) -> None:
        """Show an attachment; returns when the viewer is closed."""
        ...


class Prompter(Protocol):
    """Line editing and confirmation prompts.

    Every method blocks until the user answers. None means the prompt was
    cancelled.
    """

    def get_field(self, prompt: str, default: str = "") -> str | None: ...

    def yes_or_no(self, prompt: str, default: "QuadOption") -> "QuadOption":
        """Ask a yes/no question; returns YES, NO or ABORT."""
        ...

    def multi_choice(self, prompt: str, letters: str) -> int | None:
        """Ask for one of `letters`; returns its 1-based position."""
        ...

    def select_files(self, prompt: str) -> list[str] | None: ...

    def enter_mailbox(self, prompt: str, default: str = "") -> str | None: ...

    def select_messages(self, messages: list[MessageSummary]) -> list[MessageSummary]:
        """Let the user tag messages; returns the tagged ones."""
        ...


class CryptoBackend(Protocol):
    """PGP, S/MIME and Autocrypt implementations."""

    def has_backend(self, application: SecurityFlags) -> bool: ...

    def pgp_menu(self, email: Email) -> SecurityFlags:
        """Run the PGP options menu and return the chosen flags."""
        ...

    def smime_menu(self, email: Email) -> SecurityFlags: ...

    def opportunistic_encrypt(self, email: Email) -> SecurityFlags:
        """Decide Encrypt/Sign from recipient key availability."""
        ...

    def autocrypt_recommendation(self, email: Email) -> Recommendation: ...

    def make_key_attachment(self) -> BodyPart | None:
        """Export a public key as an attachment; None if cancelled."""
        ...

    def forget_passphrase(self) -> None: ...


class MailboxBrowser(Protocol):
    """Read-only access to stored messages for attach-message."""

    def is_readable(self, path: Path) -> bool: ...

    def open_readonly(self, path: Path) -> list[MessageSummary]:
        """Read a mailbox's messages; the mailbox is closed on return.

        Raises:
            MailboxError: If the mailbox can't be opened.
        """
        ...


class Editor(Protocol):
    """External programs that change files in place."""

    def edit_file(self, path: str) -> None:
        """Run the editor on a file and wait for it to exit."""
        ...

    def compose_attachment(self, body: BodyPart) -> bool:
        """Compose new content for an attachment; True if it was written."""
        ...

    def edit_attachment(self, body: BodyPart) -> bool:
        """Edit an attachment with its configured editor; True if changed."""
        ...

    def spell_check(self, command: str, path: str) -> bool:
        """Run the spell checker; False if it couldn't be run."""
        ...
