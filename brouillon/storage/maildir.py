"""Maildir storage for composed messages.

Postponed drafts, Fcc copies and write-message all end up in a Maildir
folder. The same module reads folders back when the user attaches stored
messages.

Maildir format uses three subdirectories:
- tmp/: Messages being delivered (atomic write in progress)
- new/: Newly delivered, unread messages
- cur/: Messages that have been seen

Message filenames follow the format:
<timestamp>.<unique-id>.<hostname>:2,<flags>

Flags are single uppercase letters (alphabetically sorted):
- D: Draft
- F: Flagged (starred)
- R: Replied
- S: Seen (read)
- T: Trashed
"""

import logging
import os
import socket
import time
import uuid
from datetime import datetime, timezone
from email import policy
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from pathlib import Path

from brouillon.compose.errors import MailboxError
from brouillon.compose.models import MessageSummary

logger = logging.getLogger(__name__)

MAILDIR_SUBDIRS = ("cur", "new", "tmp")
VALID_FLAGS = frozenset("DFPRST")


class MaildirStorage:
    """Storage backend for Maildir format.

    Messages are written atomically (tmp -> cur/new) to prevent corruption.
    An empty folder name refers to the base path itself, which is how a
    single Maildir such as ~/Mail/Drafts is addressed.

    Example:
        storage = MaildirStorage(Path("~/Mail"))
        path = storage.write_message("Drafts", message_bytes, "DS")
    """

    def __init__(self, base_path: Path):
        """Initialize Maildir storage.

        Args:
            base_path: Base directory for Maildir storage (e.g., ~/Mail).
                       Will be created if it doesn't exist.
        """
        self._base_path = Path(base_path).expanduser().resolve()
        self._hostname = socket.gethostname()

    @property
    def base_path(self) -> Path:
        """Get the base path for this Maildir storage."""
        return self._base_path

    def folder_path(self, folder_name: str = "") -> Path:
        return self._base_path / folder_name if folder_name else self._base_path

    def ensure_folder(self, folder_name: str = "") -> Path:
        """Create a Maildir folder structure.

        Creates the folder with cur/, new/, tmp/ subdirectories as required
        by the Maildir specification. Safe to call multiple times.

        Args:
            folder_name: Folder name (e.g., "Drafts", "Sent"), or "" for the
                base path itself.

        Returns:
            Path to the folder directory.
        """
        folder_path = self.folder_path(folder_name)

        for subdir in MAILDIR_SUBDIRS:
            (folder_path / subdir).mkdir(parents=True, exist_ok=True)

        return folder_path

    def generate_filename(self, flags: str) -> str:
        """Generate a Maildir-compliant filename for a new message.

        Format: <timestamp>.<unique-id>.<hostname>:2,<flags>

        Args:
            flags: Maildir flags string (e.g., "DS"); sorted on output.

        Returns:
            Complete filename for the message.

        Raises:
            ValueError: If flags contains a letter Maildir doesn't define.
        """
        unknown = set(flags) - VALID_FLAGS
        if unknown:
            raise ValueError(f"Unknown Maildir flags: {''.join(sorted(unknown))}")

        timestamp = int(time.time())
        unique = uuid.uuid4().hex
        return f"{timestamp}.{unique}.{self._hostname}:2,{''.join(sorted(set(flags)))}"

    def write_message(self, folder: str, message_bytes: bytes, flags: str = "S") -> Path:
        """Write a message to Maildir storage.

        Messages are written atomically: first to tmp/, then moved to
        either new/ (unseen) or cur/ (seen). This prevents corruption
        if the process is interrupted.

        Args:
            folder: Target folder name, or "" for the base path.
            message_bytes: Raw RFC 5322 message content.
            flags: Maildir flags; messages without "S" go to new/.

        Returns:
            Path to the written message file.
        """
        folder_path = self.ensure_folder(folder)
        filename = self.generate_filename(flags)

        # Write to tmp first (atomic write pattern)
        tmp_path = folder_path / "tmp" / filename
        tmp_path.write_bytes(message_bytes)

        dest_dir = "cur" if "S" in flags else "new"
        dest_path = folder_path / dest_dir / filename

        # os.rename is atomic on POSIX systems when src and dest are on same filesystem
        os.rename(tmp_path, dest_path)

        logger.debug("Wrote %d bytes to %s", len(message_bytes), dest_path)
        return dest_path

    def list_messages(self, folder: str = "") -> list[Path]:
        """List delivered messages (cur/ and new/), oldest filename first."""
        folder_path = self.folder_path(folder)
        paths = []
        for subdir in ("cur", "new"):
            directory = folder_path / subdir
            if directory.is_dir():
                paths.extend(p for p in directory.iterdir() if p.is_file())
        return sorted(paths, key=lambda p: p.name)


def is_maildir(path: Path) -> bool:
    """True if the directory has the cur/, new/ and tmp/ subdirectories."""
    return all((path / subdir).is_dir() for subdir in MAILDIR_SUBDIRS)


def save_to_maildir(path: Path, message_bytes: bytes, flags: str = "S") -> Path:
    """Write a message into the Maildir at `path`, creating it if needed."""
    return MaildirStorage(path).write_message("", message_bytes, flags)


def read_summary(path: Path) -> MessageSummary:
    """Parse the headers of a stored message.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    # BytesParser with the default (compat32) policy handles
    # real-world malformed emails better than the "email" policy.
    with open(path, "rb") as f:
        msg = BytesParser(policy=policy.compat32).parse(f, headersonly=True)

    return MessageSummary(
        file=str(path),
        date=_parse_date(msg.get("Date", "")),
        from_addr=str(msg.get("From", "")),
        subject=str(msg.get("Subject", "")),
        message_id=str(msg.get("Message-ID", "")),
    )


def _parse_date(date_str: str) -> datetime:
    """Parse an RFC 2822 date string, falling back to epoch on failure."""
    if not date_str:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    try:
        return parsedate_to_datetime(date_str)
    except (ValueError, TypeError):
        return datetime(1970, 1, 1, tzinfo=timezone.utc)


class MaildirBrowser:
    """Read-only mailbox access for attaching stored messages.

    Nothing is written to the mailbox and no state is kept between calls.
    """

    def is_readable(self, path: Path) -> bool:
        return os.access(path, os.R_OK)

    def open_readonly(self, path: Path) -> list[MessageSummary]:
        """Read the summaries of every message in a Maildir.

        Raises:
            MailboxError: If the path isn't a readable Maildir.
        """
        path = Path(path).expanduser()
        if not path.is_dir() or not is_maildir(path):
            raise MailboxError(f"Unable to open mailbox {path}")

        summaries = []
        for message_path in MaildirStorage(path).list_messages():
            try:
                summaries.append(read_summary(message_path))
            except OSError as e:
                logger.warning("Skipping unreadable message %s: %s", message_path, e)
        return summaries
