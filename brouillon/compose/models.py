"""Data models for the compose screen."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum, IntFlag


class Disposition(str, Enum):
    """Content-Disposition of a body part."""

    INLINE = "inline"
    ATTACHMENT = "attachment"


class TransferEncoding(str, Enum):
    """Content-Transfer-Encoding of a body part."""

    SEVEN_BIT = "7bit"
    EIGHT_BIT = "8bit"
    BINARY = "binary"
    QUOTED_PRINTABLE = "quoted-printable"
    BASE64 = "base64"
    UUENCODED = "x-uuencode"


class SecurityFlags(IntFlag):
    """Security state of the message being composed.

    The application bits say which scheme is in use; the action bits say
    what that scheme does. At most one of APPLICATION_PGP and
    APPLICATION_SMIME is set at a time.
    """

    NONE = 0
    ENCRYPT = 1 << 0
    SIGN = 1 << 1
    INLINE = 1 << 2
    OPPENCRYPT = 1 << 3
    AUTOCRYPT = 1 << 4
    AUTOCRYPT_OVERRIDE = 1 << 5
    APPLICATION_PGP = 1 << 6
    APPLICATION_SMIME = 1 << 7


class Recommendation(IntEnum):
    """Autocrypt recommendation for the current recipients."""

    OFF = 0
    NO = 1
    DISCOURAGED = 2
    AVAILABLE = 3
    YES = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass
class ContentInfo:
    """Byte-class statistics of a part's content.

    Used to pick a transfer encoding and to estimate the encoded size.
    """

    hibin: int = 0  # bytes >= 0x80
    lobin: int = 0  # control bytes other than tab, CR and LF
    ascii: int = 0  # printable 7-bit bytes
    crlf: int = 0  # line endings


@dataclass
class MessageSummary:
    """Headers of a stored message, shown when picking messages to attach."""

    file: str  # Path to the message file
    date: datetime
    from_addr: str  # Full "Name <email>" format
    subject: str = ""
    message_id: str = ""


@dataclass(eq=False)
class BodyPart:
    """One MIME body part of the outgoing message.

    Bodies form a tree: `parts` points at the first child of a multipart
    container and `next` at the following sibling. Bodies compare by
    identity.
    """

    type: str = "text"
    subtype: str = "plain"
    parameters: dict[str, str] = field(default_factory=dict)
    filename: str | None = None  # Backing file on disk
    d_filename: str | None = None  # Name presented to recipients
    description: str | None = None
    language: str | None = None
    disposition: Disposition = Disposition.ATTACHMENT
    encoding: TransferEncoding = TransferEncoding.SEVEN_BIT
    noconv: bool = False  # Don't charset-convert this text part
    unlink: bool = False  # Remove the backing file when released
    stamp: float = 0.0  # When the encoding was last refreshed
    content: ContentInfo | None = None
    email: MessageSummary | None = field(default=None, repr=False)
    parts: "BodyPart | None" = field(default=None, repr=False)
    next: "BodyPart | None" = field(default=None, repr=False)

    @property
    def content_type(self) -> str:
        return f"{self.type}/{self.subtype}"

    @property
    def is_multipart(self) -> bool:
        return self.type == "multipart"

    @property
    def is_group(self) -> bool:
        """True for multipart containers whose children are edited in place.

        multipart/encrypted is opaque: its parts belong to the crypto layer.
        """
        return self.is_multipart and self.subtype != "encrypted"

    def children(self) -> Iterator["BodyPart"]:
        """Iterate over the direct children of a container."""
        part = self.parts
        while part is not None:
            yield part
            part = part.next


@dataclass
class Envelope:
    """Header fields of the outgoing message."""

    from_addrs: list[str] = field(default_factory=list)
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    reply_to: list[str] = field(default_factory=list)
    subject: str | None = None
    user_headers: list[str] = field(default_factory=list)  # "Name: value"
    newsgroups: str | None = None
    followup_to: str | None = None
    x_comment_to: str | None = None

    def recipients(self) -> list[str]:
        return [*self.to, *self.cc, *self.bcc]


@dataclass
class Email:
    """The message being composed."""

    envelope: Envelope = field(default_factory=Envelope)
    body: BodyPart | None = None
    security: SecurityFlags = SecurityFlags.NONE


@dataclass(eq=False)
class AttachmentNode:
    """A body part as listed on the compose screen.

    `level` is the nesting depth (0 = top level); `parent_type` is the major
    type of the enclosing container, if any.
    """

    body: BodyPart
    level: int = 0
    parent_type: str | None = None
    tagged: bool = False
    unowned: bool = False  # Backing file belongs to the user, never remove it
    collapsed: bool = False
    num: int = 0  # Display number
