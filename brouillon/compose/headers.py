"""Envelope text handling: addresses, IDN checks and custom headers.

Also implements the edit-headers round trip, where the envelope is written
above the message body so the user can change both in their editor.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from email import policy
from email.parser import Parser
from email.utils import getaddresses, quote
from pathlib import Path

from .errors import BadIdnError, InvalidHeaderError
from .models import Envelope

# Header name -> Envelope attribute, in the order they are written out
ADDRESS_HEADERS = [
    ("From", "from_addrs"),
    ("To", "to"),
    ("Cc", "cc"),
    ("Bcc", "bcc"),
    ("Reply-To", "reply_to"),
]

NEWS_HEADERS = [
    ("Newsgroups", "newsgroups"),
    ("Followup-To", "followup_to"),
    ("X-Comment-To", "x_comment_to"),
]

# Headers the compose screen manages itself; never kept as custom headers
RESERVED_HEADERS = frozenset(
    name.lower()
    for name in [
        *(h for h, _ in ADDRESS_HEADERS),
        *(h for h, _ in NEWS_HEADERS),
        "Subject",
        "Fcc",
        "Attach",
        "Date",
        "Message-ID",
        "MIME-Version",
        "Content-Type",
        "Content-Transfer-Encoding",
    ]
)


def parse_address_text(text: str) -> list[str]:
    """Split user input into formatted addresses.

    Each address keeps its "Name <email>" form. Empty entries are dropped.
    """
    if not text or not text.strip():
        return []
    return [
        join_address(name, addr) if addr else name
        for name, addr in getaddresses([text])
        if name or addr
    ]


_SPECIALS = set('()<>@,:;."[]')


def join_address(name: str, addr: str) -> str:
    """Format a display name and address as "Name <addr>".

    Unlike email.utils.formataddr, non-ASCII names are kept as typed; they
    are encoded when the message is assembled.
    """
    if not name:
        return addr
    if any(c in _SPECIALS for c in name):
        name = f'"{quote(name)}"'
    return f"{name} <{addr}>"


def format_address_list(addresses: list[str]) -> str:
    return ", ".join(addresses)


def to_intl(address: str) -> str:
    """Convert the domain of an address to its ASCII (IDNA) form.

    Raises:
        BadIdnError: If the domain can't be encoded.
    """
    name, addr = _split_address(address)
    if "@" not in addr:
        return address

    local, domain = addr.rsplit("@", 1)
    try:
        domain.encode("ascii")
        return address
    except UnicodeEncodeError:
        pass

    try:
        ascii_domain = domain.encode("idna").decode("ascii")
    except UnicodeError:
        raise BadIdnError(addr) from None
    return join_address(name, f"{local}@{ascii_domain}")


def to_local(address: str) -> str:
    """Convert an IDNA-encoded domain back to Unicode for display."""
    name, addr = _split_address(address)
    if "@" not in addr or "xn--" not in addr.lower():
        return address

    local, domain = addr.rsplit("@", 1)
    try:
        unicode_domain = domain.encode("ascii").decode("idna")
    except UnicodeError:
        return address
    return join_address(name, f"{local}@{unicode_domain}")


def check_idn(addresses: list[str]) -> list[str]:
    """Convert every address to its ASCII form.

    Raises:
        BadIdnError: For the first address whose domain can't be encoded.
    """
    return [to_intl(address) for address in addresses]


def _split_address(address: str) -> tuple[str, str]:
    pairs = getaddresses([address])
    if not pairs:
        return "", address
    return pairs[0]


def split_user_header(text: str) -> tuple[str, str]:
    """Split "Name: value" into name and value.

    Raises:
        InvalidHeaderError: If there is no colon or the name is empty or
            contains whitespace.
    """
    name, sep, value = text.partition(":")
    name = name.strip()
    if not sep or not name or any(c.isspace() for c in name):
        raise InvalidHeaderError(f"Invalid header field: {text}")
    return name, value.strip()


def set_user_header(headers: list[str], text: str) -> list[str]:
    """Apply a "Name: value" edit to the custom header list.

    A header with the same name (compared case-insensitively) is replaced in
    place; otherwise the header is appended. "Name:" with no value removes
    the header.

    Returns:
        The new header list. The input list is not modified.

    Raises:
        InvalidHeaderError: If the text isn't a valid header.
    """
    name, value = split_user_header(text)
    result = []
    replaced = False
    for header in headers:
        existing = header.partition(":")[0].strip()
        if existing.lower() != name.lower():
            result.append(header)
        elif value and not replaced:
            result.append(f"{name}: {value}")
            replaced = True

    if value and not replaced:
        result.append(f"{name}: {value}")
    return result


@dataclass
class HeaderEdit:
    """What changed outside the envelope during an edit-headers session."""

    fcc: str | None = None
    # (path, description) for every Attach: pseudo-header
    attachments: list[tuple[str, str | None]] = field(default_factory=list)


def render_headers(envelope: Envelope, fcc: str, *, news: bool = False) -> str:
    """Write the envelope as an editable header block."""
    lines = []
    for header, attr in ADDRESS_HEADERS:
        addresses = [to_local(a) for a in getattr(envelope, attr)]
        lines.append(f"{header}: {format_address_list(addresses)}")
    if news:
        for header, attr in NEWS_HEADERS:
            lines.append(f"{header}: {getattr(envelope, attr) or ''}")
    lines.append(f"Subject: {envelope.subject or ''}")
    lines.append(f"Fcc: {fcc}")
    lines.extend(envelope.user_headers)
    return "\n".join(lines) + "\n\n"


def parse_headers(text: str, envelope: Envelope, *, news: bool = False) -> tuple[HeaderEdit, str]:
    """Update the envelope from an edited header block.

    Header names are matched case-insensitively. Unknown headers replace the
    custom header list. "Attach: path [description]" lines are returned as
    attachments to add.

    Returns:
        The Fcc and attachment changes, and the body text after the headers.
    """
    msg = Parser(policy=policy.compat32).parsestr(text)

    for header, attr in ADDRESS_HEADERS:
        values = msg.get_all(header, [])
        setattr(envelope, attr, parse_address_text(", ".join(str(v) for v in values)))

    if news:
        for header, attr in NEWS_HEADERS:
            value = (msg.get(header) or "").strip()
            setattr(envelope, attr, value or None)

    subject = (msg.get("Subject") or "").strip()
    envelope.subject = subject or None

    edit = HeaderEdit()
    fcc = msg.get("Fcc")
    if fcc is not None:
        edit.fcc = str(fcc).strip()

    for value in msg.get_all("Attach", []):
        path, _, description = str(value).strip().partition(" ")
        if path:
            edit.attachments.append((path, description.strip() or None))

    envelope.user_headers = [
        f"{name}: {str(value).strip()}"
        for name, value in msg.items()
        if name.lower() not in RESERVED_HEADERS
    ]

    return edit, msg.get_payload()


def edit_headers(
    body_path: str,
    envelope: Envelope,
    fcc: str,
    edit_file: Callable[[str], None],
    *,
    news: bool = False,
) -> HeaderEdit:
    """Let the user edit the envelope and message body in one file.

    The header block and the current body are written to a scratch file next
    to the body, the editor runs on it, and the result is split back into
    the envelope and the body file.

    Args:
        body_path: File holding the main body text.
        envelope: Envelope to update in place.
        fcc: Current Fcc folder.
        edit_file: Runs the editor on a path and returns when it exits.
        news: Include the newsgroup headers.

    Returns:
        The Fcc and attachment changes found in the edited headers.
    """
    body = Path(body_path)
    scratch = body.with_name(body.name + ".headers")
    scratch.write_text(render_headers(envelope, fcc, news=news) + body.read_text())
    try:
        edit_file(str(scratch))
        edit, text = parse_headers(scratch.read_text(), envelope, news=news)
    finally:
        scratch.unlink(missing_ok=True)

    body.write_text(text)
    return edit
