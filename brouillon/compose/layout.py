"""Row budgeting for the compose screen's envelope area.

Everything here is a pure function of its inputs: given the header values
and the number of terminal columns available, it decides how many rows each
field needs and what text goes on each row. Widths are terminal cells, so
wide (CJK) characters count double.
"""

import logging
import re
import socket
from dataclasses import dataclass, field
from enum import Enum

from wcwidth import wcwidth

from .models import Envelope, SecurityFlags

logger = logging.getLogger(__name__)

MAX_ADDR_ROWS = 5
MAX_USER_HDR_ROWS = 5
USER_HEADER_OVERFLOW = "..."
ADDRESS_SEPARATOR = ", "


def display_width(text: str) -> int:
    """Number of terminal cells needed to show `text`.

    Non-printable characters count as zero.
    """
    return sum(max(wcwidth(char), 0) for char in text)


def truncate_to_width(text: str, width: int) -> str:
    """Cut `text` so it fits in `width` cells, never splitting a wide char."""
    used = 0
    for i, char in enumerate(text):
        cells = max(wcwidth(char), 0)
        if used + cells > width:
            return text[:i]
        used += cells
    return text


def pad_to_width(text: str, width: int) -> str:
    """Truncate or space-pad `text` to exactly `width` cells."""
    text = truncate_to_width(text, width)
    return text + " " * (width - display_width(text))


def more_marker(count: int) -> str:
    """Overflow marker shown at the end of a full address field."""
    return f"(+{count} more)"


@dataclass
class WrapResult:
    """Outcome of packing an address list into rows.

    Attributes:
        rows: Rows used, never more than the row cap.
        overflow: Items that didn't fit and are summarised by more_marker().
        lines: Text of each row. An item too wide for a row is truncated.
    """

    rows: int
    overflow: int
    lines: list[str] = field(default_factory=list)


def wrap_address_list(
    items: list[str], columns: int, max_rows: int = MAX_ADDR_ROWS
) -> WrapResult:
    """Greedily pack display strings into rows of `columns` cells.

    Items are placed in order, each followed by ", " except the last. An
    item that doesn't fit starts a new row. When it doesn't fit on a fresh
    row either, or no rows are left, it is truncated and packing stops; the
    remaining items are counted as overflow. On the last allowed row, room
    for the "(+N more)" marker is kept free while items remain.

    Args:
        items: Display strings, typically formatted addresses.
        columns: Cells available on each row.
        max_rows: Row cap.

    Returns:
        A WrapResult with the rows used, the overflow count and row texts.
    """
    lines = [""]
    width_left = columns
    remaining = len(items)

    for i, item in enumerate(items):
        separator = ADDRESS_SEPARATOR if i < len(items) - 1 else ""
        needed = display_width(item) + len(separator)
        remaining -= 1

        while True:
            reserve = 0
            if remaining > 0 and len(lines) == max_rows:
                reserve = display_width(more_marker(remaining))

            if needed < width_left - reserve:
                lines[-1] += item + separator
                width_left -= needed
                break

            if len(lines) == max_rows or width_left == columns:
                logger.debug("No room left for %r, truncating", item)
                lines[-1] += truncate_to_width(item, width_left)
                return WrapResult(rows=len(lines), overflow=remaining, lines=lines)

            logger.debug("Wrapping before %r", item)
            lines.append("")
            width_left = columns

    return WrapResult(rows=len(lines), overflow=0, lines=lines)


def user_header_lines(headers: list[str]) -> list[str]:
    """Lines shown for custom headers, at most MAX_USER_HDR_ROWS.

    When more headers exist than fit, the last line is "...".
    """
    if len(headers) <= MAX_USER_HDR_ROWS:
        return list(headers)
    return headers[: MAX_USER_HDR_ROWS - 1] + [USER_HEADER_OVERFLOW]


def measure_user_header_rows(headers: list[str]) -> int:
    return min(len(headers), MAX_USER_HDR_ROWS)


def measure_security_rows(flags: SecurityFlags, autocrypt: bool = False) -> int:
    """Rows for the Security block.

    "Security:" always takes a row; "Sign as:" is added while any action
    is selected, and the Autocrypt row while autocrypt is configured.
    """
    rows = 2 if flags & (SecurityFlags.ENCRYPT | SecurityFlags.SIGN) else 1
    if autocrypt:
        rows += 1
    return rows


@dataclass
class EnvelopeLayout:
    """Rows needed by each part of the envelope area."""

    to: WrapResult | None
    cc: WrapResult | None
    bcc: WrapResult | None
    security_rows: int
    user_header_rows: int
    news_rows: int = 0
    rows: int = 0


def measure_envelope(
    envelope: Envelope,
    security: SecurityFlags,
    columns: int,
    *,
    news: bool = False,
    x_comment_to: bool = False,
    autocrypt: bool = False,
    show_user_headers: bool = True,
) -> EnvelopeLayout:
    """Compute the row budget of the whole envelope area.

    Args:
        envelope: Header values.
        security: Current security flags.
        columns: Cells available for field values (window width minus the
            label column).
        news: Show newsgroup fields instead of To/Cc/Bcc.
        x_comment_to: Show the X-Comment-To row in news mode.
        autocrypt: Autocrypt is configured.
        show_user_headers: Custom headers are shown.
    """
    # From, Subject, Reply-To and Fcc take one row each
    rows = 4

    to = cc = bcc = None
    news_rows = 0
    if news:
        news_rows = 3 if x_comment_to else 2
        rows += news_rows
    else:
        to = wrap_address_list(envelope.to, columns)
        cc = wrap_address_list(envelope.cc, columns)
        bcc = wrap_address_list(envelope.bcc, columns)
        rows += to.rows + cc.rows + bcc.rows

    security_rows = measure_security_rows(security, autocrypt)
    rows += security_rows

    user_rows = measure_user_header_rows(envelope.user_headers) if show_user_headers else 0
    rows += user_rows

    return EnvelopeLayout(
        to=to,
        cc=cc,
        bcc=bcc,
        security_rows=security_rows,
        user_header_rows=user_rows,
        news_rows=news_rows,
        rows=rows,
    )


def measure_envelope_rows(envelope: Envelope, security: SecurityFlags, columns: int, **kwargs) -> int:
    return measure_envelope(envelope, security, columns, **kwargs).rows


class HeaderField(Enum):
    """Fields of the envelope area, in display order, with their labels."""

    FROM = "From: "
    TO = "To: "
    CC = "Cc: "
    BCC = "Bcc: "
    SUBJECT = "Subject: "
    REPLY_TO = "Reply-To: "
    FCC = "Fcc: "
    CRYPT = "Security: "
    CRYPT_INFO = "Sign as: "
    AUTOCRYPT = "Autocrypt: "
    NEWSGROUPS = "Newsgroups: "
    FOLLOWUP_TO = "Followup-To: "
    X_COMMENT_TO = "X-Comment-To: "
    CUSTOM_HEADERS = "Headers: "

    @property
    def prompt(self) -> str:
        return self.value


@dataclass(frozen=True)
class HeaderPadding:
    """Label alignment for the envelope area.

    Attributes:
        padding: Characters each label is right-aligned to.
        max_width: Width of the label column in cells.
    """

    padding: dict[HeaderField, int]
    max_width: int

    def label(self, header: HeaderField) -> str:
        return header.prompt.rjust(self.padding[header])


def compute_header_padding() -> HeaderPadding:
    """Compute label padding once for a compose session.

    "Sign as:" is hidden most of the time, so it doesn't widen the label
    column.
    """
    widths = {header: display_width(header.prompt) for header in HeaderField}
    max_width = max(
        width for header, width in widths.items() if header is not HeaderField.CRYPT_INFO
    )

    padding = {}
    for header in HeaderField:
        # rjust counts characters, so add back what wide chars take
        padding[header] = max(len(header.prompt) - widths[header] + max_width, 0)
    return HeaderPadding(padding=padding, max_width=max_width)


def pretty_size(num: int) -> str:
    """Human-readable byte count: 999, 1.5K, 120K, 2.3M, 14M."""
    if num < 1000:
        return str(num)
    if num < 10189:
        return f"{num / 1024:3.1f}K"
    if num < 1023949:
        return f"{(num + 51) // 1024}K"
    if num < 10433332:
        return f"{num / 1048576:3.1f}M"
    return f"{(num + 52428) // 1048576}M"


_STATUS_EXPANDO = re.compile(r"%(-?\d*)(.)")


def format_status(
    fmt: str,
    *,
    attachments: int,
    size: int,
    version: str,
    hostname: str | None = None,
) -> str:
    """Expand the compose status line.

    Expandos: %a attachment count, %h short hostname, %l approximate message
    size, %v version, %% a literal percent sign. An optional width may
    follow the percent sign (%4a, %-10h).
    """
    if hostname is None:
        hostname = socket.gethostname().split(".")[0]

    def expand(match: re.Match) -> str:
        width, op = match.groups()
        if op == "%":
            return "%"
        values = {
            "a": str(attachments),
            "h": hostname,
            "l": pretty_size(size),
            "v": version,
        }
        if op not in values:
            return match.group(0)
        text = values[op]
        if width:
            text = f"{text:{'<' if width.startswith('-') else '>'}{width.lstrip('-')}}"
        return text

    return _STATUS_EXPANDO.sub(expand, fmt)
