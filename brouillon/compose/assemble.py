"""Turn a composed Email into an RFC 5322 message.

Used for write-message, Fcc copies, postponed drafts and the CLI output.
Each body part is sent with the transfer encoding chosen for it on the
compose screen.
"""

import base64
import quopri
from email import message_from_bytes, policy
from email.header import Header
from email.message import Message
from email.mime.base import MIMEBase
from email.mime.message import MIMEMessage
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr, formatdate, getaddresses, make_msgid
from pathlib import Path

from .errors import AttachmentResourceError, NoAttachmentsError
from .models import BodyPart, Disposition, Email, TransferEncoding


def build_message(email: Email, *, include_bcc: bool = False, fcc: str | None = None) -> Message:
    """Assemble the message.

    Args:
        email: The composed message. email.body heads the body chain.
        include_bcc: Keep the Bcc header (for local copies only).
        fcc: Written as an Fcc header, for postponed drafts.

    Raises:
        NoAttachmentsError: If the message has no body.
        AttachmentResourceError: If a backing file can't be read.
    """
    if email.body is None:
        raise NoAttachmentsError()

    chain = []
    part = email.body
    while part is not None:
        chain.append(part)
        part = part.next

    if len(chain) == 1:
        msg = _build_part(chain[0])
    else:
        msg = MIMEMultipart("mixed")
        for part in chain:
            msg.attach(_build_part(part))

    _write_envelope(msg, email, include_bcc=include_bcc, fcc=fcc)
    return msg


def message_bytes(email: Email, *, include_bcc: bool = False, fcc: str | None = None) -> bytes:
    return build_message(email, include_bcc=include_bcc, fcc=fcc).as_bytes()


def _write_envelope(msg: Message, email: Email, *, include_bcc: bool, fcc: str | None) -> None:
    env = email.envelope
    headers: list[tuple[str, str]] = [
        ("Date", formatdate(localtime=True)),
        ("From", _address_header(env.from_addrs)),
        ("To", _address_header(env.to)),
        ("Cc", _address_header(env.cc)),
    ]
    if include_bcc:
        headers.append(("Bcc", _address_header(env.bcc)))
    headers += [
        ("Reply-To", _address_header(env.reply_to)),
        ("Subject", env.subject or ""),
        ("Newsgroups", env.newsgroups or ""),
        ("Followup-To", env.followup_to or ""),
        ("X-Comment-To", env.x_comment_to or ""),
        ("Fcc", fcc or ""),
    ]
    for header in env.user_headers:
        name, _, value = header.partition(":")
        headers.append((name.strip(), value.strip()))

    # Envelope headers go first, ahead of the MIME headers of the root part
    mime_headers = list(msg.items())
    for name in {name for name, _ in mime_headers}:
        del msg[name]

    for name, value in headers:
        if value:
            msg[name] = _encode(value)
    if not any(name.lower() == "message-id" for name, _ in headers):
        msg["Message-ID"] = make_msgid()
    for name, value in mime_headers:
        msg[name] = value


def _address_header(addresses: list[str]) -> str:
    return ", ".join(formataddr(pair) for pair in getaddresses(addresses))


def _encode(value: str) -> str | Header:
    try:
        value.encode("ascii")
        return value
    except UnicodeEncodeError:
        return Header(value, "utf-8")


def _read(body: BodyPart) -> bytes:
    try:
        return Path(body.filename).read_bytes()
    except (OSError, TypeError) as e:
        raise AttachmentResourceError(f"Unable to attach {body.filename}", body.filename) from e


def _build_part(body: BodyPart) -> Message:
    if body.is_multipart:
        msg = MIMEMultipart(body.subtype, boundary=body.parameters.get("boundary"))
        for child in body.children():
            msg.attach(_build_part(child))
    elif body.content_type == "message/rfc822" and body.filename:
        inner = message_from_bytes(_read(body), policy=policy.compat32)
        msg = MIMEMessage(inner)
    else:
        params = {k: v for k, v in body.parameters.items() if k != "boundary"}
        msg = MIMEBase(body.type, body.subtype, **params)
        _set_payload(msg, _read(body), body.encoding)

    if not body.is_multipart:
        filename = body.d_filename
        if not filename and body.disposition is Disposition.ATTACHMENT and body.filename:
            filename = Path(body.filename).name
        if filename:
            msg.add_header("Content-Disposition", body.disposition.value, filename=filename)
        elif body.disposition is Disposition.ATTACHMENT:
            msg.add_header("Content-Disposition", body.disposition.value)
    if body.description:
        msg["Content-Description"] = _encode(body.description)
    if body.language:
        msg["Content-Language"] = body.language
    return msg


def _set_payload(msg: Message, data: bytes, encoding: TransferEncoding) -> None:
    if encoding is TransferEncoding.BASE64:
        payload = base64.encodebytes(data).decode("ascii")
    elif encoding is TransferEncoding.QUOTED_PRINTABLE:
        payload = quopri.encodestring(data).decode("ascii")
    else:
        payload = data.decode("ascii", errors="surrogateescape")
    msg.set_payload(payload)
    msg["Content-Transfer-Encoding"] = encoding.value
