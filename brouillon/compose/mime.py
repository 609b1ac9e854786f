"""Body-part helpers for the compose screen.

Builds attachments from files and stored messages, keeps each part's
transfer encoding in step with its backing file, and validates the
content-type and encoding names users type in.
"""

import logging
import mimetypes
import os
import secrets
import shutil
import string
import tempfile
import time
from pathlib import Path

from .errors import (
    AttachmentResourceError,
    InvalidContentTypeError,
    InvalidEncodingError,
)
from .models import (
    AttachmentNode,
    BodyPart,
    ContentInfo,
    Disposition,
    MessageSummary,
    TransferEncoding,
)

logger = logging.getLogger(__name__)

BOUNDARY_LENGTH = 16
BOUNDARY_ALPHABET = string.ascii_letters + string.digits

MAJOR_TYPES = frozenset(
    {"text", "application", "image", "audio", "video", "message", "multipart", "model", "font"}
)


def generate_boundary() -> str:
    """Random multipart boundary."""
    return "".join(secrets.choice(BOUNDARY_ALPHABET) for _ in range(BOUNDARY_LENGTH))


def content_info(data: bytes) -> ContentInfo:
    """Classify the bytes of a part's content."""
    info = ContentInfo()
    for byte in data:
        if byte == 0x0A:
            info.crlf += 1
        elif byte == 0x0D:
            continue
        elif byte >= 0x80:
            info.hibin += 1
        elif byte == 0x09 or 0x20 <= byte < 0x7F:
            info.ascii += 1
        else:
            info.lobin += 1
    return info


def is_text_part(body: BodyPart) -> bool:
    """True for parts whose content is text that may be charset-converted."""
    if body.type == "text":
        return True
    if body.type == "message":
        return body.subtype == "delivery-status"
    if body.type == "application":
        return body.subtype in ("pgp-keys", "pgp-signature")
    return False


def _choose_encoding(body: BodyPart, info: ContentInfo) -> TransferEncoding:
    if body.type in ("message", "multipart"):
        return TransferEncoding.EIGHT_BIT if info.hibin else TransferEncoding.SEVEN_BIT
    if not info.hibin and not info.lobin:
        return TransferEncoding.SEVEN_BIT
    if is_text_part(body) and (info.hibin + info.lobin) * 6 < info.ascii:
        return TransferEncoding.QUOTED_PRINTABLE
    return TransferEncoding.BASE64


def stamp_attachment(body: BodyPart) -> None:
    """Record that the part now reflects its backing file."""
    body.stamp = time.time()


def update_encoding(body: BodyPart) -> None:
    """Re-read the backing file and pick a transfer encoding for it.

    Raises:
        AttachmentResourceError: If the file can't be read.
    """
    if body.filename is None or body.is_multipart:
        return

    try:
        data = Path(body.filename).read_bytes()
    except OSError as e:
        raise AttachmentResourceError(
            f"Can't stat {body.filename}: {e.strerror}", body.filename
        ) from e

    body.content = content_info(data)
    if body.type == "text" and not body.noconv:
        body.parameters["charset"] = "utf-8" if body.content.hibin else "us-ascii"
    body.encoding = _choose_encoding(body, body.content)
    stamp_attachment(body)


def is_stale(body: BodyPart) -> bool:
    """True if the backing file changed since the encoding was refreshed.

    Raises:
        AttachmentResourceError: If the file is gone or can't be stat'ed.
    """
    if body.filename is None:
        return False
    try:
        mtime = os.stat(body.filename).st_mtime
    except FileNotFoundError as e:
        raise AttachmentResourceError(f"{body.filename} no longer exists", body.filename) from e
    except OSError as e:
        raise AttachmentResourceError(
            f"Can't stat {body.filename}: {e.strerror}", body.filename
        ) from e
    return mtime > body.stamp


def make_file_attach(path: str | Path) -> BodyPart:
    """Build an attachment for a file.

    The content type is guessed from the file name; unknown files are sent
    as application/octet-stream, or text/plain when they contain only text.

    Raises:
        AttachmentResourceError: If the file can't be read.
    """
    path = Path(path).expanduser()
    if not path.is_file() or not os.access(path, os.R_OK):
        raise AttachmentResourceError(f"Unable to attach {path}", str(path))

    mime_type, _ = mimetypes.guess_type(path.name)
    body = BodyPart(filename=str(path), d_filename=path.name)
    if mime_type:
        body.type, body.subtype = mime_type.split("/", 1)
    else:
        body.type, body.subtype = "application", "octet-stream"

    update_encoding(body)
    if mime_type is None and body.content is not None:
        if not body.content.hibin and not body.content.lobin:
            body.type, body.subtype = "text", "plain"
            body.parameters.setdefault("charset", "us-ascii")

    logger.debug("Attaching %s as %s", path, body.content_type)
    return body


def make_message_attach(message: MessageSummary) -> BodyPart:
    """Build a message/rfc822 attachment for a stored message.

    Raises:
        AttachmentResourceError: If the message file can't be read.
    """
    body = BodyPart(
        type="message",
        subtype="rfc822",
        filename=message.file,
        description=message.subject or None,
        disposition=Disposition.INLINE,
        email=message,
    )
    update_encoding(body)
    return body


def parse_content_type(text: str) -> tuple[str, str, dict[str, str]]:
    """Split "type/subtype; name=value" into its components.

    Raises:
        InvalidContentTypeError: If the text isn't of the form base/sub or
            the major type is unknown.
    """
    main, *params = [piece.strip() for piece in text.split(";")]
    if "/" not in main:
        raise InvalidContentTypeError("Content-Type is of the form base/sub")

    major, minor = (piece.strip().lower() for piece in main.split("/", 1))
    if not major or not minor:
        raise InvalidContentTypeError("Content-Type is of the form base/sub")
    if major not in MAJOR_TYPES and not major.startswith("x-"):
        raise InvalidContentTypeError(f"Unknown Content-Type {major}/{minor}")

    parameters = {}
    for param in params:
        if "=" not in param:
            continue
        name, value = param.split("=", 1)
        parameters[name.strip().lower()] = value.strip().strip('"')

    return major, minor, parameters


def check_encoding(name: str) -> TransferEncoding:
    """Validate a transfer encoding typed by the user.

    x-uuencode is recognised on incoming mail but never produced.

    Raises:
        InvalidEncodingError: If the name isn't a usable encoding.
    """
    try:
        encoding = TransferEncoding(name.strip().lower())
    except ValueError:
        raise InvalidEncodingError(name) from None
    if encoding is TransferEncoding.UUENCODED:
        raise InvalidEncodingError(name)
    return encoding


def create_file(path: str | Path) -> Path:
    """Create an empty file for a new attachment.

    Raises:
        AttachmentResourceError: If the file can't be created.
    """
    path = Path(path).expanduser()
    try:
        path.touch(exist_ok=False)
    except OSError as e:
        raise AttachmentResourceError(f"Can't create file {path}", str(path)) from e
    return path


def rename_backing_file(body: BodyPart, new_path: str | Path) -> None:
    """Move an attachment's backing file and point the part at it.

    The encoding stamp is left alone; the caller decides whether the moved
    file still counts as encoded.

    Raises:
        AttachmentResourceError: If the file can't be moved.
    """
    new_path = Path(new_path).expanduser()
    try:
        os.rename(body.filename, new_path)
    except OSError as e:
        raise AttachmentResourceError(
            f"Can't rename {body.filename}: {e.strerror}", body.filename
        ) from e
    body.filename = str(new_path)


def get_tmp_attachment(body: BodyPart) -> None:
    """Replace an attachment's backing file with a private temporary copy.

    The copy is removed when the attachment is released. Parts that are
    already backed by a temporary file are left alone.

    Raises:
        AttachmentResourceError: If the copy can't be made.
    """
    if body.unlink or body.filename is None:
        return

    suffix = Path(body.filename).suffix
    try:
        fd, tmp_name = tempfile.mkstemp(prefix="brouillon-", suffix=suffix)
        with os.fdopen(fd, "wb") as dst, open(body.filename, "rb") as src:
            shutil.copyfileobj(src, dst)
    except OSError as e:
        raise AttachmentResourceError(
            f"Can't create file {body.filename}", body.filename
        ) from e

    if body.d_filename is None:
        body.d_filename = Path(body.filename).name
    body.filename = tmp_name
    body.unlink = True
    stamp_attachment(body)


def attachments_size(nodes: list[AttachmentNode]) -> int:
    """Approximate size in bytes of the attachments once encoded."""
    total = 0
    for node in nodes:
        info = node.body.content
        if info is None:
            continue
        raw = info.lobin + info.hibin + info.ascii + info.crlf
        if node.body.encoding is TransferEncoding.QUOTED_PRINTABLE:
            total += 3 * (info.lobin + info.hibin) + info.ascii + info.crlf
        elif node.body.encoding is TransferEncoding.BASE64:
            total += (4 * raw) // 3
        else:
            total += raw
    return total
