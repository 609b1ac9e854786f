"""Errors raised by the compose screen.

Every error here is reported to the user and leaves the compose loop
running; none of them ends the session.
"""


class ComposeError(Exception):
    """Base exception for compose operations."""

    pass


# --- Validation errors: the input was rejected, nothing was applied ---


class BadIdnError(ComposeError):
    """An address domain can't be converted to its ASCII (IDNA) form."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Bad IDN: '{address}'")


class InvalidContentTypeError(ComposeError):
    """A content type is malformed or names an unknown major type."""

    pass


class InvalidHeaderError(ComposeError):
    """A custom header isn't of the form "Name: value"."""

    pass


class InvalidEncodingError(ComposeError):
    """A transfer encoding name isn't usable for an outgoing part."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Invalid encoding")


# --- Precondition errors: the operation doesn't apply right now ---


class NoAttachmentsError(ComposeError):
    """The operation needs a current attachment and there is none."""

    def __init__(self):
        super().__init__("There are no attachments")


class InsufficientTaggedItemsError(ComposeError):
    """A grouping operation needs at least two tagged attachments."""

    def __init__(self, kind: str = "alternatives"):
        self.kind = kind
        super().__init__(f"Grouping '{kind}' requires at least 2 tagged messages")


class AttachmentPinnedError(ComposeError):
    """The fundamental part (index 0) can't be moved or removed."""

    def __init__(self, message: str = "The fundamental part can't be moved"):
        super().__init__(message)


class CannotDeleteLastAttachmentError(ComposeError):
    """The only remaining attachment can't be deleted."""

    def __init__(self):
        super().__init__("You may not delete the only attachment")


class AttachmentBoundaryError(ComposeError):
    """The operation would move an attachment across a group boundary."""

    pass


class AttachmentPositionError(ComposeError):
    """The attachment is already at the top or bottom of the list."""

    pass


class NotTextPartError(ComposeError):
    """Recoding was requested for a non-text attachment."""

    def __init__(self):
        super().__init__("Recoding only affects text attachments")


class TreeConsistencyError(ComposeError):
    """The linked body chain no longer matches the attachment order."""

    pass


# --- External resource errors: a file, mailbox or backend failed ---


class AttachmentResourceError(ComposeError):
    """A backing file is missing, unreadable or couldn't be changed."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class MailboxError(ComposeError):
    """A mailbox couldn't be opened or read."""

    pass


class CryptoBackendError(ComposeError):
    """The crypto backend is missing or returned an unusable state."""

    pass
