"""Compose screen core: attachment list, envelope layout, security state
and the controller loop that ties them together.

The controller (compose.controller) talks to the terminal, editors and
crypto backends only through the protocols in collaborators.py.
"""

from .attachments import AttachmentTree
from .errors import ComposeError
from .models import (
    AttachmentNode,
    BodyPart,
    Disposition,
    Email,
    Envelope,
    Recommendation,
    SecurityFlags,
    TransferEncoding,
)

__all__ = [
    "AttachmentTree",
    "AttachmentNode",
    "BodyPart",
    "ComposeError",
    "Disposition",
    "Email",
    "Envelope",
    "Recommendation",
    "SecurityFlags",
    "TransferEncoding",
]
