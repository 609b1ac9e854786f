"""Tests for turning a composed message into bytes."""

from email import message_from_bytes, policy

import pytest

from brouillon.compose.assemble import build_message, message_bytes
from brouillon.compose.attachments import AttachmentTree
from brouillon.compose.errors import NoAttachmentsError
from brouillon.compose.mime import make_file_attach
from brouillon.compose.models import AttachmentNode, Disposition, Email, Envelope


@pytest.fixture
def email(make_file) -> Email:
    body = make_file_attach(make_file("body.txt", "Hello Bob\n"))
    body.disposition = Disposition.INLINE
    body.d_filename = None
    return Email(
        envelope=Envelope(
            from_addrs=["Me <me@example.com>"],
            to=["bob@example.com"],
            bcc=["hidden@example.com"],
            subject="Lunch",
            user_headers=["X-Mood: hungry"],
        ),
        body=body,
    )


def parse(data: bytes):
    return message_from_bytes(data, policy=policy.default)


class TestBuildMessage:
    """Tests for message assembly."""

    def test_single_part(self, email):
        msg = parse(message_bytes(email))

        assert msg["Subject"] == "Lunch"
        assert msg["To"] == "bob@example.com"
        assert msg["X-Mood"] == "hungry"
        assert msg["Message-ID"]
        assert msg.get_content_type() == "text/plain"
        assert msg.get_content() == "Hello Bob\n"

    def test_bcc_only_for_local_copies(self, email):
        assert parse(message_bytes(email))["Bcc"] is None
        assert parse(message_bytes(email, include_bcc=True))["Bcc"] == "hidden@example.com"

    def test_fcc_header_for_drafts(self, email):
        msg = parse(message_bytes(email, fcc="~/Mail/Sent"))

        assert msg["Fcc"] == "~/Mail/Sent"

    def test_envelope_before_mime_headers(self, email):
        msg = build_message(email)
        keys = [key.lower() for key in msg.keys()]

        assert keys.index("subject") < keys.index("content-type")

    def test_attachments_make_multipart(self, email, make_file):
        tree = AttachmentTree.from_body(email.body)
        picture = make_file_attach(make_file("photo.png", b"\x89PNG\r\n\x1a\n\x00"))
        picture.description = "Holiday"
        tree.add(AttachmentNode(body=picture))
        email.body = tree.root

        msg = parse(message_bytes(email))

        assert msg.get_content_type() == "multipart/mixed"
        parts = list(msg.iter_parts())
        assert [p.get_content_type() for p in parts] == ["text/plain", "image/png"]
        assert parts[1].get_filename() == "photo.png"
        assert parts[1]["Content-Description"] == "Holiday"
        assert parts[1].get_content() == b"\x89PNG\r\n\x1a\n\x00"

    def test_groups_nest(self, email, make_file):
        tree = AttachmentTree.from_body(email.body)
        tree.add(AttachmentNode(body=make_file_attach(make_file("a.txt", "plain\n"))))
        tree.add(AttachmentNode(body=make_file_attach(make_file("a.html", "<p>x</p>\n"))))
        tree.group("alternative", [1, 2])
        email.body = tree.root

        msg = parse(message_bytes(email))

        alternative = list(msg.iter_parts())[1]
        assert alternative.get_content_type() == "multipart/alternative"
        assert alternative.get_boundary() == tree[1].body.parameters["boundary"]
        assert [p.get_content_type() for p in alternative.iter_parts()] == [
            "text/plain",
            "text/html",
        ]

    def test_non_ascii_subject_encoded(self, email):
        email.envelope.subject = "Déjeuner"

        data = message_bytes(email)

        assert b"=?utf-8?" in data
        assert parse(data)["Subject"] == "Déjeuner"

    def test_no_body(self):
        with pytest.raises(NoAttachmentsError):
            build_message(Email())
