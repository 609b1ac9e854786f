"""Shared fixtures and collaborator fakes for the compose tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from brouillon.compose.attachments import AttachmentTree
from brouillon.compose.controller import ComposeController, ComposeView, Op, Redraw
from brouillon.compose.mime import make_file_attach
from brouillon.compose.models import (
    AttachmentNode,
    BodyPart,
    Email,
    Envelope,
    MessageSummary,
    Recommendation,
    SecurityFlags,
)
from brouillon.config import ComposeOptions, QuadOption


class FakeUI:
    """Presentation collaborator that replays a list of operations."""

    def __init__(self):
        self.ops: list[Op | tuple[Op, bool]] = []
        self.renders: list[tuple[ComposeView, Redraw]] = []
        self.messages: list[str] = []
        self.errors: list[str] = []
        self.viewed: list[BodyPart] = []

    def read_op(self) -> tuple[Op, bool]:
        op = self.ops.pop(0)
        if isinstance(op, tuple):
            return op
        return op, False

    def render(self, view: ComposeView, redraw: Redraw) -> None:
        self.renders.append((view, redraw))

    def message(self, text: str) -> None:
        self.messages.append(text)

    def error(self, text: str) -> None:
        self.errors.append(text)

    def view_attachment(self, body: BodyPart) -> None:
        self.viewed.append(body)


class FakePrompter:
    """Input collaborator answering from queues.

    An unexpected prompt pops from an empty queue and fails the test.
    """

    def __init__(self):
        self.fields: list[str | None] = []
        self.answers: list[QuadOption] = []
        self.choices: list[int | None] = []
        self.files: list[str] | None = None
        self.mailbox: str | None = None
        self.pick: Callable[[list[MessageSummary]], list[MessageSummary]] = list
        self.prompts: list[str] = []

    def get_field(self, prompt: str, default: str = "") -> str | None:
        self.prompts.append(prompt)
        return self.fields.pop(0)

    def yes_or_no(self, prompt: str, default: QuadOption) -> QuadOption:
        self.prompts.append(prompt)
        return self.answers.pop(0)

    def multi_choice(self, prompt: str, letters: str) -> int | None:
        self.prompts.append(prompt)
        return self.choices.pop(0)

    def select_files(self, prompt: str) -> list[str] | None:
        self.prompts.append(prompt)
        return self.files

    def enter_mailbox(self, prompt: str, default: str = "") -> str | None:
        self.prompts.append(prompt)
        return self.mailbox

    def select_messages(self, messages: list[MessageSummary]) -> list[MessageSummary]:
        return self.pick(messages)


class FakeCrypto:
    """Crypto backend whose menus return preset flags."""

    def __init__(self):
        self.pgp_result: SecurityFlags | None = None
        self.smime_result: SecurityFlags | None = None
        self.opportunistic: SecurityFlags | None = None
        self.recommendation = Recommendation.NO
        self.recommendation_calls = 0
        self.forgotten = False
        self.key: BodyPart | None = None

    def has_backend(self, application: SecurityFlags) -> bool:
        return True

    def pgp_menu(self, email: Email) -> SecurityFlags:
        if self.pgp_result is None:
            return email.security
        return self.pgp_result

    def smime_menu(self, email: Email) -> SecurityFlags:
        if self.smime_result is None:
            return email.security
        return self.smime_result

    def opportunistic_encrypt(self, email: Email) -> SecurityFlags:
        if self.opportunistic is None:
            return email.security
        return self.opportunistic

    def autocrypt_recommendation(self, email: Email) -> Recommendation:
        self.recommendation_calls += 1
        return self.recommendation

    def make_key_attachment(self) -> BodyPart | None:
        return self.key

    def forget_passphrase(self) -> None:
        self.forgotten = True


class FakeEditor:
    """Editor collaborator; `on_edit` stands in for the user's changes."""

    def __init__(self):
        self.edited: list[str] = []
        self.on_edit: Callable[[str], None] | None = None
        self.compose_result = True
        self.edit_result = True
        self.spell_result = True
        self.spell_checked: list[tuple[str, str]] = []

    def edit_file(self, path: str) -> None:
        self.edited.append(path)
        if self.on_edit is not None:
            self.on_edit(path)

    def compose_attachment(self, body: BodyPart) -> bool:
        self.edit_file(body.filename)
        return self.compose_result

    def edit_attachment(self, body: BodyPart) -> bool:
        self.edit_file(body.filename)
        return self.edit_result

    def spell_check(self, command: str, path: str) -> bool:
        self.spell_checked.append((command, path))
        return self.spell_result


@pytest.fixture
def ui() -> FakeUI:
    return FakeUI()


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def crypto() -> FakeCrypto:
    return FakeCrypto()


@pytest.fixture
def editor() -> FakeEditor:
    return FakeEditor()


@pytest.fixture
def hooks() -> list[Email]:
    """Messages passed to the post-edit hook, one entry per call."""
    return []


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a file under tmp_path."""

    def factory(name: str, content: str | bytes = "some text\n") -> Path:
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return factory


@pytest.fixture
def make_controller(ui, prompter, editor, crypto, hooks, make_file):
    """Factory for a controller with a main text part and extra files.

    Extra attachments are unowned, like files picked with attach-file.
    """

    def factory(*attachments: str, config: dict | None = None, **kwargs) -> ComposeController:
        tree = AttachmentTree()
        tree.add(AttachmentNode(body=make_file_attach(make_file("body.txt", "Hello Bob\n"))))
        for name in attachments:
            content = b"\x89PNG\r\n\x1a\n\x00\x00" if name.endswith(".png") else f"{name}\n"
            body = make_file_attach(make_file(name, content))
            tree.add(AttachmentNode(body=body, unowned=True))

        email = Email(
            envelope=Envelope(from_addrs=["me@example.com"], to=["bob@example.com"]),
            body=tree.root,
        )
        return ComposeController(
            email,
            ui=ui,
            prompter=prompter,
            editor=editor,
            crypto=crypto,
            options=ComposeOptions({"compose": config or {}}),
            tree=tree,
            hook=hooks.append,
            **kwargs,
        )

    return factory
