"""Line-oriented terminal front end for the compose screen.

TerminalSession draws the compose screen as plain text and reads
operations and answers with typer prompts. ExternalEditor runs the user's
editor and spell checker as subprocesses.
"""

import logging
import shlex
import subprocess

import typer

from brouillon.config import ComposeOptions, QuadOption
from brouillon.compose.controller import ComposeView, Op, Redraw
from brouillon.compose.layout import HeaderField, more_marker, pad_to_width, user_header_lines
from brouillon.compose.mime import is_text_part
from brouillon.compose.models import BodyPart, Disposition, MessageSummary

logger = logging.getLogger(__name__)

# Typed before an operation to apply it to all tagged attachments
TAG_PREFIX = ";"

ANSWERS = {
    "y": QuadOption.YES,
    "yes": QuadOption.YES,
    "n": QuadOption.NO,
    "no": QuadOption.NO,
}


class TerminalSession:
    """Presentation and prompting on a plain terminal.

    Operations are typed by name (e.g. "attach-file"); "?" lists them.
    Cancelling a prompt with Ctrl-C counts as cancelling that prompt only.
    """

    def read_op(self) -> tuple[Op, bool]:
        while True:
            text = typer.prompt("Op", default="", show_default=False).strip()
            tag_prefix = text.startswith(TAG_PREFIX)
            name = text.removeprefix(TAG_PREFIX).strip()
            if name in ("", "?"):
                typer.echo(" ".join(op.value for op in Op))
                continue
            try:
                return Op(name), tag_prefix
            except ValueError:
                typer.echo(f"Unknown operation: {name}", err=True)

    def render(self, view: ComposeView, redraw: Redraw) -> None:
        if redraw == Redraw.NONE:
            return
        if redraw & (Redraw.FULL | Redraw.FLOW):
            self._render_envelope(view)
        if redraw & ~Redraw.STATUS:
            self._render_attachments(view)
        typer.echo(view.status)

    def message(self, text: str) -> None:
        typer.echo(text)

    def error(self, text: str) -> None:
        typer.secho(text, fg=typer.colors.RED, err=True)

    def view_attachment(self, body: BodyPart) -> None:
        if body.filename is None:
            typer.echo(f"[-- {body.content_type} --]")
            return
        if is_text_part(body):
            with open(body.filename, encoding="utf-8", errors="replace") as f:
                typer.echo_via_pager(f.read())
        else:
            typer.echo(f"[-- {body.content_type} attachment {body.filename} --]")

    # --- Prompter ---

    def get_field(self, prompt: str, default: str = "") -> str | None:
        try:
            return typer.prompt(prompt.rstrip(), default=default, show_default=bool(default))
        except typer.Abort:
            return None

    def yes_or_no(self, prompt: str, default: QuadOption) -> QuadOption:
        hint = "([yes]/no)" if default == QuadOption.YES else "(yes/[no])"
        while True:
            try:
                text = typer.prompt(f"{prompt} {hint}", default="", show_default=False)
            except typer.Abort:
                return QuadOption.ABORT
            text = text.strip().lower()
            if not text:
                return default
            if text in ANSWERS:
                return ANSWERS[text]

    def multi_choice(self, prompt: str, letters: str) -> int | None:
        while True:
            try:
                text = typer.prompt(prompt, default="", show_default=False).strip().lower()
            except typer.Abort:
                return None
            if len(text) == 1 and text in letters:
                return letters.index(text) + 1

    def select_files(self, prompt: str) -> list[str] | None:
        text = self.get_field(prompt)
        if not text:
            return None
        return shlex.split(text)

    def enter_mailbox(self, prompt: str, default: str = "") -> str | None:
        return self.get_field(prompt, default)

    def select_messages(self, messages: list[MessageSummary]) -> list[MessageSummary]:
        for i, summary in enumerate(messages, 1):
            date = summary.date.strftime("%Y-%m-%d")
            typer.echo(f"{i:4} {date}  {summary.from_addr:30.30}  {summary.subject}")
        text = self.get_field("Messages to attach (numbers)")
        if not text:
            return []

        selected = []
        for token in text.replace(",", " ").split():
            if token.isdigit() and 1 <= int(token) <= len(messages):
                selected.append(messages[int(token) - 1])
        return selected

    # --- Drawing ---

    def _render_envelope(self, view: ComposeView) -> None:
        envelope = view.email.envelope
        padding = view.padding

        def row(field: HeaderField, value: str) -> None:
            typer.echo(f"{padding.label(field)}{value}")

        row(HeaderField.FROM, ", ".join(envelope.from_addrs))
        if view.news:
            row(HeaderField.NEWSGROUPS, envelope.newsgroups or "")
            row(HeaderField.FOLLOWUP_TO, envelope.followup_to or "")
            if view.layout.news_rows > 2:
                row(HeaderField.X_COMMENT_TO, envelope.x_comment_to or "")
        else:
            for field, wrap in (
                (HeaderField.TO, view.layout.to),
                (HeaderField.CC, view.layout.cc),
                (HeaderField.BCC, view.layout.bcc),
            ):
                lines = list(wrap.lines) if wrap else [""]
                if wrap and wrap.overflow:
                    lines[-1] += more_marker(wrap.overflow)
                row(field, lines[0])
                for line in lines[1:]:
                    typer.echo(" " * padding.max_width + line)

        row(HeaderField.SUBJECT, envelope.subject or "")
        row(HeaderField.REPLY_TO, ", ".join(envelope.reply_to))
        row(HeaderField.FCC, view.fcc)
        row(HeaderField.CRYPT, view.security)
        if view.sign_as is not None:
            row(HeaderField.CRYPT_INFO, view.sign_as)
        if view.autocrypt is not None:
            row(HeaderField.AUTOCRYPT, view.autocrypt)

        if view.layout.user_header_rows:
            lines = user_header_lines(envelope.user_headers)
            row(HeaderField.CUSTOM_HEADERS, lines[0])
            for line in lines[1:]:
                typer.echo(" " * padding.max_width + line)
        typer.echo("-- Attachments")

    def _render_attachments(self, view: ComposeView) -> None:
        tree = view.attachments
        for position, index in enumerate(tree.visible):
            node = tree[index]
            body = node.body
            cursor = ">" if position == view.current else " "
            tag = "*" if node.tagged else " "
            unlink = "D" if body.unlink else "-"
            disposition = "I" if body.disposition is Disposition.INLINE else "A"
            name = body.description or body.d_filename or body.filename or ""
            indent = "  " * node.level
            folded = "+" if node.collapsed else ""
            typer.echo(
                f"{cursor}{tag}{unlink}{disposition} {node.num:3} "
                f"{indent}{folded}{pad_to_width(name, 40)} [{body.content_type}, {body.encoding.value}]"
            )


class ExternalEditor:
    """Run external programs on attachment files."""

    def __init__(self, options: ComposeOptions):
        self.options = options

    def edit_file(self, path: str) -> None:
        command = [*shlex.split(self.options.editor()), path]
        logger.debug("Running %s", command)
        try:
            subprocess.run(command, check=False)
        except OSError as e:
            typer.secho(
                f"Can't run {command[0]}: {e.strerror}", fg=typer.colors.RED, err=True
            )

    def compose_attachment(self, body: BodyPart) -> bool:
        if body.filename is None:
            return False
        self.edit_file(body.filename)
        return True

    def edit_attachment(self, body: BodyPart) -> bool:
        if body.filename is None or not is_text_part(body):
            return False
        self.edit_file(body.filename)
        return True

    def spell_check(self, command: str, path: str) -> bool:
        try:
            subprocess.run([*shlex.split(command), "-x", path], check=False)
        except OSError as e:
            logger.warning("Can't run %s: %s", command, e)
            return False
        return True
