"""Compose command implementation."""

import os
import shutil
import tempfile
from pathlib import Path

import typer
from typing_extensions import Annotated

from brouillon.cli.terminal import ExternalEditor, TerminalSession
from brouillon.compose.assemble import message_bytes
from brouillon.compose.attachments import AttachmentTree
from brouillon.compose.controller import ComposeController, ComposeResult
from brouillon.compose.errors import BadIdnError, ComposeError
from brouillon.compose.headers import check_idn, parse_address_text
from brouillon.compose.mime import make_file_attach, update_encoding
from brouillon.compose.models import AttachmentNode, BodyPart, Disposition, Email, Envelope
from brouillon.config import ComposeOptions
from brouillon.config.paths import expand_path, pretty_path
from brouillon.storage.maildir import save_to_maildir

app = typer.Typer(help="Compose a message interactively")


@app.callback(invoke_without_command=True)
def compose(
    ctx: typer.Context,
    from_: Annotated[str | None, typer.Option("--from", help="Sender address")] = None,
    to: Annotated[list[str] | None, typer.Option("--to", help="Recipient(s)")] = None,
    cc: Annotated[list[str] | None, typer.Option("--cc", help="CC recipient(s)")] = None,
    bcc: Annotated[list[str] | None, typer.Option("--bcc", help="BCC recipient(s)")] = None,
    subject: Annotated[str | None, typer.Option("--subject", help="Email subject")] = None,
    fcc: Annotated[
        str | None, typer.Option("--fcc", help="Maildir to keep a copy of the sent message")
    ] = None,
    attach: Annotated[list[str] | None, typer.Option("--attach", help="Attach file(s)")] = None,
    body_file: Annotated[
        Path | None, typer.Option("--body-file", help="Start from the text of this file")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the sent message here")
    ] = None,
    columns: Annotated[
        int | None, typer.Option("--columns", help="Screen width (default: terminal width)")
    ] = None,
):
    """Compose a message on the compose screen.

    Sending writes the message to --output (or stdout). Postponing saves it
    as a draft in the postponed Maildir. Discarding exits with status 1.
    """
    options = ComposeOptions()

    try:
        envelope = Envelope(
            from_addrs=check_idn(parse_address_text(from_ or "")),
            to=check_idn(_addresses(to)),
            cc=check_idn(_addresses(cc)),
            bcc=check_idn(_addresses(bcc)),
            subject=subject,
        )
    except BadIdnError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)

    tree = AttachmentTree()
    tree.add(AttachmentNode(body=_main_body(body_file)))
    for path in attach or []:
        try:
            tree.add(AttachmentNode(body=make_file_attach(path), unowned=True))
        except ComposeError as e:
            tree.release()
            typer.echo(str(e), err=True)
            raise typer.Exit(1)

    email = Email(envelope=envelope, body=tree.root)
    session = TerminalSession()
    controller = ComposeController(
        email,
        ui=session,
        prompter=session,
        editor=ExternalEditor(options),
        options=options,
        tree=tree,
        fcc=fcc or "",
        columns=columns or shutil.get_terminal_size().columns,
    )

    result = controller.run()
    if result is ComposeResult.ABORT:
        typer.echo("Mail not sent.")
        raise typer.Exit(1)

    try:
        if result is ComposeResult.POSTPONE:
            _postpone(email, controller.fcc, options)
        else:
            _send(email, controller.fcc, output)
    except (ComposeError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        controller.tree.release()


def _addresses(values: list[str] | None) -> list[str]:
    addresses = []
    for value in values or []:
        addresses.extend(parse_address_text(value))
    return addresses


def _main_body(body_file: Path | None) -> BodyPart:
    """Create the text part in a private temporary file."""
    fd, path = tempfile.mkstemp(prefix="brouillon-", suffix=".txt")
    with os.fdopen(fd, "w") as f:
        if body_file is not None:
            f.write(body_file.read_text())

    body = BodyPart(filename=path, disposition=Disposition.INLINE, unlink=True)
    update_encoding(body)
    return body


def _postpone(email: Email, fcc: str, options: ComposeOptions) -> None:
    data = message_bytes(email, include_bcc=True, fcc=fcc or None)
    drafts = expand_path(options.get_str("postponed"))
    save_to_maildir(drafts, data, "DS")
    typer.echo(f"Message postponed to {pretty_path(str(drafts))}")


def _send(email: Email, fcc: str, output: Path | None) -> None:
    data = message_bytes(email)
    if output is not None:
        output.write_bytes(data)
        typer.echo(f"Message written to {output}", err=True)
    else:
        typer.echo(data, nl=False)

    if fcc:
        save_to_maildir(expand_path(fcc), message_bytes(email, include_bcc=True))
        typer.echo(f"Copy saved to {pretty_path(fcc)}", err=True)
