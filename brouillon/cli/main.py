"""Main CLI entry point for brouillon."""

import logging

import typer
from typing_extensions import Annotated

from brouillon import __version__
from brouillon.cli import commands

app = typer.Typer(
    name="brouillon",
    help="Compose mail messages from the terminal",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(commands.compose.app, name="compose")
app.add_typer(commands.config.app, name="config")


@app.callback()
def setup(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")
    ] = False,
):
    """Compose mail messages from the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version():
    """Show version information."""
    typer.echo(f"brouillon version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
