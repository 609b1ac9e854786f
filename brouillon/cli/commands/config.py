"""`brouillon config`: create, inspect and edit config.toml."""

import typer
from typing_extensions import Annotated

from brouillon.config import (
    CONFIG_FILE,
    DEFAULTS,
    QuadOption,
    init_config,
    load_config,
    set_config_value,
)

app = typer.Typer(help="Manage configuration")


@app.command()
def init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Replace an existing config file")
    ] = False,
):
    """Write a commented config.toml with every option at its default."""
    created = init_config(overwrite=force)

    if created:
        typer.echo(f"Wrote {CONFIG_FILE}")
    else:
        typer.echo(f"{CONFIG_FILE} already exists (use --force to replace it)")


@app.command()
def show(
    defaults: Annotated[
        bool, typer.Option("--defaults", help="Include options left at their default")
    ] = False,
):
    """Print the [compose] options that are set."""
    config = load_config()

    if not config and not defaults:
        typer.echo("No configuration found.")
        typer.echo(f"Run 'brouillon config init' to create {CONFIG_FILE}")
        return

    compose = config.get("compose", {})
    typer.echo("[compose]")
    for key, value in compose.items():
        typer.echo(f"  {key} = {value}")

    if defaults:
        for key, value in DEFAULTS.items():
            if key in compose:
                continue
            if isinstance(value, QuadOption):
                value = value.value
            typer.echo(f"  {key} = {value}  (default)")


@app.command("set")
def set_value(
    key: Annotated[
        str,
        typer.Argument(help="Configuration key (dot notation, e.g., 'compose.postpone')"),
    ],
    value: Annotated[str, typer.Argument(help="Configuration value")],
):
    """Store one option, e.g. compose.postpone.

    Examples:
        brouillon config set compose.postpone ask-no
        brouillon config set compose.autocrypt true
    """
    try:
        set_config_value(key, value)
        typer.echo(f"Set {key} = {value}")
    except ValueError as e:
        typer.echo(f"Invalid value: {e}", err=True)
        raise typer.Exit(1)
