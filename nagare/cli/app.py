from __future__ import annotations

import typer

from nagare import __version__
from nagare.cli.commands.release_cmd import preview, release, rollback


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command()(preview)
app.command()(rollback)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Transactional releases: bump, rewrite, commit, tag, push, roll back."""


def main() -> None:
    app()
