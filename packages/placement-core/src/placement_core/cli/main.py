"""Placement CLI - replica placement policy diagnostics."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from placement_core.cli.plan import place, suggest
from placement_core.cli.report import show_rows, show_violations

app = typer.Typer(
    name="placement",
    help="Evaluate replica placement policies against a cluster snapshot",
    no_args_is_help=True,
)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine decisions"),
) -> None:
    """Evaluate replica placement policies against a cluster snapshot."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app.command("rows")(show_rows)
app.command("violations")(show_violations)
app.command("suggest")(suggest)
app.command("place")(place)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
