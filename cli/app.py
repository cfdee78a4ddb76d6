from __future__ import annotations

import logging

import typer
from dotenv import load_dotenv
from rich.panel import Panel
from rich.table import Table

from .common import console, configure_logging
from .subapps.ntp import ntp_app

app = typer.Typer(help="CubeClock command line interface")
app.add_typer(ntp_app, name="ntp")

_COMMANDS = [
    ("cubeclock ntp query --host pool.ntp.org", "Query a server once"),
    ("cubeclock ntp watch --cycles 10", "Watch the local clock offset"),
    ("cubeclock ntp sync --yes", "Step the system clock (needs privileges)"),
    ("cubeclock ntp status", "Show resolved settings"),
]


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    load_dotenv()
    configure_logging("cli", logging.DEBUG if verbose else logging.INFO)
    if ctx.invoked_subcommand is None:
        _show_commands()


def _show_commands() -> None:
    table = Table()
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Command", style="green")
    table.add_column("Purpose")
    for idx, (command, label) in enumerate(_COMMANDS, start=1):
        table.add_row(str(idx), command, label)
    console().print(Panel(table, title="CubeClock", subtitle="<command> --help for options"))


if __name__ == "__main__":
    app()
